from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Callable, Coroutine, Optional

from assist_service import AssistServiceError, CaptionAssistService
from caption_buffer import DEFAULT_QUIET_PERIOD_S, CaptionFragment, StableCaptionBuffer
from caption_text import CaptionClassifiers, normalize_speaker_label, normalize_text
from coach_session import SAME_VARIANT, THINKING_TEXT, CoachReply, CoachSession
from config_utils import read_bool_env, read_float_env
from metrics_reporter import SessionMetricsReporter
from presentation_guard import SCREEN_SHARE_CHECK_INTERVAL_S, ScreenShareGuard
from recent_cache import (
    COACH_DEDUP_TTL_S,
    SOURCE_DEDUP_TTL_S,
    RecentKeyCache,
    coach_dedup_key,
    source_dedup_key,
)
from settings_store import AssistSettings

DEFAULT_FANOUT_VARIANTS = ("uk", "en")


@dataclass(frozen=True)
class UtteranceOutcome:
    action: str
    reason: str = ""
    coach_variants: tuple[str, ...] = ()
    translation_requested: bool = False


def _dropped(reason: str) -> UtteranceOutcome:
    return UtteranceOutcome(action="dropped", reason=reason)


def _read_fanout_variants() -> tuple[str, ...]:
    raw = (os.getenv("COACH_FANOUT_VARIANTS") or "").strip().lower()
    variants = tuple(part.strip() for part in raw.split(",") if part.strip())
    return variants or DEFAULT_FANOUT_VARIANTS


class CaptionPipeline:
    """Owns one call session: pending caption, dedup caches and the coach session.

    Created when a call page is attached and closed when it goes away. Every
    mutation happens on the event loop thread between awaits, so no locking
    is needed. Network calls are fire-and-forget tasks whose results are
    reconciled against the live coach session when they land.
    """

    def __init__(
        self,
        ui: Any,
        loop: asyncio.AbstractEventLoop,
        settings_store: Any,
        assist_service: CaptionAssistService,
        classifiers: Optional[CaptionClassifiers] = None,
        metrics_reporter: Optional[SessionMetricsReporter] = None,
        screen_share_probe: Optional[Callable[[], bool]] = None,
        quiet_period_s: Optional[float] = None,
        source_ttl_s: Optional[float] = None,
        coach_ttl_s: Optional[float] = None,
        require_speaker: Optional[bool] = None,
        fanout_variants: Optional[tuple[str, ...]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ui = ui
        self.loop = loop
        self._settings = settings_store
        self._assist = assist_service
        self.classifiers = classifiers or CaptionClassifiers(
            language_tie_default=(os.getenv("QUESTION_LANGUAGE_TIE_DEFAULT") or "ru").strip().lower()
        )
        self.metrics_reporter = metrics_reporter
        self.require_speaker = (
            require_speaker if require_speaker is not None else read_bool_env("REQUIRE_SPEAKER_LABEL", True)
        )
        self.fanout_variants = fanout_variants or _read_fanout_variants()
        self.buffer = StableCaptionBuffer(
            loop,
            self._on_stable_caption,
            quiet_period_s or read_float_env("STABLE_CAPTION_DELAY_SECONDS", DEFAULT_QUIET_PERIOD_S),
        )
        self.recent_sources = RecentKeyCache(
            source_ttl_s or read_float_env("RECENT_SOURCE_TTL_SECONDS", SOURCE_DEDUP_TTL_S),
            clock=clock,
        )
        self.recent_coach_requests = RecentKeyCache(
            coach_ttl_s or read_float_env("COACH_RECENT_TTL_SECONDS", COACH_DEDUP_TTL_S),
            clock=clock,
        )
        self.coach_session = CoachSession()
        self.guard: Optional[ScreenShareGuard] = None
        if screen_share_probe is not None:
            self.guard = ScreenShareGuard(
                loop,
                screen_share_probe,
                self.hide_panel,
                interval_s=read_float_env("SCREEN_SHARE_CHECK_SECONDS", SCREEN_SHARE_CHECK_INTERVAL_S),
            )
        self.debug_enabled = read_bool_env("DEBUG_MODE", False)
        self.attached = False
        self._tasks: set[asyncio.Task[None]] = set()

    def attach(self) -> None:
        if self.attached:
            return
        self.attached = True
        if self.metrics_reporter is not None:
            self.metrics_reporter.start_session()
        settings = self._settings.snapshot()
        self.ui.set_panel_visible(settings.panel_visible)
        self.ui.show_coach_hint("", "")
        self.ui.set_status("Waiting for captions...")
        if self.guard is not None:
            self.guard.start()

    def close(self) -> None:
        self.attached = False
        self.buffer.cancel()
        if self.guard is not None:
            self.guard.stop()
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
        self.coach_session.reset()
        self.recent_sources.clear()
        self.recent_coach_requests.clear()
        if self.metrics_reporter is not None:
            summary = self.metrics_reporter.finalize_session()
            if self.debug_enabled and summary:
                logging.info("metrics_session_summary %s", summary)

    def shutdown_sync(self) -> None:
        self.close()

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def feed(self, text: str, speaker: str = "") -> bool:
        label = normalize_speaker_label(speaker)
        if label and self.classifiers.is_self_speaker(label):
            return False
        return self.buffer.push(text, speaker)

    def _on_stable_caption(self, caption: CaptionFragment) -> None:
        outcome = self.process_utterance(caption.text, caption.speaker)
        if self.debug_enabled:
            logging.info(
                "debug_utterance action=%s reason=%s variants=%s translate=%s",
                outcome.action,
                outcome.reason,
                ",".join(outcome.coach_variants),
                outcome.translation_requested,
            )

    def process_utterance(self, raw_text: str, speaker: str = "") -> UtteranceOutcome:
        settings = self._settings.snapshot()
        if not settings.enabled or not settings.panel_visible:
            return self._drop("disabled")

        speaker_label = normalize_speaker_label(speaker)
        if self.require_speaker and not speaker_label:
            return self._drop("unattributed")
        if speaker_label and self.classifiers.is_self_speaker(speaker_label):
            return self._drop("self_speaker")

        text = normalize_text(raw_text)
        if not self.classifiers.is_caption_like(text):
            return self._drop("not_caption")
        if self.recent_sources.check_and_mark(source_dedup_key(text)):
            return self._drop("duplicate")

        question_detected = self.classifiers.is_question(text)
        if self.classifiers.has_cyrillic(text):
            return self._process_cyrillic(text, question_detected, settings)

        variants: tuple[str, ...] = ()
        if settings.coach_enabled and self.classifiers.should_trigger_coach(text, question_detected):
            variants = self.request_coach_hint(text, settings)

        self.ui.set_status("Translating...")
        self._spawn(self._translate(text, settings), name="translate")
        return UtteranceOutcome(action="translate", coach_variants=variants, translation_requested=True)

    def _process_cyrillic(self, text: str, question_detected: bool, settings: AssistSettings) -> UtteranceOutcome:
        # RU/UK speech is never translated, only coached.
        if self.classifiers.is_continuation_cue(text):
            self.ui.set_status("Coach keeps previous answer")
            return UtteranceOutcome(action="continuation")

        variants: tuple[str, ...] = ()
        triggered = self.classifiers.should_trigger_coach(text, question_detected) or self.classifiers.is_substantial(
            text
        )
        if settings.coach_enabled and triggered:
            variant = SAME_VARIANT
            self._start_coach_session(text, (variant,), variant)
            self.request_coach_variant(text, variant, settings, force=True)
            variants = (variant,)
        self.ui.set_status("Coach-only mode for RU/UK")
        return UtteranceOutcome(action="coach_only", coach_variants=variants)

    def request_coach_hint(self, question: str, settings: AssistSettings) -> tuple[str, ...]:
        if not settings.coach_enabled:
            return ()
        if self.classifiers.is_english(question):
            variants = self.fanout_variants
            active = next((variant for variant in variants if variant != "en"), variants[0])
        else:
            variants = (SAME_VARIANT,)
            active = variants[0]

        recent = [
            variant for variant in variants if self.recent_coach_requests.contains(coach_dedup_key(variant, question))
        ]
        if len(recent) == len(variants):
            return ()

        self._start_coach_session(question, variants, active)
        # A partial re-ask still goes through the result cache, so answered variants cost nothing.
        for variant in variants:
            self.request_coach_variant(question, variant, settings, force=variant in recent)
        return variants

    def request_coach_variant(
        self,
        question: str,
        variant: str,
        settings: AssistSettings,
        force: bool = False,
    ) -> bool:
        if not force and self.recent_coach_requests.contains(coach_dedup_key(variant, question)):
            return False
        self._spawn(self._coach_variant(question, variant, settings), name=f"coach-{variant}")
        return True

    def apply_coach_reply(self, reply: CoachReply) -> bool:
        if not self.coach_session.is_current(reply.question):
            if self.debug_enabled:
                logging.info("debug_coach_stale variant=%s", reply.variant)
            return False
        if reply.ok:
            if self.coach_session.apply(reply):
                self.ui.show_coach_hint(reply.question, reply.text)
                return True
            return False
        if self.coach_session.should_display(reply.variant):
            self.ui.show_coach_hint(reply.question, reply.error or "Coach failed")
            return True
        return False

    def select_coach_variant(self, variant: str) -> str:
        text = self.coach_session.select(variant)
        self.ui.set_active_coach_tab(variant)
        if self.coach_session.current_question:
            self.ui.show_coach_hint(self.coach_session.current_question, text)
        return text

    def hide_panel(self, reason: str = "Panel hidden") -> bool:
        settings = self._settings.snapshot()
        if not settings.panel_visible:
            return False
        self.ui.set_panel_visible(False)
        self._settings.update(panel_visible=False)
        self.buffer.cancel()
        self.ui.set_status(reason)
        return True

    def show_panel(self) -> None:
        self.ui.set_panel_visible(True)
        self._settings.update(panel_visible=True)
        if self.guard is not None:
            self.guard.rearm()
        self.ui.set_status("Waiting for captions...")

    def notify_ui_action(self, label: str, icon_text: str = "") -> bool:
        if self.guard is None:
            return False
        if not self._settings.snapshot().panel_visible:
            return False
        return self.guard.notify_ui_action(label, icon_text)

    def apply_user_setting(self, name: str, value: Any) -> None:
        self._settings.update(**{name: value})
        if name == "enabled":
            self.ui.set_status("Translation enabled" if value else "Translation paused")
        elif name == "coach_enabled":
            self.ui.set_status("Coach enabled" if value else "Coach disabled")
        elif name == "target_language":
            self.ui.set_status(f"Target language: {str(value).upper()}")
        elif name == "model":
            self.ui.set_status(f"Model: {value}")

    def _start_coach_session(self, question: str, variants: tuple[str, ...], active: str) -> None:
        self.coach_session.start(question, variants, active)
        self.ui.set_coach_tabs_visible(self.coach_session.tabs_visible)
        self.ui.set_active_coach_tab(active)
        self.ui.show_coach_hint(question, THINKING_TEXT)

    async def _coach_variant(self, question: str, variant: str, settings: AssistSettings) -> None:
        started = perf_counter()
        try:
            result = await self._assist.coach(
                question,
                settings.model,
                variant,
                api_key=settings.api_key or None,
                reply_language=settings.coach_language if variant == SAME_VARIANT else None,
            )
        except AssistServiceError as exc:
            self._record_error("coach", str(exc))
            reply = CoachReply(question=question, variant=variant, error=str(exc))
        else:
            self.recent_coach_requests.mark(coach_dedup_key(variant, question))
            self._record_request("coach", variant, result.cached, perf_counter() - started)
            reply = CoachReply(question=question, variant=variant, text=result.text, cached=result.cached)
        self.apply_coach_reply(reply)

    async def _translate(self, text: str, settings: AssistSettings) -> None:
        started = perf_counter()
        try:
            result = await self._assist.translate(
                text,
                settings.target_language,
                settings.model,
                api_key=settings.api_key or None,
            )
        except AssistServiceError as exc:
            self._record_error("translation", str(exc))
            self.ui.set_status(str(exc), is_error=True)
            return
        self._record_request("translation", settings.target_language, result.cached, perf_counter() - started)
        self.ui.add_translation(text, result.text, result.cached)
        self.ui.set_status("Listening...")

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = self.loop.create_task(coro, name=name)
        self._tasks.add(task)

        def _finalize(done_task: asyncio.Task[None]) -> None:
            self._tasks.discard(done_task)
            try:
                done_task.result()
            except asyncio.CancelledError:
                pass
            except Exception as exc:  # noqa: BLE001 - task boundary
                self._record_error(name, str(exc))
                self.ui.set_status(f"Assist error: {exc}", is_error=True)

        task.add_done_callback(_finalize)

    def _drop(self, reason: str) -> UtteranceOutcome:
        if self.metrics_reporter is not None:
            self.metrics_reporter.record_drop()
        return _dropped(reason)

    def _record_request(self, kind: str, variant: str, cached: bool, latency_s: float) -> None:
        if self.metrics_reporter is not None:
            self.metrics_reporter.record_request(kind, variant, cached, latency_s)
        if self.debug_enabled:
            logging.info("debug_request kind=%s variant=%s cached=%s latency_s=%.3f", kind, variant, cached, latency_s)

    def _record_error(self, stage: str, error: str) -> None:
        if self.metrics_reporter is not None:
            self.metrics_reporter.record_error(stage, error)
        logging.warning("assist_error stage=%s error=%s", stage, error)
