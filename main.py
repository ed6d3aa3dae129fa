from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv
from PyQt6.QtWidgets import QApplication
from qasync import QEventLoop

from assist_prompts import load_profile_context
from assist_service import CaptionAssistService
from caption_feed import DEFAULT_FEED_POLL_INTERVAL_S, JsonlCaptionFeed, PageStateProbe
from caption_pipeline import CaptionPipeline
from caption_text import CaptionClassifiers
from config_utils import read_bool_env, read_float_env, read_int_env, read_str_env
from metrics_reporter import SessionMetricsReporter
from overlay_ui import AssistPanelWindow
from result_cache import RESULT_CACHE_MAX_SIZE, RESULT_CACHE_TTL_S, ResultCache
from settings_store import SettingsStore


class CaptionAssistApp:
    """Wires the caption feed, the assist pipeline and the overlay panel together."""

    def __init__(self, ui: AssistPanelWindow, loop: asyncio.AbstractEventLoop) -> None:
        self.ui = ui
        self.loop = loop
        self.settings_store = SettingsStore(read_str_env("SETTINGS_PATH", "./settings/assist_settings.json"))
        profile_path = os.getenv("COACH_PROFILE_PATH")
        self.classifiers = CaptionClassifiers(
            language_tie_default=read_str_env("QUESTION_LANGUAGE_TIE_DEFAULT", "ru").lower()
        )
        self.assist_service = CaptionAssistService(
            cache=ResultCache(
                ttl_s=read_float_env("RESULT_CACHE_TTL_SECONDS", RESULT_CACHE_TTL_S),
                max_size=read_int_env("RESULT_CACHE_MAX_SIZE", RESULT_CACHE_MAX_SIZE),
            ),
            profile_loader=lambda: load_profile_context(profile_path),
            classifiers=self.classifiers,
        )
        self.metrics_reporter = SessionMetricsReporter(
            enabled=read_bool_env("METRICS_ENABLED", True),
            output_path=os.getenv("METRICS_OUTPUT_PATH", "./reports/session_metrics.jsonl"),
            summary_path=os.getenv("METRICS_SUMMARY_PATH", "./reports/session_summary.json"),
            append_mode=read_bool_env("METRICS_APPEND_MODE", False),
        )
        self.page_state = PageStateProbe()
        self.pipeline = CaptionPipeline(
            ui,
            loop,
            self.settings_store,
            self.assist_service,
            classifiers=self.classifiers,
            metrics_reporter=self.metrics_reporter,
            screen_share_probe=self.page_state,
        )
        self.feed: Optional[JsonlCaptionFeed] = None
        feed_path = os.getenv("CAPTION_FEED_PATH")
        if feed_path:
            self.feed = JsonlCaptionFeed(
                feed_path,
                loop,
                on_caption=self.pipeline.feed,
                on_ui_action=self.pipeline.notify_ui_action,
                page_state=self.page_state,
                poll_interval_s=read_float_env("CAPTION_FEED_POLL_SECONDS", DEFAULT_FEED_POLL_INTERVAL_S),
            )

        self.ui.coach_tab_selected.connect(self.pipeline.select_coach_variant)
        self.ui.enabled_toggled.connect(lambda value: self.pipeline.apply_user_setting("enabled", value))
        self.ui.coach_toggled.connect(lambda value: self.pipeline.apply_user_setting("coach_enabled", value))
        self.ui.target_language_changed.connect(
            lambda value: self.pipeline.apply_user_setting("target_language", value)
        )
        self.ui.hide_requested.connect(lambda: self.pipeline.hide_panel("Panel hidden"))

        settings = self.settings_store.snapshot()
        self.ui.sync_settings(settings.enabled, settings.coach_enabled, settings.target_language)
        self.ui.apply_panel_position(settings.panel_position)

    def start(self, show_panel: bool = False) -> None:
        """Restore the stored panel visibility; ``show_panel`` re-shows a panel hidden by a screen share."""
        self.pipeline.attach()
        if show_panel:
            self.pipeline.show_panel()
        if not self.settings_store.snapshot().api_key:
            self.ui.set_status("OPENAI_API_KEY is not set. Add it to .env and restart.", is_error=True)
            return
        if self.feed is not None:
            self.feed.start()
        else:
            self.ui.set_status("CAPTION_FEED_PATH is not set. No captions will arrive.", is_error=True)

    def shutdown_sync(self) -> None:
        if self.feed is not None:
            self.feed.stop()
        self.pipeline.shutdown_sync()


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="meeting-caption-assist")
    parser.add_argument(
        "--show-panel",
        action="store_true",
        help="show the panel again after it was hidden for a screen share",
    )
    # Unknown arguments are left for Qt.
    args, _ = parser.parse_known_args(argv)
    return args


def main() -> None:
    load_dotenv()
    log_level_name = (os.getenv("LOG_LEVEL", "INFO") or "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(message)s")
    args = _parse_args(sys.argv[1:])

    app = QApplication(sys.argv)
    loop = QEventLoop(app)
    asyncio.set_event_loop(loop)

    overlay = AssistPanelWindow()
    assist_app = CaptionAssistApp(overlay, loop)
    app.aboutToQuit.connect(assist_app.shutdown_sync)
    assist_app.start(show_panel=args.show_panel)

    with loop:
        loop.run_forever()


if __name__ == "__main__":
    main()
