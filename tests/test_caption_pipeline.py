from __future__ import annotations

import asyncio
import unittest
from typing import Any, Optional
from unittest.mock import AsyncMock

from assist_service import AssistResult, QuotaExceededError, RemoteCallError
from caption_pipeline import CaptionPipeline
from coach_session import THINKING_TEXT, CoachReply
from settings_store import AssistSettings, MemorySettingsStore


class _FakeClock:
    def __init__(self) -> None:
        self.now = 500.0

    def __call__(self) -> float:
        return self.now


class _FakePanel:
    def __init__(self) -> None:
        self.statuses: list[tuple[str, bool]] = []
        self.hints: list[tuple[str, str]] = []
        self.tabs_visible: list[bool] = []
        self.active_tabs: list[str] = []
        self.translations: list[tuple[str, str, bool]] = []
        self.visibility: list[bool] = []

    def set_status(self, text: str, is_error: bool = False) -> None:
        self.statuses.append((text, is_error))

    def show_coach_hint(self, question: str, hint: str) -> None:
        self.hints.append((question, hint))

    def set_coach_tabs_visible(self, visible: bool) -> None:
        self.tabs_visible.append(visible)

    def set_active_coach_tab(self, variant: str) -> None:
        self.active_tabs.append(variant)

    def add_translation(self, source: str, translated: str, cached: bool) -> None:
        self.translations.append((source, translated, cached))

    def set_panel_visible(self, visible: bool) -> None:
        self.visibility.append(visible)


class _FakeAssistService:
    def __init__(self) -> None:
        self.coach = AsyncMock(side_effect=self._coach)
        self.translate = AsyncMock(side_effect=self._translate)

    @staticmethod
    def _coach(
        question: str,
        model: str,
        variant: str = "same",
        *,
        api_key: Optional[str] = None,
        reply_language: Optional[str] = None,
    ) -> AssistResult:
        return AssistResult(text=f"Answer: {variant} hint")

    @staticmethod
    def _translate(text: str, target: str, model: str, *, api_key: Optional[str] = None) -> AssistResult:
        return AssistResult(text=f"{target}:{text}")

    def coach_variants(self) -> list[str]:
        return [call.args[2] for call in self.coach.await_args_list]


class CaptionPipelineTests(unittest.TestCase):
    def _run(self, scenario: Any, settings: Optional[AssistSettings] = None, **kwargs: Any) -> tuple:
        panel = _FakePanel()
        assist = _FakeAssistService()
        store = MemorySettingsStore(settings or AssistSettings(api_key="test-key"))
        holder: dict[str, CaptionPipeline] = {}

        async def runner() -> Any:
            pipeline = CaptionPipeline(
                panel,
                asyncio.get_running_loop(),
                store,
                assist,  # type: ignore[arg-type]
                require_speaker=True,
                **kwargs,
            )
            holder["pipeline"] = pipeline
            result = await scenario(pipeline)
            await pipeline.drain()
            return result

        result = asyncio.run(runner())
        return result, holder["pipeline"], panel, assist, store

    def test_cyrillic_question_gets_single_same_variant_coach_and_no_translation(self) -> None:
        async def scenario(pipeline: CaptionPipeline):
            return pipeline.process_utterance("Як ти обробляєш помилки мережі?", "Interviewer")

        outcome, _pipeline, panel, assist, _store = self._run(scenario)

        self.assertEqual(outcome.action, "coach_only")
        self.assertEqual(outcome.coach_variants, ("same",))
        self.assertEqual(assist.coach_variants(), ["same"])
        assist.translate.assert_not_awaited()
        self.assertIn(("Coach-only mode for RU/UK", False), panel.statuses)
        self.assertEqual(panel.tabs_visible, [False])
        self.assertEqual(panel.hints[-1], ("Як ти обробляєш помилки мережі?", "Answer: same hint"))

    def test_cyrillic_flow_keeps_same_variant_and_passes_preference_as_reply_language(self) -> None:
        async def scenario(pipeline: CaptionPipeline):
            return pipeline.process_utterance("Як ти обробляєш помилки мережі?", "Interviewer")

        outcome, pipeline, panel, assist, _store = self._run(
            scenario, AssistSettings(api_key="test-key", coach_language="ru")
        )

        self.assertEqual(outcome.coach_variants, ("same",))
        self.assertEqual(assist.coach_variants(), ["same"])
        self.assertEqual(assist.coach.await_args.kwargs["reply_language"], "ru")
        self.assertEqual(panel.active_tabs, ["same"])
        self.assertEqual(pipeline.coach_session.responses["same"], "Answer: same hint")

    def test_english_question_fans_out_and_translates(self) -> None:
        question = "How do you handle retries?"

        async def scenario(pipeline: CaptionPipeline):
            return pipeline.process_utterance(question, "Interviewer")

        outcome, pipeline, panel, assist, _store = self._run(scenario)

        self.assertEqual(outcome.action, "translate")
        self.assertEqual(outcome.coach_variants, ("uk", "en"))
        self.assertEqual(sorted(assist.coach_variants()), ["en", "uk"])
        self.assertEqual(assist.translate.await_count, 1)
        self.assertEqual(assist.translate.await_args.args[1], "uk")
        self.assertEqual(panel.tabs_visible, [True])
        self.assertEqual(panel.active_tabs, ["uk"])
        self.assertEqual(panel.hints[0], (question, THINKING_TEXT))
        self.assertIn((question, "Answer: uk hint"), panel.hints)
        self.assertNotIn((question, "Answer: en hint"), panel.hints)
        self.assertEqual(panel.translations, [(question, f"uk:{question}", False)])
        self.assertEqual(panel.statuses[-1], ("Listening...", False))
        self.assertEqual(pipeline.coach_session.responses["en"], "Answer: en hint")

    def test_selecting_tab_shows_stored_variant(self) -> None:
        question = "What is your testing strategy?"

        async def scenario(pipeline: CaptionPipeline):
            pipeline.process_utterance(question, "Interviewer")
            await pipeline.drain()
            return pipeline.select_coach_variant("en")

        shown, _pipeline, panel, _assist, _store = self._run(scenario)

        self.assertEqual(shown, "Answer: en hint")
        self.assertEqual(panel.active_tabs[-1], "en")
        self.assertEqual(panel.hints[-1], (question, "Answer: en hint"))

    def test_non_question_english_is_only_translated(self) -> None:
        async def scenario(pipeline: CaptionPipeline):
            return pipeline.process_utterance("We moved the service to Kubernetes", "Interviewer")

        outcome, _pipeline, _panel, assist, _store = self._run(scenario)

        self.assertEqual(outcome.coach_variants, ())
        assist.coach.assert_not_awaited()
        self.assertEqual(assist.translate.await_count, 1)

    def test_coach_disabled_skips_coaching(self) -> None:
        async def scenario(pipeline: CaptionPipeline):
            return pipeline.process_utterance("Why did you pick Postgres?", "Interviewer")

        outcome, _pipeline, _panel, assist, _store = self._run(
            scenario, AssistSettings(api_key="test-key", coach_enabled=False)
        )

        self.assertTrue(outcome.translation_requested)
        assist.coach.assert_not_awaited()

    def test_drops(self) -> None:
        async def scenario(pipeline: CaptionPipeline):
            return [
                pipeline.process_utterance("What is your stack?", ""),
                pipeline.process_utterance("What is your stack?", "You"),
                pipeline.process_utterance("Alex joined the meeting", "Alex"),
                pipeline.process_utterance("What is your stack?", "Interviewer"),
                pipeline.process_utterance("what is   your stack?", "Interviewer"),
            ]

        outcomes, _pipeline, _panel, assist, _store = self._run(scenario)

        self.assertEqual(
            [outcome.reason for outcome in outcomes],
            ["unattributed", "self_speaker", "not_caption", "", "duplicate"],
        )
        self.assertEqual(assist.translate.await_count, 1)

    def test_disabled_or_hidden_panel_drops_everything(self) -> None:
        async def scenario(pipeline: CaptionPipeline):
            return pipeline.process_utterance("What is your stack?", "Interviewer")

        for settings in (
            AssistSettings(api_key="test-key", enabled=False),
            AssistSettings(api_key="test-key", panel_visible=False),
        ):
            outcome, _pipeline, _panel, assist, _store = self._run(scenario, settings)
            self.assertEqual(outcome.reason, "disabled")
            assist.coach.assert_not_awaited()
            assist.translate.assert_not_awaited()

    def test_continuation_cue_keeps_previous_answer(self) -> None:
        async def scenario(pipeline: CaptionPipeline):
            return pipeline.process_utterance("угу, продолжай", "Interviewer")

        outcome, _pipeline, panel, assist, _store = self._run(scenario)

        self.assertEqual(outcome.action, "continuation")
        assist.coach.assert_not_awaited()
        self.assertEqual(panel.statuses[-1], ("Coach keeps previous answer", False))

    def test_recent_coach_question_is_not_reasked(self) -> None:
        clock = _FakeClock()
        question = "How do you handle retries?"

        async def scenario(pipeline: CaptionPipeline):
            pipeline.process_utterance(question, "Interviewer")
            await pipeline.drain()
            clock.now += 25.0
            return pipeline.process_utterance(question, "Interviewer")

        second, _pipeline, _panel, assist, _store = self._run(scenario, clock=clock)

        self.assertEqual(second.coach_variants, ())
        self.assertTrue(second.translation_requested)
        self.assertEqual(assist.coach.await_count, 2)

    def test_stale_reply_is_not_displayed(self) -> None:
        async def scenario(pipeline: CaptionPipeline):
            pipeline.coach_session.start("Second question?", ("uk", "en"), "uk")
            return pipeline.apply_coach_reply(CoachReply("First question?", "uk", text="old answer"))

        shown, pipeline, panel, _assist, _store = self._run(scenario)

        self.assertFalse(shown)
        self.assertEqual(panel.hints, [])
        self.assertEqual(pipeline.coach_session.responses, {})

    def test_coach_error_shown_for_active_variant_and_not_marked(self) -> None:
        question = "Why Kafka over RabbitMQ?"

        async def scenario(pipeline: CaptionPipeline):
            pipeline._assist.coach.side_effect = RemoteCallError("Coach API error 500: boom", status_code=500)
            return pipeline.process_utterance(question, "Interviewer")

        _outcome, pipeline, panel, _assist, _store = self._run(scenario)

        self.assertIn((question, "Coach API error 500: boom"), panel.hints)
        self.assertEqual(panel.hints.count((question, "Coach API error 500: boom")), 1)
        self.assertEqual(pipeline.coach_session.responses, {})
        self.assertEqual(len(pipeline.recent_coach_requests), 0)

    def test_translation_error_sets_error_status(self) -> None:
        async def scenario(pipeline: CaptionPipeline):
            pipeline._assist.translate.side_effect = QuotaExceededError("OpenAI API quota exceeded.", 429)
            return pipeline.process_utterance("We use Terraform for infra", "Interviewer")

        _outcome, _pipeline, panel, _assist, _store = self._run(scenario)

        self.assertEqual(panel.statuses[-1], ("OpenAI API quota exceeded.", True))
        self.assertEqual(panel.translations, [])

    def test_feed_debounces_before_processing(self) -> None:
        async def scenario(pipeline: CaptionPipeline):
            self.assertFalse(pipeline.feed("What is", "You"))
            pipeline.feed("What is", "Interviewer")
            pipeline.feed("What is your", "Interviewer")
            pipeline.feed("What is your stack?", "Interviewer")
            await asyncio.sleep(0.12)

        _result, _pipeline, panel, assist, _store = self._run(scenario, quiet_period_s=0.03)

        self.assertEqual(assist.translate.await_count, 1)
        self.assertEqual(assist.translate.await_args.args[0], "What is your stack?")
        self.assertEqual(len(panel.translations), 1)

    def test_hide_and_show_panel_persist_visibility(self) -> None:
        async def scenario(pipeline: CaptionPipeline):
            hidden = pipeline.hide_panel("Panel hidden during screen share")
            hidden_again = pipeline.hide_panel("Panel hidden during screen share")
            dropped = pipeline.process_utterance("What is your stack?", "Interviewer")
            pipeline.show_panel()
            return hidden, hidden_again, dropped

        result, _pipeline, panel, assist, store = self._run(scenario)
        hidden, hidden_again, dropped = result

        self.assertTrue(hidden)
        self.assertFalse(hidden_again)
        self.assertEqual(dropped.reason, "disabled")
        self.assertEqual(panel.visibility, [False, True])
        self.assertTrue(store.snapshot().panel_visible)
        assist.translate.assert_not_awaited()

    def test_screen_share_action_hides_panel(self) -> None:
        async def scenario(pipeline: CaptionPipeline):
            return pipeline.notify_ui_action("Share screen")

        triggered, _pipeline, panel, _assist, store = self._run(scenario, screen_share_probe=lambda: False)

        self.assertTrue(triggered)
        self.assertFalse(store.snapshot().panel_visible)
        self.assertEqual(panel.statuses[-1], ("Panel hidden while starting screen share", False))

    def test_user_settings_update_status(self) -> None:
        async def scenario(pipeline: CaptionPipeline):
            pipeline.apply_user_setting("enabled", False)
            pipeline.apply_user_setting("target_language", "ru")

        _result, _pipeline, panel, _assist, store = self._run(scenario)

        self.assertFalse(store.snapshot().enabled)
        self.assertEqual(store.snapshot().target_language, "ru")
        self.assertEqual(
            panel.statuses,
            [("Translation paused", False), ("Target language: RU", False)],
        )


if __name__ == "__main__":
    unittest.main()
