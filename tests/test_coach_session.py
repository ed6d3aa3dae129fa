from __future__ import annotations

import unittest

from coach_session import THINKING_TEXT, CoachReply, CoachSession, parse_coach_hint


class CoachSessionTests(unittest.TestCase):
    def test_reply_for_replaced_question_is_ignored(self) -> None:
        session = CoachSession()
        session.start("What is CQRS?", ("uk", "en"), "uk")
        session.start("How do you deploy?", ("uk", "en"), "uk")

        shown = session.apply(CoachReply("What is CQRS?", "uk", text="stale answer"))

        self.assertFalse(shown)
        self.assertEqual(session.responses, {})
        self.assertEqual(session.display_text(), THINKING_TEXT)

    def test_inactive_variant_is_stored_but_not_shown(self) -> None:
        session = CoachSession()
        session.start("What is CQRS?", ("uk", "en"), "uk")

        self.assertFalse(session.apply(CoachReply("What is CQRS?", "en", text="english answer")))
        self.assertTrue(session.apply(CoachReply("What is CQRS?", "uk", text="українська відповідь")))
        self.assertTrue(session.tabs_visible)
        self.assertEqual(session.display_text(), "українська відповідь")
        self.assertEqual(session.select("en"), "english answer")

    def test_failed_reply_is_not_stored(self) -> None:
        session = CoachSession()
        session.start("Why Go?", ("same",), "same")

        self.assertTrue(session.apply(CoachReply("Why Go?", "same", error="Coach API error 500: boom")))
        self.assertEqual(session.responses, {})
        self.assertFalse(session.tabs_visible)

    def test_same_variant_is_fallback_for_any_tab(self) -> None:
        session = CoachSession()
        session.start("Why Go?", ("same",), "same")
        session.apply(CoachReply("Why Go?", "same", text="answer"))

        self.assertEqual(session.select("uk"), "answer")

    def test_reset_clears_everything(self) -> None:
        session = CoachSession()
        session.start("Why Go?", ("uk", "en"), "uk")
        session.reset()
        self.assertFalse(session.is_current("Why Go?"))
        self.assertEqual(session.variants, ())


class ParseCoachHintTests(unittest.TestCase):
    def test_structured_english_reply(self) -> None:
        hint = parse_coach_hint("Keywords: retries, idempotency\nAnswer: Use an outbox.\nExample: Payments service")
        self.assertTrue(hint.structured)
        self.assertEqual(hint.keywords, "retries, idempotency")
        self.assertEqual(hint.answer, "Use an outbox.")
        self.assertEqual(hint.example, "Payments service")

    def test_structured_ukrainian_reply(self) -> None:
        hint = parse_coach_hint("Ключові слова: черги\nВідповідь: Через Kafka.")
        self.assertTrue(hint.structured)
        self.assertEqual(hint.answer, "Через Kafka.")
        self.assertEqual(hint.example, "")

    def test_free_text_stays_raw(self) -> None:
        hint = parse_coach_hint("Just say you used Kafka.")
        self.assertFalse(hint.structured)
        self.assertEqual(hint.raw, "Just say you used Kafka.")


if __name__ == "__main__":
    unittest.main()
