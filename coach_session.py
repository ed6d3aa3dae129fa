from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final, Iterable, Optional

from caption_text import normalize_text

THINKING_TEXT: Final[str] = "Thinking..."
SAME_VARIANT: Final[str] = "same"

_KEYWORD_PREFIXES: Final[tuple[str, ...]] = ("keywords:", "ключевые слова:", "ключові слова:")
_ANSWER_PREFIXES: Final[tuple[str, ...]] = ("answer:", "ответ:", "відповідь:")
_EXAMPLE_PREFIXES: Final[tuple[str, ...]] = ("example:", "пример:", "приклад:")


@dataclass(frozen=True)
class CoachReply:
    """A coaching result tagged with the question and variant it answers."""

    question: str
    variant: str
    text: str = ""
    error: str = ""
    cached: bool = False

    @property
    def ok(self) -> bool:
        return not self.error and bool(self.text)


@dataclass
class CoachSession:
    current_question: str = ""
    active_variant: str = SAME_VARIANT
    variants: tuple[str, ...] = ()
    responses: dict[str, str] = field(default_factory=dict)

    def start(self, question: str, variants: Iterable[str], active_variant: str) -> None:
        # Old responses must never be shown for the new question.
        self.current_question = question
        self.variants = tuple(variants)
        self.active_variant = active_variant
        self.responses = {}

    @property
    def tabs_visible(self) -> bool:
        return len(self.variants) > 1

    def is_current(self, question: str) -> bool:
        return bool(self.current_question) and question == self.current_question

    def should_display(self, variant: str) -> bool:
        return variant == self.active_variant

    def apply(self, reply: CoachReply) -> bool:
        """Store a reply for the live question; True when it belongs on screen now."""
        if not self.is_current(reply.question):
            return False
        if reply.ok:
            self.responses[reply.variant] = reply.text
        return self.should_display(reply.variant)

    def select(self, variant: str) -> str:
        self.active_variant = variant
        return self.display_text()

    def display_text(self) -> str:
        return self.responses.get(self.active_variant) or self.responses.get(SAME_VARIANT) or THINKING_TEXT

    def reset(self) -> None:
        self.current_question = ""
        self.active_variant = SAME_VARIANT
        self.variants = ()
        self.responses = {}


@dataclass(frozen=True)
class CoachHint:
    raw: str
    keywords: str = ""
    answer: str = ""
    example: str = ""

    @property
    def structured(self) -> bool:
        return bool(self.keywords and self.answer)


def _find_line(lines: list[str], prefixes: tuple[str, ...]) -> Optional[str]:
    for line in lines:
        lowered = line.lower()
        if any(lowered.startswith(prefix) for prefix in prefixes):
            return line
    return None


def _line_value(line: Optional[str]) -> str:
    if not line:
        return ""
    _, sep, value = line.partition(":")
    return value.strip() if sep else line.strip()


def parse_coach_hint(text: str) -> CoachHint:
    """Split a ``Keywords/Answer/Example`` reply; unrecognized shapes stay raw."""
    raw = (text or "").strip()
    lines = [normalize_text(line) for line in raw.split("\n")]
    lines = [line for line in lines if line]
    keywords_line = _find_line(lines, _KEYWORD_PREFIXES)
    answer_line = _find_line(lines, _ANSWER_PREFIXES)
    if not keywords_line or not answer_line:
        return CoachHint(raw=raw)
    return CoachHint(
        raw=raw,
        keywords=_line_value(keywords_line),
        answer=_line_value(answer_line),
        example=_line_value(_find_line(lines, _EXAMPLE_PREFIXES)),
    )
