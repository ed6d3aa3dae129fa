"""Text normalization and heuristic classifiers for live caption fragments.

Every function here is pure and total over strings. The keyword lists are
approximations tuned for interview calls in English, Russian and Ukrainian;
they are grouped in :class:`CaptionClassifiers` so the pipeline can swap any
of them without touching orchestration code.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Final

MIN_CAPTION_LENGTH: Final[int] = 2
MAX_CAPTION_LENGTH: Final[int] = 280
SUBSTANTIAL_MIN_WORDS: Final[int] = 4
SUBSTANTIAL_MIN_CHARS: Final[int] = 24
PROMPT_LIKE_MIN_WORDS: Final[int] = 4

SELF_SPEAKER_LABELS: Final[frozenset[str]] = frozenset({"you", "вы"})

UI_CHROME_PHRASES: Final[tuple[str, ...]] = (
    "you are presenting",
    "microphone",
    "camera",
    "joined",
    "left the meeting",
    "meeting details",
    "turn on captions",
    "raise hand",
)

CONTINUE_CUE_TOKENS: Final[tuple[str, ...]] = (
    "продолжай",
    "продовжуй",
    "дальше",
    "далі",
    "угу продолжай",
    "ok continue",
    "continue",
    "go on",
    "keep going",
    "next",
)
ACKNOWLEDGEMENT_TOKENS: Final[frozenset[str]] = frozenset(
    {"ok", "okay", "ок", "угу", "ага", "mhm", "uh-huh", "yeah", "да", "так"}
)

_LATIN_RE = re.compile(r"[A-Za-z]")
_CYRILLIC_RE = re.compile(r"[А-Яа-яЁёІіЇїЄєҐґ]")
_UK_ONLY_LETTERS_RE = re.compile(r"[іїєґ]", re.IGNORECASE)
_RU_ONLY_LETTERS_RE = re.compile(r"[ыэёъ]", re.IGNORECASE)
_SPEAKER_PUNCT_RE = re.compile(r"[.,!?;:()\[\]\"']")

_ENGLISH_QUESTION_START_RE = re.compile(
    r"^(?:what|why|how|when|where|which|who|can|could|would|do|does|did|are|is|was|were)\b"
)
_RU_UK_QUESTION_WORD_RE = re.compile(
    r"\b(?:як|чому|що|коли|де|навіщо|хто|який|яка|яке|які|можете|можеш|можна|поясніть|поясни|"
    r"розкажіть|розкажи|опишіть|опиши|покажіть|покажи|як би ви|как|почему|что|когда|где|зачем|кто|"
    r"какой|какая|какие|можешь|можно|объясните|объясни|расскажите|расскажи|опишите|покажите)\b"
)
_IMPERATIVE_ASK_RE = re.compile(
    r"\b(?:describe|tell me|walk me through|explain|опиши|опишите|расскажи|расскажите|поясни|поясните|"
    r"розкажи|розкажіть|опишіть|поясніть)\b"
)
# Whole words only; "flowers" or "integrity" must not fire a coach request.
_PROMPT_LIKE_RE = re.compile(
    r"\b(?:explain|describe|architecture|architect|flows?|scenarios?|integrations?|integrate|"
    r"walk me through|tell me about|"
    r"опиши|опишите|расскажи|расскажите|поясни|поясните|объясни|объясните|каким образом|"
    r"сценари(?:й|и|я|ю|ев)|флоу|интеграци(?:я|и|ю|ей)|архитектур(?:а|ы|у|е|ой)|"
    r"розкажи|розкажіть|поясніть|опишіть|яким чином|сценарі(?:й|ї|ю|їв)|інтеграці(?:я|ї|ю|єю)|"
    r"архітектур(?:а|и|у|і|ою))\b"
)

_UK_KEYWORDS_RE = re.compile(r"\b(?:як|чому|де|коли|який|яка|які|можете|можеш|будь ласка|приклад)\b")
_RU_KEYWORDS_RE = re.compile(
    r"\b(?:как|почему|где|когда|какой|какая|какие|можете|можешь|пожалуйста|пример)\b"
)


def normalize_text(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def normalize_speaker_label(name: str) -> str:
    return _SPEAKER_PUNCT_RE.sub("", normalize_text(name).lower())


def is_self_speaker(name: str) -> bool:
    return normalize_speaker_label(name) in SELF_SPEAKER_LABELS


def has_latin(text: str) -> bool:
    return _LATIN_RE.search(text or "") is not None


def has_cyrillic(text: str) -> bool:
    return _CYRILLIC_RE.search(text or "") is not None


def is_english_text(text: str) -> bool:
    return has_latin(text) and not has_cyrillic(text)


def word_count(text: str) -> int:
    return len(normalize_text(text).split())


def is_caption_like(text: str) -> bool:
    """Reject empty, oversized and meeting-chrome strings; keep Latin or Cyrillic text."""
    if not text or len(text) < MIN_CAPTION_LENGTH or len(text) > MAX_CAPTION_LENGTH:
        return False
    lowered = text.lower()
    if any(phrase in lowered for phrase in UI_CHROME_PHRASES):
        return False
    return has_latin(text) or has_cyrillic(text)


def is_question(text: str) -> bool:
    normalized = normalize_text(text)
    if not normalized:
        return False
    if "?" in normalized:
        return True
    lowered = normalized.lower()
    return (
        _ENGLISH_QUESTION_START_RE.search(lowered) is not None
        or _RU_UK_QUESTION_WORD_RE.search(lowered) is not None
        or _IMPERATIVE_ASK_RE.search(lowered) is not None
    )


def should_trigger_coach(text: str, question_detected: bool) -> bool:
    """Question, or a longer prompt-like phrase that lost its question marker in live captions."""
    if question_detected:
        return True
    normalized = normalize_text(text).lower()
    if not normalized:
        return False
    if word_count(normalized) < PROMPT_LIKE_MIN_WORDS:
        return False
    return _PROMPT_LIKE_RE.search(normalized) is not None


def is_substantial_text(text: str) -> bool:
    normalized = normalize_text(text)
    if not normalized:
        return False
    return word_count(normalized) >= SUBSTANTIAL_MIN_WORDS or len(normalized) >= SUBSTANTIAL_MIN_CHARS


def is_continuation_cue(text: str) -> bool:
    normalized = normalize_text(text).lower()
    if not normalized:
        return False
    if len(normalized) <= 2:
        return True
    if normalized.strip(".,!?") in ACKNOWLEDGEMENT_TOKENS:
        return True
    return any(normalized == token or token in normalized for token in CONTINUE_CUE_TOKENS)


def detect_question_language(text: str, tie_default: str = "ru") -> str:
    """Best-effort guess of ``en``/``uk``/``ru``; not a language identifier.

    Letters unique to one alphabet decide first, then interrogative keyword
    counts. When both signals are inconclusive ``tie_default`` wins.
    """
    value = (text or "").lower()
    if not has_cyrillic(value):
        return "en"

    has_uk_letters = _UK_ONLY_LETTERS_RE.search(value) is not None
    has_ru_letters = _RU_ONLY_LETTERS_RE.search(value) is not None
    if has_uk_letters and not has_ru_letters:
        return "uk"
    if has_ru_letters and not has_uk_letters:
        return "ru"

    uk_hits = len(_UK_KEYWORDS_RE.findall(value))
    ru_hits = len(_RU_KEYWORDS_RE.findall(value))
    if uk_hits > ru_hits:
        return "uk"
    if ru_hits > uk_hits:
        return "ru"
    return tie_default


@dataclass
class CaptionClassifiers:
    is_caption_like: Callable[[str], bool] = field(default=is_caption_like)
    is_question: Callable[[str], bool] = field(default=is_question)
    has_cyrillic: Callable[[str], bool] = field(default=has_cyrillic)
    is_english: Callable[[str], bool] = field(default=is_english_text)
    is_self_speaker: Callable[[str], bool] = field(default=is_self_speaker)
    is_continuation_cue: Callable[[str], bool] = field(default=is_continuation_cue)
    should_trigger_coach: Callable[[str, bool], bool] = field(default=should_trigger_coach)
    is_substantial: Callable[[str], bool] = field(default=is_substantial_text)
    detect_question_language: Callable[..., str] = field(default=detect_question_language)
    language_tie_default: str = "ru"

    def question_language(self, text: str) -> str:
        return self.detect_question_language(text, tie_default=self.language_tie_default)
