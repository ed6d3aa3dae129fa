from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Final, Optional

from caption_text import detect_question_language

TRANSLATION_TEMPERATURE: Final[float] = 0.0
COACH_TEMPERATURE: Final[float] = 0.2
PROFILE_MAX_CHARS: Final[int] = 6000
COACH_MAX_LINES: Final[int] = 3

_LANGUAGE_LABELS: Final[dict[str, str]] = {
    "uk": "Ukrainian",
    "ru": "Russian",
    "en": "English",
}
PINNED_REPLY_LANGUAGES: Final[frozenset[str]] = frozenset(_LANGUAGE_LABELS)


@dataclass(frozen=True)
class ChatRequest:
    model: str
    temperature: float
    system_prompt: str
    user_prompt: str
    context_prompt: str = ""

    def messages(self) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": self.system_prompt}]
        if self.context_prompt:
            messages.append({"role": "system", "content": self.context_prompt})
        messages.append({"role": "user", "content": self.user_prompt})
        return messages


def language_label(code: str) -> str:
    return _LANGUAGE_LABELS.get((code or "").strip().lower(), "Russian")


def resolve_reply_language(
    coach_language: str,
    question: str,
    tie_default: str = "ru",
    detect: Optional[Callable[[str], str]] = None,
) -> str:
    """``uk``/``en``/``ru`` pin the reply language; anything else follows the question."""
    pinned = (coach_language or "").strip().lower()
    if pinned in PINNED_REPLY_LANGUAGES:
        return pinned
    if detect is not None:
        return detect(question)
    return detect_question_language(question, tie_default=tie_default)


def build_translation_request(source_text: str, target_language: str, model: str) -> ChatRequest:
    system_prompt = (
        "You translate live interview captions with high fidelity. "
        "Keep technical terms and product names unchanged when appropriate "
        "(e.g., React, TypeScript, DataDog). Return only translated text, no notes."
    )
    return ChatRequest(
        model=model,
        temperature=TRANSLATION_TEMPERATURE,
        system_prompt=system_prompt,
        user_prompt=f"Translate from English to {language_label(target_language)}:\n\n{source_text}",
    )


def build_coach_request(
    question: str,
    model: str,
    coach_language: str,
    profile_context: str = "",
    tie_default: str = "ru",
    detect: Optional[Callable[[str], str]] = None,
) -> ChatRequest:
    reply_language = resolve_reply_language(coach_language, question, tie_default=tie_default, detect=detect)
    language_rule = f"Reply only in {language_label(reply_language)}."
    system_prompt = (
        f"You are an interview response coach. Help candidate answer honestly and clearly. {language_rule}\n"
        "Use a simple, natural speaking style (not formal/corporate).\n"
        "Output format must be exactly 3 short lines:\n"
        '1) "Keywords: ..." with 4-7 key words/phrases that represent the answer strategy, '
        "not just words copied from the question.\n"
        "Keywords should emphasize depth and execution quality (for example when relevant: architecture "
        "approach, async/events, idempotency, retries, error handling, monitoring, race conditions, "
        "rate limits, data consistency, security, observability, rollback).\n"
        "Keywords must be extracted from the best-practice solution you are giving in the answer, "
        "not from the interviewer wording.\n"
        "Prefer senior-level engineering terms when relevant: versioning strategy, backward compatibility, "
        "deprecation policy, migration plan, contract testing, canary rollout, feature flags, SLO/SLA, "
        "alerting, incident rollback.\n"
        "Do not include generic filler words in Keywords.\n"
        '2) "Answer: ..." short direct answer in plain language (2-4 sentences max).\n'
        '3) "Example: ..." one concrete example from candidate profile if available, '
        "otherwise a safe generic example.\n"
        "When useful, structure the answer in a lightweight STAR style (Situation/Task/Action/Result) "
        "but keep it brief and natural.\n"
        "Do not ask any follow-up question. No markdown.\n"
        "Strictly align with candidate profile facts; do not invent roles, years, companies, "
        "or technologies that conflict with profile."
    )
    profile = profile_context.strip()[:PROFILE_MAX_CHARS]
    context_prompt = (
        f"Candidate profile/resume context (facts to align with):\n{profile}"
        if profile
        else "Candidate profile/resume context is not provided."
    )
    return ChatRequest(
        model=model,
        temperature=COACH_TEMPERATURE,
        system_prompt=system_prompt,
        user_prompt=f"Interviewer question:\n{question}",
        context_prompt=context_prompt,
    )


def trim_coach_reply(text: str) -> str:
    lines = [line.strip() for line in (text or "").split("\n")]
    return "\n".join([line for line in lines if line][:COACH_MAX_LINES])


def load_profile_context(path: Optional[str]) -> str:
    if not path:
        return ""
    profile_path = Path(path)
    if not profile_path.is_file():
        return ""
    return profile_path.read_text(encoding="utf-8").strip()[:PROFILE_MAX_CHARS]
