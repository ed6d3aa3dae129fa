from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Final, Optional

from openai import APIStatusError, AsyncOpenAI

from assist_prompts import (
    ChatRequest,
    build_coach_request,
    build_translation_request,
    trim_coach_reply,
)
from caption_text import CaptionClassifiers
from config_utils import read_int_env
from result_cache import ResultCache, coach_cache_key, translation_cache_key

ERROR_MESSAGE_MAX_CHARS: Final[int] = 220


class AssistServiceError(RuntimeError):
    """Base class for every failure surfaced to the caption pipeline."""


class AssistConfigurationError(AssistServiceError):
    pass


class RemoteCallError(AssistServiceError):
    def __init__(self, message: str, status_code: Optional[int] = None, error_type: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type


class QuotaExceededError(RemoteCallError):
    pass


class InvalidCredentialError(RemoteCallError):
    pass


class ModelNotFoundError(RemoteCallError):
    pass


class EmptyResponseError(RemoteCallError):
    pass


@dataclass(frozen=True)
class AssistResult:
    text: str
    cached: bool = False


def _error_details(exc: APIStatusError) -> tuple[str, str]:
    body = getattr(exc, "body", None)
    payload: dict[str, Any] = {}
    if isinstance(body, dict):
        nested = body.get("error", body)
        payload = nested if isinstance(nested, dict) else {}
    error_type = str(payload.get("type") or getattr(exc, "type", None) or "")
    error_code = str(payload.get("code") or getattr(exc, "code", None) or "")
    message = str(payload.get("message") or "")
    # The provider reports some conditions in ``code`` and others in ``type``.
    kind = error_code if error_code in {"insufficient_quota", "invalid_api_key", "model_not_found"} else error_type
    return kind, message


def classify_status_error(exc: APIStatusError, model: str, label: str = "OpenAI API") -> RemoteCallError:
    status = exc.status_code
    error_type, message = _error_details(exc)
    if status == 429 and error_type == "insufficient_quota":
        return QuotaExceededError(
            "OpenAI API quota exceeded. Add billing/credits in platform.openai.com, then retry.",
            status_code=status,
            error_type=error_type,
        )
    if status == 401 or error_type == "invalid_api_key":
        return InvalidCredentialError(
            "Invalid OpenAI API key. Check key in Settings.",
            status_code=status,
            error_type=error_type,
        )
    if status == 404 or error_type == "model_not_found":
        return ModelNotFoundError(f"Model not available: {model}", status_code=status, error_type=error_type)
    fallback = message or "Unknown API error"
    return RemoteCallError(
        f"{label} error {status}: {fallback[:ERROR_MESSAGE_MAX_CHARS]}",
        status_code=status,
        error_type=error_type,
    )


class OpenAIChatBackend:
    """Chat-completion capability: one request in, plain text out, typed errors on failure."""

    def __init__(self, max_tokens: Optional[int] = None) -> None:
        self._max_tokens = max_tokens or read_int_env("ASSIST_MAX_TOKENS", 320)
        self._clients: dict[str, AsyncOpenAI] = {}

    def _client_for(self, api_key: str) -> AsyncOpenAI:
        client = self._clients.get(api_key)
        if client is None:
            client = AsyncOpenAI(api_key=api_key)
            self._clients[api_key] = client
        return client

    async def complete(self, request: ChatRequest, api_key: str, label: str = "OpenAI API") -> str:
        client = self._client_for(api_key)
        try:
            response = await client.chat.completions.create(
                model=request.model,
                temperature=request.temperature,
                messages=request.messages(),
                max_tokens=self._max_tokens,
            )
        except APIStatusError as exc:
            raise classify_status_error(exc, request.model, label) from exc
        except Exception as exc:  # noqa: BLE001 - API boundary
            raise RemoteCallError(f"{label} request failed: {str(exc)[:ERROR_MESSAGE_MAX_CHARS]}") from exc

        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        return (choices[0].message.content or "").strip()


class CaptionAssistService:
    """Cached front door for translation and coaching calls.

    Each key gets at most one effective remote call per TTL window: a finished
    call is served from the shared :class:`ResultCache`, and a caller arriving
    while the same key is still in flight awaits that call instead of issuing
    its own.
    """

    def __init__(
        self,
        backend: Optional[OpenAIChatBackend] = None,
        cache: Optional[ResultCache] = None,
        api_key: Optional[str] = None,
        profile_loader: Optional[Callable[[], str]] = None,
        classifiers: Optional[CaptionClassifiers] = None,
    ) -> None:
        self._backend = backend or OpenAIChatBackend()
        self._cache = cache if cache is not None else ResultCache()
        self._api_key = api_key if api_key is not None else (os.getenv("OPENAI_API_KEY") or "").strip()
        self._profile_loader = profile_loader or (lambda: "")
        self.classifiers = classifiers or CaptionClassifiers()
        self._in_flight: dict[str, asyncio.Task[str]] = {}
        self.remote_calls = 0

    @property
    def cache(self) -> ResultCache:
        return self._cache

    async def translate(
        self,
        text: str,
        target_language: str,
        model: str,
        *,
        api_key: Optional[str] = None,
    ) -> AssistResult:
        source_text = self._require_text(text)
        key = self._require_key(api_key)
        cache_key = translation_cache_key(source_text, target_language, model)
        request = build_translation_request(source_text, target_language, model)
        return await self._resolve(cache_key, request, key, label="OpenAI API", empty_message="Empty translation response")

    async def coach(
        self,
        question: str,
        model: str,
        coach_language: str = "same",
        *,
        api_key: Optional[str] = None,
        reply_language: Optional[str] = None,
    ) -> AssistResult:
        """``reply_language`` overrides the language rule of a ``same`` variant without renaming it."""
        question_text = self._require_text(question)
        key = self._require_key(api_key)
        language = (coach_language or "same").strip().lower()
        if language == "same" and reply_language:
            language = reply_language.strip().lower() or "same"
        cache_key = coach_cache_key(question_text, model, language)
        request = build_coach_request(
            question_text,
            model,
            language,
            profile_context=self._profile_loader(),
            tie_default=self.classifiers.language_tie_default,
            detect=self.classifiers.question_language,
        )
        return await self._resolve(
            cache_key,
            request,
            key,
            label="Coach API",
            empty_message="Empty coach response",
            postprocess=trim_coach_reply,
        )

    async def _resolve(
        self,
        cache_key: str,
        request: ChatRequest,
        api_key: str,
        label: str,
        empty_message: str,
        postprocess: Optional[Callable[[str], str]] = None,
    ) -> AssistResult:
        self._cache.cleanup()
        cached = self._cache.get(cache_key)
        if cached is not None:
            return AssistResult(text=cached, cached=True)

        in_flight = self._in_flight.get(cache_key)
        if in_flight is not None:
            text = await asyncio.shield(in_flight)
            return AssistResult(text=text, cached=True)

        task = asyncio.ensure_future(
            self._call_and_store(cache_key, request, api_key, label, empty_message, postprocess)
        )
        self._in_flight[cache_key] = task
        task.add_done_callback(lambda done: self._forget(cache_key, done))
        text = await asyncio.shield(task)
        return AssistResult(text=text, cached=False)

    async def _call_and_store(
        self,
        cache_key: str,
        request: ChatRequest,
        api_key: str,
        label: str,
        empty_message: str,
        postprocess: Optional[Callable[[str], str]],
    ) -> str:
        self.remote_calls += 1
        logging.debug("assist_remote_call label=%s model=%s", label, request.model)
        raw = await self._backend.complete(request, api_key, label=label)
        text = postprocess(raw) if postprocess else raw.strip()
        if not text:
            raise EmptyResponseError(empty_message)
        self._cache.put(cache_key, text)
        return text

    def _forget(self, cache_key: str, task: asyncio.Task[str]) -> None:
        if self._in_flight.get(cache_key) is task:
            del self._in_flight[cache_key]
        if not task.cancelled() and task.exception() is not None:
            logging.debug("assist_call_failed key=%s error=%s", cache_key[:80], task.exception())

    def _require_key(self, api_key: Optional[str]) -> str:
        key = (api_key or self._api_key or "").strip()
        if not key:
            raise AssistConfigurationError("API key is not configured")
        return key

    @staticmethod
    def _require_text(text: str) -> str:
        cleaned = (text or "").strip()
        if not cleaned:
            raise AssistConfigurationError("Empty source text")
        return cleaned
