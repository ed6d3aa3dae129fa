from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

RESULT_CACHE_TTL_S = 45.0
RESULT_CACHE_MAX_SIZE = 300


def translation_cache_key(text: str, target_language: str, model: str) -> str:
    return f"{target_language}|{model}|{text.strip().lower()}"


def coach_cache_key(question: str, model: str, coach_language: str) -> str:
    return f"coach|{coach_language}|{model}|{question.strip().lower()}"


@dataclass
class ResultCacheEntry:
    value: str
    timestamp: float


class ResultCache:
    """Shared TTL cache for translation and coaching replies.

    Both query spaces live in one map and are told apart only by key prefix.
    ``cleanup`` runs before every lookup: stale entries go first, then the
    oldest ones until the map is back under ``max_size``.
    """

    def __init__(
        self,
        ttl_s: float = RESULT_CACHE_TTL_S,
        max_size: int = RESULT_CACHE_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_s = ttl_s
        self._max_size = max_size
        self._clock = clock
        self._entries: dict[str, ResultCacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def keys(self) -> list[str]:
        return list(self._entries)

    def cleanup(self) -> None:
        now = self._clock()
        for key in [key for key, entry in self._entries.items() if now - entry.timestamp > self._ttl_s]:
            del self._entries[key]

        overflow = len(self._entries) - self._max_size
        if overflow <= 0:
            return
        oldest = sorted(self._entries.items(), key=lambda item: item[1].timestamp)[:overflow]
        for key, _ in oldest:
            del self._entries[key]

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp > self._ttl_s:
            del self._entries[key]
            return None
        return entry.value

    def put(self, key: str, value: str) -> None:
        self._entries.pop(key, None)
        self._entries[key] = ResultCacheEntry(value=value, timestamp=self._clock())
        if len(self._entries) > self._max_size:
            self.cleanup()

    def clear(self) -> None:
        self._entries.clear()
