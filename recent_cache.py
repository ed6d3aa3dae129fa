from __future__ import annotations

import time
from typing import Callable

from caption_text import normalize_text

SOURCE_DEDUP_TTL_S = 20.0
COACH_DEDUP_TTL_S = 45.0


def source_dedup_key(text: str) -> str:
    return normalize_text(text).lower()


def coach_dedup_key(variant: str, question: str) -> str:
    return f"{variant}|{question.strip().lower()}"


class RecentKeyCache:
    """Set of recently seen keys that forgets each key after ``ttl_s`` seconds.

    Expired entries are dropped lazily on every query; an entry older than the
    TTL is reported as absent even before it is purged.
    """

    def __init__(self, ttl_s: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, float] = {}

    @property
    def ttl_s(self) -> float:
        return self._ttl_s

    def __len__(self) -> int:
        return len(self._entries)

    def prune(self) -> None:
        now = self._clock()
        expired = [key for key, seen_at in self._entries.items() if now - seen_at > self._ttl_s]
        for key in expired:
            del self._entries[key]

    def contains(self, key: str) -> bool:
        self.prune()
        seen_at = self._entries.get(key)
        return seen_at is not None and self._clock() - seen_at < self._ttl_s

    def mark(self, key: str) -> None:
        self._entries[key] = self._clock()

    def check_and_mark(self, key: str) -> bool:
        """Return True when ``key`` is a recent duplicate, otherwise remember it."""
        if self.contains(key):
            return True
        self.mark(key)
        return False

    def clear(self) -> None:
        self._entries.clear()
