from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from caption_text import normalize_speaker_label

DEFAULT_QUIET_PERIOD_S = 0.9


@dataclass(frozen=True)
class CaptionFragment:
    text: str
    speaker: str = ""

    @property
    def attributed(self) -> bool:
        return bool(normalize_speaker_label(self.speaker))


class StableCaptionBuffer:
    """Holds at most one pending caption and emits it after a quiet period.

    Captions are re-rendered on every word, so only text that stopped changing
    for ``quiet_period_s`` is handed to ``on_stable``. An unattributed update
    never replaces a pending caption that carries a speaker label.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_stable: Callable[[CaptionFragment], None],
        quiet_period_s: float = DEFAULT_QUIET_PERIOD_S,
    ) -> None:
        self._loop = loop
        self._on_stable = on_stable
        self._quiet_period_s = quiet_period_s
        self._pending: Optional[CaptionFragment] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> Optional[CaptionFragment]:
        return self._pending

    @property
    def quiet_period_s(self) -> float:
        return self._quiet_period_s

    def push(self, text: str, speaker: str = "") -> bool:
        incoming = CaptionFragment(text=text, speaker=speaker or "")
        if self._pending is not None and self._pending.attributed and not incoming.attributed:
            return False

        self._pending = incoming
        self._cancel_timer()
        self._timer = self._loop.call_later(self._quiet_period_s, self._on_timer)
        return True

    def flush(self) -> Optional[CaptionFragment]:
        self._cancel_timer()
        return self._emit()

    def cancel(self) -> None:
        self._cancel_timer()
        self._pending = None

    def _on_timer(self) -> None:
        self._timer = None
        self._emit()

    def _emit(self) -> Optional[CaptionFragment]:
        caption = self._pending
        self._pending = None
        if caption is None or not caption.text:
            return None
        try:
            self._on_stable(caption)
        except Exception:  # noqa: BLE001 - timer callback boundary
            logging.exception("stable_caption_callback_failed")
        return caption

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
