from __future__ import annotations

import asyncio
import logging
from typing import Callable, Final, Iterable, Optional

from caption_text import normalize_text

SCREEN_SHARE_CHECK_INTERVAL_S = 1.5

START_PRESENTING_TOKENS: Final[tuple[str, ...]] = (
    "показать экран",
    "поделиться экраном",
    "представить экран",
    "демонстрация экрана",
    "present now",
    "share screen",
    "present your screen",
    "present",
    "presenter",
    "показ екрана",
    "демонстрація екрана",
    "показати екран",
    "поділитися екраном",
)
PRESENTING_TOKENS: Final[tuple[str, ...]] = (
    "you are presenting",
    "stop presenting",
    "вы показываете экран",
    "прекратить показ",
    "остановить показ",
    "ви демонструєте екран",
    "зупинити показ",
    "демонстрация экрана",
    "демонстрація екрана",
)
START_PRESENTING_ICON: Final[str] = "computer_arrow_up"


def labels_indicate_presenting(labels: Iterable[str]) -> bool:
    for label in labels:
        haystack = (label or "").lower()
        if haystack and any(token in haystack for token in PRESENTING_TOKENS):
            return True
    return False


def is_start_presenting_action(label: str, icon_text: str = "") -> bool:
    if normalize_text(icon_text).lower() == START_PRESENTING_ICON:
        return True
    haystack = (label or "").lower()
    return any(token in haystack for token in START_PRESENTING_TOKENS)


class ScreenShareGuard:
    """Hides the assist panel once a screen share starts.

    Two signals trigger it: ``probe`` polled every ``interval_s`` and UI
    actions reported through :meth:`notify_ui_action`. The trigger is one-way;
    only an explicit :meth:`rearm` (the user showing the panel again) lets it
    fire a second time.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        probe: Callable[[], bool],
        on_hide: Callable[[str], None],
        interval_s: float = SCREEN_SHARE_CHECK_INTERVAL_S,
    ) -> None:
        self._loop = loop
        self._probe = probe
        self._on_hide = on_hide
        self._interval_s = interval_s
        self._task: Optional[asyncio.Task[None]] = None
        self._triggered = False

    @property
    def triggered(self) -> bool:
        return self._triggered

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = self._loop.create_task(self._poll_loop(), name="screen-share-guard")

    def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    def rearm(self) -> None:
        self._triggered = False

    def check_now(self) -> bool:
        if self._triggered:
            return True
        if not self._probe():
            return False
        self._trigger("Panel hidden during screen share")
        return True

    def notify_ui_action(self, label: str, icon_text: str = "") -> bool:
        if not is_start_presenting_action(label, icon_text):
            return False
        if not self._triggered:
            self._trigger("Panel hidden while starting screen share")
        return True

    def _trigger(self, reason: str) -> None:
        self._triggered = True
        logging.info("screen_share_detected reason=%r", reason)
        self._on_hide(reason)

    async def _poll_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._interval_s)
                self.check_now()
            except asyncio.CancelledError:
                break
            except Exception as exc:  # noqa: BLE001 - polling boundary
                logging.warning("screen_share_probe_failed error=%s", exc)
