from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from presentation_guard import labels_indicate_presenting

DEFAULT_FEED_POLL_INTERVAL_S = 1.2


class PageStateProbe:
    """Holds the latest visible page labels; calling it answers "is a screen share running?"."""

    def __init__(self) -> None:
        self._labels: tuple[str, ...] = ()

    @property
    def labels(self) -> tuple[str, ...]:
        return self._labels

    def update(self, labels: Iterable[str]) -> None:
        self._labels = tuple(str(label) for label in labels if label)

    def __call__(self) -> bool:
        return labels_indicate_presenting(self._labels)


class JsonlCaptionFeed:
    """Tails a JSON-lines file written by the page-side caption scraper.

    Each line is one event::

        {"type": "caption", "text": "...", "speaker": "..."}
        {"type": "click", "label": "...", "icon": "..."}
        {"type": "labels", "labels": ["...", "..."]}

    Malformed lines are logged and skipped. The file may be truncated by the
    writer when a new call starts; the feed then reads from the beginning.
    """

    def __init__(
        self,
        path: str,
        loop: asyncio.AbstractEventLoop,
        on_caption: Callable[[str, str], Any],
        on_ui_action: Optional[Callable[[str, str], Any]] = None,
        page_state: Optional[PageStateProbe] = None,
        poll_interval_s: float = DEFAULT_FEED_POLL_INTERVAL_S,
    ) -> None:
        self._path = Path(path)
        self._loop = loop
        self._on_caption = on_caption
        self._on_ui_action = on_ui_action
        self._page_state = page_state
        self._poll_interval_s = poll_interval_s
        self._offset = 0
        self._partial = ""
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, from_end: bool = True) -> None:
        if self.running:
            return
        if from_end and self._path.is_file():
            self._offset = self._path.stat().st_size
        self._task = self._loop.create_task(self._poll_loop(), name="caption-feed")

    def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    def poll_once(self) -> int:
        """Read newly appended lines and dispatch them; returns the number of events handled."""
        if not self._path.is_file():
            return 0
        size = self._path.stat().st_size
        if size < self._offset:
            self._offset = 0
            self._partial = ""
        if size == self._offset:
            return 0
        with self._path.open("r", encoding="utf-8") as handle:
            handle.seek(self._offset)
            chunk = handle.read()
            self._offset = handle.tell()

        data = self._partial + chunk
        lines = data.split("\n")
        self._partial = lines.pop()
        handled = 0
        for line in lines:
            if self.handle_line(line):
                handled += 1
        return handled

    def handle_line(self, line: str) -> bool:
        line = line.strip()
        if not line:
            return False
        try:
            event = json.loads(line)
        except json.JSONDecodeError as exc:
            logging.warning("caption_feed_bad_line error=%s", exc)
            return False
        if not isinstance(event, dict):
            logging.warning("caption_feed_bad_event kind=%s", type(event).__name__)
            return False

        kind = str(event.get("type") or "caption").lower()
        if kind == "caption":
            text = str(event.get("text") or "")
            if not text.strip():
                return False
            self._on_caption(text, str(event.get("speaker") or ""))
            return True
        if kind == "click":
            if self._on_ui_action is None:
                return False
            self._on_ui_action(str(event.get("label") or ""), str(event.get("icon") or ""))
            return True
        if kind == "labels":
            if self._page_state is None:
                return False
            labels = event.get("labels") or []
            self._page_state.update(labels if isinstance(labels, list) else [])
            return True
        logging.warning("caption_feed_unknown_event type=%s", kind)
        return False

    async def _poll_loop(self) -> None:
        while True:
            try:
                self.poll_once()
                await asyncio.sleep(self._poll_interval_s)
            except asyncio.CancelledError:
                break
            except Exception as exc:  # noqa: BLE001 - polling boundary
                logging.warning("caption_feed_poll_failed path=%s error=%s", self._path, exc)
                await asyncio.sleep(self._poll_interval_s)
