"""Notification contract between the pipeline and whatever displays it."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from .accumulator import Snapshot
from .renderers import RENDERERS

logger = logging.getLogger(__name__)


class StreamListener(Protocol):
    """Receives stream notifications. Snapshots must be treated as read-only."""

    def on_window_attempt(self, window_days: int) -> None: ...

    def on_stream_updated(self, entries: Snapshot) -> None: ...

    def on_exhausted(self, message: str) -> None: ...


class SnapshotPresenter:
    """Keeps the latest notification state and renders it on demand."""

    def __init__(self, output_format: str = "text"):
        if output_format not in RENDERERS:
            raise ValueError(f"Unsupported output format: {output_format}")
        self.output_format = output_format
        self.entries: Snapshot = ()
        self.window_days: Optional[int] = None
        self.message: Optional[str] = None
        self.updates = 0
        self._lock = threading.Lock()

    def on_window_attempt(self, window_days: int) -> None:
        with self._lock:
            self.window_days = window_days
            self.message = None

    def on_stream_updated(self, entries: Snapshot) -> None:
        with self._lock:
            self.entries = entries
            self.message = None
            self.updates += 1
        logger.debug("Stream updated with %d entries", len(entries))

    def on_exhausted(self, message: str) -> None:
        with self._lock:
            self.entries = ()
            self.message = message

    def render(self) -> str:
        with self._lock:
            entries, window_days, message = self.entries, self.window_days, self.message
        return RENDERERS[self.output_format](entries, window_days, message)
