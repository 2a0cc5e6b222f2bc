"""In-memory, de-duplicated, time-ordered stream of entries."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Set, Tuple

from .models import EntryKind, StreamEntry

logger = logging.getLogger(__name__)

Snapshot = Tuple[StreamEntry, ...]


class StreamAccumulator:
    """Owns the merged stream.

    The collection is only reachable through ``merge``, ``clear`` and
    ``snapshot``. After every merge it is sorted newest first and holds at
    most one entry per identity.
    """

    def __init__(self, on_update: Optional[Callable[[Snapshot], None]] = None):
        self._entries: List[StreamEntry] = []
        self._on_update = on_update

    def __len__(self) -> int:
        return len(self._entries)

    def snapshot(self) -> Snapshot:
        """Return a read-only view of the current stream."""
        return tuple(self._entries)

    def clear(self) -> None:
        self._entries = []

    def merge(self, entries: Iterable[StreamEntry], kind: EntryKind) -> Snapshot:
        """Add ``entries`` of ``kind`` and restore ordering and uniqueness.

        The combined list is sorted by timestamp (newest first, stable for
        ties) before duplicates are dropped, so among entries sharing an
        identity the most recent one survives.
        """
        incoming = list(entries)
        combined = self._entries + incoming
        combined.sort(key=lambda entry: entry.timestamp, reverse=True)

        seen: Set[str] = set()
        unique: List[StreamEntry] = []
        for entry in combined:
            if entry.identity in seen:
                continue
            seen.add(entry.identity)
            unique.append(entry)

        self._entries = unique
        logger.info(
            "Merged %d %s entries; stream now holds %d",
            len(incoming),
            kind.value,
            len(unique),
        )

        snapshot = self.snapshot()
        if self._on_update is not None:
            self._on_update(snapshot)
        return snapshot
