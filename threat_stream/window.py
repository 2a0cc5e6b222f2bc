"""Adaptive time-window selection over all sources."""

from __future__ import annotations

import concurrent.futures
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Mapping, Optional, Sequence

from .accumulator import StreamAccumulator
from .config import DEFAULT_LADDER
from .models import EntryKind, StreamEntry

logger = logging.getLogger(__name__)

Fetcher = Callable[[datetime, datetime], List[StreamEntry]]
Clock = Callable[[], datetime]


class CycleState(str, enum.Enum):
    ATTEMPTING = "attempting"
    SETTLED = "settled"
    EXHAUSTED = "exhausted"


@dataclass
class CycleOutcome:
    """Terminal state of one selector cycle."""

    state: CycleState
    window_days: int
    count: int
    attempted: List[int] = field(default_factory=list)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def exhausted_message(window_days: int) -> str:
    return f"No recent intelligence found (Last {window_days} Days)."


def filter_window(
    entries: Iterable[StreamEntry], window_days: int, now: datetime
) -> List[StreamEntry]:
    """Keep entries strictly newer than ``now - window_days``."""
    cutoff = now - timedelta(days=window_days)
    return [entry for entry in entries if entry.timestamp > cutoff]


class WindowSelector:
    """Walk the window ladder until some window yields at least one entry.

    Every attempt clears the accumulator, runs all fetchers concurrently and
    merges each result as it completes. Each cycle restarts at the first
    ladder step.
    """

    def __init__(
        self,
        fetchers: Mapping[EntryKind, Fetcher],
        accumulator: StreamAccumulator,
        ladder: Sequence[int] = DEFAULT_LADDER,
        on_window_attempt: Optional[Callable[[int], None]] = None,
        on_exhausted: Optional[Callable[[str], None]] = None,
        clock: Clock = utc_now,
    ):
        if not ladder:
            raise ValueError("Window ladder must contain at least one step.")
        self.fetchers = dict(fetchers)
        self.accumulator = accumulator
        self.ladder = tuple(ladder)
        self.state = CycleState.ATTEMPTING
        self._on_window_attempt = on_window_attempt
        self._on_exhausted = on_exhausted
        self._clock = clock

    def attempt(self, window_days: int) -> int:
        """Run one clean-slate fetch at ``window_days`` and return the count."""
        logger.info("Attempting fetch with %d day window", window_days)
        self.accumulator.clear()
        if self._on_window_attempt is not None:
            self._on_window_attempt(window_days)

        now = self._clock()
        window_start = now - timedelta(days=window_days)

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, len(self.fetchers))
        ) as executor:
            future_to_kind = {
                executor.submit(fetcher, window_start, now): kind
                for kind, fetcher in self.fetchers.items()
            }
            for future in concurrent.futures.as_completed(future_to_kind):
                kind = future_to_kind[future]
                try:
                    entries = future.result()
                except Exception:
                    logger.exception("Fetcher for %s failed", kind.value)
                    entries = []
                recent = filter_window(entries, window_days, now)
                logger.debug(
                    "%d of %d %s entries inside the %d day window",
                    len(recent),
                    len(entries),
                    kind.value,
                    window_days,
                )
                self.accumulator.merge(recent, kind)

        count = len(self.accumulator)
        logger.info("%d day window produced %d entries", window_days, count)
        return count

    def run_cycle(self) -> CycleOutcome:
        """Run the ladder from the first step until settled or exhausted."""
        attempted: List[int] = []
        count = 0
        for window_days in self.ladder:
            self.state = CycleState.ATTEMPTING
            attempted.append(window_days)
            count = self.attempt(window_days)
            if count > 0:
                self.state = CycleState.SETTLED
                logger.info("Settled on %d day window", window_days)
                return CycleOutcome(self.state, window_days, count, attempted)
            if window_days != self.ladder[-1]:
                logger.info("%d day window empty; widening", window_days)

        self.state = CycleState.EXHAUSTED
        message = exhausted_message(self.ladder[-1])
        logger.warning("%s", message)
        if self._on_exhausted is not None:
            self._on_exhausted(message)
        return CycleOutcome(self.state, self.ladder[-1], count, attempted)
