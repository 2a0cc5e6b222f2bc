"""Periodic re-aggregation."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from .window import CycleOutcome

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 10 * 60


class RefreshScheduler:
    """Run a cycle at startup and then at a fixed rate.

    Cycles never overlap: ``trigger`` is gated by a non-blocking lock and the
    loop skips ticks that were missed while a cycle overran. No exception
    raised by a cycle stops the loop.
    """

    def __init__(
        self,
        run_cycle: Callable[[], CycleOutcome],
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        on_cycle: Optional[Callable[[CycleOutcome], None]] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive.")
        self._run_cycle = run_cycle
        self.interval_seconds = interval_seconds
        self._on_cycle = on_cycle
        self._monotonic = monotonic
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.cycles_run = 0

    def trigger(self) -> Optional[CycleOutcome]:
        """Run one cycle unless another is still in progress."""
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Previous refresh still running; skipping trigger")
            return None
        try:
            outcome = self._run_cycle()
        except Exception:
            logger.exception("Refresh cycle failed")
            return None
        finally:
            self._cycle_lock.release()
            self.cycles_run += 1

        if self._on_cycle is not None:
            try:
                self._on_cycle(outcome)
            except Exception:
                logger.exception("Cycle callback failed")
        return outcome

    def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """Block, refreshing until ``stop`` is called or ``max_cycles`` ran."""
        self._stop_event.clear()
        started = self._monotonic()
        ticks = 0

        logger.info("Running initial refresh")
        self.trigger()

        while not self._stop_event.is_set():
            if max_cycles is not None and self.cycles_run >= max_cycles:
                break

            ticks += 1
            next_run = started + ticks * self.interval_seconds
            now = self._monotonic()
            if now > next_run:
                missed = int((now - next_run) // self.interval_seconds) + 1
                logger.warning("Refresh overran; skipping %d tick(s)", missed)
                ticks += missed
                next_run = started + ticks * self.interval_seconds

            if self._stop_event.wait(max(0.0, next_run - now)):
                break
            logger.info("Refreshing feeds")
            self.trigger()

        logger.info("Scheduler stopped after %d cycles", self.cycles_run)

    def start(self) -> threading.Thread:
        """Run the loop on a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Scheduler already running.")
        self._thread = threading.Thread(
            target=self.run_forever, name="refresh-scheduler", daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
