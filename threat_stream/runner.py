"""High-level orchestration for the threat_stream application."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

from .accumulator import StreamAccumulator
from .config import AppConfig, FetchSettings, SourceCatalog
from .feeds import fetch_feed_group
from .models import EntryKind
from .presenter import SnapshotPresenter
from .scheduler import RefreshScheduler
from .vulnerabilities import fetch_vulnerabilities
from .window import CycleOutcome, Fetcher, WindowSelector

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Returned data after a single cycle."""

    output_text: str
    outcome: CycleOutcome


def build_fetchers(
    catalog: SourceCatalog, settings: FetchSettings
) -> Dict[EntryKind, Fetcher]:
    """Bind each entry kind to a fetcher taking ``(window_start, window_end)``."""

    def feeds_for(sources, kind):
        # Feed sources have no server-side window; the selector filters locally.
        return lambda window_start, window_end: fetch_feed_group(sources, kind, settings)

    return {
        EntryKind.NEWS: feeds_for(catalog.news, EntryKind.NEWS),
        EntryKind.BREACH: feeds_for(catalog.breach, EntryKind.BREACH),
        EntryKind.VULNERABILITY: functools.partial(
            fetch_vulnerabilities, settings=settings
        ),
    }


def build_selector(
    config: AppConfig,
    presenter: SnapshotPresenter,
    fetchers: Optional[Dict[EntryKind, Fetcher]] = None,
) -> WindowSelector:
    accumulator = StreamAccumulator(on_update=presenter.on_stream_updated)
    return WindowSelector(
        fetchers=fetchers or build_fetchers(config.catalog, config.fetch),
        accumulator=accumulator,
        ladder=config.ladder,
        on_window_attempt=presenter.on_window_attempt,
        on_exhausted=presenter.on_exhausted,
    )


def write_output(text: str, path: Optional[str]) -> None:
    """Write ``text`` to ``path``, or print it when no path is configured."""
    if not path:
        print(text)
        return
    location = Path(path)
    if location.parent and not location.parent.exists():
        location.parent.mkdir(parents=True, exist_ok=True)
    location.write_text(text, encoding="utf-8")
    logger.info("Wrote stream rendering to %s", location)


def execute(config: AppConfig) -> RunResult:
    """Run one selector cycle and render the resulting stream."""
    presenter = SnapshotPresenter(config.output.format)
    selector = build_selector(config, presenter)
    outcome = selector.run_cycle()
    return RunResult(output_text=presenter.render(), outcome=outcome)


def run_forever(
    config: AppConfig,
    emit: Callable[[str], None],
    max_cycles: Optional[int] = None,
) -> RefreshScheduler:
    """Refresh on the configured interval, emitting a rendering per cycle."""
    presenter = SnapshotPresenter(config.output.format)
    selector = build_selector(config, presenter)

    def on_cycle(outcome: CycleOutcome) -> None:
        logger.info(
            "Cycle %s with %d entries (window %d days)",
            outcome.state.value,
            outcome.count,
            outcome.window_days,
        )
        emit(presenter.render())

    scheduler = RefreshScheduler(
        selector.run_cycle,
        interval_seconds=config.refresh_interval_minutes * 60,
        on_cycle=on_cycle,
    )
    scheduler.run_forever(max_cycles=max_cycles)
    return scheduler
