"""Generic feed adapter."""

from __future__ import annotations

import concurrent.futures
import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Iterable, List, Optional, Sequence

import feedparser
import requests

from .config import FetchSettings
from .errors import MalformedResponseError, UpstreamStatusError
from .fetching import absorb_failures, fetch_bounded
from .models import EntryKind, FeedSource, FeedStreamEntry, RawItem

logger = logging.getLogger(__name__)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 or RFC-822 timestamp into an aware UTC datetime."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError):
            return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_datetime(value: Optional[time.struct_time]) -> Optional[datetime]:
    """Convert feedparser timestamps (UTC struct_time) to aware datetimes."""
    if value is None:
        return None
    return datetime(*value[:6], tzinfo=timezone.utc)


def load_feed(
    source: FeedSource,
    settings: FetchSettings,
    session: Optional[requests.Session] = None,
) -> List[RawItem]:
    """Fetch a feed through the conversion service.

    Raises a ``SourceError`` subclass on any failure.
    """
    logger.info("Fetching feed '%s' (%s)", source.name, source.url)
    response = fetch_bounded(
        settings.conversion_endpoint,
        settings.feed_timeout_ms,
        params={settings.conversion_param: source.url},
        session=session,
    )
    if not response.ok:
        raise UpstreamStatusError(
            f"HTTP {response.status_code}",
            status=response.status_code,
            source=source.name,
            url=response.url,
        )

    payload = response.json()
    if not isinstance(payload, dict):
        raise MalformedResponseError(
            "Conversion payload is not an object", source=source.name
        )
    status = payload.get("status")
    if status != "ok":
        raise UpstreamStatusError(
            f"Conversion service reported status {status!r}",
            status=status,
            source=source.name,
            url=response.url,
        )
    raw_items = payload.get("items")
    if not isinstance(raw_items, list):
        raise MalformedResponseError("Payload has no item list", source=source.name)

    items: List[RawItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            logger.debug("Skipping non-object item in feed '%s'", source.name)
            continue
        title = raw.get("title")
        if not title:
            logger.debug("Skipping item without title in feed '%s'", source.name)
            continue
        items.append(
            RawItem(
                title=title,
                published_at=raw.get("pubDate"),
                content=raw.get("content") or raw.get("description"),
                source_name=source.name,
                link=raw.get("link"),
            )
        )

    logger.info("Collected %d items from feed '%s'", len(items), source.name)
    return items


def load_feed_direct(
    source: FeedSource,
    settings: FetchSettings,
    session: Optional[requests.Session] = None,
) -> List[RawItem]:
    """Fetch the feed document itself and parse it with feedparser."""
    logger.info("Fetching feed '%s' directly (%s)", source.name, source.url)
    response = fetch_bounded(source.url, settings.feed_timeout_ms, session=session)
    if not response.ok:
        raise UpstreamStatusError(
            f"HTTP {response.status_code}",
            status=response.status_code,
            source=source.name,
            url=response.url,
        )

    parsed = feedparser.parse(response.content)
    if getattr(parsed, "bozo", False) and not parsed.entries:
        raise MalformedResponseError(
            f"Feed could not be parsed: {getattr(parsed, 'bozo_exception', '')}",
            source=source.name,
        )

    items: List[RawItem] = []
    for entry in parsed.entries:
        title = entry.get("title")
        if not title:
            logger.debug("Skipping entry without title in feed '%s'", source.name)
            continue

        content = None
        entry_content = entry.get("content")
        if entry_content:
            try:
                content = entry_content[0].get("value")
            except (TypeError, KeyError, IndexError, AttributeError):
                content = None
        if not content:
            content = entry.get("summary")

        published = None
        for attr in ("published_parsed", "updated_parsed", "created_parsed"):
            published = to_datetime(entry.get(attr))
            if published:
                break

        items.append(
            RawItem(
                title=title,
                published_at=published.isoformat() if published else None,
                content=content,
                source_name=source.name,
                link=entry.get("link"),
            )
        )

    logger.info("Collected %d entries from feed '%s'", len(items), source.name)
    return items


@absorb_failures
def fetch_feed(
    source: FeedSource,
    settings: FetchSettings,
    session: Optional[requests.Session] = None,
) -> List[RawItem]:
    """Fetch one feed; any failure yields an empty list."""
    if settings.feed_mode == "direct":
        return load_feed_direct(source, settings, session=session)
    return load_feed(source, settings, session=session)


def to_stream_entries(
    items: Iterable[RawItem], kind: EntryKind
) -> List[FeedStreamEntry]:
    """Normalise raw items into stream entries of the given kind."""
    entries: List[FeedStreamEntry] = []
    for item in items:
        timestamp = parse_timestamp(item.published_at)
        if timestamp is None:
            logger.debug(
                "Dropping item with unparseable date %r: %s",
                item.published_at,
                item.title,
            )
            continue
        entries.append(
            FeedStreamEntry(
                kind=kind,
                title=item.title,
                timestamp=timestamp,
                display_source=item.source_name,
                body=item.content or "",
                link=item.link,
            )
        )
    return entries


def fetch_feed_group(
    sources: Sequence[FeedSource],
    kind: EntryKind,
    settings: FetchSettings,
    session: Optional[requests.Session] = None,
) -> List[FeedStreamEntry]:
    """Fetch every feed of a group concurrently and normalise the results."""
    if not sources:
        return []

    collected: List[RawItem] = []
    with concurrent.futures.ThreadPoolExecutor(
        max_workers=max(1, min(settings.concurrency, len(sources)))
    ) as executor:
        future_to_source = {
            executor.submit(fetch_feed, source, settings, session): source
            for source in sources
        }
        for future in concurrent.futures.as_completed(future_to_source):
            collected.extend(future.result())

    entries = to_stream_entries(collected, kind)
    logger.info(
        "Fetched %d %s entries from %d feeds", len(entries), kind.value, len(sources)
    )
    return entries
