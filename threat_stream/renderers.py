"""Rendering helpers for stream snapshots."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from .models import EntryKind, FeedStreamEntry, StreamEntry, VulnerabilityEntry
from .templating import clean_text, get_environment

EMPTY_STREAM_MESSAGE = "Scanning all frequencies... No recent traffic."

BADGES = {
    EntryKind.NEWS: "INTEL",
    EntryKind.BREACH: "LEAK",
    EntryKind.VULNERABILITY: "CVE",
}

TIER_COLOURS = {
    "CRITICAL": "#ff4757",
    "HIGH": "#ffa502",
    "MEDIUM": "#eccc68",
}


def entry_to_dict(entry: StreamEntry) -> Dict[str, Any]:
    """Flatten an entry into a JSON-friendly dictionary."""
    payload: Dict[str, Any] = {
        "kind": entry.kind.value,
        "identity": entry.identity,
        "timestamp": entry.timestamp.isoformat(),
        "source": entry.display_source,
        "body": clean_text(entry.body),
        "link": entry.link,
    }
    if isinstance(entry, VulnerabilityEntry):
        payload["severity"] = entry.severity
        payload["tier"] = entry.tier.value
        payload["software"] = entry.software
    elif isinstance(entry, FeedStreamEntry):
        payload["title"] = entry.title
    return payload


def _context(
    entries: Sequence[StreamEntry],
    window_days: Optional[int],
    message: Optional[str],
) -> Dict[str, Any]:
    return {
        "entries": entries,
        "window_days": window_days,
        "message": message or (EMPTY_STREAM_MESSAGE if not entries else None),
        "badges": BADGES,
        "colours": TIER_COLOURS,
        "generated": datetime.now(timezone.utc).strftime("%H:%M:%S UTC"),
    }


def build_stream_text(
    entries: Sequence[StreamEntry],
    window_days: Optional[int] = None,
    message: Optional[str] = None,
) -> str:
    """Render the plain-text stream using the Jinja2 template."""
    template = get_environment().get_template("stream.txt.j2")
    return template.render(**_context(entries, window_days, message))


def build_stream_html(
    entries: Sequence[StreamEntry],
    window_days: Optional[int] = None,
    message: Optional[str] = None,
) -> str:
    """Render the dashboard page using the Jinja2 template."""
    template = get_environment().get_template("stream.html.j2")
    return template.render(**_context(entries, window_days, message))


def build_stream_json(
    entries: Sequence[StreamEntry],
    window_days: Optional[int] = None,
    message: Optional[str] = None,
) -> str:
    payload = {
        "window_days": window_days,
        "message": message,
        "entries": [entry_to_dict(entry) for entry in entries],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


RENDERERS = {
    "text": build_stream_text,
    "json": build_stream_json,
    "html": build_stream_html,
}
