import json
from datetime import datetime, timedelta, timezone

import pytest

from threat_stream.models import EntryKind, FeedStreamEntry, VulnerabilityEntry

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, payload=None, status_code=200, content=None, url="https://svc", chunks=None):
        if content is None:
            content = json.dumps(payload).encode("utf-8") if payload is not None else b""
        self._chunks = chunks if chunks is not None else [content]
        self.status_code = status_code
        self.url = url
        self.closed = False

    def iter_content(self, chunk_size=1):
        for chunk in self._chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk

    def close(self):
        self.closed = True


class FakeSession:
    """Records requests and replays a canned response or exception."""

    def __init__(self, result):
        self.result = result
        self.calls = []

    def get(self, url, params=None, timeout=None, stream=False):
        self.calls.append({"url": url, "params": params, "timeout": timeout, "stream": stream})
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@pytest.fixture
def now():
    return NOW


def news(title, hours_ago, source="Feed", kind=EntryKind.NEWS, body="Body"):
    return FeedStreamEntry(
        kind=kind,
        title=title,
        timestamp=NOW - timedelta(hours=hours_ago),
        display_source=source,
        body=body,
    )


def vuln(cve_id, hours_ago, score=5.0, body="Description"):
    return VulnerabilityEntry(
        vulnerability_id=cve_id,
        timestamp=NOW - timedelta(hours=hours_ago),
        severity=score,
        software="ACME WIDGET",
        body=body,
    )
