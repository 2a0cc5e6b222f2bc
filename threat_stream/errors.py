"""Error taxonomy for source fetching.

Every error raised while talking to an external source derives from
``SourceError``. Adapters catch these at their boundary (see
``fetching.absorb_failures``) so none of them reach the window selector.
"""

from __future__ import annotations

from typing import Optional


class ThreatStreamError(Exception):
    """Base exception for threat_stream."""

    def __init__(
        self, message: str, source: Optional[str] = None, url: Optional[str] = None
    ):
        self.source = source
        self.url = url
        super().__init__(message)

    def __str__(self) -> str:
        if self.source:
            return f"[{self.source}] {super().__str__()}"
        return super().__str__()


class SourceError(ThreatStreamError):
    """Raised when a source cannot deliver usable items."""


class FetchTimeoutError(SourceError, TimeoutError):
    """The request deadline elapsed before the response was complete."""


class NetworkError(SourceError):
    """Transport level failure."""


class MalformedResponseError(SourceError):
    """The payload did not have the expected shape."""


class UpstreamStatusError(SourceError):
    """The service reported a non-success status."""

    def __init__(
        self,
        message: str,
        status: object = None,
        source: Optional[str] = None,
        url: Optional[str] = None,
    ):
        self.status = status
        super().__init__(message, source=source, url=url)
