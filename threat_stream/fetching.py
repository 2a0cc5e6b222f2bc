"""Deadline-bounded HTTP fetching and the adapter failure policy."""

from __future__ import annotations

import concurrent.futures
import functools
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar

import requests

from .errors import FetchTimeoutError, MalformedResponseError, NetworkError, SourceError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 16 * 1024

T = TypeVar("T")


@dataclass
class FetchedResponse:
    """Fully read response body returned by ``fetch_bounded``."""

    url: str
    status_code: int
    content: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        try:
            return json.loads(self.content.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise MalformedResponseError(
                f"Response is not valid JSON: {exc}", url=self.url
            ) from exc


def fetch_bounded(
    url: str,
    timeout_ms: int,
    params: Optional[Mapping[str, str]] = None,
    session: Optional[requests.Session] = None,
) -> FetchedResponse:
    """GET ``url`` and read the whole body within ``timeout_ms``.

    The deadline covers connecting, waiting for headers and streaming the
    body. The exchange runs on a worker thread whose socket timeouts are the
    remaining budget; when the deadline elapses the in-flight response is
    closed and ``FetchTimeoutError`` is raised without waiting for it.
    Transport failures raise ``NetworkError``. No retries.
    """
    if timeout_ms <= 0:
        raise ValueError("timeout_ms must be positive.")

    deadline = time.monotonic() + timeout_ms / 1000.0
    http = session or requests
    in_flight: Dict[str, Any] = {}
    cancelled = threading.Event()
    logger.debug("Fetching %s (timeout %d ms)", url, timeout_ms)

    def remaining() -> float:
        left = deadline - time.monotonic()
        if left <= 0 or cancelled.is_set():
            raise FetchTimeoutError(
                f"Request not complete after {timeout_ms} ms", url=url
            )
        return left

    def exchange() -> FetchedResponse:
        response = http.get(url, params=params, timeout=remaining(), stream=True)
        in_flight["response"] = response
        chunks: List[bytes] = []
        try:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                remaining()
                if chunk:
                    chunks.append(chunk)
        finally:
            response.close()
        return FetchedResponse(
            url=getattr(response, "url", None) or url,
            status_code=response.status_code,
            content=b"".join(chunks),
        )

    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=1, thread_name_prefix="fetch"
    )
    try:
        future = executor.submit(exchange)
        done, _ = concurrent.futures.wait(
            [future], timeout=max(0.0, deadline - time.monotonic())
        )
        if not done:
            cancelled.set()
            response = in_flight.get("response")
            if response is not None:
                response.close()
            raise FetchTimeoutError(
                f"Request timed out after {timeout_ms} ms", url=url
            )
        try:
            return future.result()
        except requests.Timeout as exc:
            raise FetchTimeoutError(
                f"Request timed out after {timeout_ms} ms", url=url
            ) from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Request failed: {exc}", url=url) from exc
    finally:
        executor.shutdown(wait=False)


def absorb_failures(func: Callable[..., List[T]]) -> Callable[..., List[T]]:
    """Turn any failure of a source adapter into an empty result.

    A dead source must only ever reduce the aggregate, never abort it.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> List[T]:
        try:
            return func(*args, **kwargs)
        except SourceError as exc:
            logger.warning("%s returned no items: %s", func.__name__, exc)
            return []
        except Exception:
            logger.exception("Unexpected failure in %s", func.__name__)
            return []

    return wrapper
