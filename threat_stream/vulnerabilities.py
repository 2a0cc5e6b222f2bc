"""Vulnerability adapter for the NVD CVE 2.0 API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from .config import FetchSettings
from .errors import MalformedResponseError, UpstreamStatusError
from .feeds import parse_timestamp
from .fetching import absorb_failures, fetch_bounded
from .models import VulnerabilityEntry

logger = logging.getLogger(__name__)

UNKNOWN_SOFTWARE = "Unknown Software"
NO_DESCRIPTION = "No description provided"
METRIC_PREFERENCE = ("cvssMetricV31", "cvssMetricV30", "cvssMetricV2")


def format_query_timestamp(value: datetime) -> str:
    """Format a datetime the way the query endpoint accepts it (UTC, no 'Z')."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds")


def extract_severity(cve: Dict[str, Any]) -> float:
    """Return the base score of the preferred CVSS metric, or 0."""
    metrics = cve.get("metrics")
    if not isinstance(metrics, dict):
        return 0.0
    for key in METRIC_PREFERENCE:
        candidates = metrics.get(key)
        if not candidates:
            continue
        if not isinstance(candidates, list) or not isinstance(candidates[0], dict):
            logger.debug("Ignoring %s metric with unexpected shape", key)
            continue
        cvss_data = candidates[0].get("cvssData")
        if not isinstance(cvss_data, dict):
            return 0.0
        try:
            return float(cvss_data.get("baseScore") or 0)
        except (TypeError, ValueError):
            return 0.0
    return 0.0


def _dicts(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def extract_software(cve: Dict[str, Any]) -> str:
    """Derive 'VENDOR PRODUCT' from the first usable CPE match criteria."""
    for config in _dicts(cve.get("configurations")):
        for node in _dicts(config.get("nodes")):
            for match in _dicts(node.get("cpeMatch")):
                criteria = match.get("criteria")
                if not criteria or not isinstance(criteria, str):
                    continue
                parts = criteria.split(":")
                if len(parts) >= 5:
                    return f"{parts[3]} {parts[4]}".upper().replace("_", " ")
    return UNKNOWN_SOFTWARE


def _first_description(cve: Dict[str, Any]) -> str:
    for description in _dicts(cve.get("descriptions")):
        value = description.get("value")
        if value and isinstance(value, str):
            return value
    return NO_DESCRIPTION


def normalize_vulnerability(cve: Dict[str, Any]) -> Optional[VulnerabilityEntry]:
    """Turn a raw ``cve`` record into a stream entry, or None if unusable."""
    cve_id = cve.get("id")
    if not cve_id or not isinstance(cve_id, str):
        logger.debug("Skipping vulnerability record without id")
        return None

    published = parse_timestamp(cve.get("published"))
    if published is None:
        logger.debug("Skipping %s with unparseable publish date", cve_id)
        return None

    return VulnerabilityEntry(
        vulnerability_id=cve_id,
        timestamp=published,
        severity=extract_severity(cve),
        software=extract_software(cve),
        body=_first_description(cve),
    )


def load_vulnerabilities(
    window_start: datetime,
    window_end: datetime,
    settings: FetchSettings,
    session: Optional[requests.Session] = None,
) -> List[VulnerabilityEntry]:
    """Query vulnerabilities published within the window.

    Raises a ``SourceError`` subclass on any failure.
    """
    # Timestamps go into the query string unencoded.
    url = (
        f"{settings.vulnerability_endpoint}"
        f"?pubStartDate={format_query_timestamp(window_start)}"
        f"&pubEndDate={format_query_timestamp(window_end)}"
    )
    logger.info("Fetching vulnerabilities published %s .. %s", window_start, window_end)
    response = fetch_bounded(url, settings.vulnerability_timeout_ms, session=session)
    if not response.ok:
        raise UpstreamStatusError(
            f"HTTP {response.status_code}",
            status=response.status_code,
            source="NVD",
            url=url,
        )

    payload = response.json()
    if not isinstance(payload, dict):
        raise MalformedResponseError("Payload is not an object", source="NVD", url=url)

    records = payload.get("vulnerabilities")
    if records is None:
        logger.info("No vulnerabilities key in response; treating as empty")
        return []
    if not isinstance(records, list):
        raise MalformedResponseError(
            "'vulnerabilities' is not a list", source="NVD", url=url
        )

    entries: List[VulnerabilityEntry] = []
    for record in records:
        cve = record.get("cve") if isinstance(record, dict) else None
        if not isinstance(cve, dict):
            logger.debug("Skipping malformed vulnerability record")
            continue
        try:
            entry = normalize_vulnerability(cve)
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as exc:
            logger.debug("Skipping vulnerability record %r: %s", cve.get("id"), exc)
            continue
        if entry is not None:
            entries.append(entry)

    logger.info("Collected %d vulnerabilities", len(entries))
    return entries


@absorb_failures
def fetch_vulnerabilities(
    window_start: datetime,
    window_end: datetime,
    settings: FetchSettings,
    session: Optional[requests.Session] = None,
) -> List[VulnerabilityEntry]:
    """Query vulnerabilities; any failure yields an empty list."""
    return load_vulnerabilities(window_start, window_end, settings, session=session)
