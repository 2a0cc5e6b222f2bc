"""Shared data models for threat_stream."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


class EntryKind(str, enum.Enum):
    """Discriminator for stream entries."""

    NEWS = "news"
    BREACH = "breach"
    VULNERABILITY = "vulnerability"


class SeverityTier(str, enum.Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


def severity_tier(score: float) -> SeverityTier:
    """Map a CVSS base score onto the display tier."""
    if score >= 9:
        return SeverityTier.CRITICAL
    if score >= 7:
        return SeverityTier.HIGH
    return SeverityTier.MEDIUM


@dataclass(frozen=True)
class FeedSource:
    """A single named feed endpoint."""

    name: str
    url: str


@dataclass
class RawItem:
    """Feed item as returned by a source before normalisation."""

    title: str
    published_at: Optional[str]
    content: Optional[str]
    source_name: str
    link: Optional[str] = None


@dataclass(frozen=True)
class FeedStreamEntry:
    """News or breach report taken from a feed."""

    kind: EntryKind
    title: str
    timestamp: datetime
    display_source: str
    body: str = ""
    link: Optional[str] = None

    @property
    def identity(self) -> str:
        return self.title


@dataclass(frozen=True)
class VulnerabilityEntry:
    """Normalised vulnerability record."""

    vulnerability_id: str
    timestamp: datetime
    severity: float
    software: str
    body: str
    display_source: str = "NVD ALERT"

    @property
    def kind(self) -> EntryKind:
        return EntryKind.VULNERABILITY

    @property
    def identity(self) -> str:
        return self.vulnerability_id

    @property
    def tier(self) -> SeverityTier:
        return severity_tier(self.severity)

    @property
    def link(self) -> str:
        return f"https://nvd.nist.gov/vuln/detail/{self.vulnerability_id}"


StreamEntry = Union[FeedStreamEntry, VulnerabilityEntry]
