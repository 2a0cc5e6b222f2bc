"""Configuration loading for threat_stream."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from xml.etree import ElementTree as ET

from .models import EntryKind, FeedSource

logger = logging.getLogger(__name__)

DEFAULT_NEWS_FEEDS: Tuple[FeedSource, ...] = (
    FeedSource("The Hacker News", "https://feeds.feedburner.com/TheHackersNews"),
    FeedSource("Bleeping Computer", "https://www.bleepingcomputer.com/feed/"),
    FeedSource("Dark Reading", "https://www.darkreading.com/rss.xml"),
    FeedSource("CyberScoop", "https://cyberscoop.com/feed/"),
    FeedSource("SecurityWeek", "https://www.securityweek.com/feed/"),
    FeedSource("ZDNet", "https://www.zdnet.com/topic/security/rss.xml"),
    FeedSource("Krebs on Security", "https://krebsonsecurity.com/feed/"),
    FeedSource("The Record", "https://therecord.media/feed"),
    FeedSource("Help Net Security", "https://www.helpnetsecurity.com/feed/"),
    FeedSource(
        "CISA Alerts",
        "https://www.cisa.gov/news-events/cybersecurity-advisories/rss.xml",
    ),
)

DEFAULT_BREACH_FEEDS: Tuple[FeedSource, ...] = (
    FeedSource("DataBreaches.net", "https://www.databreaches.net/feed/"),
    FeedSource(
        "Bleeping (Breach)",
        "https://www.bleepingcomputer.com/news/security/breach/feed/",
    ),
)

DEFAULT_LADDER: Tuple[int, ...] = (1, 3, 7)
FEED_MODES = ("conversion", "direct")
OUTPUT_FORMATS = ("text", "json", "html")


@dataclass(frozen=True)
class SourceCatalog:
    """Feed sources grouped by the kind of entry they produce."""

    news: Tuple[FeedSource, ...] = DEFAULT_NEWS_FEEDS
    breach: Tuple[FeedSource, ...] = DEFAULT_BREACH_FEEDS


@dataclass(frozen=True)
class FetchSettings:
    feed_mode: str = "conversion"
    conversion_endpoint: str = "https://api.rss2json.com/v1/api.json"
    conversion_param: str = "rss_url"
    feed_timeout_ms: int = 5000
    vulnerability_endpoint: str = "https://services.nvd.nist.gov/rest/json/cves/2.0"
    vulnerability_timeout_ms: int = 15000
    concurrency: int = 10


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class OutputConfig:
    format: str = "text"
    file: Optional[str] = None


@dataclass
class AppConfig:
    catalog: SourceCatalog = field(default_factory=SourceCatalog)
    fetch: FetchSettings = field(default_factory=FetchSettings)
    ladder: Tuple[int, ...] = DEFAULT_LADDER
    refresh_interval_minutes: float = 10.0
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def parse_feeds_config(path: str) -> SourceCatalog:
    """Parse an OPML file whose top-level outlines are 'News' and 'Breach'."""
    logger.info("Loading feed configuration from %s", path)
    tree = ET.parse(path)
    root = tree.getroot()
    body = root.find("body")
    if body is None:
        raise ValueError("Feeds file is missing the <body> section.")

    groups: Dict[EntryKind, List[FeedSource]] = {
        EntryKind.NEWS: [],
        EntryKind.BREACH: [],
    }

    def walk(outline: ET.Element, bucket: List[FeedSource]) -> None:
        title = outline.attrib.get("title") or outline.attrib.get("text")
        feed_url = outline.attrib.get("xmlUrl")
        if feed_url:
            bucket.append(FeedSource(name=title or feed_url, url=feed_url))
            logger.debug("Registered feed '%s' (%s)", bucket[-1].name, feed_url)
            return
        for child in outline.findall("outline"):
            walk(child, bucket)

    for group in body.findall("outline"):
        label = (group.attrib.get("title") or group.attrib.get("text") or "").strip()
        try:
            kind = EntryKind(label.lower())
        except ValueError:
            raise ValueError(f"Unknown feed group '{label}' (expected News or Breach)")
        if kind not in groups:
            raise ValueError(f"Feed group '{label}' cannot hold feeds.")
        walk(group, groups[kind])

    catalog = SourceCatalog(
        news=tuple(groups[EntryKind.NEWS]), breach=tuple(groups[EntryKind.BREACH])
    )
    for kind, sources in groups.items():
        names = [source.name for source in sources]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate feed names in the {kind.value} group.")

    logger.info(
        "Loaded %d news and %d breach feeds", len(catalog.news), len(catalog.breach)
    )
    return catalog


def parse_ladder(value: str) -> Tuple[int, ...]:
    """Parse a comma separated, strictly increasing list of day counts."""
    try:
        steps = tuple(int(part) for part in value.split(",") if part.strip())
    except ValueError:
        raise ValueError(f"Invalid window ladder: {value!r}")
    if not steps:
        raise ValueError("Window ladder must contain at least one step.")
    if any(step <= 0 for step in steps):
        raise ValueError("Window ladder steps must be positive.")
    if any(b <= a for a, b in zip(steps, steps[1:])):
        raise ValueError("Window ladder must be strictly increasing.")
    return steps


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def _positive_int(root: ET.Element, tag: str, default: int) -> int:
    value = int(root.findtext(tag, str(default)))
    if value <= 0:
        raise ValueError(f"<{tag}> must be positive.")
    return value


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    tree = ET.parse(config_path)
    root = tree.getroot()

    # Feeds
    feeds_node = root.find("feeds")
    if feeds_node is not None and feeds_node.text:
        catalog = parse_feeds_config(_resolve_path(config_path, feeds_node.text.strip()))
    else:
        catalog = SourceCatalog()

    defaults = FetchSettings()
    feed_mode = root.findtext("feed-mode", defaults.feed_mode).strip()
    if feed_mode not in FEED_MODES:
        raise ValueError(f"Unsupported feed mode: {feed_mode}")

    fetch = FetchSettings(
        feed_mode=feed_mode,
        conversion_endpoint=root.findtext(
            "conversion-endpoint", defaults.conversion_endpoint
        ).strip(),
        conversion_param=root.findtext(
            "conversion-param", defaults.conversion_param
        ).strip(),
        feed_timeout_ms=_positive_int(root, "feed-timeout-ms", defaults.feed_timeout_ms),
        vulnerability_endpoint=root.findtext(
            "vulnerability-endpoint", defaults.vulnerability_endpoint
        ).strip(),
        vulnerability_timeout_ms=_positive_int(
            root, "vulnerability-timeout-ms", defaults.vulnerability_timeout_ms
        ),
        concurrency=_positive_int(root, "concurrency", defaults.concurrency),
    )

    ladder_text = root.findtext("window-ladder")
    ladder = parse_ladder(ladder_text) if ladder_text else DEFAULT_LADDER

    interval = float(root.findtext("refresh-interval-minutes", "10"))
    if interval <= 0:
        raise ValueError("<refresh-interval-minutes> must be positive.")

    # Logging
    log_node = root.find("logging")
    logging_config = LoggingConfig()
    if log_node is not None:
        logging_config.level = log_node.findtext("level", "INFO")
        log_file = log_node.findtext("file")
        if log_file:
            logging_config.file = _resolve_path(config_path, log_file)

    # Output
    out_node = root.find("output")
    output = OutputConfig()
    if out_node is not None:
        output.format = out_node.findtext("format", "text").strip()
        out_file = out_node.findtext("file")
        if out_file:
            output.file = _resolve_path(config_path, out_file)
    if output.format not in OUTPUT_FORMATS:
        raise ValueError(f"Unsupported output format: {output.format}")

    return AppConfig(
        catalog=catalog,
        fetch=fetch,
        ladder=ladder,
        refresh_interval_minutes=interval,
        logging=logging_config,
        output=output,
    )
