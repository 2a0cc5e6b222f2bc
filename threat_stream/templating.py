"""Jinja2 environment for threat_stream templates."""

from __future__ import annotations

import re
from datetime import datetime
from importlib import resources

from bs4 import BeautifulSoup
from jinja2 import Environment, FileSystemLoader, select_autoescape

_ENV: Environment | None = None

BODY_LIMIT = 1200


def clean_text(value: str | None, limit: int = BODY_LIMIT) -> str:
    """Strip HTML and cap the text at ``limit`` characters."""
    if not value:
        return ""
    soup = BeautifulSoup(value, "html.parser")
    text = soup.get_text(separator=" ", strip=True)
    text = re.sub(r"\s+([.,;:!?])", r"\1", text)
    text = re.sub(r"\s{2,}", " ", text).strip()
    if len(text) > limit:
        text = text[:limit] + "..."
    return text


def short_time(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.strftime("%H:%M")


def window_label(window_days: int | None) -> str:
    if not window_days:
        return ""
    if window_days == 1:
        return "LAST 24H"
    return f"LAST {window_days} DAYS"


def get_environment() -> Environment:
    """Return a cached Jinja environment configured for package templates."""
    global _ENV
    if _ENV is None:
        template_dir = resources.files(__package__) / "templates"
        loader = FileSystemLoader(str(template_dir))
        _ENV = Environment(
            loader=loader,
            autoescape=select_autoescape(["html", "xml", "html.j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        _ENV.filters["clean_text"] = clean_text
        _ENV.filters["short_time"] = short_time
        _ENV.filters["window_label"] = window_label
    return _ENV
