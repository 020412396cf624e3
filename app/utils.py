"""Utility helpers for the My Lists service."""

from __future__ import annotations

import html
import re
import time
from datetime import date, datetime, timezone
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


TAG_RE = re.compile(r"<[^>]+>")
WHITESPACE_RE = re.compile(r"\s+")


def with_param(url: str, key: str, value: object) -> str:
    """Return ``url`` with the query parameter ``key`` set to ``value``."""

    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != key]
    query.append((key, str(value)))
    return urlunsplit(parts._replace(query=urlencode(query)))


def cache_busted(url: str) -> str:
    """Append a timestamp parameter so upstream caches are bypassed."""

    return with_param(url, "_", now_ms())


def clean_text(fragment: str) -> str:
    """Strip tags, unescape entities and collapse whitespace."""

    text = TAG_RE.sub("", fragment)
    text = html.unescape(text)
    return WHITESPACE_RE.sub(" ", text).strip()


def now_ms() -> int:
    return int(time.time() * 1000)


def to_timestamp(value: object, year: object = None) -> float | None:
    """Parse a release date (or fall back to Jan 1st of ``year``) into epoch seconds."""

    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is None:
            match = re.match(r"^(\d{4})(?:-(\d{2}))?(?:-(\d{2}))?", text)
            if match:
                try:
                    parsed = datetime.combine(
                        date(
                            int(match.group(1)),
                            int(match.group(2) or 1),
                            int(match.group(3) or 1),
                        ),
                        datetime.min.time(),
                    )
                except ValueError:
                    parsed = None
        if parsed is not None:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.timestamp()
    if year is not None:
        try:
            return datetime(int(year), 1, 1, tzinfo=timezone.utc).timestamp()
        except (TypeError, ValueError):
            return None
    return None
