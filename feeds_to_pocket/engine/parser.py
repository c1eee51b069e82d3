"""Lenient RSS/Atom parsing into a single entry shape."""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import struct_time
from typing import Any, Mapping, Protocol, Sequence
from urllib.parse import urlparse

import feedparser
import structlog


class FeedFormatError(Exception):
    """Raised when a document is neither RSS nor Atom."""


@dataclass(frozen=True, slots=True)
class FetchedEntry:
    """Normalised view of one feed entry."""

    entry_id: str | None
    title: str | None = None
    link: str | None = None
    published: datetime | None = None


@dataclass(slots=True)
class ParsedFeed:
    """Result of parsing a feed document."""

    format: str
    title: str | None
    entries: list[FetchedEntry]
    warnings: list[str] = field(default_factory=list)


def clean_link(value: Any) -> str | None:
    """Return ``value`` trimmed if it is an absolute http(s) URL, else None."""

    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate:
        return None
    try:
        parsed = urlparse(candidate)
    except ValueError:
        return None
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        return None
    return candidate


def _clean_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _parse_date(raw: Mapping[str, Any]) -> datetime | None:
    for key in ("published_parsed", "updated_parsed"):
        value = raw.get(key)
        if isinstance(value, struct_time):
            try:
                return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
            except (ValueError, OverflowError, OSError):
                continue
    return None


class FeedFormat(Protocol):
    """Behaviour shared by the supported feed formats."""

    name: str

    def matches(self, version: str) -> bool:
        """Return True when feedparser's detected version belongs to this format."""

    def to_entry(self, raw: Mapping[str, Any]) -> FetchedEntry:
        """Convert one raw feedparser entry."""


class RssFormat:
    """RSS 0.9x/1.0/2.0: identity from ``<guid>``, target from ``<link>``."""

    name = "rss"

    def matches(self, version: str) -> bool:
        return version.startswith("rss")

    def to_entry(self, raw: Mapping[str, Any]) -> FetchedEntry:
        return FetchedEntry(
            entry_id=_clean_text(raw.get("id")),
            title=_clean_text(raw.get("title")),
            link=clean_link(raw.get("link")),
            published=_parse_date(raw),
        )


class AtomFormat:
    """Atom 0.3/1.0: identity from ``<id>``, target from the alternate link."""

    name = "atom"

    def matches(self, version: str) -> bool:
        return version.startswith("atom")

    def to_entry(self, raw: Mapping[str, Any]) -> FetchedEntry:
        return FetchedEntry(
            entry_id=_clean_text(raw.get("id")),
            title=_clean_text(raw.get("title")),
            link=self._alternate_link(raw),
            published=_parse_date(raw),
        )

    @staticmethod
    def _alternate_link(raw: Mapping[str, Any]) -> str | None:
        links = raw.get("links") or []
        hrefs = [link for link in links if isinstance(link, Mapping) and link.get("href")]
        for link in hrefs:
            if link.get("rel", "alternate") == "alternate":
                cleaned = clean_link(link["href"])
                if cleaned:
                    return cleaned
        for link in hrefs:
            cleaned = clean_link(link["href"])
            if cleaned:
                return cleaned
        return clean_link(raw.get("link"))


FEED_FORMATS: tuple[FeedFormat, ...] = (RssFormat(), AtomFormat())


def sniff_format(version: str, formats: Sequence[FeedFormat] = FEED_FORMATS) -> FeedFormat | None:
    version = (version or "").lower()
    if not version:
        return None
    return next((fmt for fmt in formats if fmt.matches(version)), None)


def parse_feed(
    body: bytes | str,
    base_url: str | None = None,
    content_type: str | None = None,
    logger: structlog.BoundLogger | None = None,
) -> ParsedFeed:
    """Parse a feed document, auto-detecting RSS or Atom.

    Args:
        body: Raw document as downloaded.
        base_url: URL the document came from, used to resolve relative links.
        content_type: ``Content-Type`` header, helps encoding detection.

    Returns:
        ParsedFeed with entries in document order.

    Raises:
        FeedFormatError: If the document matches neither supported format.
    """
    log = logger or structlog.get_logger("feeds_to_pocket.parser")
    headers: dict[str, str] = {}
    if base_url:
        headers["content-location"] = base_url
    if content_type:
        headers["content-type"] = content_type

    # feedparser treats str input as a possible URL or file name
    if isinstance(body, str):
        body = body.encode("utf-8")
    parsed = feedparser.parse(body, response_headers=headers)
    fmt = sniff_format(parsed.get("version", ""))
    if fmt is None:
        reason = parsed.get("bozo_exception") if parsed.get("bozo") else None
        message = "document is neither an RSS nor an Atom feed"
        if reason:
            message = f"{message} ({reason})"
        raise FeedFormatError(message)

    warnings: list[str] = []
    if parsed.get("bozo"):
        warnings.append(f"feed has formatting issues: {parsed.get('bozo_exception')}")

    entries: list[FetchedEntry] = []
    for index, raw in enumerate(parsed.entries):
        try:
            entries.append(fmt.to_entry(raw))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            warnings.append(f"skipping malformed entry #{index}: {exc}")
            log.warning("entry_malformed", index=index, error=str(exc))

    return ParsedFeed(
        format=fmt.name,
        title=_clean_text(parsed.feed.get("title")),
        entries=entries,
        warnings=warnings,
    )


__all__ = [
    "AtomFormat",
    "FEED_FORMATS",
    "FeedFormat",
    "FeedFormatError",
    "FetchedEntry",
    "ParsedFeed",
    "RssFormat",
    "clean_link",
    "parse_feed",
    "sniff_format",
]
