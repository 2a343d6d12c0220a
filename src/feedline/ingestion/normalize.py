"""Normalization — turn raw adapter candidates into canonical TimelineItems."""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from html import unescape
from typing import TYPE_CHECKING
from urllib.parse import urljoin, urlsplit, urlunsplit

from feedline.ingestion.dates import find_date_in_text, parse_structured_date, to_iso
from feedline.ingestion.dedup import compute_item_id
from feedline.sources import DEFAULT_TAG_RULES

if TYPE_CHECKING:
    from feedline.sources import SourceDescriptor

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 180
SUMMARY_MAX_CHARS = 600
ELLIPSIS = "…"

_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_CDATA_RE = re.compile(r"<!\[CDATA\[|\]\]>")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class RawCandidate:
    """Raw record emitted by a source adapter, before cleaning."""

    title: str
    url: str
    summary: str = ""
    date_text: str | None = None
    context_text: str | None = None
    external_id: str | None = None
    author_handle: str | None = None
    alt_url: str | None = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class TimelineItem:
    """Canonical unit of aggregated content."""

    id: str
    source_id: str
    source_name: str
    title: str
    summary: str
    url: str
    date: str
    tags: list[str] = field(default_factory=list)
    author_handle: str | None = None
    alt_url: str | None = None
    external_id: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("author_handle", "alt_url", "external_id"):
            if data[key] is None:
                del data[key]
        return data

    @classmethod
    def from_dict(cls, data) -> TimelineItem | None:
        """Build an item from persisted JSON. Returns None if the shape is invalid."""
        if not isinstance(data, dict):
            return None
        for key in ("id", "title", "url", "date"):
            value = data.get(key)
            if not isinstance(value, str) or not value.strip():
                return None
        for key in ("source_id", "source_name", "summary"):
            if not isinstance(data.get(key, ""), str):
                return None
        tags = data.get("tags", [])
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            return None
        optional = {}
        for key in ("author_handle", "alt_url", "external_id"):
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                return None
            optional[key] = value
        return cls(
            id=data["id"],
            source_id=data.get("source_id", ""),
            source_name=data.get("source_name", ""),
            title=data["title"],
            summary=data.get("summary", ""),
            url=data["url"],
            date=data["date"],
            tags=list(tags),
            **optional,
        )


def clean_text(text: str | None) -> str:
    """Strip markup, decode entities, and collapse whitespace."""
    if not text:
        return ""
    text = _CDATA_RE.sub("", text)
    text = _SCRIPT_STYLE_RE.sub(" ", text)
    text = _HTML_TAG_RE.sub(" ", text)
    text = unescape(text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def truncate(text: str, limit: int) -> str:
    """Cut *text* to at most *limit* characters, ending with an ellipsis if cut."""
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 1)].rstrip() + ELLIPSIS


def canonicalize_url(url: str | None, base_url: str | None = None) -> str | None:
    """Return the canonical form of *url*, or None if it is not a usable http(s) link.

    Relative URLs are resolved against *base_url*. The fragment and every
    ``utm_*`` query parameter are removed; other parameters keep their order.
    """
    if not url or not url.strip():
        return None
    url = unescape(url.strip())
    try:
        if base_url:
            url = urljoin(base_url, url)
        parts = urlsplit(url)
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    if scheme not in ("http", "https") or not parts.netloc:
        return None
    query = "&".join(
        pair
        for pair in parts.query.split("&")
        if pair and not pair.split("=", 1)[0].lower().startswith("utm_")
    )
    return urlunsplit((scheme, parts.netloc.lower(), parts.path or "/", query, ""))


def infer_tags(
    text: str,
    rules=DEFAULT_TAG_RULES,
    defaults=(),
) -> list[str]:
    """Apply keyword rules to *text*; defaults come first, duplicates are dropped."""
    haystack = text.lower()
    tags: list[str] = []
    for tag in defaults:
        if tag and tag not in tags:
            tags.append(tag)
    for keyword, tag in rules:
        if keyword.lower() in haystack and tag not in tags:
            tags.append(tag)
    return tags


def resolve_date(candidate: RawCandidate, fallback: datetime) -> str:
    """Structured date field, then a date found in the context text, then *fallback*."""
    dt = parse_structured_date(candidate.date_text)
    if dt is None:
        dt = find_date_in_text(candidate.context_text)
    if dt is None:
        dt = find_date_in_text(candidate.summary)
    if dt is None:
        dt = fallback
    return to_iso(dt)


def normalize(
    source: SourceDescriptor,
    candidate: RawCandidate,
    fallback_date: datetime,
    tag_rules=DEFAULT_TAG_RULES,
) -> TimelineItem | None:
    """Shape a RawCandidate into a TimelineItem.

    Returns None when the candidate has no usable title or URL; the caller
    drops it.
    """
    title = truncate(clean_text(candidate.title), TITLE_MAX_CHARS)
    if not title:
        logger.debug("Dropping candidate without title from %s: %s", source.id, candidate.url)
        return None

    url = canonicalize_url(candidate.url, source.url or source.rss_url)
    if url is None:
        logger.debug("Dropping candidate without usable URL from %s: %r", source.id, candidate.url)
        return None

    summary = truncate(clean_text(candidate.summary), SUMMARY_MAX_CHARS)
    tags = infer_tags(
        f"{title} {summary} {url}",
        tag_rules,
        defaults=(*source.tags, *candidate.tags),
    )

    return TimelineItem(
        id=compute_item_id(source.id, url),
        source_id=source.id,
        source_name=source.name,
        title=title,
        summary=summary,
        url=url,
        date=resolve_date(candidate, fallback_date),
        tags=tags,
        author_handle=candidate.author_handle,
        alt_url=canonicalize_url(candidate.alt_url) if candidate.alt_url else None,
        external_id=candidate.external_id,
    )
