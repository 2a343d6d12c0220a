"""RSS/Atom feed source adapter."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import feedparser

from feedline.errors import ConfigError, ParseError
from feedline.ingestion.adapter import SourceAdapter
from feedline.ingestion.http import fetch_text
from feedline.ingestion.normalize import RawCandidate, clean_text
from feedline.sources import SourceDescriptor

logger = logging.getLogger(__name__)


def _parse_pub_date(entry: dict) -> str | None:
    """Extract the publication date from a feed entry as text."""
    raw = entry.get("published") or entry.get("updated") or entry.get("created")
    if raw:
        return raw
    # feedparser sometimes only provides a parsed tuple
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if parsed:
        try:
            return datetime(*parsed[:6], tzinfo=timezone.utc).isoformat()
        except (ValueError, TypeError):
            pass
    return None


def _get_summary(entry: dict) -> str:
    """Prefer the entry summary, then full content (content:encoded)."""
    summary = entry.get("summary") or entry.get("description")
    if summary:
        return summary
    if entry.get("content"):
        # feedparser puts content:encoded in entry.content[0].value
        return entry["content"][0].get("value", "")
    return ""


def _get_link(entry: dict) -> str | None:
    link = entry.get("link")
    if link:
        return link
    for link_info in entry.get("links", []):
        href = link_info.get("href")
        if href and link_info.get("rel", "alternate") == "alternate":
            return href
    guid = entry.get("id")
    if guid and guid.startswith(("http://", "https://")):
        return guid
    return None


def entry_to_candidate(entry: dict) -> RawCandidate | None:
    """Map one feedparser entry to a candidate. Returns None if it has no title or link."""
    title = clean_text(entry.get("title", ""))
    link = _get_link(entry)
    if not title or not link:
        return None
    return RawCandidate(
        title=title,
        url=link,
        summary=_get_summary(entry),
        date_text=_parse_pub_date(entry),
        tags=tuple(
            term
            for term in (t.get("term") for t in entry.get("tags", []) or [])
            if isinstance(term, str) and term.strip()
        )[:8],
    )


def parse_feed(text: str, max_items: int = 50) -> list[RawCandidate]:
    """Parse an RSS/Atom document into candidates.

    Raises ParseError when the document is malformed and yields no entries.
    Individual entries that cannot be mapped are skipped.
    """
    feed = feedparser.parse(text)
    if not feed.entries:
        if feed.bozo:
            raise ParseError(f"malformed feed: {feed.get('bozo_exception')}")
        return []

    candidates: list[RawCandidate] = []
    seen_links: set[str] = set()
    for entry in feed.entries[:max_items]:
        try:
            candidate = entry_to_candidate(entry)
        except (AttributeError, TypeError, ValueError, KeyError, IndexError) as exc:
            logger.warning("Skipping malformed feed entry: %s", exc)
            continue
        if candidate is None:
            logger.debug("Skipping entry with missing title or link")
            continue
        if candidate.url in seen_links:
            continue
        seen_links.add(candidate.url)
        candidates.append(candidate)
    return candidates


class RSSAdapter(SourceAdapter):
    """Adapter for RSS and Atom feeds."""

    @property
    def name(self) -> str:
        return "rss"

    def fetch(self, source: SourceDescriptor, cursor: str | None = None) -> list[RawCandidate]:
        """Fetch and parse the source's feed (``rss_url``, else ``url``)."""
        feed_url = source.rss_url or source.url
        if not feed_url:
            raise ConfigError(f"source '{source.id}' has no feed URL")

        text = fetch_text(feed_url, timeout=self._timeout, user_agent=self._user_agent)
        candidates = parse_feed(text, self._config.max_items_per_source)
        logger.info("Fetched %d entries from %s", len(candidates), source.name)
        return candidates
