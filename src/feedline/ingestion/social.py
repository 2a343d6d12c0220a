"""Live RSS preview for social profiles (not persisted)."""

from __future__ import annotations

import logging

from feedline.config import Config
from feedline.ingestion.dates import parse_iso, parse_structured_date, to_iso
from feedline.ingestion.http import fetch_text
from feedline.ingestion.rss_adapter import parse_feed
from feedline.sources import SocialProfile

logger = logging.getLogger(__name__)

PREVIEW_ITEMS = 12


def is_rss_configured(profile: SocialProfile) -> bool:
    return profile.mode == "rss" and bool(profile.rss_url)


def preview_profile(profile: SocialProfile, config: Config) -> list[dict]:
    """Fetch the profile's feed and return its newest ``{title, url, date}`` entries.

    Entries are deduplicated by URL. Undated entries sort last with an
    empty ``date``. Raises FetchError or ParseError on upstream failure.
    """
    text = fetch_text(
        profile.rss_url,
        timeout=config.request_timeout_seconds,
        user_agent=config.user_agent,
    )
    entries = []
    seen: set[str] = set()
    for candidate in parse_feed(text, max_items=200):
        if candidate.url in seen:
            continue
        seen.add(candidate.url)
        parsed = parse_structured_date(candidate.date_text)
        entries.append({
            "title": candidate.title,
            "url": candidate.url,
            "date": to_iso(parsed) if parsed else "",
        })
    entries.sort(key=lambda e: parse_iso(e["date"]), reverse=True)
    logger.info("Social preview '%s': %d entries", profile.slug, len(entries))
    return entries[:PREVIEW_ITEMS]
