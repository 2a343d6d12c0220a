"""Web page source adapter. Tries RSS first, then JSON-LD, then anchors."""

from __future__ import annotations

import logging

from feedline.errors import ConfigError, FeedlineError, FetchError, ParseError
from feedline.ingestion.adapter import SourceAdapter
from feedline.ingestion.html_extract import collect_candidates, extract_anchors, extract_json_ld
from feedline.ingestion.http import fetch_text
from feedline.ingestion.normalize import RawCandidate
from feedline.ingestion.rss_adapter import parse_feed
from feedline.sources import SourceDescriptor

logger = logging.getLogger(__name__)


class WebAdapter(SourceAdapter):
    """Adapter for web pages that may or may not publish a feed.

    Strategies run in order and the first one producing candidates wins:
    the declared ``rss_url``, JSON-LD blocks on ``url``, then anchors on
    ``url``. The source fails only if every strategy fails.
    """

    @property
    def name(self) -> str:
        return "web"

    def fetch(self, source: SourceDescriptor, cursor: str | None = None) -> list[RawCandidate]:
        if not source.url and not source.rss_url:
            raise ConfigError(f"source '{source.id}' has no url or rss_url")

        max_items = self._config.max_items_per_source
        rss_error: FeedlineError | None = None

        if source.rss_url:
            try:
                text = fetch_text(source.rss_url, timeout=self._timeout, user_agent=self._user_agent)
                candidates = parse_feed(text, max_items)
                if candidates:
                    logger.info("Fetched %d entries from %s via RSS", len(candidates), source.name)
                    return candidates
                logger.info("RSS for %s returned no entries, scraping page", source.name)
            except (FetchError, ParseError) as exc:
                rss_error = exc
                logger.warning("RSS for %s failed, scraping page: %s", source.name, exc)

        if not source.url:
            if rss_error is not None:
                raise rss_error
            return []

        html_text = fetch_text(source.url, timeout=self._timeout, user_agent=self._user_agent)

        candidates = collect_candidates(extract_json_ld(html_text))
        if candidates:
            logger.info("Fetched %d JSON-LD entries from %s", len(candidates), source.name)
            return candidates[:max_items]

        candidates = extract_anchors(html_text, source.url, max_items=max_items)
        logger.info("Fetched %d anchor entries from %s", len(candidates), source.name)
        return candidates
