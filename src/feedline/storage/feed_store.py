"""Persistence gateway — feed collections, per-source cursors, adapter caches."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from feedline.errors import PersistenceReadError
from feedline.ingestion.dates import to_iso
from feedline.ingestion.dedup import sort_newest_first
from feedline.ingestion.normalize import TimelineItem
from feedline.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
SEED_ID = "seed"
SEED_URL = "https://example.com/"


def items_key(feed_name: str) -> str:
    return f"feed:{feed_name}:items"


def cursor_key(feed_name: str, source_id: str) -> str:
    return f"cursor:{feed_name}:{source_id}"


def cache_key(feed_name: str, key: str) -> str:
    return f"cache:{feed_name}:{key}"


def seed_item(feed_name: str, now: datetime | None = None) -> TimelineItem:
    """Placeholder written so a feed is never observed empty."""
    now = now or datetime.now(timezone.utc)
    return TimelineItem(
        id=SEED_ID,
        source_id=SEED_ID,
        source_name="Local",
        title=f"{feed_name} feed seed (data sync not yet populated).",
        summary="This placeholder guarantees the feed never renders empty.",
        url=SEED_URL,
        date=to_iso(now),
        tags=["seed"],
    )


def decode_items(value) -> list[TimelineItem]:
    """Decode a stored document into items.

    Accepts the ``{"meta": ..., "items": [...]}`` envelope or a bare list.
    Entries failing shape validation are dropped. Raises
    PersistenceReadError if the document itself has the wrong shape.
    """
    if isinstance(value, dict):
        value = value.get("items")
    if not isinstance(value, list):
        raise PersistenceReadError(
            f"expected a list of items, got {type(value).__name__}"
        )
    items = [item for item in (TimelineItem.from_dict(v) for v in value) if item is not None]
    dropped = len(value) - len(items)
    if dropped:
        logger.warning("Discarded %d malformed stored item(s)", dropped)
    return items


class FeedStore:
    """Reads and writes one feed's documents in the key-value store."""

    def __init__(self, kv: KeyValueStore, feed_name: str) -> None:
        self._kv = kv
        self.feed_name = feed_name

    def read_items_versioned(self) -> tuple[list[TimelineItem], int | None]:
        """Return stored items and the document version (None if never written).

        A corrupt document reads as an empty list but keeps its version so a
        subsequent conditional write can replace it.
        """
        key = items_key(self.feed_name)
        raw = self._kv.get_raw(key)
        if raw is None:
            return [], None
        text, version = raw
        try:
            return decode_items(json.loads(text)), version
        except (ValueError, PersistenceReadError) as exc:
            logger.warning("Stored items for feed '%s' unreadable, rebuilding: %s", self.feed_name, exc)
            return [], version

    def read_items(self) -> list[TimelineItem]:
        return self.read_items_versioned()[0]

    def read_latest(self, limit: int = 200) -> list[TimelineItem]:
        """Newest-first items for consumers; the seed item when nothing is stored."""
        items = sort_newest_first(self.read_items())[:limit]
        return items or [seed_item(self.feed_name)]

    def write_items(
        self,
        items: Iterable[TimelineItem],
        expected_version: int | None,
        sources: Iterable[dict] = (),
    ) -> bool:
        """Conditionally write the collection. Returns False on a version conflict."""
        document = {
            "meta": {
                "schema_version": SCHEMA_VERSION,
                "generated_at": to_iso(datetime.now(timezone.utc)),
                "feed": self.feed_name,
                "sources": list(sources),
            },
            "items": [item.to_dict() for item in items],
        }
        return self._kv.put_if_version(items_key(self.feed_name), document, expected_version)

    def read_cursor(self, source_id: str) -> str | None:
        try:
            value = self._kv.get(cursor_key(self.feed_name, source_id))
        except PersistenceReadError:
            logger.warning("Cursor for %s/%s unreadable, ignoring", self.feed_name, source_id)
            return None
        return value if isinstance(value, str) and value else None

    def write_cursor(self, source_id: str, value: str) -> None:
        self._kv.put(cursor_key(self.feed_name, source_id), value)

    def prune_cursors(self, active_source_ids) -> list[str]:
        """Delete cursors of sources no longer in the feed. Returns the pruned source ids."""
        prefix = cursor_key(self.feed_name, "")
        active = set(active_source_ids)
        pruned = []
        for key in self._kv.keys(prefix):
            source_id = key[len(prefix):]
            if source_id not in active:
                self._kv.delete(key)
                pruned.append(source_id)
        return pruned

    def get_cached(self, key: str):
        try:
            return self._kv.get(cache_key(self.feed_name, key))
        except PersistenceReadError:
            return None

    def put_cached(self, key: str, value) -> None:
        self._kv.put(cache_key(self.feed_name, key), value)
