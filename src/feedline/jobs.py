"""Aggregation jobs — fetch sources, normalize, merge, and persist each feed."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

import feedline.ingestion  # noqa: F401  registers adapters
from feedline.config import Config
from feedline.errors import ConfigError, FeedlineError
from feedline.ingestion.cursor import snowflake_max
from feedline.ingestion.dates import to_iso
from feedline.ingestion.dedup import merge_items
from feedline.ingestion.normalize import TimelineItem, normalize
from feedline.ingestion.registry import create_adapter
from feedline.sources import FeedDescriptor, SourceDescriptor, SourcesConfig
from feedline.storage.connection import get_connection
from feedline.storage.feed_store import SEED_ID, FeedStore, seed_item
from feedline.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

_MAX_WRITE_ATTEMPTS = 3

_feed_locks: dict[str, threading.Lock] = {}
_feed_locks_guard = threading.Lock()


def _feed_lock(feed_name: str) -> threading.Lock:
    with _feed_locks_guard:
        return _feed_locks.setdefault(feed_name, threading.Lock())


@dataclass(frozen=True)
class SyncResult:
    """Summary of one feed run."""

    feed: str
    ok: bool
    total_items: int
    fetched_new: int
    errors: list[str] = field(default_factory=list)
    status: str = "success"  # success | partial | error
    started_at: str = ""
    finished_at: str = ""
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "feed": self.feed,
            "status": self.status,
            "total_items": self.total_items,
            "fetched_new": self.fetched_new,
            "errors": list(self.errors),
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "skipped": self.skipped,
        }


def _record_run(database_path: str, result: SyncResult) -> None:
    """Insert a sync run record into the sync_runs table."""
    with get_connection(database_path) as conn:
        conn.execute(
            "INSERT INTO sync_runs (id, feed, started_at, finished_at, status, result) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                str(uuid.uuid4()),
                result.feed,
                result.started_at,
                result.finished_at,
                result.status,
                json.dumps(result.to_dict()),
            ),
        )


def _record_source_failure(database_path: str, feed: str, source_id: str, error_msg: str) -> int:
    """Record a source fetch failure. Returns the updated consecutive_failures count."""
    now = datetime.now(timezone.utc).isoformat()
    with get_connection(database_path) as conn:
        conn.execute(
            "INSERT INTO source_errors "
            "(feed, source_id, consecutive_failures, last_error, last_failed_at) "
            "VALUES (?, ?, 1, ?, ?) "
            "ON CONFLICT(feed, source_id) DO UPDATE SET "
            "consecutive_failures = consecutive_failures + 1, "
            "last_error = excluded.last_error, last_failed_at = excluded.last_failed_at",
            (feed, source_id, error_msg, now),
        )
        row = conn.execute(
            "SELECT consecutive_failures FROM source_errors WHERE feed = ? AND source_id = ?",
            (feed, source_id),
        ).fetchone()
    return row["consecutive_failures"] if row else 1


def _record_source_success(database_path: str, feed: str, source_id: str) -> None:
    """Reset the consecutive failure count after a successful fetch."""
    now = datetime.now(timezone.utc).isoformat()
    with get_connection(database_path) as conn:
        conn.execute(
            "INSERT INTO source_errors "
            "(feed, source_id, consecutive_failures, last_succeeded_at) "
            "VALUES (?, ?, 0, ?) "
            "ON CONFLICT(feed, source_id) DO UPDATE SET "
            "consecutive_failures = 0, last_succeeded_at = excluded.last_succeeded_at",
            (feed, source_id, now),
        )


def _keep_stored_dates(
    existing: list[TimelineItem], incoming: list[TimelineItem], fallback_iso: str
) -> list[TimelineItem]:
    """Items re-fetched without a date keep the date they were first stored with."""
    stored = {item.id: item for item in existing}
    out = []
    for item in incoming:
        known = stored.get(item.id)
        if known is not None and item.date == fallback_iso:
            item = replace(item, date=known.date)
        out.append(item)
    return out


def _count_new(existing: list[TimelineItem], incoming: list[TimelineItem]) -> int:
    seen_ids = {item.id for item in existing}
    seen_urls = {item.url for item in existing}
    count = 0
    for item in incoming:
        if item.id in seen_ids or item.url in seen_urls:
            continue
        seen_ids.add(item.id)
        seen_urls.add(item.url)
        count += 1
    return count


class Aggregator:
    """Runs the fetch → normalize → merge → persist pipeline for configured feeds.

    Configuration is passed in explicitly; nothing here reads the environment.
    """

    def __init__(
        self,
        config: Config,
        sources: SourcesConfig,
        kv: KeyValueStore | None = None,
        clock=None,
    ) -> None:
        self._config = config
        self._sources = sources
        self._kv = kv or KeyValueStore(config.database_path)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def feeds(self) -> tuple[FeedDescriptor, ...]:
        return self._sources.feeds

    def store(self, feed_name: str) -> FeedStore:
        return FeedStore(self._kv, feed_name)

    def run_all(self) -> dict[str, SyncResult]:
        """Run every configured feed. Never raises for per-feed failures."""
        return {feed.name: self.run_feed(feed) for feed in self.feeds}

    def run_feed(self, feed: FeedDescriptor) -> SyncResult:
        """Run one feed. Overlapping runs of the same feed in this process are serialized."""
        with _feed_lock(feed.name):
            result = self._run_feed(feed)
        try:
            _record_run(self._config.database_path, result)
        except Exception:
            logger.exception("Failed to record sync run for feed '%s'", feed.name)
        logger.info(
            "Feed '%s' sync complete: ok=%s, total=%d, new=%d, errors=%d",
            feed.name, result.ok, result.total_items, result.fetched_new, len(result.errors),
        )
        return result

    def _run_feed(self, feed: FeedDescriptor) -> SyncResult:
        started = self._clock()
        store = self.store(feed.name)

        if not feed.enabled:
            logger.info("Feed '%s' is disabled, skipping", feed.name)
            return SyncResult(
                feed=feed.name,
                ok=True,
                total_items=len(store.read_items()),
                fetched_new=0,
                started_at=to_iso(started),
                finished_at=to_iso(self._clock()),
                skipped=True,
            )

        errors: list[str] = []
        active: list[tuple[SourceDescriptor, object]] = []
        for source in feed.sources:
            if not source.enabled:
                continue
            adapter = create_adapter(source.type, self._config, store)
            if adapter is None:
                logger.warning("Unknown source type '%s' for %s, skipping", source.type, source.id)
                errors.append(f"{source.id}: unknown source type '{source.type}'")
                continue
            active.append((source, adapter))

        config_failed = False
        try:
            for _, adapter in active:
                adapter.check_config()
        except ConfigError as exc:
            logger.error("Feed '%s' misconfigured, skipping fetch: %s", feed.name, exc)
            errors.append(f"config: {exc}")
            config_failed = True
            active = []

        incoming: list[TimelineItem] = []
        cursor_updates: dict[str, str] = {}
        succeeded = 0
        for source, adapter in active:
            items, new_cursor, error = self._fetch_source(feed, source, adapter, started)
            if error is not None:
                errors.append(f"{source.id}: {error}")
                continue
            succeeded += 1
            incoming.extend(items)
            if new_cursor:
                cursor_updates[source.id] = new_cursor

        merged, fetched_new, persisted = self._persist(feed, store, incoming, started)
        if not persisted:
            errors.append(f"persist: version conflict after {_MAX_WRITE_ATTEMPTS} attempts")
        else:
            for source_id, cursor in cursor_updates.items():
                store.write_cursor(source_id, cursor)
            pruned = store.prune_cursors(s.id for s in feed.sources)
            if pruned:
                logger.info("Feed '%s': dropped cursors for removed sources %s", feed.name, pruned)

        if not errors:
            status = "success"
        elif config_failed or not persisted or not succeeded:
            status = "error"
        else:
            status = "partial"

        return SyncResult(
            feed=feed.name,
            ok=not errors,
            total_items=len(merged),
            fetched_new=fetched_new,
            errors=errors,
            status=status,
            started_at=to_iso(started),
            finished_at=to_iso(self._clock()),
        )

    def _fetch_source(self, feed: FeedDescriptor, source: SourceDescriptor, adapter, started):
        """Fetch and normalize one source. Returns (items, new_cursor, error_message)."""
        cursor = self.store(feed.name).read_cursor(source.id)
        try:
            candidates = adapter.fetch(source, cursor)
        except FeedlineError as exc:
            logger.warning("Source '%s' failed: %s", source.id, exc)
            self._note_failure(feed, source, str(exc))
            return [], None, str(exc)
        except Exception as exc:
            logger.exception("Source '%s' failed unexpectedly", source.id)
            self._note_failure(feed, source, repr(exc))
            return [], None, f"unexpected error: {exc}"

        try:
            _record_source_success(self._config.database_path, feed.name, source.id)
        except Exception:
            logger.exception("Failed to record success for source '%s'", source.id)

        items: list[TimelineItem] = []
        new_cursor = cursor
        for candidate in candidates:
            try:
                item = normalize(source, candidate, started, feed.tag_rules)
            except Exception:
                logger.exception(
                    "Skipping candidate from '%s' that failed to normalize: %r",
                    source.id, candidate.url,
                )
                continue
            if item is None:
                continue
            items.append(item)
            new_cursor = snowflake_max(new_cursor, item.external_id)
        logger.info(
            "Source '%s': %d candidates, %d normalized", source.id, len(candidates), len(items)
        )
        return items, (new_cursor if new_cursor != cursor else None), None

    def _note_failure(self, feed: FeedDescriptor, source: SourceDescriptor, message: str) -> None:
        try:
            consecutive = _record_source_failure(
                self._config.database_path, feed.name, source.id, message
            )
        except Exception:
            logger.exception("Failed to record failure for source '%s'", source.id)
            return
        if consecutive >= self._config.source_failure_alert_threshold:
            logger.error(
                "Source '%s' in feed '%s' has failed %d consecutive run(s)",
                source.id, feed.name, consecutive,
            )

    def _persist(self, feed: FeedDescriptor, store: FeedStore, incoming, started):
        """Merge with the stored collection and write it with compare-and-swap.

        Returns (merged_items, fetched_new, persisted).
        """
        fallback_iso = to_iso(started)
        source_meta = [
            {"id": s.id, "name": s.name, "type": s.type, "url": s.url or s.rss_url}
            for s in feed.sources
        ]
        merged: list[TimelineItem] = []
        fetched_new = 0
        for attempt in range(1, _MAX_WRITE_ATTEMPTS + 1):
            stored, version = store.read_items_versioned()
            existing = [item for item in stored if item.id != SEED_ID]
            fresh = _keep_stored_dates(existing, incoming, fallback_iso)
            fetched_new = _count_new(existing, fresh)
            merged = merge_items(existing, fresh, feed.max_items)
            if not merged:
                stored_seed = next((item for item in stored if item.id == SEED_ID), None)
                merged = [stored_seed or seed_item(feed.name, started)]
                logger.warning("Feed '%s' has no items, writing seed", feed.name)
            if store.write_items(merged, version, source_meta):
                return merged, fetched_new, True
            logger.warning(
                "Feed '%s' changed during sync (attempt %d/%d), re-merging",
                feed.name, attempt, _MAX_WRITE_ATTEMPTS,
            )
        return merged, fetched_new, False


def run_sync(config: Config, sources: SourcesConfig) -> dict[str, SyncResult]:
    """Scheduled job entry point: sync all feeds, logging instead of raising."""
    try:
        return Aggregator(config, sources).run_all()
    except Exception:
        logger.exception("Sync failed")
        return {}
