"""Database schema definition and initialization."""

from __future__ import annotations

import logging

from feedline.storage.connection import get_connection

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """\
-- Key-value documents: feed collections, cursors, adapter caches
CREATE TABLE IF NOT EXISTS kv (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,              -- JSON
    version     INTEGER NOT NULL DEFAULT 1, -- bumped on every write, used for compare-and-swap
    updated_at  TEXT NOT NULL
);

-- Sync run tracking
CREATE TABLE IF NOT EXISTS sync_runs (
    id          TEXT PRIMARY KEY,
    feed        TEXT NOT NULL,
    started_at  TEXT NOT NULL,
    finished_at TEXT NOT NULL,
    status      TEXT NOT NULL CHECK (status IN ('success', 'partial', 'error')),
    result      TEXT NOT NULL               -- JSON
);

-- Consecutive fetch failures per source
CREATE TABLE IF NOT EXISTS source_errors (
    feed                    TEXT NOT NULL,
    source_id               TEXT NOT NULL,
    consecutive_failures    INTEGER NOT NULL DEFAULT 0,
    last_error              TEXT,
    last_failed_at          TEXT,
    last_succeeded_at       TEXT,
    PRIMARY KEY (feed, source_id)
);

CREATE INDEX IF NOT EXISTS idx_kv_updated_at ON kv(updated_at);
CREATE INDEX IF NOT EXISTS idx_sync_runs_started_at ON sync_runs(started_at);
CREATE INDEX IF NOT EXISTS idx_sync_runs_feed ON sync_runs(feed);
"""


def init_db(database_path: str) -> None:
    """Create all tables and indexes if they do not already exist."""
    with get_connection(database_path) as conn:
        conn.executescript(_SCHEMA_SQL)
    logger.info("Database initialized at %s", database_path)
