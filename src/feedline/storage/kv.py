"""JSON key-value store on top of the kv table."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from feedline.errors import PersistenceReadError
from feedline.storage.connection import get_connection

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Versioned JSON documents keyed by string.

    Every write bumps the row version; ``put_if_version`` only writes when
    the stored version still matches, so read-modify-write cycles from
    overlapping runs cannot silently overwrite each other.
    """

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path

    def get_raw(self, key: str) -> tuple[str, int] | None:
        """Return the stored JSON text and version, or None if absent."""
        with get_connection(self._database_path) as conn:
            row = conn.execute(
                "SELECT value, version FROM kv WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        return row["value"], row["version"]

    def get(self, key: str):
        """Return the decoded value, or None if absent.

        Raises PersistenceReadError if the stored text is not valid JSON.
        """
        raw = self.get_raw(key)
        if raw is None:
            return None
        try:
            return json.loads(raw[0])
        except json.JSONDecodeError as exc:
            raise PersistenceReadError(f"invalid JSON under '{key}': {exc}") from exc

    def put(self, key: str, value) -> int:
        """Unconditionally write *value*. Returns the new version."""
        now = datetime.now(timezone.utc).isoformat()
        with get_connection(self._database_path) as conn:
            conn.execute(
                "INSERT INTO kv (key, value, version, updated_at) VALUES (?, ?, 1, ?) "
                "ON CONFLICT(key) DO UPDATE SET "
                "value = excluded.value, version = kv.version + 1, "
                "updated_at = excluded.updated_at",
                (key, json.dumps(value), now),
            )
            row = conn.execute("SELECT version FROM kv WHERE key = ?", (key,)).fetchone()
        return row["version"]

    def put_if_version(self, key: str, value, expected_version: int | None) -> bool:
        """Write *value* only if the stored version equals *expected_version*.

        ``expected_version=None`` means the key must not exist yet. Returns
        False on a version mismatch.
        """
        now = datetime.now(timezone.utc).isoformat()
        data = json.dumps(value)
        with get_connection(self._database_path) as conn:
            if expected_version is None:
                cursor = conn.execute(
                    "INSERT INTO kv (key, value, version, updated_at) VALUES (?, ?, 1, ?) "
                    "ON CONFLICT(key) DO NOTHING",
                    (key, data, now),
                )
            else:
                cursor = conn.execute(
                    "UPDATE kv SET value = ?, version = version + 1, updated_at = ? "
                    "WHERE key = ? AND version = ?",
                    (data, now, key, expected_version),
                )
            written = cursor.rowcount == 1
        if not written:
            logger.warning("Version conflict writing '%s' (expected %s)", key, expected_version)
        return written

    def delete(self, key: str) -> None:
        with get_connection(self._database_path) as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    def keys(self, prefix: str = "") -> list[str]:
        """Return all keys starting with *prefix*, sorted."""
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with get_connection(self._database_path) as conn:
            rows = conn.execute(
                "SELECT key FROM kv WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (f"{escaped}%",),
            ).fetchall()
        return [row["key"] for row in rows]
