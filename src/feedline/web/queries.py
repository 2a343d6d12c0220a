"""Read-only query functions for the web API."""

from __future__ import annotations

import json

from feedline.storage.connection import get_connection


# ---------------------------------------------------------------------------
# list_sync_runs
# ---------------------------------------------------------------------------
def list_sync_runs(
    database_path: str,
    *,
    feed: str | None = None,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[dict], int]:
    """Return a paginated list of sync runs, newest first."""
    offset = (page - 1) * per_page

    where_clause = ""
    params: list[object] = []
    if feed is not None:
        where_clause = "WHERE feed = ?"
        params.append(feed)

    with get_connection(database_path) as conn:
        total = conn.execute(
            f"SELECT COUNT(*) FROM sync_runs {where_clause}", params
        ).fetchone()[0]

        rows = conn.execute(
            f"SELECT id, feed, started_at, finished_at, status, result "
            f"FROM sync_runs {where_clause} "
            f"ORDER BY started_at DESC, rowid DESC LIMIT ? OFFSET ?",
            [*params, per_page, offset],
        ).fetchall()

    runs = []
    for r in rows:
        runs.append({
            "id": r["id"],
            "feed": r["feed"],
            "started_at": r["started_at"],
            "finished_at": r["finished_at"],
            "status": r["status"],
            "result": json.loads(r["result"]),
        })

    return runs, total
