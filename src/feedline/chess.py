"""Chess.com rating history: one snapshot of rapid/blitz/bullet ratings per day."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import quote

from feedline.config import Config
from feedline.errors import FeedlineError, ParseError, PersistenceReadError
from feedline.ingestion.dates import to_iso
from feedline.ingestion.http import fetch_json
from feedline.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

STATS_URL = "https://api.chess.com/pub/player/{username}/stats"
PROFILE_URL = "https://www.chess.com/member/{username}"
SCHEMA_VERSION = 1
TIME_CONTROLS = ("rapid", "blitz", "bullet")

_SOURCE = {"name": "Chess.com Published Data API", "url": "https://api.chess.com/pub/"}


def ratings_key(username: str) -> str:
    return f"chess:{username.lower()}"


@dataclass(frozen=True)
class ChessSyncResult:
    username: str
    ok: bool
    snapshots: int
    appended: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "username": self.username,
            "snapshots": self.snapshots,
            "appended": self.appended,
            "error": self.error,
        }


def _to_rating(value) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def parse_ratings(payload) -> dict[str, int | None]:
    """Pull the latest rating per time control out of a stats payload."""
    if not isinstance(payload, dict):
        raise ParseError("chess.com stats payload is not an object")
    ratings = {}
    for control in TIME_CONTROLS:
        block = payload.get(f"chess_{control}")
        last = block.get("last") if isinstance(block, dict) else None
        ratings[control] = _to_rating(last.get("rating")) if isinstance(last, dict) else None
    return ratings


def fetch_ratings(username: str, config: Config) -> dict[str, int | None]:
    """Raises FetchError or ParseError."""
    payload = fetch_json(
        STATS_URL.format(username=quote(username)),
        timeout=config.request_timeout_seconds,
        user_agent=config.user_agent,
        headers={"Accept": "application/json"},
    )
    return parse_ratings(payload)


def _empty_snapshot(day: str) -> dict:
    return {"date": day, **{control: None for control in TIME_CONTROLS}}


def build_dataset(username: str, snapshots: list[dict], now: datetime) -> dict:
    return {
        "meta": {
            "schema_version": SCHEMA_VERSION,
            "generated_at": to_iso(now),
            "player": {
                "platform": "chess.com",
                "username": username,
                "profile_url": PROFILE_URL.format(username=quote(username)),
            },
            "sources": [dict(_SOURCE)],
        },
        "snapshots": snapshots,
    }


def seed_dataset(username: str, now: datetime) -> dict:
    """Placeholder dataset holding a single all-null snapshot for today."""
    return build_dataset(username, [_empty_snapshot(now.date().isoformat())], now)


def valid_snapshots(value) -> list[dict]:
    if not isinstance(value, dict) or not isinstance(value.get("snapshots"), list):
        return []
    return [
        snap for snap in value["snapshots"]
        if isinstance(snap, dict) and isinstance(snap.get("date"), str)
    ]


def read_dataset(kv: KeyValueStore, username: str) -> tuple[dict | None, int | None]:
    """Return (dataset, version). A missing or unreadable dataset reads as (None, version)."""
    raw = kv.get_raw(ratings_key(username))
    if raw is None:
        return None, None
    version = raw[1]
    try:
        value = kv.get(ratings_key(username))
    except PersistenceReadError as exc:
        logger.warning("Chess dataset for %s unreadable, ignoring: %s", username, exc)
        return None, version
    if not isinstance(value, dict) or not isinstance(value.get("snapshots"), list):
        logger.warning("Chess dataset for %s has the wrong shape, ignoring", username)
        return None, version
    return value, version


def append_snapshot(snapshots: list[dict], day: str, ratings: dict) -> tuple[list[dict], bool]:
    """Add today's ratings unless a real snapshot for *day* already exists.

    A placeholder snapshot for the same day (all ratings null) is replaced.
    """
    out = []
    for snap in snapshots:
        if snap["date"] == day:
            if any(snap.get(control) is not None for control in TIME_CONTROLS):
                return list(snapshots), False
            continue
        out.append(snap)
    out.append({"date": day, **{control: ratings.get(control) for control in TIME_CONTROLS}})
    return out, True


def sync_chess(
    config: Config,
    kv: KeyValueStore | None = None,
    clock=None,
) -> ChessSyncResult:
    """Fetch current ratings and record at most one snapshot per day.

    On a failed fetch the stored dataset is left untouched; if nothing is
    stored yet, the seed dataset is written instead.
    """
    username = config.chesscom_username
    if not username:
        raise ValueError("chesscom_username is not configured")
    kv = kv or KeyValueStore(config.database_path)
    now = (clock or (lambda: datetime.now(timezone.utc)))()
    key = ratings_key(username)
    existing, version = read_dataset(kv, username)

    try:
        ratings = fetch_ratings(username, config)
    except FeedlineError as exc:
        if existing is not None:
            logger.warning("Chess sync for %s failed, keeping last dataset: %s", username, exc)
            return ChessSyncResult(
                username, ok=False, snapshots=len(valid_snapshots(existing)), error=str(exc),
            )
        logger.warning("Chess sync for %s failed, writing seed dataset: %s", username, exc)
        seed = seed_dataset(username, now)
        kv.put_if_version(key, seed, version)
        return ChessSyncResult(username, ok=False, snapshots=1, error=str(exc))

    snapshots, appended = append_snapshot(
        valid_snapshots(existing), now.date().isoformat(), ratings,
    )
    if not kv.put_if_version(key, build_dataset(username, snapshots, now), version):
        return ChessSyncResult(
            username, ok=False, snapshots=len(snapshots), error="persist: version conflict",
        )
    logger.info("Chess sync for %s: %d snapshot(s), appended=%s", username, len(snapshots), appended)
    return ChessSyncResult(username, ok=True, snapshots=len(snapshots), appended=appended)


def run_chess_sync(config: Config) -> ChessSyncResult | None:
    """Scheduled job entry point: logs instead of raising."""
    try:
        return sync_chess(config)
    except Exception:
        logger.exception("Chess sync failed")
        return None
