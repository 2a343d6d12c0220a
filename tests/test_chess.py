"""Tests for feedline.chess — daily Chess.com rating snapshots."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import patch

import httpx
import pytest

from feedline.chess import (
    STATS_URL,
    append_snapshot,
    parse_ratings,
    ratings_key,
    read_dataset,
    run_chess_sync,
    sync_chess,
)
from feedline.config import Config
from feedline.errors import ParseError
from feedline.storage.kv import KeyValueStore
from feedline.storage.schema import init_db

DAY_ONE = datetime(2025, 6, 15, 8, 0, 0, tzinfo=timezone.utc)
DAY_ONE_LATER = datetime(2025, 6, 15, 20, 0, 0, tzinfo=timezone.utc)
DAY_TWO = datetime(2025, 6, 16, 8, 0, 0, tzinfo=timezone.utc)

STATS = {
    "chess_rapid": {"last": {"rating": 1510, "date": 1718000000}},
    "chess_blitz": {"last": {"rating": 1422.0}},
    "chess_daily": {"last": {"rating": 1300}},
}


@pytest.fixture()
def config(tmp_path):
    db_path = str(tmp_path / "test.db")
    init_db(db_path)
    return Config(database_path=db_path, chesscom_username="Trid3nt")


@pytest.fixture()
def kv(config):
    return KeyValueStore(config.database_path)


def _respond(status_code=200, payload=None, calls=None):
    def _get(url, **kwargs):
        if calls is not None:
            calls.append((url, kwargs))
        return httpx.Response(
            status_code, json=payload if payload is not None else STATS,
            request=httpx.Request("GET", url),
        )

    return _get


def _fail(url, **kwargs):
    raise httpx.ConnectError("down")


def _snapshots(kv):
    dataset, _ = read_dataset(kv, "Trid3nt")
    return dataset["snapshots"]


class TestParseRatings:
    def test_latest_ratings(self):
        assert parse_ratings(STATS) == {"rapid": 1510, "blitz": 1422, "bullet": None}

    def test_non_numeric_rating_is_none(self):
        payload = {"chess_rapid": {"last": {"rating": "n/a"}}, "chess_blitz": {"last": None}}
        assert parse_ratings(payload) == {"rapid": None, "blitz": None, "bullet": None}

    def test_non_object_payload(self):
        with pytest.raises(ParseError):
            parse_ratings([1, 2])


class TestAppendSnapshot:
    def test_existing_real_snapshot_kept(self):
        snaps = [{"date": "2025-06-15", "rapid": 1500, "blitz": None, "bullet": None}]
        out, appended = append_snapshot(snaps, "2025-06-15", {"rapid": 1600})
        assert appended is False
        assert out == snaps

    def test_placeholder_replaced(self):
        snaps = [{"date": "2025-06-15", "rapid": None, "blitz": None, "bullet": None}]
        out, appended = append_snapshot(snaps, "2025-06-15", {"rapid": 1600})
        assert appended is True
        assert out == [{"date": "2025-06-15", "rapid": 1600, "blitz": None, "bullet": None}]


class TestSyncChess:
    def test_first_sync_stores_snapshot(self, config, kv):
        calls = []
        with patch("feedline.ingestion.http.httpx.get", side_effect=_respond(calls=calls)):
            result = sync_chess(config, clock=lambda: DAY_ONE)

        assert result.ok is True
        assert result.appended is True
        assert _snapshots(kv) == [
            {"date": "2025-06-15", "rapid": 1510, "blitz": 1422, "bullet": None}
        ]
        url, kwargs = calls[0]
        assert url == STATS_URL.format(username="Trid3nt")
        assert kwargs["timeout"] == 15.0
        assert kwargs["headers"]["User-Agent"] == config.user_agent

    def test_one_snapshot_per_day(self, config, kv):
        with patch("feedline.ingestion.http.httpx.get", side_effect=_respond()):
            sync_chess(config, clock=lambda: DAY_ONE)
        later = {"chess_rapid": {"last": {"rating": 1600}}}
        with patch("feedline.ingestion.http.httpx.get", side_effect=_respond(payload=later)):
            result = sync_chess(config, clock=lambda: DAY_ONE_LATER)

        assert result.ok is True
        assert result.appended is False
        assert [s["rapid"] for s in _snapshots(kv)] == [1510]

    def test_next_day_appends(self, config, kv):
        with patch("feedline.ingestion.http.httpx.get", side_effect=_respond()):
            sync_chess(config, clock=lambda: DAY_ONE)
            result = sync_chess(config, clock=lambda: DAY_TWO)

        assert result.snapshots == 2
        assert [s["date"] for s in _snapshots(kv)] == ["2025-06-15", "2025-06-16"]
        dataset, _ = read_dataset(kv, "Trid3nt")
        assert dataset["meta"]["generated_at"] == "2025-06-16T08:00:00+00:00"
        assert dataset["meta"]["player"]["profile_url"] == "https://www.chess.com/member/Trid3nt"

    def test_failure_keeps_last_dataset(self, config, kv):
        with patch("feedline.ingestion.http.httpx.get", side_effect=_respond()):
            sync_chess(config, clock=lambda: DAY_ONE)
        before = kv.get_raw(ratings_key("Trid3nt"))
        with patch("feedline.ingestion.http.httpx.get", side_effect=_fail):
            result = sync_chess(config, clock=lambda: DAY_TWO)

        assert result.ok is False
        assert "ConnectError" in result.error
        assert kv.get_raw(ratings_key("Trid3nt")) == before

    def test_failure_on_empty_store_writes_seed(self, config, kv):
        with patch("feedline.ingestion.http.httpx.get", side_effect=_fail):
            result = sync_chess(config, clock=lambda: DAY_ONE)

        assert result.ok is False
        assert _snapshots(kv) == [
            {"date": "2025-06-15", "rapid": None, "blitz": None, "bullet": None}
        ]

    def test_http_error_status(self, config):
        with patch("feedline.ingestion.http.httpx.get", side_effect=_respond(status_code=404)):
            result = sync_chess(config, clock=lambda: DAY_ONE)
        assert result.ok is False
        assert result.error.startswith("HTTP 404")

    def test_seed_replaced_by_first_real_snapshot(self, config, kv):
        with patch("feedline.ingestion.http.httpx.get", side_effect=_fail):
            sync_chess(config, clock=lambda: DAY_ONE)
        with patch("feedline.ingestion.http.httpx.get", side_effect=_respond()):
            result = sync_chess(config, clock=lambda: DAY_ONE_LATER)

        assert result.appended is True
        assert [s["rapid"] for s in _snapshots(kv)] == [1510]

    def test_corrupt_dataset_is_overwritten(self, config, kv):
        kv.put(ratings_key("Trid3nt"), ["not", "a", "dataset"])
        with patch("feedline.ingestion.http.httpx.get", side_effect=_respond()):
            result = sync_chess(config, clock=lambda: DAY_ONE)

        assert result.ok is True
        assert len(_snapshots(kv)) == 1

    def test_run_chess_sync_never_raises(self, tmp_path):
        config = Config(database_path=str(tmp_path / "test.db"))
        assert run_chess_sync(config) is None
