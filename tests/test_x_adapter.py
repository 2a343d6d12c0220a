"""Tests for feedline.ingestion.x_adapter — X API v2 posts."""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest

from feedline.config import Config
from feedline.errors import ConfigError, ParseError
from feedline.ingestion.x_adapter import XAdapter, normalize_handle, status_url
from feedline.sources import SourceDescriptor
from feedline.storage.feed_store import FeedStore
from feedline.storage.kv import KeyValueStore
from feedline.storage.schema import init_db

USER_PAYLOAD = {"data": {"id": "12", "name": "Sam Altman", "username": "sama"}}

TWEETS_PAYLOAD = {
    "data": [
        {
            "id": "1800000000000000002",
            "text": "Big news today\nMore details in the thread #AGI",
            "created_at": "2025-06-15T10:00:00.000Z",
            "entities": {"hashtags": [{"start": 40, "end": 44, "tag": "AGI"}]},
        },
        {
            "id": "1800000000000000001",
            "text": "Short update",
            "created_at": "2025-06-14T10:00:00.000Z",
        },
    ]
}

SOURCE = SourceDescriptor(id="sama", name="Sam Altman", type="x", handle="@sama")


@pytest.fixture()
def store(tmp_path):
    path = str(tmp_path / "test.db")
    init_db(path)
    return FeedStore(KeyValueStore(path), "social")


def _mock_get(url, **kwargs):
    if "/users/by/username/" in url:
        payload = USER_PAYLOAD
    else:
        payload = TWEETS_PAYLOAD
    return httpx.Response(200, text=json.dumps(payload), request=httpx.Request("GET", url))


def _adapter(store=None, token="bearer-token"):
    return XAdapter(Config(database_path=":memory:", x_bearer_token=token), store)


class TestHelpers:
    def test_normalize_handle(self):
        assert normalize_handle(" @sama ") == "sama"

    def test_status_url(self):
        assert status_url("sama", "42") == "https://x.com/sama/status/42"


class TestXAdapter:
    def test_missing_token(self):
        with pytest.raises(ConfigError, match="X_BEARER_TOKEN"):
            _adapter(token=None).check_config()

    @patch("feedline.ingestion.http.httpx.get", side_effect=_mock_get)
    def test_fetch_posts(self, mock_get, store):
        candidates = _adapter(store).fetch(SOURCE)

        assert len(candidates) == 2
        first = candidates[0]
        assert first.title == "Big news today"
        assert first.url == "https://x.com/sama/status/1800000000000000002"
        assert first.alt_url == "https://twitter.com/sama/status/1800000000000000002"
        assert first.external_id == "1800000000000000002"
        assert first.author_handle == "sama"
        assert first.tags == ("AGI",)
        assert first.date_text == "2025-06-15T10:00:00.000Z"

    @patch("feedline.ingestion.http.httpx.get", side_effect=_mock_get)
    def test_request_parameters(self, mock_get, store):
        _adapter(store).fetch(SOURCE, cursor="1799999999999999999")

        timeline_call = mock_get.call_args_list[-1]
        params = timeline_call.kwargs["params"]
        assert timeline_call.args[0] == "https://api.x.com/2/users/12/tweets"
        assert params["since_id"] == "1799999999999999999"
        assert params["exclude"] == "replies,retweets"
        assert int(params["max_results"]) <= 40
        assert timeline_call.kwargs["headers"]["Authorization"] == "Bearer bearer-token"

    @patch("feedline.ingestion.http.httpx.get", side_effect=_mock_get)
    def test_user_id_cached(self, mock_get, store):
        adapter = _adapter(store)
        adapter.fetch(SOURCE)
        adapter.fetch(SOURCE)
        lookups = [c for c in mock_get.call_args_list if "/users/by/username/" in c.args[0]]
        assert len(lookups) == 1
        assert store.get_cached("xuser:sama") == {"id": "12", "name": "Sam Altman"}

    @patch("feedline.ingestion.http.httpx.get")
    def test_unknown_user_raises(self, mock_get, store):
        mock_get.return_value = httpx.Response(
            200, text=json.dumps({"errors": []}), request=httpx.Request("GET", "https://api.x.com/")
        )
        with pytest.raises(ParseError, match="sama"):
            _adapter(store).fetch(SOURCE)

    @patch("feedline.ingestion.http.httpx.get")
    def test_no_new_posts(self, mock_get, store):
        store.put_cached("xuser:sama", {"id": "12", "name": "Sam"})
        mock_get.return_value = httpx.Response(
            200, text=json.dumps({"meta": {"result_count": 0}}),
            request=httpx.Request("GET", "https://api.x.com/"),
        )
        assert _adapter(store).fetch(SOURCE, cursor="5") == []
