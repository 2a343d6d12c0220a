"""X (Twitter) API v2 source adapter — recent posts for a handle, incremental by since_id."""

from __future__ import annotations

import logging
from urllib.parse import quote

from feedline.errors import ConfigError, ParseError
from feedline.ingestion.adapter import SourceAdapter
from feedline.ingestion.http import fetch_json
from feedline.ingestion.normalize import RawCandidate
from feedline.sources import SourceDescriptor

logger = logging.getLogger(__name__)

_X_API_BASE = "https://api.x.com/2"
_MIN_RESULTS = 5
_MAX_RESULTS = 40
_MAX_HASHTAGS = 8


def normalize_handle(handle: str) -> str:
    return handle.strip().lstrip("@")


def status_url(handle: str, tweet_id: str) -> str:
    return f"https://x.com/{handle}/status/{tweet_id}"


def _first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ""


class XAdapter(SourceAdapter):
    """Adapter for a single X account's posts (replies and retweets excluded)."""

    @property
    def name(self) -> str:
        return "x"

    def check_config(self) -> None:
        if not self._config.x_bearer_token:
            raise ConfigError("Missing X_BEARER_TOKEN secret")

    def _get(self, path: str, params: dict):
        return fetch_json(
            f"{_X_API_BASE}{path}",
            params=params,
            headers={"Authorization": f"Bearer {self._config.x_bearer_token}"},
            timeout=self._timeout,
            user_agent=self._user_agent,
        )

    def _resolve_user_id(self, handle: str) -> str:
        """Look up the numeric user id for *handle*, caching it in the store."""
        cache_key = f"xuser:{handle.lower()}"
        if self._store is not None:
            cached = self._store.get_cached(cache_key)
            if isinstance(cached, dict) and isinstance(cached.get("id"), str):
                return cached["id"]

        payload = self._get(
            f"/users/by/username/{quote(handle)}",
            {"user.fields": "id,name,username"},
        )
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict) or not data.get("id"):
            raise ParseError(f"No user id found for @{handle}")

        user = {"id": str(data["id"]), "name": str(data.get("name") or handle)}
        if self._store is not None:
            self._store.put_cached(cache_key, user)
        return user["id"]

    def fetch(self, source: SourceDescriptor, cursor: str | None = None) -> list[RawCandidate]:
        self.check_config()
        handle = normalize_handle(source.handle or source.name)
        if not handle:
            raise ConfigError(f"source '{source.id}' has no handle")

        user_id = self._resolve_user_id(handle)
        params = {
            "max_results": str(
                min(max(self._config.max_items_per_source, _MIN_RESULTS), _MAX_RESULTS)
            ),
            "tweet.fields": "created_at,entities",
            "exclude": "replies,retweets",
        }
        if cursor:
            params["since_id"] = cursor

        payload = self._get(f"/users/{quote(user_id)}/tweets", params)
        tweets = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(tweets, list):
            tweets = []

        candidates: list[RawCandidate] = []
        for tweet in tweets:
            if not isinstance(tweet, dict):
                continue
            tweet_id = str(tweet.get("id") or "").strip()
            text = str(tweet.get("text") or "")
            if not tweet_id:
                continue
            hashtags = (tweet.get("entities") or {}).get("hashtags") or []
            tags = tuple(
                h["tag"] for h in hashtags if isinstance(h, dict) and isinstance(h.get("tag"), str)
            )[:_MAX_HASHTAGS]
            url = status_url(handle, tweet_id)
            candidates.append(
                RawCandidate(
                    title=_first_line(text) or f"Post by @{handle}",
                    url=url,
                    summary=text,
                    date_text=tweet.get("created_at"),
                    external_id=tweet_id,
                    author_handle=handle,
                    alt_url=f"https://twitter.com/{handle}/status/{tweet_id}",
                    tags=tags,
                )
            )

        logger.info("Fetched %d new posts for @%s (since_id=%s)", len(candidates), handle, cursor)
        return candidates
