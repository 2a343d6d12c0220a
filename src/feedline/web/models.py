"""Pydantic v2 response models for the Feedline web API."""

from __future__ import annotations

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Feeds
# ---------------------------------------------------------------------------
class TimelineItemModel(BaseModel):
    id: str
    source_id: str
    source_name: str
    title: str
    summary: str
    url: str
    date: str
    tags: list[str]
    author_handle: str | None = None
    alt_url: str | None = None
    external_id: str | None = None


class FeedResponse(BaseModel):
    feed: str
    enabled: bool
    items: list[TimelineItemModel]


class FeedSummary(BaseModel):
    name: str
    enabled: bool
    item_count: int
    max_items: int
    cache_max_age: int
    sources: list[str]


class FeedListResponse(BaseModel):
    feeds: list[FeedSummary]


# ---------------------------------------------------------------------------
# Social preview
# ---------------------------------------------------------------------------
class SocialEntry(BaseModel):
    title: str
    url: str
    date: str


class SocialPreviewResponse(BaseModel):
    ok: bool
    slug: str
    items: list[SocialEntry]
    message: str | None = None


# ---------------------------------------------------------------------------
# Chess ratings
# ---------------------------------------------------------------------------
class ChessSnapshot(BaseModel):
    date: str
    rapid: int | None = None
    blitz: int | None = None
    bullet: int | None = None


class ChessRatingsResponse(BaseModel):
    meta: dict
    snapshots: list[ChessSnapshot]


# ---------------------------------------------------------------------------
# Sync Runs
# ---------------------------------------------------------------------------
class SyncRun(BaseModel):
    id: str
    feed: str
    started_at: str
    finished_at: str
    status: str
    result: dict


class SyncRunListResponse(BaseModel):
    runs: list[SyncRun]
    total: int
    page: int
    per_page: int
    pages: int
