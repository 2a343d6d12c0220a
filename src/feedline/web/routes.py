"""API route handlers for the Feedline web API."""

from __future__ import annotations

import logging
import math
import secrets
import sqlite3
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse

from feedline.chess import read_dataset, seed_dataset, valid_snapshots
from feedline.errors import FeedlineError
from feedline.ingestion.social import is_rss_configured, preview_profile
from feedline.storage.connection import get_connection
from feedline.storage.kv import KeyValueStore
from feedline.web.models import (
    ChessRatingsResponse,
    FeedListResponse,
    FeedResponse,
    FeedSummary,
    SocialPreviewResponse,
    SyncRunListResponse,
)
from feedline.web.queries import list_sync_runs

logger = logging.getLogger(__name__)

router = APIRouter()
health_router = APIRouter()

SOCIAL_MAX_AGE_OK = 900
SOCIAL_MAX_AGE_UNCONFIGURED = 300
SOCIAL_MAX_AGE_ERROR = 120
CHESS_MAX_AGE = 3600


def _require_sync_token(request: Request) -> None:
    """Reject the request with 401 unless it carries the configured bearer token."""
    expected = request.app.state.config.sync_token
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if (
        not expected
        or scheme.lower() != "bearer"
        or not secrets.compare_digest(token.strip().encode(), expected.encode())
    ):
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


def _get_feed_or_404(request: Request, name: str):
    feed = request.app.state.sources.get_feed(name)
    if feed is None:
        raise HTTPException(status_code=404, detail="Feed not found")
    return feed


@health_router.get("/health")
def health(request: Request) -> JSONResponse:
    """Check database connectivity and return health status."""
    database_path = request.app.state.database_path
    try:
        with get_connection(database_path) as conn:
            conn.execute("SELECT 1")
        return JSONResponse({"status": "healthy", "database": "ok"})
    except (sqlite3.Error, OSError) as exc:
        logger.warning("Health check failed: %s", exc)
        return JSONResponse(
            {"status": "unhealthy", "database": "error", "detail": str(exc)},
            status_code=503,
        )


@health_router.api_route("/sync", methods=["GET", "POST"])
def sync_all(request: Request) -> JSONResponse:
    """Run every feed now. 207 when any feed reported errors."""
    _require_sync_token(request)
    results = request.app.state.aggregator.run_all()
    ok = all(result.ok for result in results.values())
    return JSONResponse(
        {"ok": ok, "results": {name: r.to_dict() for name, r in results.items()}},
        status_code=200 if ok else 207,
    )


@router.get("/feeds", response_model=FeedListResponse)
def feeds(request: Request) -> FeedListResponse:
    aggregator = request.app.state.aggregator
    summaries = []
    for feed in request.app.state.sources.feeds:
        summaries.append(
            FeedSummary(
                name=feed.name,
                enabled=feed.enabled,
                item_count=len(aggregator.store(feed.name).read_items()),
                max_items=feed.max_items,
                cache_max_age=feed.cache_max_age,
                sources=[s.id for s in feed.sources],
            )
        )
    return FeedListResponse(feeds=summaries)


@router.get(
    "/feeds/{name}",
    response_model=FeedResponse,
    response_model_exclude_none=True,
)
def feed_items(
    request: Request,
    response: Response,
    name: str,
    limit: int = Query(200, ge=1, le=1000),
) -> FeedResponse:
    feed = _get_feed_or_404(request, name)
    items = request.app.state.aggregator.store(feed.name).read_latest(limit)
    response.headers["Cache-Control"] = f"public, max-age={feed.cache_max_age}"
    return FeedResponse(
        feed=feed.name,
        enabled=feed.enabled,
        items=[item.to_dict() for item in items],
    )


@router.api_route("/feeds/{name}/sync", methods=["GET", "POST"])
def sync_feed(request: Request, name: str) -> JSONResponse:
    """Run one feed now. 207 when any source reported an error."""
    _require_sync_token(request)
    feed = _get_feed_or_404(request, name)
    result = request.app.state.aggregator.run_feed(feed)
    return JSONResponse(result.to_dict(), status_code=200 if result.ok else 207)


@router.get("/social/{slug}")
def social_preview(request: Request, slug: str) -> JSONResponse:
    """Live preview of a social profile's RSS feed."""
    slug = slug.strip().lower()
    profile = request.app.state.sources.get_social(slug)
    if profile is None:
        return JSONResponse(
            {"ok": False, "slug": slug, "message": "Unknown social slug", "items": []},
            status_code=404,
        )

    if not is_rss_configured(profile):
        body = {
            "ok": True,
            "slug": slug,
            "message": "RSS not configured for this platform",
            "items": [],
        }
        max_age = SOCIAL_MAX_AGE_UNCONFIGURED
    else:
        try:
            items = preview_profile(profile, request.app.state.config)
            body = {"ok": True, "slug": slug, "items": items}
            max_age = SOCIAL_MAX_AGE_OK
        except FeedlineError as exc:
            logger.warning("Social preview '%s' failed: %s", slug, exc)
            body = {"ok": False, "slug": slug, "message": str(exc), "items": []}
            max_age = SOCIAL_MAX_AGE_ERROR

    return JSONResponse(
        SocialPreviewResponse(**body).model_dump(exclude_none=True),
        headers={"Cache-Control": f"public, max-age={max_age}"},
    )


@router.get("/chess", response_model=ChessRatingsResponse)
def chess_ratings(request: Request, response: Response) -> ChessRatingsResponse:
    """Stored daily rating snapshots; the seed dataset until the first sync lands."""
    username = request.app.state.config.chesscom_username
    if not username:
        raise HTTPException(status_code=404, detail="Chess ratings not configured")
    dataset, _ = read_dataset(KeyValueStore(request.app.state.database_path), username)
    if dataset is None:
        dataset = seed_dataset(username, datetime.now(timezone.utc))
    response.headers["Cache-Control"] = f"public, max-age={CHESS_MAX_AGE}"
    return ChessRatingsResponse(
        meta=dataset.get("meta") or {},
        snapshots=valid_snapshots(dataset),
    )


@router.get("/runs", response_model=SyncRunListResponse)
def runs(
    request: Request,
    feed: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
) -> SyncRunListResponse:
    database_path = request.app.state.database_path
    rows, total = list_sync_runs(
        database_path, feed=feed, page=page, per_page=per_page,
    )
    pages = math.ceil(total / per_page) if total else 0
    return SyncRunListResponse(
        runs=rows,
        total=total,
        page=page,
        per_page=per_page,
        pages=pages,
    )
