"""FastAPI application factory for the Feedline web API."""

from __future__ import annotations

from fastapi import FastAPI

from feedline.config import Config
from feedline.jobs import Aggregator
from feedline.sources import SourcesConfig
from feedline.web.routes import health_router, router


def create_app(
    config: Config,
    sources: SourcesConfig,
    lifespan=None,
    aggregator: Aggregator | None = None,
) -> FastAPI:
    """Build and return a configured FastAPI application."""
    app = FastAPI(title="Feedline", docs_url="/api/docs", lifespan=lifespan)
    app.state.config = config
    app.state.sources = sources
    app.state.database_path = config.database_path
    app.state.aggregator = aggregator or Aggregator(config, sources)
    app.include_router(health_router)
    app.include_router(router, prefix="/api/v1")
    return app
