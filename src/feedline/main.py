"""Process entry points: the long-running server and the one-shot sync."""

from __future__ import annotations

import json
import logging
import sys
import threading
from contextlib import asynccontextmanager

import uvicorn
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from feedline.chess import run_chess_sync, sync_chess
from feedline.config import load_config
from feedline.jobs import Aggregator, run_sync
from feedline.sources import load_sources
from feedline.storage import init_db
from feedline.web.app import create_app

logger = logging.getLogger("feedline")


def _setup_logging(log_level: str, log_format: str) -> None:
    """Configure root logger based on config."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps(
                {
                    "time": "%(asctime)s",
                    "level": "%(levelname)s",
                    "logger": "%(name)s",
                    "message": "%(message)s",
                }
            )
        )
    else:
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)


def _build_scheduler(config, sources):
    """Create a BackgroundScheduler with the feed sync job and, if configured, the chess job."""
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        run_sync,
        trigger=IntervalTrigger(minutes=config.fetch_interval_minutes),
        args=[config, sources],
        id="sync",
        name="Feed sync",
        max_instances=1,
        coalesce=True,
    )
    if config.chesscom_username:
        scheduler.add_job(
            run_chess_sync,
            trigger=IntervalTrigger(minutes=config.fetch_interval_minutes),
            args=[config],
            id="chess",
            name="Chess rating snapshot",
            max_instances=1,
            coalesce=True,
        )
    return scheduler


def main() -> None:
    """Load config, set up logging, and start scheduler + web server."""
    config = load_config()

    _setup_logging(config.log_level, config.log_format)

    sources = load_sources(config.sources_config_path)

    logger.info(
        "Feedline starting (env=%s, db=%s, feeds=%s)",
        config.app_env,
        config.database_path,
        ", ".join(feed.name for feed in sources.feeds),
    )

    init_db(config.database_path)

    scheduler = _build_scheduler(config, sources)

    def _initial_sync():
        """Run one sync at startup in a background thread."""
        logger.info("Running initial sync")
        run_sync(config, sources)
        if config.chesscom_username:
            run_chess_sync(config)

    @asynccontextmanager
    async def lifespan(app):
        logger.info("Scheduler starting")
        scheduler.start()
        # Serve requests while the first sync is still running
        threading.Thread(target=_initial_sync, daemon=True).start()
        yield
        logger.info("Scheduler shutting down")
        scheduler.shutdown(wait=False)

    app = create_app(config, sources, lifespan=lifespan)

    uvicorn.run(app, host=config.web_host, port=config.web_port)


def sync_once() -> None:
    """Sync every feed once, print the JSON summary, and exit non-zero on errors."""
    config = load_config()
    _setup_logging(config.log_level, config.log_format)
    sources = load_sources(config.sources_config_path)
    init_db(config.database_path)

    results = Aggregator(config, sources).run_all()
    ok = all(result.ok for result in results.values())
    summary = {"ok": ok, "results": {name: r.to_dict() for name, r in results.items()}}
    if config.chesscom_username:
        chess = sync_chess(config)
        summary["chess"] = chess.to_dict()
        ok = summary["ok"] = ok and chess.ok
    print(json.dumps(summary, indent=2))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
