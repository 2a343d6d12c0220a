"""Configuration loading and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class Config:
    """Application configuration. All values sourced from environment variables."""

    # Required
    database_path: str

    # Sources (optional)
    sources_config_path: str = "./config/sources.json"
    x_bearer_token: str | None = None
    chesscom_username: str | None = None

    # Fetching (optional)
    request_timeout_seconds: float = 15.0
    user_agent: str = "Feedline/0.1 (+feed-aggregator)"
    fetch_interval_minutes: int = 60
    max_items_per_source: int = 50
    source_failure_alert_threshold: int = 3

    # Web (optional)
    sync_token: str | None = None
    web_host: str = "0.0.0.0"
    web_port: int = 8080

    # Application (optional)
    log_level: str = "INFO"
    log_format: str = "json"
    app_env: str = "production"


_REQUIRED_VARS = [
    "DATABASE_PATH",
]


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got '{raw}'") from None


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got '{raw}'") from None


def load_config(env_path: str | Path | None = None) -> Config:
    """Load configuration from environment variables.

    Loads a .env file if present (for local development), then validates
    that all required variables are set. Raises ValueError listing any
    missing variables.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [var for var in _REQUIRED_VARS if not os.environ.get(var)]
    if missing:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    return Config(
        # Required
        database_path=os.environ["DATABASE_PATH"],
        # Sources (optional)
        sources_config_path=os.environ.get("SOURCES_CONFIG_PATH", "./config/sources.json"),
        x_bearer_token=os.environ.get("X_BEARER_TOKEN") or None,
        chesscom_username=(os.environ.get("CHESSCOM_USERNAME") or "").strip() or None,
        # Fetching (optional)
        request_timeout_seconds=_float_env("REQUEST_TIMEOUT_SECONDS", 15.0),
        user_agent=os.environ.get("USER_AGENT", "Feedline/0.1 (+feed-aggregator)"),
        fetch_interval_minutes=_int_env("FETCH_INTERVAL_MINUTES", 60),
        max_items_per_source=_int_env("MAX_ITEMS_PER_SOURCE", 50),
        source_failure_alert_threshold=_int_env("SOURCE_FAILURE_ALERT_THRESHOLD", 3),
        # Web (optional)
        sync_token=os.environ.get("SYNC_TOKEN") or None,
        web_host=os.environ.get("WEB_HOST", "0.0.0.0"),
        web_port=_int_env("WEB_PORT", 8080),
        # Application (optional)
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        log_format=os.environ.get("LOG_FORMAT", "json"),
        app_env=os.environ.get("APP_ENV", "production"),
    )
