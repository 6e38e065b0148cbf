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

    # Optional, source credentials
    github_token: str | None = None
    product_hunt_api_key: str | None = None

    # Optional, ingestion
    max_items_per_source: int = 100
    source_timeout_seconds: float = 30.0
    continue_on_error: bool = True
    near_duplicate_threshold: float = 0.8
    project_stack: tuple[str, ...] = ()
    fetch_interval_minutes: int = 360
    source_failure_alert_threshold: int = 3

    # Optional, application
    log_level: str = "INFO"
    log_format: str = "json"
    app_env: str = "production"


_REQUIRED_VARS = [
    "DATABASE_PATH",
]

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def _env_list(name: str) -> tuple[str, ...]:
    raw = os.environ.get(name, "")
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def load_config(env_path: str | Path | None = None, require_database: bool = True) -> Config:
    """Load configuration from environment variables.

    Loads a .env file if present (for local development), then validates
    that all required variables are set. Raises ValueError listing any
    missing variables. Commands that never open the database pass
    ``require_database=False``.
    """
    load_dotenv(dotenv_path=env_path)

    required = _REQUIRED_VARS if require_database else []
    missing = [var for var in required if not os.environ.get(var)]
    if missing:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    return Config(
        # Required
        database_path=os.environ.get("DATABASE_PATH", ""),
        # Optional, source credentials
        github_token=os.environ.get("GITHUB_TOKEN") or None,
        product_hunt_api_key=os.environ.get("PRODUCT_HUNT_API_KEY") or None,
        # Optional, ingestion
        max_items_per_source=int(os.environ.get("MAX_ITEMS_PER_SOURCE", "100")),
        source_timeout_seconds=float(os.environ.get("SOURCE_TIMEOUT_SECONDS", "30")),
        continue_on_error=_env_bool("CONTINUE_ON_ERROR", True),
        near_duplicate_threshold=float(os.environ.get("NEAR_DUPLICATE_THRESHOLD", "0.8")),
        project_stack=_env_list("PROJECT_STACK"),
        fetch_interval_minutes=int(os.environ.get("FETCH_INTERVAL_MINUTES", "360")),
        source_failure_alert_threshold=int(
            os.environ.get("SOURCE_FAILURE_ALERT_THRESHOLD", "3")
        ),
        # Optional, application
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        log_format=os.environ.get("LOG_FORMAT", "json"),
        app_env=os.environ.get("APP_ENV", "production"),
    )
