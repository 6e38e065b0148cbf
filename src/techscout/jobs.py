"""Scheduled job functions — feed ingestion and source health tracking."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from techscout.config import Config
from techscout.ingestion import build_default_registry
from techscout.ingestion.aggregator import AggregationResult, AggregatorConfig, aggregate_feeds
from techscout.storage import FeedItemStore
from techscout.storage.connection import get_connection

if TYPE_CHECKING:
    from techscout.ingestion.registry import SourceRegistry

logger = logging.getLogger(__name__)


def aggregator_config(config: Config, **overrides) -> AggregatorConfig:
    """Build run options from application config, with per-run overrides."""
    options = AggregatorConfig(
        stack=list(config.project_stack) or None,
        max_items_per_source=config.max_items_per_source,
        source_timeout_seconds=config.source_timeout_seconds,
        continue_on_error=config.continue_on_error,
        near_duplicate_threshold=config.near_duplicate_threshold,
    )
    return replace(options, **overrides) if overrides else options


def all_sources_failed(result: AggregationResult) -> bool:
    """True when the run produced errors and no source fetched successfully."""
    return bool(result.errors) and all(r.error for r in result.source_results)


def _record_run(
    database_path: str,
    run_type: str,
    started_at: str,
    result: dict,
    error: str | None = None,
) -> None:
    """Insert a pipeline run record into the pipeline_runs table."""
    finished_at = datetime.now(timezone.utc).isoformat()
    status = "error" if error else "success"
    with get_connection(database_path) as conn:
        conn.execute(
            "INSERT INTO pipeline_runs "
            "(id, run_type, started_at, finished_at, status, result, error) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                str(uuid.uuid4()),
                run_type,
                started_at,
                finished_at,
                status,
                json.dumps(result),
                error,
            ),
        )


def _record_source_failure(database_path: str, source_name: str, error_msg: str) -> int:
    """Record a source fetch failure. Returns updated consecutive_failures count."""
    now = datetime.now(timezone.utc).isoformat()
    with get_connection(database_path) as conn:
        conn.execute(
            "INSERT INTO source_errors "
            "(source_name, consecutive_failures, last_error, last_failed_at) "
            "VALUES (?, 1, ?, ?) "
            "ON CONFLICT(source_name) DO UPDATE SET "
            "consecutive_failures = consecutive_failures + 1, "
            "last_error = ?, last_failed_at = ?",
            (source_name, error_msg, now, error_msg, now),
        )
        row = conn.execute(
            "SELECT consecutive_failures FROM source_errors WHERE source_name = ?",
            (source_name,),
        ).fetchone()
    return row["consecutive_failures"] if row else 1


def _record_source_success(database_path: str, source_name: str) -> None:
    """Reset consecutive failure count for a source after a successful fetch."""
    now = datetime.now(timezone.utc).isoformat()
    with get_connection(database_path) as conn:
        conn.execute(
            "INSERT INTO source_errors "
            "(source_name, consecutive_failures, last_succeeded_at) "
            "VALUES (?, 0, ?) "
            "ON CONFLICT(source_name) DO UPDATE SET "
            "consecutive_failures = 0, last_succeeded_at = ?",
            (source_name, now, now),
        )


def _track_source_health(config: Config, result: AggregationResult) -> None:
    for source_result in result.source_results:
        if source_result.error is None:
            _record_source_success(config.database_path, source_result.source_name)
            continue
        failures = _record_source_failure(
            config.database_path, source_result.source_name, source_result.error
        )
        if failures >= config.source_failure_alert_threshold:
            logger.error(
                "Source %s has failed %d consecutive times (last error: %s)",
                source_result.source_name, failures, source_result.error,
            )


def run_ingestion(
    config: Config,
    registry: SourceRegistry | None = None,
    options: AggregatorConfig | None = None,
) -> AggregationResult:
    """Run one aggregation pass and record it.

    Dry runs never touch the database, not even for run bookkeeping.
    """
    started_at = datetime.now(timezone.utc).isoformat()
    registry = registry if registry is not None else build_default_registry(config)
    options = options or aggregator_config(config)
    store = None if options.dry_run else FeedItemStore(config.database_path)

    try:
        result = asyncio.run(aggregate_feeds(registry, options, store))
    except Exception as e:
        logger.exception("Ingestion failed")
        if not options.dry_run:
            _record_run(config.database_path, "ingestion", started_at, {}, error=str(e))
        raise

    if not options.dry_run:
        _track_source_health(config, result)
        error = "; ".join(result.errors) if all_sources_failed(result) else None
        _record_run(config.database_path, "ingestion", started_at, result.summary(), error)

    logger.info(
        "Ingestion complete: %d new, %d stored, %d duplicates, %d errors",
        result.total_new_items, result.stored_items,
        result.duplicates_filtered, len(result.errors),
    )
    return result
