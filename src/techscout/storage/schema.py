"""Database schema definition and initialization."""

from __future__ import annotations

import logging

from techscout.storage.connection import get_connection

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """\
-- Canonical feed items admitted by the ingestion pipeline
CREATE TABLE IF NOT EXISTS feed_items (
    id                  TEXT PRIMARY KEY,
    source_name         TEXT NOT NULL,
    source_tier         TEXT NOT NULL CHECK (source_tier IN (
                            'tier1_high_signal', 'tier2_curated',
                            'tier3_community', 'conditional'
                        )),
    source_reliability  TEXT NOT NULL CHECK (source_reliability IN (
                            'very_high', 'high', 'medium', 'low'
                        )),
    external_id         TEXT,
    title               TEXT NOT NULL,
    url                 TEXT,
    description         TEXT,
    content_summary     TEXT,
    published_at        TEXT,
    fetched_at          TEXT NOT NULL,
    categories          TEXT NOT NULL DEFAULT '[]',   -- JSON array
    technologies        TEXT NOT NULL DEFAULT '[]',   -- JSON array
    language_ecosystems TEXT NOT NULL DEFAULT '[]',   -- JSON array
    traction            TEXT NOT NULL DEFAULT '{}',   -- JSON object
    is_processed        INTEGER NOT NULL DEFAULT 0,
    processed_at        TEXT,
    content_hash        TEXT NOT NULL UNIQUE
);

-- Pipeline run tracking
CREATE TABLE IF NOT EXISTS pipeline_runs (
    id          TEXT PRIMARY KEY,
    run_type    TEXT NOT NULL CHECK (run_type IN ('ingestion')),
    started_at  TEXT NOT NULL,
    finished_at TEXT NOT NULL,
    status      TEXT NOT NULL CHECK (status IN ('success', 'error')),
    result      TEXT NOT NULL,   -- JSON
    error       TEXT
);

-- Consecutive fetch failures per source
CREATE TABLE IF NOT EXISTS source_errors (
    source_name          TEXT PRIMARY KEY,
    consecutive_failures INTEGER NOT NULL DEFAULT 0,
    last_error           TEXT,
    last_failed_at       TEXT,
    last_succeeded_at    TEXT
);

-- Indexes: feed_items
CREATE INDEX IF NOT EXISTS idx_feed_items_source ON feed_items(source_name);
CREATE INDEX IF NOT EXISTS idx_feed_items_published ON feed_items(published_at);
CREATE INDEX IF NOT EXISTS idx_feed_items_unprocessed ON feed_items(is_processed);

-- Indexes: pipeline_runs
CREATE INDEX IF NOT EXISTS idx_pipeline_runs_started_at ON pipeline_runs(started_at);
CREATE INDEX IF NOT EXISTS idx_pipeline_runs_run_type ON pipeline_runs(run_type);
"""


def init_db(database_path: str) -> None:
    """Create all tables and indexes if they do not already exist."""
    with get_connection(database_path) as conn:
        conn.executescript(_SCHEMA_SQL)
    logger.info("Database initialized at %s", database_path)
