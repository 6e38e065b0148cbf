"""Tests for techscout.jobs — ingestion runs and source health tracking."""

from __future__ import annotations

import json
import logging
from unittest.mock import patch

import pytest

from techscout.config import Config
from techscout.ingestion.adapter import SourceAdapter
from techscout.ingestion.registry import SourceRegistry
from techscout.jobs import (
    _record_source_failure,
    _record_source_success,
    aggregator_config,
    all_sources_failed,
    run_ingestion,
)
from techscout.storage.connection import get_connection
from techscout.storage.schema import init_db


class _StubSource(SourceAdapter):
    tier = "tier1_high_signal"
    reliability = "high"
    fetch_method = "api"
    frequency = "daily"

    def __init__(self, name, payloads=(), error=None):
        self.name = name
        self._payloads = list(payloads)
        self._error = error
        super().__init__()

    async def fetch(self):
        if self._error is not None:
            raise self._error
        return [self._raw(p) for p in self._payloads]


def _story(story_id, title):
    return {
        "id": story_id,
        "type": "story",
        "title": title,
        "score": 100,
        "url": f"https://example.com/{story_id}",
        "time": 1700000000,
    }


def _make_config(tmp_path, **overrides) -> Config:
    """Create a test Config pointing at an initialized temp database."""
    db_path = str(tmp_path / "test.db")
    init_db(db_path)
    defaults = {"database_path": db_path, "source_timeout_seconds": 5.0}
    defaults.update(overrides)
    return Config(**defaults)


def _runs(config):
    with get_connection(config.database_path) as conn:
        return conn.execute("SELECT * FROM pipeline_runs ORDER BY started_at").fetchall()


def _source_error(config, name):
    with get_connection(config.database_path) as conn:
        return conn.execute(
            "SELECT * FROM source_errors WHERE source_name = ?", (name,)
        ).fetchone()


# --- Options ---


class TestAggregatorConfig:
    def test_built_from_config(self, tmp_path):
        config = _make_config(
            tmp_path,
            max_items_per_source=10,
            continue_on_error=False,
            near_duplicate_threshold=0.5,
            project_stack=("react", "rust"),
        )
        options = aggregator_config(config)

        assert options.max_items_per_source == 10
        assert options.source_timeout_seconds == 5.0
        assert options.continue_on_error is False
        assert options.near_duplicate_threshold == 0.5
        assert options.stack == ["react", "rust"]
        assert options.dry_run is False

    def test_empty_stack_means_no_stack_filter(self, tmp_path):
        assert aggregator_config(_make_config(tmp_path)).stack is None

    def test_overrides(self, tmp_path):
        options = aggregator_config(_make_config(tmp_path), dry_run=True, sources=["hacker_news"])
        assert options.dry_run is True
        assert options.sources == ["hacker_news"]


# --- TestRunIngestion ---


class TestRunIngestion:
    def test_stores_items_and_records_run(self, tmp_path):
        config = _make_config(tmp_path)
        registry = SourceRegistry([
            _StubSource("hacker_news", [_story(1, "Rust compiler news"), _story(2, "Postgres tips")]),
        ])

        result = run_ingestion(config, registry)

        assert result.stored_items == 2
        runs = _runs(config)
        assert len(runs) == 1
        assert runs[0]["run_type"] == "ingestion"
        assert runs[0]["status"] == "success"
        assert json.loads(runs[0]["result"])["stored_items"] == 2
        with get_connection(config.database_path) as conn:
            assert conn.execute("SELECT COUNT(*) FROM feed_items").fetchone()[0] == 2

    def test_partial_failure_still_success(self, tmp_path):
        config = _make_config(tmp_path)
        registry = SourceRegistry([
            _StubSource("hacker_news", [_story(1, "Fine story")]),
            _StubSource("broken", error=RuntimeError("boom")),
        ])

        result = run_ingestion(config, registry)

        assert result.errors == ["broken: boom"]
        assert _runs(config)[0]["status"] == "success"
        assert not all_sources_failed(result)

    def test_all_sources_failing_records_error(self, tmp_path):
        config = _make_config(tmp_path)
        registry = SourceRegistry([_StubSource("broken", error=RuntimeError("boom"))])

        result = run_ingestion(config, registry)

        assert all_sources_failed(result)
        run = _runs(config)[0]
        assert run["status"] == "error"
        assert run["error"] == "broken: boom"

    def test_dry_run_touches_nothing(self, tmp_path):
        config = _make_config(tmp_path)
        registry = SourceRegistry([_StubSource("hacker_news", [_story(1, "Story")])])

        result = run_ingestion(config, registry, aggregator_config(config, dry_run=True))

        assert result.total_new_items == 1
        assert result.stored_items == 0
        assert _runs(config) == []
        assert _source_error(config, "hacker_news") is None

    def test_unexpected_failure_recorded_and_raised(self, tmp_path):
        config = _make_config(tmp_path)
        registry = SourceRegistry([_StubSource("hacker_news")])

        with patch("techscout.jobs.aggregate_feeds", side_effect=RuntimeError("kaboom")):
            with pytest.raises(RuntimeError, match="kaboom"):
                run_ingestion(config, registry)

        run = _runs(config)[0]
        assert run["status"] == "error"
        assert run["error"] == "kaboom"

    def test_builds_default_registry_when_none_given(self, tmp_path):
        config = _make_config(tmp_path)
        registry = SourceRegistry()

        with patch("techscout.jobs.build_default_registry", return_value=registry) as build:
            result = run_ingestion(config)

        build.assert_called_once_with(config)
        assert result.errors == ["No sources configured or matching filter"]


# --- Source health ---


class TestSourceHealth:
    def test_failures_accumulate_and_success_resets(self, tmp_path):
        config = _make_config(tmp_path)

        assert _record_source_failure(config.database_path, "reddit_webdev", "HTTP 429") == 1
        assert _record_source_failure(config.database_path, "reddit_webdev", "HTTP 500") == 2
        row = _source_error(config, "reddit_webdev")
        assert row["last_error"] == "HTTP 500"

        _record_source_success(config.database_path, "reddit_webdev")
        row = _source_error(config, "reddit_webdev")
        assert row["consecutive_failures"] == 0
        assert row["last_succeeded_at"] is not None

    def test_run_updates_source_errors(self, tmp_path):
        config = _make_config(tmp_path)
        registry = SourceRegistry([
            _StubSource("hacker_news", [_story(1, "Story")]),
            _StubSource("broken", error=RuntimeError("boom")),
        ])

        run_ingestion(config, registry)

        assert _source_error(config, "hacker_news")["consecutive_failures"] == 0
        assert _source_error(config, "broken")["consecutive_failures"] == 1

    def test_logs_error_at_threshold(self, tmp_path, caplog):
        config = _make_config(tmp_path, source_failure_alert_threshold=2)
        registry = SourceRegistry([_StubSource("broken", error=RuntimeError("boom"))])

        with caplog.at_level(logging.ERROR, logger="techscout.jobs"):
            run_ingestion(config, registry)
            assert "consecutive times" not in caplog.text
            run_ingestion(config, registry)

        assert "Source broken has failed 2 consecutive times" in caplog.text
