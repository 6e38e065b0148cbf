"""Tests for techscout.storage — schema, connection, and the feed item store."""

from __future__ import annotations

import sqlite3

import pytest

from techscout.ingestion.dedup import compute_content_hash
from techscout.ingestion.normalize import FeedItem
from techscout.storage import FeedItemStore, get_connection, init_db

EXPECTED_TABLES = {"feed_items", "pipeline_runs", "source_errors"}

EXPECTED_INDEXES = {
    "idx_feed_items_source",
    "idx_feed_items_published",
    "idx_feed_items_unprocessed",
    "idx_pipeline_runs_started_at",
    "idx_pipeline_runs_run_type",
}


@pytest.fixture()
def db_path(tmp_path):
    """Return an initialized database path inside a temporary directory."""
    path = str(tmp_path / "test.db")
    init_db(path)
    return path


@pytest.fixture()
def store(db_path):
    return FeedItemStore(db_path)


def _make_item(title="Item", url="https://example.com/item", traction=None, tier="tier1_high_signal"):
    return FeedItem(
        source_name="hacker_news",
        source_tier=tier,
        source_reliability="high",
        title=title,
        url=url,
        fetched_at="2026-01-01T00:00:00+00:00",
        categories=["frontend"],
        technologies=["react"],
        language_ecosystems=["npm"],
        traction=dict(traction or {"points": 10}),
        content_hash=compute_content_hash(title, url),
    )


class TestSchema:
    def test_creates_tables_and_indexes(self, db_path):
        with get_connection(db_path) as conn:
            tables = {
                r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
            indexes = {
                r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='index'")
            }
        assert EXPECTED_TABLES <= tables
        assert EXPECTED_INDEXES <= indexes

    def test_init_is_idempotent(self, db_path):
        init_db(db_path)

    def test_wal_mode(self, db_path):
        with get_connection(db_path) as conn:
            assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"

    def test_tier_check_constraint(self, db_path):
        with pytest.raises(sqlite3.IntegrityError):
            with get_connection(db_path) as conn:
                conn.execute(
                    "INSERT INTO feed_items (id, source_name, source_tier, source_reliability, "
                    "title, fetched_at, content_hash) VALUES ('1', 's', 'tier9', 'high', 't', 'x', 'h')"
                )

    def test_rollback_on_exception(self, db_path):
        with pytest.raises(RuntimeError):
            with get_connection(db_path) as conn:
                conn.execute(
                    "INSERT INTO source_errors (source_name, consecutive_failures) VALUES ('a', 1)"
                )
                raise RuntimeError("boom")
        with get_connection(db_path) as conn:
            assert conn.execute("SELECT COUNT(*) FROM source_errors").fetchone()[0] == 0


class TestFeedItemStore:
    def test_insert_assigns_ids_and_round_trips(self, store):
        item = _make_item()
        stored, failed = store.insert_items([item])

        assert failed == 0
        assert len(stored) == 1
        assert stored[0].id
        assert item.id == ""

        loaded = store.get_by_content_hash(item.content_hash)
        assert loaded == stored[0]
        assert loaded.categories == ["frontend"]
        assert loaded.traction == {"points": 10}
        assert loaded.is_processed is False

    def test_duplicate_hash_fails_row_without_undoing_others(self, store):
        store.insert_items([_make_item("Existing")])

        stored, failed = store.insert_items([
            _make_item("Fresh one"),
            _make_item("Existing"),
            _make_item("Fresh two"),
        ])

        assert failed == 1
        assert [i.title for i in stored] == ["Fresh one", "Fresh two"]
        assert store.get_by_content_hash(compute_content_hash("Fresh two", "https://example.com/item"))

    def test_find_by_content_hashes(self, store):
        a, b = _make_item("A"), _make_item("B")
        store.insert_items([a, b])

        found = store.find_by_content_hashes([a.content_hash, "0000000000000000", a.content_hash])

        assert set(found) == {a.content_hash}
        assert found[a.content_hash].title == "A"

    def test_find_handles_large_batches(self, store):
        items = [_make_item(f"Item {i}") for i in range(600)]
        store.insert_items(items)
        found = store.find_by_content_hashes(i.content_hash for i in items)
        assert len(found) == 600

    def test_find_empty(self, store):
        assert store.find_by_content_hashes([]) == {}

    def test_get_missing_returns_none(self, store):
        assert store.get_by_content_hash("missing") is None

    def test_update_traction(self, store):
        (stored,), _ = store.insert_items([_make_item()])
        store.update_traction(stored.id, {"points": 99, "comments": 3})
        assert store.get_by_content_hash(stored.content_hash).traction == {"points": 99, "comments": 3}

    def test_unprocessed_and_mark_processed(self, store):
        stored, _ = store.insert_items([_make_item("A"), _make_item("B")])

        store.mark_processed(stored[0].id)

        remaining = store.unprocessed()
        assert [i.title for i in remaining] == ["B"]
        processed = store.get_by_content_hash(stored[0].content_hash)
        assert processed.is_processed is True
        assert processed.processed_at is not None
