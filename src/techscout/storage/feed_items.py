"""Feed item store — persistence, hash lookup, and traction updates."""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterable

from techscout.ingestion.normalize import FeedItem
from techscout.storage.connection import get_connection

logger = logging.getLogger(__name__)

# SQLite's default limit on host parameters is 999
_LOOKUP_CHUNK = 500

_INSERT_SQL = (
    "INSERT INTO feed_items "
    "(id, source_name, source_tier, source_reliability, external_id, title, url, "
    "description, content_summary, published_at, fetched_at, categories, "
    "technologies, language_ecosystems, traction, is_processed, processed_at, "
    "content_hash) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
)


def _row_to_item(row: sqlite3.Row) -> FeedItem:
    return FeedItem(
        id=row["id"],
        source_name=row["source_name"],
        source_tier=row["source_tier"],
        source_reliability=row["source_reliability"],
        external_id=row["external_id"],
        title=row["title"],
        url=row["url"],
        description=row["description"],
        content_summary=row["content_summary"],
        published_at=row["published_at"],
        fetched_at=row["fetched_at"],
        categories=json.loads(row["categories"]),
        technologies=json.loads(row["technologies"]),
        language_ecosystems=json.loads(row["language_ecosystems"]),
        traction=json.loads(row["traction"]),
        is_processed=bool(row["is_processed"]),
        processed_at=row["processed_at"],
        content_hash=row["content_hash"],
    )


def _item_params(item: FeedItem, item_id: str) -> tuple[Any, ...]:
    return (
        item_id,
        item.source_name,
        item.source_tier,
        item.source_reliability,
        item.external_id,
        item.title,
        item.url,
        item.description,
        item.content_summary,
        item.published_at,
        item.fetched_at,
        json.dumps(item.categories),
        json.dumps(item.technologies),
        json.dumps(item.language_ecosystems),
        json.dumps(item.traction),
        int(item.is_processed),
        item.processed_at,
        item.content_hash,
    )


class FeedItemStore:
    """SQLite-backed store for canonical feed items."""

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path

    def insert_items(self, items: Iterable[FeedItem]) -> tuple[list[FeedItem], int]:
        """Insert items, assigning each a new identity.

        Returns the stored items (with ids) and the number of rows that failed.
        Rows that fail, e.g. on a duplicate content hash, do not undo the others.
        """
        stored: list[FeedItem] = []
        failed = 0
        with get_connection(self._database_path) as conn:
            for item in items:
                item_id = str(uuid.uuid4())
                try:
                    conn.execute(_INSERT_SQL, _item_params(item, item_id))
                except sqlite3.Error as e:
                    logger.warning("Failed to store feed item '%s': %s", item.title, e)
                    failed += 1
                    continue
                stored.append(replace(item, id=item_id))
        return stored, failed

    def find_by_content_hashes(self, hashes: Iterable[str]) -> dict[str, FeedItem]:
        """Return stored items keyed by content hash, for the hashes that exist."""
        unique = list(dict.fromkeys(hashes))
        found: dict[str, FeedItem] = {}
        if not unique:
            return found
        with get_connection(self._database_path) as conn:
            for start in range(0, len(unique), _LOOKUP_CHUNK):
                chunk = unique[start : start + _LOOKUP_CHUNK]
                placeholders = ", ".join("?" for _ in chunk)
                rows = conn.execute(
                    f"SELECT * FROM feed_items WHERE content_hash IN ({placeholders})",  # noqa: S608
                    chunk,
                ).fetchall()
                for row in rows:
                    found[row["content_hash"]] = _row_to_item(row)
        return found

    def get_by_content_hash(self, content_hash: str) -> FeedItem | None:
        with get_connection(self._database_path) as conn:
            row = conn.execute(
                "SELECT * FROM feed_items WHERE content_hash = ?", (content_hash,)
            ).fetchone()
        return _row_to_item(row) if row is not None else None

    def update_traction(self, item_id: str, traction: dict[str, Any]) -> None:
        with get_connection(self._database_path) as conn:
            conn.execute(
                "UPDATE feed_items SET traction = ? WHERE id = ?",
                (json.dumps(traction), item_id),
            )

    def unprocessed(self, limit: int = 100) -> list[FeedItem]:
        """Items not yet picked up by the analysis stage, newest first."""
        with get_connection(self._database_path) as conn:
            rows = conn.execute(
                "SELECT * FROM feed_items WHERE is_processed = 0 "
                "ORDER BY fetched_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [_row_to_item(row) for row in rows]

    def mark_processed(self, item_id: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with get_connection(self._database_path) as conn:
            conn.execute(
                "UPDATE feed_items SET is_processed = 1, processed_at = ? WHERE id = ?",
                (now, item_id),
            )
