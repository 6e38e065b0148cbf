"""Deduplication — content hashing, traction merging, and near-duplicate collapse."""

from __future__ import annotations

import hashlib
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

if TYPE_CHECKING:
    from techscout.ingestion.normalize import FeedItem
    from techscout.storage.feed_items import FeedItemStore

logger = logging.getLogger(__name__)

NEAR_DUPLICATE_THRESHOLD = 0.8
_TITLE_WEIGHT = 0.7
_HOST_WEIGHT = 0.3
_TOKEN_RE = re.compile(r"[a-z0-9]+")

TIER_RANK = {
    "tier1_high_signal": 0,
    "tier2_curated": 1,
    "conditional": 2,
    "tier3_community": 3,
}
RELIABILITY_RANK = {"very_high": 0, "high": 1, "medium": 2, "low": 3}


def _normalize_text(text: str) -> str:
    """Normalize text for stable hashing.

    - Unicode NFC normalization
    - Lowercase
    - Collapse all whitespace (spaces, tabs, newlines) to single spaces
    - Strip leading/trailing whitespace
    """
    text = unicodedata.normalize("NFC", text)
    text = text.lower()
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def compute_content_hash(title: str, url: str | None) -> str:
    """Compute the short content hash used as the primary dedup key.

    Title and URL are normalized (case, whitespace, unicode form) and joined
    with a pipe; the first 16 hex characters of the SHA-256 digest are kept.
    """
    combined = f"{_normalize_text(title)}|{_normalize_text(url or '')}"
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()[:16]


@dataclass
class DedupResult:
    """Outcome of a deduplication pass."""

    new_items: list[FeedItem]
    duplicate_count: int
    total_processed: int
    errors: list[str] = field(default_factory=list)


@dataclass
class StoreResult:
    """Outcome of persisting new items."""

    stored: int
    failed: int
    items: list[FeedItem] = field(default_factory=list)


def merge_traction(existing: dict[str, Any], incoming: dict[str, Any]) -> bool:
    """Merge ``incoming`` into ``existing`` in place.

    Keys only in ``incoming`` are added. Numeric keys present in both keep the
    larger value, since traction only grows. Non-numeric values already present
    are left alone. Returns True when ``existing`` changed.
    """
    changed = False
    for key, value in incoming.items():
        if key not in existing:
            existing[key] = value
            changed = True
            continue
        current = existing[key]
        if _is_number(current) and _is_number(value) and value > current:
            existing[key] = value
            changed = True
    return changed


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _merge_tags(existing: list[str], incoming: list[str]) -> None:
    for tag in incoming:
        if tag not in existing:
            existing.append(tag)


def deduplicate_in_memory(items: list[FeedItem]) -> DedupResult:
    """Collapse items sharing a content hash within one batch.

    The first occurrence is retained; traction from later occurrences is merged
    into it.
    """
    seen: dict[str, FeedItem] = {}
    for item in items:
        retained = seen.get(item.content_hash)
        if retained is None:
            seen[item.content_hash] = item
        else:
            merge_traction(retained.traction, item.traction)

    new_items = list(seen.values())
    return DedupResult(
        new_items=new_items,
        duplicate_count=len(items) - len(new_items),
        total_processed=len(items),
    )


# --- Near-duplicate detection ---


def _title_tokens(title: str) -> frozenset[str]:
    return frozenset(t for t in _TOKEN_RE.findall(_normalize_text(title)) if len(t) > 2)


def _host(url: str | None) -> str | None:
    if not url:
        return None
    host = (urlsplit(url.strip()).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None


def _title_similarity(a: str, b: str) -> float:
    tokens_a = _title_tokens(a)
    tokens_b = _title_tokens(b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def calculate_similarity(a: FeedItem, b: FeedItem) -> float:
    """Score two items in [0, 1] by title-token overlap and URL host equality."""
    score = _TITLE_WEIGHT * _title_similarity(a.title, b.title)
    host_a = _host(a.url)
    if host_a is not None and host_a == _host(b.url):
        score += _HOST_WEIGHT
    return score


def find_similar_items(
    items: list[FeedItem], threshold: float = NEAR_DUPLICATE_THRESHOLD
) -> list[list[FeedItem]]:
    """Group items whose similarity to the group's first member meets the threshold.

    Only groups with more than one member are returned.
    """
    groups: list[list[FeedItem]] = []
    assigned: set[int] = set()

    for i, anchor in enumerate(items):
        if i in assigned:
            continue
        group = [anchor]
        assigned.add(i)
        for j in range(i + 1, len(items)):
            if j in assigned:
                continue
            if calculate_similarity(anchor, items[j]) >= threshold:
                group.append(items[j])
                assigned.add(j)
        if len(group) > 1:
            groups.append(group)

    return groups


def _canonical_rank(item: FeedItem) -> tuple[int, int]:
    return (
        TIER_RANK.get(item.source_tier, len(TIER_RANK)),
        RELIABILITY_RANK.get(item.source_reliability, len(RELIABILITY_RANK)),
    )


def merge_near_duplicates(
    items: list[FeedItem], threshold: float = NEAR_DUPLICATE_THRESHOLD
) -> DedupResult:
    """Merge items describing the same subject without sharing a hash.

    In each similar group the item from the best tier (then reliability, then
    earliest position) is kept; the others' traction and tags are merged into it.
    """
    canonical_of: dict[int, FeedItem] = {}
    for group in find_similar_items(items, threshold):
        canonical = min(group, key=_canonical_rank)
        for other in group:
            canonical_of[id(other)] = canonical
            if other is canonical:
                continue
            merge_traction(canonical.traction, other.traction)
            _merge_tags(canonical.categories, other.categories)
            _merge_tags(canonical.technologies, other.technologies)
            _merge_tags(canonical.language_ecosystems, other.language_ecosystems)
            logger.info(
                "Near-duplicate: '%s' (%s) merged into '%s' (%s)",
                other.title, other.source_name, canonical.title, canonical.source_name,
            )

    # Survivors take the position of their group's first member
    survivors: list[FeedItem] = []
    placed: set[int] = set()
    for item in items:
        target = canonical_of.get(id(item), item)
        if id(target) in placed:
            continue
        placed.add(id(target))
        survivors.append(target)

    return DedupResult(
        new_items=survivors,
        duplicate_count=len(items) - len(survivors),
        total_processed=len(items),
    )


# --- Persistent store ---


def deduplicate_against_store(items: list[FeedItem], store: FeedItemStore) -> DedupResult:
    """Drop items whose content hash already exists in the store.

    When a repeat observation carries higher traction than the stored record,
    the stored traction is updated. If the lookup itself fails, every item is
    treated as new and the failure is reported in ``errors``; the unique
    content hash constraint keeps a real repeat from being inserted twice.
    """
    try:
        existing = store.find_by_content_hashes([item.content_hash for item in items])
    except Exception as e:
        logger.warning("Store lookup failed, treating %d items as new: %s", len(items), e)
        return DedupResult(
            new_items=list(items),
            duplicate_count=0,
            total_processed=len(items),
            errors=[f"Deduplication against store failed: {e}"],
        )

    new_items: list[FeedItem] = []
    duplicate_count = 0

    for item in items:
        stored = existing.get(item.content_hash)
        if stored is None:
            new_items.append(item)
            continue
        duplicate_count += 1
        if merge_traction(stored.traction, item.traction):
            store.update_traction(stored.id, stored.traction)
            logger.debug("Updated traction for stored item %s", stored.id)

    return DedupResult(
        new_items=new_items,
        duplicate_count=duplicate_count,
        total_processed=len(items),
    )


def deduplicate(
    items: list[FeedItem],
    store: FeedItemStore | None = None,
    near_duplicate_threshold: float = NEAR_DUPLICATE_THRESHOLD,
) -> DedupResult:
    """Full deduplication: exact hash, then near-duplicate, then the store.

    The near-duplicate pass is skipped when the threshold is not positive; the
    store pass is skipped when no store is given.
    """
    memory_result = deduplicate_in_memory(items)
    remaining = memory_result.new_items
    duplicate_count = memory_result.duplicate_count

    near_count = 0
    if near_duplicate_threshold > 0:
        near_result = merge_near_duplicates(remaining, near_duplicate_threshold)
        remaining = near_result.new_items
        near_count = near_result.duplicate_count
        duplicate_count += near_count

    store_count = 0
    errors: list[str] = []
    if store is not None:
        store_result = deduplicate_against_store(remaining, store)
        remaining = store_result.new_items
        store_count = store_result.duplicate_count
        duplicate_count += store_count
        errors = store_result.errors

    logger.info(
        "Deduplication completed: %d total, %d exact, %d near, %d stored, %d new",
        len(items), memory_result.duplicate_count, near_count, store_count, len(remaining),
    )
    return DedupResult(
        new_items=remaining,
        duplicate_count=duplicate_count,
        total_processed=len(items),
        errors=errors,
    )


def store_new_items(items: list[FeedItem], store: FeedItemStore) -> StoreResult:
    """Persist new items. Rows that fail are counted; stored rows are kept."""
    if not items:
        return StoreResult(stored=0, failed=0)

    try:
        stored_items, failed = store.insert_items(items)
    except Exception:
        logger.exception("Batch insert of %d feed items failed", len(items))
        return StoreResult(stored=0, failed=len(items), items=[])

    logger.info("Feed items stored: %d stored, %d failed", len(stored_items), failed)
    return StoreResult(stored=len(stored_items), failed=failed, items=stored_items)

