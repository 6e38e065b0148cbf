"""Feed aggregator — select, fetch, normalize, deduplicate, store, report.

One call to ``aggregate_feeds`` is one pipeline run. Sources are fetched one
at a time, each exactly once, under a per-source deadline. A source failure is
recorded in the result and never aborts the run; the function always returns
an ``AggregationResult``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from techscout.ingestion.adapter import TIER_HIGH_SIGNAL
from techscout.ingestion.dedup import (
    NEAR_DUPLICATE_THRESHOLD,
    deduplicate,
    store_new_items,
)
from techscout.ingestion.normalize import FeedItem, normalize_items

if TYPE_CHECKING:
    from techscout.ingestion.adapter import SourceAdapter
    from techscout.ingestion.registry import SourceRegistry
    from techscout.storage.feed_items import FeedItemStore

logger = logging.getLogger(__name__)

NO_SOURCES_ERROR = "No sources configured or matching filter"


@dataclass
class AggregatorConfig:
    """Options for one aggregation run."""

    sources: list[str] = field(default_factory=list)  # empty = all enabled
    tiers: list[str] = field(default_factory=list)
    stack: list[str] | None = None
    dry_run: bool = False
    max_items_per_source: int = 100
    source_timeout_seconds: float = 30.0
    continue_on_error: bool = True
    near_duplicate_threshold: float = NEAR_DUPLICATE_THRESHOLD


@dataclass
class SourceFetchResult:
    """Per-source outcome of a run."""

    source_name: str
    tier: str
    raw_item_count: int
    normalized_item_count: int
    fetch_duration_ms: int
    error: str | None = None


@dataclass
class AggregationResult:
    """Outcome of a full aggregation run."""

    total_raw_items: int
    total_normalized_items: int
    total_new_items: int
    stored_items: int
    duplicates_filtered: int
    source_results: list[SourceFetchResult]
    items: list[FeedItem]
    duration_ms: int
    completed_at: str
    errors: list[str]

    def summary(self) -> dict:
        """JSON-safe summary without the item bodies."""
        return {
            "total_raw_items": self.total_raw_items,
            "total_normalized_items": self.total_normalized_items,
            "total_new_items": self.total_new_items,
            "stored_items": self.stored_items,
            "duplicates_filtered": self.duplicates_filtered,
            "source_results": [asdict(r) for r in self.source_results],
            "duration_ms": self.duration_ms,
            "completed_at": self.completed_at,
            "errors": list(self.errors),
        }


def select_sources(registry: SourceRegistry, config: AggregatorConfig) -> list[SourceAdapter]:
    """Resolve the configured filters against the registry."""
    if config.stack is not None:
        sources = registry.for_stack(config.stack)
    else:
        sources = registry.all()

    if config.sources:
        wanted = set(config.sources)
        sources = [s for s in sources if s.name in wanted]
    else:
        sources = [s for s in sources if s.enabled]

    if config.tiers:
        tiers = set(config.tiers)
        sources = [s for s in sources if s.tier in tiers]

    return sources


async def _fetch_from_source(
    source: SourceAdapter, config: AggregatorConfig
) -> tuple[SourceFetchResult, list[FeedItem]]:
    """Fetch once under the deadline, cap, and normalize."""
    fetched = await source.safe_fetch(timeout=config.source_timeout_seconds)
    if not fetched.success:
        return (
            SourceFetchResult(
                source_name=source.name,
                tier=source.tier,
                raw_item_count=0,
                normalized_item_count=0,
                fetch_duration_ms=fetched.duration_ms,
                error=fetched.error,
            ),
            [],
        )

    limited = fetched.items[: config.max_items_per_source]
    normalized = normalize_items(limited)
    logger.info(
        "Source %s: %d raw, %d normalized in %dms",
        source.name, len(limited), len(normalized), fetched.duration_ms,
    )
    return (
        SourceFetchResult(
            source_name=source.name,
            tier=source.tier,
            raw_item_count=len(limited),
            normalized_item_count=len(normalized),
            fetch_duration_ms=fetched.duration_ms,
        ),
        normalized,
    )


async def aggregate_feeds(
    registry: SourceRegistry,
    config: AggregatorConfig | None = None,
    store: FeedItemStore | None = None,
) -> AggregationResult:
    """Run the complete feed aggregation pipeline.

    Raises ValueError only when a non-dry run is requested without a store.
    """
    config = config or AggregatorConfig()
    if not config.dry_run and store is None:
        raise ValueError("A store is required unless dry_run is set")

    started = time.monotonic()
    logger.info(
        "Starting feed aggregation (dry_run=%s, sources=%s, tiers=%s)",
        config.dry_run, config.sources or "all", config.tiers or "all",
    )

    sources = select_sources(registry, config)
    if not sources:
        logger.warning("No sources to fetch from")
        return AggregationResult(
            total_raw_items=0,
            total_normalized_items=0,
            total_new_items=0,
            stored_items=0,
            duplicates_filtered=0,
            source_results=[],
            items=[],
            duration_ms=_elapsed_ms(started),
            completed_at=_now_iso(),
            errors=[NO_SOURCES_ERROR],
        )

    # Fetch + normalize
    source_results: list[SourceFetchResult] = []
    batch: list[FeedItem] = []
    errors: list[str] = []

    for source in sources:
        result, normalized = await _fetch_from_source(source, config)
        source_results.append(result)
        batch.extend(normalized)
        if result.error:
            errors.append(f"{source.name}: {result.error}")
            if not config.continue_on_error:
                logger.warning("Stopping after %s failed (continue_on_error=False)", source.name)
                break

    total_raw = sum(r.raw_item_count for r in source_results)
    logger.info(
        "Feed fetch phase completed: %d sources, %d raw, %d normalized",
        len(source_results), total_raw, len(batch),
    )

    # Deduplicate across the whole batch
    dedup_store = None if config.dry_run else store
    dedup_result = deduplicate(
        batch,
        store=dedup_store,
        near_duplicate_threshold=config.near_duplicate_threshold,
    )
    new_items = dedup_result.new_items
    duplicates = dedup_result.duplicate_count
    errors.extend(dedup_result.errors)

    # Store
    stored = 0
    if not config.dry_run and new_items:
        store_result = store_new_items(new_items, store)
        stored = store_result.stored
        if store_result.failed:
            errors.append(f"Failed to store {store_result.failed} items")
        stored_ids = {item.content_hash: item.id for item in store_result.items}
        new_items = [
            replace(item, id=stored_ids[item.content_hash])
            if item.content_hash in stored_ids else item
            for item in new_items
        ]

    duration_ms = _elapsed_ms(started)
    logger.info(
        "Feed aggregation completed: %d raw, %d normalized, %d new, %d stored, "
        "%d duplicates, %d errors in %dms",
        total_raw, len(batch), len(new_items), stored, duplicates, len(errors), duration_ms,
    )

    return AggregationResult(
        total_raw_items=total_raw,
        total_normalized_items=len(batch),
        total_new_items=len(new_items),
        stored_items=stored,
        duplicates_filtered=duplicates,
        source_results=source_results,
        items=new_items,
        duration_ms=duration_ms,
        completed_at=_now_iso(),
        errors=errors,
    )


async def fetch_single_source(
    registry: SourceRegistry,
    source_name: str,
    config: AggregatorConfig | None = None,
    store: FeedItemStore | None = None,
) -> AggregationResult:
    """Run the pipeline for one named source."""
    config = replace(config or AggregatorConfig(), sources=[source_name])
    return await aggregate_feeds(registry, config, store)


async def fetch_tier1_only(
    registry: SourceRegistry,
    config: AggregatorConfig | None = None,
    store: FeedItemStore | None = None,
) -> AggregationResult:
    """Run the pipeline for high-signal sources only."""
    config = replace(config or AggregatorConfig(), tiers=[TIER_HIGH_SIGNAL])
    return await aggregate_feeds(registry, config, store)


async def dry_run_aggregate(
    registry: SourceRegistry,
    config: AggregatorConfig | None = None,
) -> AggregationResult:
    """Run the pipeline without touching the store."""
    config = replace(config or AggregatorConfig(), dry_run=True)
    return await aggregate_feeds(registry, config)


def aggregator_stats(registry: SourceRegistry) -> dict:
    """Source counts per tier, without fetching."""
    return registry.stats()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
