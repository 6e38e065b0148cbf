"""Source registry — the set of sources known to a pipeline run."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from techscout.ingestion.adapter import (
    TIER_COMMUNITY,
    TIER_CONDITIONAL,
    TIER_CURATED,
    TIER_HIGH_SIGNAL,
)

if TYPE_CHECKING:
    from techscout.ingestion.adapter import SourceAdapter

logger = logging.getLogger(__name__)


class SourceRegistry:
    """Maps source names to source instances, in registration order.

    Built once at startup and handed to the aggregator.
    """

    def __init__(self, sources: Iterable[SourceAdapter] = ()) -> None:
        self._sources: dict[str, SourceAdapter] = {}
        for source in sources:
            self.register(source)

    def register(self, source: SourceAdapter) -> None:
        """Register a source. A later source with the same name replaces the earlier one."""
        self._sources[source.name] = source
        logger.debug("Source registered: %s (%s)", source.name, source.tier)

    def get(self, name: str) -> SourceAdapter | None:
        """Look up a source by name. Returns None if not found."""
        return self._sources.get(name)

    def all(self) -> list[SourceAdapter]:
        return list(self._sources.values())

    def names(self) -> list[str]:
        return list(self._sources)

    def by_tier(self, tier: str) -> list[SourceAdapter]:
        return [s for s in self._sources.values() if s.tier == tier]

    def for_stack(self, stack: Iterable[str]) -> list[SourceAdapter]:
        """Return sources applicable to a technology stack.

        Sources without conditions always apply. Otherwise a source applies when
        one of its conditions is a case-insensitive substring of a stack entry.
        """
        stack_lower = [entry.lower() for entry in stack]
        applicable: list[SourceAdapter] = []
        for source in self._sources.values():
            if not source.conditional_on:
                applicable.append(source)
                continue
            if any(
                cond.lower() in entry
                for cond in source.conditional_on
                for entry in stack_lower
            ):
                applicable.append(source)
        return applicable

    def stats(self) -> dict:
        """Summarize the registry without fetching anything."""
        by_tier = {TIER_HIGH_SIGNAL: 0, TIER_CURATED: 0, TIER_COMMUNITY: 0, TIER_CONDITIONAL: 0}
        for source in self._sources.values():
            by_tier[source.tier] += 1
        return {
            "total_sources": len(self._sources),
            "sources_by_tier": by_tier,
            "sources": [{"name": s.name, "tier": s.tier} for s in self._sources.values()],
        }

    def __len__(self) -> int:
        return len(self._sources)

    def __contains__(self, name: object) -> bool:
        return name in self._sources
