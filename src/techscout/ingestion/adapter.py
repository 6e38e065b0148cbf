"""Source adapter interface."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from techscout.ingestion.normalize import RawFeedItem

logger = logging.getLogger(__name__)

TIER_HIGH_SIGNAL = "tier1_high_signal"
TIER_CURATED = "tier2_curated"
TIER_COMMUNITY = "tier3_community"
TIER_CONDITIONAL = "conditional"

VALID_TIERS = frozenset({TIER_HIGH_SIGNAL, TIER_CURATED, TIER_COMMUNITY, TIER_CONDITIONAL})
VALID_RELIABILITY = frozenset({"very_high", "high", "medium", "low"})
VALID_FETCH_METHODS = frozenset({"rss", "api", "scrape", "graphql"})
VALID_FREQUENCIES = frozenset({"hourly", "daily", "weekly"})

_USER_AGENT = "TechScout/1.0 (feed-ingestion)"


@dataclass(frozen=True)
class SourceConfig:
    """Read-only view of a source's metadata."""

    name: str
    tier: str
    reliability: str
    enabled: bool
    fetch_method: str
    frequency: str
    conditional_on: tuple[str, ...] | None = None


@dataclass
class FetchResult:
    """Outcome of a guarded fetch. Failures are reported in ``error``."""

    source_name: str
    success: bool
    items_found: int
    duration_ms: int
    fetched_at: str
    error: str | None = None
    items: list[RawFeedItem] = field(default_factory=list)


class SourceAdapter(ABC):
    """Abstract base class for feed sources.

    Every adapter knows how to fetch raw payloads from one external feed and
    declares its metadata. The rest of the pipeline is source-agnostic.
    """

    name: str
    tier: str
    reliability: str
    fetch_method: str
    frequency: str
    conditional_on: tuple[str, ...] | None = None
    enabled: bool = True

    def __init__(
        self,
        *,
        request_timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._request_timeout = request_timeout
        self._transport = transport
        self._validate_metadata()

    def _validate_metadata(self) -> None:
        errors: list[str] = []
        if not getattr(self, "name", ""):
            errors.append("name is required")
        if getattr(self, "tier", None) not in VALID_TIERS:
            errors.append(f"tier '{getattr(self, 'tier', None)}' is not valid")
        if getattr(self, "reliability", None) not in VALID_RELIABILITY:
            errors.append(f"reliability '{getattr(self, 'reliability', None)}' is not valid")
        if getattr(self, "fetch_method", None) not in VALID_FETCH_METHODS:
            errors.append(f"fetch_method '{getattr(self, 'fetch_method', None)}' is not valid")
        if getattr(self, "frequency", None) not in VALID_FREQUENCIES:
            errors.append(f"frequency '{getattr(self, 'frequency', None)}' is not valid")
        if errors:
            raise ValueError(f"Invalid source {type(self).__name__}: {'; '.join(errors)}")

    @property
    def config(self) -> SourceConfig:
        return SourceConfig(
            name=self.name,
            tier=self.tier,
            reliability=self.reliability,
            enabled=self.enabled,
            fetch_method=self.fetch_method,
            frequency=self.frequency,
            conditional_on=tuple(self.conditional_on) if self.conditional_on else None,
        )

    @abstractmethod
    async def fetch(self) -> list[RawFeedItem]:
        """Fetch raw items from the source.

        Network and API failures propagate to the caller.
        """

    async def safe_fetch(self, timeout: float | None = None) -> FetchResult:
        """Run ``fetch`` with timing and an optional deadline. Never raises."""
        started = time.monotonic()
        logger.info("Starting fetch for %s", self.name)
        try:
            if timeout is None:
                items = await self.fetch()
            else:
                items = await asyncio.wait_for(self.fetch(), timeout=timeout)
        except asyncio.TimeoutError as e:
            # Only our own deadline reads as a timeout; a source's internal one is a plain error
            if timeout is not None:
                error = f"Timeout after {timeout:g}s"
            else:
                error = str(e) or type(e).__name__
        except Exception as e:
            error = str(e) or type(e).__name__
        else:
            duration_ms = _elapsed_ms(started)
            logger.info(
                "Fetch completed for %s: %d items in %dms", self.name, len(items), duration_ms
            )
            return FetchResult(
                source_name=self.name,
                success=True,
                items_found=len(items),
                duration_ms=duration_ms,
                fetched_at=_now_iso(),
                items=items,
            )

        duration_ms = _elapsed_ms(started)
        logger.warning("Fetch failed for %s after %dms: %s", self.name, duration_ms, error)
        return FetchResult(
            source_name=self.name,
            success=False,
            items_found=0,
            duration_ms=duration_ms,
            fetched_at=_now_iso(),
            error=error,
        )

    def _raw(self, payload: Any) -> RawFeedItem:
        """Wrap a payload as a RawFeedItem tagged with this source."""
        return RawFeedItem(source_name=self.name, fetched_at=_now_iso(), raw_data=payload)

    def _client(self, headers: dict[str, str] | None = None) -> httpx.AsyncClient:
        merged = {"User-Agent": _USER_AGENT}
        if headers:
            merged.update(headers)
        return httpx.AsyncClient(
            timeout=self._request_timeout,
            headers=merged,
            follow_redirects=True,
            transport=self._transport,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, tier={self.tier!r})"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
