"""Hacker News source adapters — top stories and Show HN."""

from __future__ import annotations

import asyncio
import logging

import httpx

from techscout.ingestion.adapter import TIER_HIGH_SIGNAL, SourceAdapter
from techscout.ingestion.normalize import RawFeedItem

logger = logging.getLogger(__name__)

HN_API_BASE = "https://hacker-news.firebaseio.com/v0"


async def fetch_story_ids(client: httpx.AsyncClient, listing: str) -> list[int]:
    """Fetch a story id listing (e.g. ``topstories``). Errors propagate."""
    resp = await client.get(f"{HN_API_BASE}/{listing}.json")
    resp.raise_for_status()
    story_ids = resp.json()
    if not isinstance(story_ids, list):
        raise ValueError(f"Unexpected {listing} payload: {type(story_ids).__name__}")
    return story_ids


async def fetch_stories(client: httpx.AsyncClient, story_ids: list[int]) -> list[dict | None]:
    """Fetch many items concurrently. Order matches ``story_ids``; failures are None."""
    return await asyncio.gather(*(_fetch_story(client, sid) for sid in story_ids))


async def _fetch_story(client: httpx.AsyncClient, story_id: int) -> dict | None:
    try:
        resp = await client.get(f"{HN_API_BASE}/item/{story_id}.json")
        resp.raise_for_status()
        return resp.json()
    except (httpx.HTTPError, ValueError):
        logger.warning("Failed to fetch HN item %s", story_id)
        return None


class _HNListingAdapter(SourceAdapter):
    """Stories from one HN listing above a score threshold."""

    tier = TIER_HIGH_SIGNAL
    reliability = "high"
    fetch_method = "api"
    listing: str

    def __init__(self, *, min_score: int, max_items: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self._min_score = min_score
        self._max_items = max_items

    async def fetch(self) -> list[RawFeedItem]:
        async with self._client() as client:
            story_ids = await fetch_story_ids(client, self.listing)
            # Fetch extra to leave room for score filtering
            stories = await fetch_stories(client, story_ids[: self._max_items * 2])

        kept = [
            story for story in stories
            if story
            and story.get("type", "story") == "story"
            and story.get("score", 0) >= self._min_score
        ][: self._max_items]

        logger.info("Fetched %d stories from HN %s", len(kept), self.listing)
        return [self._raw(story) for story in kept]


class HackerNewsAdapter(_HNListingAdapter):
    """Hacker News top stories."""

    name = "hacker_news"
    frequency = "hourly"
    listing = "topstories"

    def __init__(self, *, min_score: int = 50, max_items: int = 30, **kwargs) -> None:
        super().__init__(min_score=min_score, max_items=max_items, **kwargs)


class HackerNewsShowAdapter(_HNListingAdapter):
    """Show HN stories."""

    name = "hacker_news_show"
    frequency = "daily"
    listing = "showstories"

    def __init__(self, *, min_score: int = 30, max_items: int = 20, **kwargs) -> None:
        super().__init__(min_score=min_score, max_items=max_items, **kwargs)
