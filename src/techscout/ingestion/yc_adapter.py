"""Y Combinator launches — "Launch HN" posts found among Show HN stories."""

from __future__ import annotations

import logging
import time

from techscout.ingestion.adapter import TIER_HIGH_SIGNAL, SourceAdapter
from techscout.ingestion.hn_adapter import fetch_stories, fetch_story_ids
from techscout.ingestion.normalize import RawFeedItem

logger = logging.getLogger(__name__)

_SCAN_LIMIT = 100
_LAUNCH_PREFIXES = ("launch hn:", "launch hn –", "launch hn -")


def is_launch_title(title: str) -> bool:
    """Recognize the title patterns YC companies use for launches."""
    lowered = title.lower()
    return (
        lowered.startswith(_LAUNCH_PREFIXES)
        or "(yc " in lowered
        or "(yc)" in lowered
        or (lowered.startswith("launching ") and "hn" in lowered)
    )


class YCLaunchesAdapter(SourceAdapter):
    """Recent YC launch posts above a score threshold."""

    name = "y_combinator_launches"
    tier = TIER_HIGH_SIGNAL
    reliability = "high"
    fetch_method = "api"
    frequency = "daily"

    def __init__(
        self, *, min_score: int = 20, max_items: int = 20, days_back: int = 7, **kwargs
    ) -> None:
        super().__init__(**kwargs)
        self._min_score = min_score
        self._max_items = max_items
        self._days_back = days_back

    async def fetch(self) -> list[RawFeedItem]:
        async with self._client() as client:
            story_ids = await fetch_story_ids(client, "showstories")
            stories = await fetch_stories(client, story_ids[:_SCAN_LIMIT])

        cutoff = time.time() - self._days_back * 24 * 60 * 60
        launches = [
            story for story in stories
            if story
            and is_launch_title(story.get("title", ""))
            and story.get("score", 0) >= self._min_score
            and story.get("time", 0) >= cutoff
        ][: self._max_items]

        logger.info(
            "YC launches fetched: %d of %d stories",
            len(launches), sum(1 for s in stories if s),
        )
        return [self._raw(story) for story in launches]
