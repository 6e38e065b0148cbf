"""Reddit source adapter — top posts of one subreddit."""

from __future__ import annotations

import logging

from techscout.ingestion.adapter import TIER_COMMUNITY, SourceAdapter
from techscout.ingestion.normalize import RawFeedItem

logger = logging.getLogger(__name__)

_REDDIT_TOP_URL = "https://www.reddit.com/r/{}/top.json"


class RedditAdapter(SourceAdapter):
    """Adapter for a subreddit's top posts of the day.

    One instance per subreddit so that each one is a separately named source.
    """

    tier = TIER_COMMUNITY
    reliability = "medium"
    fetch_method = "api"
    frequency = "daily"

    def __init__(
        self,
        name: str,
        subreddit: str,
        *,
        min_score: int = 50,
        limit: int = 25,
        **kwargs,
    ) -> None:
        self.name = name
        self.subreddit = subreddit
        self._min_score = min_score
        self._limit = limit
        super().__init__(**kwargs)

    async def fetch(self) -> list[RawFeedItem]:
        async with self._client() as client:
            resp = await client.get(
                _REDDIT_TOP_URL.format(self.subreddit),
                params={"t": "day", "limit": self._limit},
            )
            resp.raise_for_status()
            data = resp.json()

        items: list[RawFeedItem] = []
        for post_wrapper in data.get("data", {}).get("children", []):
            post = post_wrapper.get("data", {})
            if post.get("stickied"):
                continue
            if post.get("score", 0) < self._min_score:
                continue
            if not post.get("title", "").strip():
                continue
            items.append(self._raw(post))

        logger.info("Fetched %d posts from Reddit r/%s", len(items), self.subreddit)
        return items
