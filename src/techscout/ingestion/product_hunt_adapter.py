"""Product Hunt source adapter — developer-facing launches via the GraphQL API."""

from __future__ import annotations

import logging

from techscout.ingestion.adapter import TIER_HIGH_SIGNAL, SourceAdapter
from techscout.ingestion.normalize import RawFeedItem

logger = logging.getLogger(__name__)

PRODUCT_HUNT_GRAPHQL_URL = "https://api.producthunt.com/v2/api/graphql"

DEV_TOPICS = frozenset({
    "Developer Tools", "Open Source", "Productivity", "API", "No-Code",
    "Artificial Intelligence", "SaaS", "Tech", "GitHub", "Web Development",
})

_POSTS_QUERY = """
query {
  posts(first: 50, order: VOTES) {
    edges {
      node {
        id
        name
        tagline
        description
        url
        votesCount
        commentsCount
        createdAt
        website
        topics { edges { node { name } } }
      }
    }
  }
}
"""


class ProductHuntAdapter(SourceAdapter):
    """Top-voted Product Hunt posts in developer topics.

    Requires an API key; without one the source yields nothing.
    """

    name = "product_hunt"
    tier = TIER_HIGH_SIGNAL
    reliability = "high"
    fetch_method = "graphql"
    frequency = "daily"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        min_votes: int = 50,
        max_items: int = 20,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._api_key = api_key
        self._min_votes = min_votes
        self._max_items = max_items

    async def fetch(self) -> list[RawFeedItem]:
        if not self._api_key:
            logger.warning("PRODUCT_HUNT_API_KEY not set, skipping %s", self.name)
            return []

        async with self._client({"Authorization": f"Bearer {self._api_key}"}) as client:
            resp = await client.post(PRODUCT_HUNT_GRAPHQL_URL, json={"query": _POSTS_QUERY})
            resp.raise_for_status()
            data = resp.json()

        if data.get("errors"):
            raise RuntimeError(f"GraphQL error: {data['errors'][0].get('message')}")

        posts = [_flatten_post(edge["node"]) for edge in data["data"]["posts"]["edges"]]
        dev_posts = [
            post for post in posts
            if post["votes_count"] >= self._min_votes
            and any(topic in DEV_TOPICS for topic in post["topics"])
        ][: self._max_items]

        logger.info("Fetched %d developer posts from Product Hunt", len(dev_posts))
        return [self._raw(post) for post in dev_posts]


def _flatten_post(node: dict) -> dict:
    return {
        "id": node["id"],
        "name": node["name"],
        "tagline": node.get("tagline"),
        "description": node.get("description"),
        "url": node.get("url"),
        "website": node.get("website"),
        "votes_count": node.get("votesCount", 0),
        "comments_count": node.get("commentsCount", 0),
        "created_at": node.get("createdAt"),
        "topics": [t["node"]["name"] for t in node.get("topics", {}).get("edges", [])],
    }
