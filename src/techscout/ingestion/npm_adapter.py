"""npm source adapter — popular, recently updated packages per keyword."""

from __future__ import annotations

import asyncio
import logging

import httpx

from techscout.ingestion.adapter import TIER_HIGH_SIGNAL, SourceAdapter
from techscout.ingestion.normalize import RawFeedItem

logger = logging.getLogger(__name__)

NPM_SEARCH_URL = "https://registry.npmjs.org/-/v1/search"
_DEFAULT_KEYWORDS = (
    "framework", "cli", "typescript", "react", "vue", "database", "orm", "auth", "api",
)


class NpmPackagesAdapter(SourceAdapter):
    """Searches npm per keyword and keeps the best-scoring popular packages."""

    name = "npm_new_packages"
    tier = TIER_HIGH_SIGNAL
    reliability = "high"
    fetch_method = "api"
    frequency = "daily"

    def __init__(
        self,
        *,
        keywords: tuple[str, ...] = _DEFAULT_KEYWORDS,
        min_popularity: float = 0.1,
        max_items: int = 20,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._keywords = keywords
        self._min_popularity = min_popularity
        self._max_items = max_items

    async def fetch(self) -> list[RawFeedItem]:
        async with self._client() as client:
            per_keyword = await asyncio.gather(
                *(self._search(client, keyword) for keyword in self._keywords),
                return_exceptions=True,
            )

        packages: dict[str, dict] = {}
        failures = 0
        for keyword, result in zip(self._keywords, per_keyword):
            if isinstance(result, Exception):
                failures += 1
                logger.warning("Failed to search npm for %s: %s", keyword, result)
                continue
            for pkg in result:
                popularity = pkg["score"].get("detail", {}).get("popularity", 0)
                if pkg["name"] not in packages and popularity >= self._min_popularity:
                    packages[pkg["name"]] = pkg

        if failures and failures == len(self._keywords):
            raise RuntimeError("npm search failed for every keyword")

        ranked = sorted(packages.values(), key=lambda p: p["score"].get("final", 0), reverse=True)
        kept = ranked[: self._max_items]
        logger.info("Fetched %d packages from npm", len(kept))
        return [self._raw(pkg) for pkg in kept]

    async def _search(self, client: httpx.AsyncClient, keyword: str) -> list[dict]:
        resp = await client.get(
            NPM_SEARCH_URL,
            params={
                "text": keyword,
                "size": 25,
                "quality": 0.5,
                "popularity": 0.3,
                "maintenance": 0.2,
            },
        )
        resp.raise_for_status()
        return [
            {**obj["package"], "score": obj.get("score", {})}
            for obj in resp.json().get("objects", [])
        ]
