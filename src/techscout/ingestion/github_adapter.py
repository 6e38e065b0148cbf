"""GitHub source adapters — trending repositories and watched releases."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import httpx

from techscout.ingestion.adapter import TIER_HIGH_SIGNAL, SourceAdapter
from techscout.ingestion.normalize import RawFeedItem

logger = logging.getLogger(__name__)

_GITHUB_API = "https://api.github.com"
_DEFAULT_LANGUAGES = ("", "typescript", "javascript", "python", "rust", "go")
_WINDOW_DAYS = {"daily": 7, "weekly": 30, "monthly": 90}
_DEFAULT_WATCHED = (
    ("vercel", "next.js"),
    ("facebook", "react"),
    ("vitejs", "vite"),
    ("tailwindlabs", "tailwindcss"),
    ("supabase", "supabase"),
    ("trpc", "trpc"),
    ("drizzle-team", "drizzle-orm"),
)


def _github_headers(token: str | None) -> dict[str, str]:
    headers = {"Accept": "application/vnd.github+json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


class GitHubTrendingAdapter(SourceAdapter):
    """Trending repositories via the GitHub Search API.

    Searches recently created repositories per language, merges the results by
    full name, and keeps the most-starred ones.
    """

    name = "github_trending"
    tier = TIER_HIGH_SIGNAL
    reliability = "high"
    fetch_method = "api"
    frequency = "daily"

    def __init__(
        self,
        *,
        token: str | None = None,
        languages: tuple[str, ...] = _DEFAULT_LANGUAGES,
        date_range: str = "daily",
        min_stars: int = 100,
        max_items: int = 25,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        if date_range not in _WINDOW_DAYS:
            raise ValueError(f"date_range must be one of: {', '.join(_WINDOW_DAYS)}")
        self._token = token
        self._languages = languages
        self._date_range = date_range
        self._min_stars = min_stars
        self._max_items = max_items

    async def fetch(self) -> list[RawFeedItem]:
        async with self._client(_github_headers(self._token)) as client:
            per_language = await asyncio.gather(
                *(self._search(client, language) for language in self._languages),
                return_exceptions=True,
            )

        repos: dict[str, dict] = {}
        failures = 0
        for language, result in zip(self._languages, per_language):
            if isinstance(result, Exception):
                failures += 1
                logger.warning(
                    "Failed to fetch GitHub trending for %s: %s", language or "all", result
                )
                continue
            for repo in result:
                repos.setdefault(repo["full_name"], repo)

        if failures and failures == len(self._languages):
            raise RuntimeError("GitHub trending search failed for every language")

        ranked = sorted(repos.values(), key=lambda r: r["stars"], reverse=True)
        for rank, repo in enumerate(ranked, start=1):
            repo["rank"] = rank
        kept = ranked[: self._max_items]
        logger.info("Fetched %d trending repositories from GitHub", len(kept))
        return [self._raw(repo) for repo in kept]

    async def _search(self, client: httpx.AsyncClient, language: str) -> list[dict]:
        since = (
            datetime.now(timezone.utc) - timedelta(days=_WINDOW_DAYS[self._date_range])
        ).strftime("%Y-%m-%d")
        query = f"created:>{since} stars:>{self._min_stars}"
        if language:
            query += f" language:{language}"

        resp = await client.get(
            f"{_GITHUB_API}/search/repositories",
            params={"q": query, "sort": "stars", "order": "desc", "per_page": 10},
        )
        resp.raise_for_status()

        remaining = resp.headers.get("X-RateLimit-Remaining")
        if remaining is not None and int(remaining) <= 1:
            logger.warning("GitHub API rate limit nearly exhausted (%s remaining)", remaining)

        return [
            {
                "name": item["name"],
                "full_name": item["full_name"],
                "url": item["html_url"],
                "description": item.get("description"),
                "language": item.get("language"),
                "stars": item.get("stargazers_count", 0),
                # The Search API has no per-period star counts
                "stars_today": 0,
                "forks": item.get("forks_count", 0),
            }
            for item in resp.json().get("items", [])
        ]


class GitHubReleasesAdapter(SourceAdapter):
    """Latest releases of a watched set of repositories."""

    name = "github_releases"
    tier = TIER_HIGH_SIGNAL
    reliability = "high"
    fetch_method = "api"
    frequency = "daily"

    def __init__(
        self,
        *,
        token: str | None = None,
        repositories: tuple[tuple[str, str], ...] = _DEFAULT_WATCHED,
        per_repo: int = 5,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._token = token
        self._repositories = repositories
        self._per_repo = per_repo

    async def fetch(self) -> list[RawFeedItem]:
        async with self._client(_github_headers(self._token)) as client:
            per_repo = await asyncio.gather(
                *(self._releases(client, owner, repo) for owner, repo in self._repositories),
                return_exceptions=True,
            )

        items: list[RawFeedItem] = []
        failures = 0
        for (owner, repo), result in zip(self._repositories, per_repo):
            if isinstance(result, Exception):
                failures += 1
                logger.warning("Failed to fetch releases for %s/%s: %s", owner, repo, result)
                continue
            for release in result:
                items.append(self._raw({**release, "owner": owner, "repo": repo}))

        if failures and failures == len(self._repositories):
            raise RuntimeError("GitHub releases fetch failed for every repository")

        logger.info("Fetched %d releases from %d repositories", len(items), len(self._repositories))
        return items

    async def _releases(self, client: httpx.AsyncClient, owner: str, repo: str) -> list[dict]:
        resp = await client.get(
            f"{_GITHUB_API}/repos/{owner}/{repo}/releases",
            params={"per_page": self._per_repo},
        )
        resp.raise_for_status()
        return resp.json()
