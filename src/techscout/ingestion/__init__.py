"""Ingestion pipeline — source fetching, normalization, and deduplication."""

from __future__ import annotations

from typing import TYPE_CHECKING

from techscout.ingestion.adapter import (
    TIER_COMMUNITY,
    TIER_CONDITIONAL,
    TIER_CURATED,
)
from techscout.ingestion.github_adapter import GitHubReleasesAdapter, GitHubTrendingAdapter
from techscout.ingestion.hn_adapter import HackerNewsAdapter, HackerNewsShowAdapter
from techscout.ingestion.npm_adapter import NpmPackagesAdapter
from techscout.ingestion.product_hunt_adapter import ProductHuntAdapter
from techscout.ingestion.reddit_adapter import RedditAdapter
from techscout.ingestion.registry import SourceRegistry
from techscout.ingestion.rss_adapter import RSSFeedAdapter
from techscout.ingestion.yc_adapter import YCLaunchesAdapter

if TYPE_CHECKING:
    from techscout.config import Config


def build_default_registry(config: Config | None = None) -> SourceRegistry:
    """Build the registry of built-in sources, wiring credentials from config."""
    github_token = config.github_token if config else None
    product_hunt_api_key = config.product_hunt_api_key if config else None

    return SourceRegistry([
        # Tier 1, high signal
        HackerNewsAdapter(),
        HackerNewsShowAdapter(),
        YCLaunchesAdapter(),
        GitHubTrendingAdapter(token=github_token),
        GitHubReleasesAdapter(token=github_token),
        NpmPackagesAdapter(),
        ProductHuntAdapter(api_key=product_hunt_api_key),
        # Tier 2, curated
        RSSFeedAdapter(
            "lobsters", "https://lobste.rs/rss",
            tier=TIER_CURATED, reliability="high",
        ),
        # Tier 3, community
        RedditAdapter("reddit_programming", "programming"),
        RedditAdapter("reddit_webdev", "webdev"),
        RSSFeedAdapter(
            "dev_to", "https://dev.to/feed",
            tier=TIER_COMMUNITY, reliability="medium",
        ),
        # Conditional on the project stack
        RSSFeedAdapter(
            "this_week_in_rust", "https://this-week-in-rust.org/rss.xml",
            tier=TIER_CONDITIONAL, reliability="high", frequency="weekly",
            conditional_on=("rust",),
        ),
        RSSFeedAdapter(
            "go_weekly", "https://golangweekly.com/rss/",
            tier=TIER_CONDITIONAL, reliability="high", frequency="weekly",
            conditional_on=("go", "golang"),
        ),
        RSSFeedAdapter(
            "supabase_blog", "https://supabase.com/rss.xml",
            tier=TIER_CONDITIONAL, reliability="high", frequency="weekly",
            conditional_on=("supabase",),
        ),
    ])
