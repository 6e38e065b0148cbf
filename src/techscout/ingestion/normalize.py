"""Normalization — map source-shaped raw payloads onto the canonical FeedItem."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from techscout.ingestion.dedup import compute_content_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawFeedItem:
    """Raw payload emitted by a source, tagged with its identity."""

    source_name: str
    fetched_at: str
    raw_data: Any


@dataclass(frozen=True)
class FeedItem:
    """Canonical internal representation of one observed signal.

    Frozen except for ``traction``, which the deduplicator merges into in place.
    """

    source_name: str
    source_tier: str
    source_reliability: str
    title: str
    fetched_at: str
    content_hash: str
    id: str = ""
    external_id: str | None = None
    url: str | None = None
    description: str | None = None
    content_summary: str | None = None
    published_at: str | None = None
    categories: list[str] = field(default_factory=list)
    technologies: list[str] = field(default_factory=list)
    language_ecosystems: list[str] = field(default_factory=list)
    traction: dict[str, Any] = field(default_factory=dict)
    is_processed: bool = False
    processed_at: str | None = None


# --- Detection tables ---

CATEGORY_PATTERNS: dict[str, re.Pattern[str]] = {
    "frontend": re.compile(
        r"\b(react|vue|angular|svelte|next\.?js|frontend|ui|component|css|tailwind)\b", re.I
    ),
    "backend": re.compile(
        r"\b(api|server|node|express|fastapi|django|backend|microservice|graphql|rest)\b", re.I
    ),
    "database": re.compile(
        r"\b(database|postgres|mysql|mongodb|redis|sql|orm|prisma|drizzle|supabase)\b", re.I
    ),
    "auth": re.compile(r"\b(auth|login|oauth|jwt|session|security|permission)\b", re.I),
    "devops": re.compile(
        r"\b(docker|kubernetes|ci/cd|deploy|hosting|cloud|aws|vercel|railway)\b", re.I
    ),
    "ai": re.compile(
        r"\b(ai|machine learning|ml|llm|gpt|claude|openai|anthropic|embedding|vector)\b", re.I
    ),
    "testing": re.compile(r"\b(test|jest|vitest|cypress|playwright|e2e|unit test)\b", re.I),
    "tooling": re.compile(
        r"\b(cli|tool|dev tool|vite|webpack|bundler|linter|formatter)\b", re.I
    ),
    "security": re.compile(r"\b(security|vulnerability|cve|exploit|patch|audit)\b", re.I),
    "performance": re.compile(r"\b(performance|speed|optimize|cache|fast|benchmark)\b", re.I),
}

TECH_KEYWORDS: tuple[str, ...] = (
    # Languages
    "typescript", "javascript", "python", "rust", "go", "java", "kotlin", "swift",
    # Frontend
    "react", "vue", "angular", "svelte", "solid", "nextjs", "nuxt", "remix",
    # Backend
    "node", "deno", "bun", "express", "fastify", "hono", "fastapi", "django", "flask",
    # Database
    "postgres", "postgresql", "mysql", "mongodb", "redis", "supabase", "prisma", "drizzle",
    # Cloud
    "aws", "gcp", "azure", "vercel", "netlify", "railway", "fly",
    # Tools
    "docker", "kubernetes", "terraform", "github", "gitlab",
    # AI
    "openai", "anthropic", "claude", "gpt", "llm", "langchain",
)

ECOSYSTEM_MAP: dict[str, frozenset[str]] = {
    "npm": frozenset({
        "javascript", "typescript", "node", "react", "vue", "angular", "svelte", "nextjs",
    }),
    "pip": frozenset({"python", "django", "flask", "fastapi"}),
    "cargo": frozenset({"rust"}),
    "go": frozenset({"go", "golang"}),
    "gems": frozenset({"ruby", "rails"}),
}

# Tier and reliability stamped on items from each source.
SOURCE_PROFILES: dict[str, tuple[str, str]] = {
    "hacker_news": ("tier1_high_signal", "high"),
    "hacker_news_show": ("tier1_high_signal", "high"),
    "y_combinator_launches": ("tier1_high_signal", "high"),
    "github_trending": ("tier1_high_signal", "high"),
    "github_releases": ("tier1_high_signal", "high"),
    "npm_new_packages": ("tier1_high_signal", "high"),
    "product_hunt": ("tier1_high_signal", "high"),
    "lobsters": ("tier2_curated", "high"),
    "reddit_programming": ("tier3_community", "medium"),
    "reddit_webdev": ("tier3_community", "medium"),
    "dev_to": ("tier3_community", "medium"),
    "this_week_in_rust": ("conditional", "high"),
    "go_weekly": ("conditional", "high"),
    "supabase_blog": ("conditional", "high"),
}

_HTML_TAG_RE = re.compile(r"<[^>]+>")


def detect_categories(text: str) -> list[str]:
    """Return every category whose pattern matches the text."""
    return [name for name, pattern in CATEGORY_PATTERNS.items() if pattern.search(text)]


def detect_technologies(text: str) -> list[str]:
    """Return vocabulary technologies mentioned (substring match) in the text."""
    lowered = text.lower()
    return [tech for tech in TECH_KEYWORDS if tech in lowered]


def detect_ecosystems(technologies: list[str]) -> list[str]:
    """Map technology tags onto package ecosystems."""
    lowered = {t.lower() for t in technologies}
    return [eco for eco, techs in ECOSYSTEM_MAP.items() if lowered & techs]


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


def _epoch_to_iso(value: int | float | None) -> str | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


def _strip_html(text: str) -> str:
    return _HTML_TAG_RE.sub("", text).strip()


def _profile(source_name: str) -> tuple[str, str]:
    return SOURCE_PROFILES.get(source_name, ("tier3_community", "medium"))


# --- Source-specific normalizers ---


def normalize_hacker_news(raw: RawFeedItem) -> FeedItem | None:
    """Map a Hacker News story (top, Show HN or Launch HN) to a FeedItem."""
    data = raw.raw_data
    if not data or not data.get("title"):
        return None

    story_id = data["id"]
    url = data.get("url") or f"https://news.ycombinator.com/item?id={story_id}"
    text = f"{data['title']} {data.get('url') or ''}"
    technologies = detect_technologies(text)
    score = data.get("score", 0)
    comments = data.get("descendants") or 0
    tier, reliability = _profile(raw.source_name)

    return FeedItem(
        source_name=raw.source_name,
        source_tier=tier,
        source_reliability=reliability,
        external_id=str(story_id),
        title=data["title"],
        url=url,
        description=data.get("text") or None,
        published_at=_epoch_to_iso(data.get("time")),
        fetched_at=raw.fetched_at,
        categories=detect_categories(text),
        technologies=technologies,
        language_ecosystems=detect_ecosystems(technologies),
        traction={
            "hn_points": score,
            "hn_comments": comments,
            "points": score,
            "comments": comments,
        },
        content_hash=compute_content_hash(data["title"], url),
    )


def normalize_github_trending(raw: RawFeedItem) -> FeedItem | None:
    """Map a trending repository record to a FeedItem."""
    data = raw.raw_data
    if not data or not data.get("name"):
        return None

    description = data.get("description") or ""
    technologies = [data["language"].lower()] if data.get("language") else []
    technologies.extend(detect_technologies(description))
    technologies = _unique(technologies)
    tier, reliability = _profile(raw.source_name)

    return FeedItem(
        source_name=raw.source_name,
        source_tier=tier,
        source_reliability=reliability,
        external_id=data.get("full_name"),
        title=data["name"],
        url=data.get("url"),
        description=description or None,
        # Trending records carry no creation date
        published_at=raw.fetched_at,
        fetched_at=raw.fetched_at,
        categories=detect_categories(f"{data['name']} {description}"),
        technologies=technologies,
        language_ecosystems=detect_ecosystems(technologies),
        traction={
            "github_stars": data.get("stars", 0),
            "github_stars_growth": f"+{data.get('stars_today', 0)}",
            "github_forks": data.get("forks", 0),
            "points": data.get("stars_today", 0),
        },
        content_hash=compute_content_hash(data["name"], data.get("url")),
    )


_MAJOR_TAG_RE = re.compile(r"^v?\d+\.0\.0")


def normalize_github_release(raw: RawFeedItem) -> FeedItem | None:
    """Map a GitHub release of a watched repository to a FeedItem."""
    data = raw.raw_data
    if not data or not data.get("tag_name"):
        return None

    full_name = f"{data['owner']}/{data['repo']}"
    tag = data["tag_name"]
    body = data.get("body") or ""
    categories = ["release"]
    if _MAJOR_TAG_RE.match(tag) or "breaking change" in body.lower():
        categories.append("breaking_change")

    title = f"{full_name} {tag}"
    if data.get("name"):
        title += f": {data['name']}"
    technologies = detect_technologies(f"{full_name} {data.get('name') or ''}")
    tier, reliability = _profile(raw.source_name)

    return FeedItem(
        source_name=raw.source_name,
        source_tier=tier,
        source_reliability=reliability,
        external_id=f"github:{full_name}@{tag}",
        title=title,
        url=data.get("html_url"),
        description=body[:500] or None,
        published_at=data.get("published_at"),
        fetched_at=raw.fetched_at,
        categories=categories,
        technologies=technologies,
        language_ecosystems=detect_ecosystems(technologies),
        traction={},
        content_hash=compute_content_hash(title, data.get("html_url")),
    )


def normalize_npm_package(raw: RawFeedItem) -> FeedItem | None:
    """Map an npm search result to a FeedItem."""
    data = raw.raw_data
    if not data or not data.get("name"):
        return None

    keywords = data.get("keywords") or []
    description = data.get("description") or ""
    technologies = ["javascript", "node"]
    technologies.extend(k.lower() for k in keywords if k.lower() in TECH_KEYWORDS)
    title = f"{data['name']}@{data['version']}"
    url = (data.get("links") or {}).get("npm")
    final_score = ((data.get("score") or {}).get("final")) or 0
    tier, reliability = _profile(raw.source_name)

    return FeedItem(
        source_name=raw.source_name,
        source_tier=tier,
        source_reliability=reliability,
        external_id=f"npm:{title}",
        title=title,
        url=url,
        description=description or None,
        published_at=data.get("date"),
        fetched_at=raw.fetched_at,
        categories=detect_categories(f"{data['name']} {description} {' '.join(keywords)}"),
        technologies=_unique(technologies),
        language_ecosystems=["npm"],
        traction={"npm_score": round(final_score * 100), "points": round(final_score * 100)},
        content_hash=compute_content_hash(title, url),
    )


def normalize_product_hunt(raw: RawFeedItem) -> FeedItem | None:
    """Map a Product Hunt post to a FeedItem."""
    data = raw.raw_data
    if not data or not data.get("name"):
        return None

    tagline = data.get("tagline") or ""
    description = data.get("description") or ""
    technologies = detect_technologies(f"{data['name']} {tagline} {description}")
    url = data.get("website") or data.get("url")
    votes = data.get("votes_count", 0)
    comments = data.get("comments_count", 0)
    tier, reliability = _profile(raw.source_name)

    return FeedItem(
        source_name=raw.source_name,
        source_tier=tier,
        source_reliability=reliability,
        external_id=f"ph:{data.get('id')}",
        title=data["name"],
        url=url,
        description=tagline or None,
        content_summary=description[:300] or None,
        published_at=data.get("created_at"),
        fetched_at=raw.fetched_at,
        categories=_unique([t.lower() for t in data.get("topics", [])]),
        technologies=technologies,
        language_ecosystems=detect_ecosystems(technologies),
        traction={
            "ph_upvotes": votes,
            "ph_comments": comments,
            "points": votes,
            "comments": comments,
        },
        content_hash=compute_content_hash(data["name"], url),
    )


def normalize_reddit(raw: RawFeedItem) -> FeedItem | None:
    """Map a Reddit post to a FeedItem."""
    data = raw.raw_data
    title = (data or {}).get("title", "").strip()
    if not title:
        return None

    selftext = (data.get("selftext") or "").strip()
    url = data.get("url") or f"https://www.reddit.com{data.get('permalink', '')}"
    text = f"{title} {selftext}"
    technologies = detect_technologies(text)
    score = data.get("score", 0)
    comments = data.get("num_comments", 0)
    tier, reliability = _profile(raw.source_name)

    return FeedItem(
        source_name=raw.source_name,
        source_tier=tier,
        source_reliability=reliability,
        external_id=data.get("id"),
        title=title,
        url=url,
        description=selftext[:500] or None,
        published_at=_epoch_to_iso(data.get("created_utc")),
        fetched_at=raw.fetched_at,
        categories=detect_categories(text),
        technologies=technologies,
        language_ecosystems=detect_ecosystems(technologies),
        traction={
            "reddit_score": score,
            "reddit_comments": comments,
            "points": score,
            "comments": comments,
        },
        content_hash=compute_content_hash(title, url),
    )


def normalize_rss_entry(raw: RawFeedItem) -> FeedItem | None:
    """Map an RSS/Atom entry (curated blogs, newsletters, community feeds)."""
    data = raw.raw_data
    title = (data or {}).get("title", "").strip()
    if not title:
        return None

    summary = _strip_html(data.get("summary") or "")
    tags = [t.lower() for t in data.get("tags", [])]
    text = f"{title} {summary} {' '.join(tags)}"
    technologies = detect_technologies(text)
    tier, reliability = _profile(raw.source_name)

    return FeedItem(
        source_name=raw.source_name,
        source_tier=tier,
        source_reliability=reliability,
        external_id=data.get("id") or data.get("link"),
        title=title,
        url=data.get("link"),
        description=summary[:500] or None,
        published_at=data.get("published"),
        fetched_at=raw.fetched_at,
        categories=detect_categories(text),
        technologies=technologies,
        language_ecosystems=detect_ecosystems(technologies),
        traction={},
        content_hash=compute_content_hash(title, data.get("link")),
    )


NORMALIZERS: dict[str, Callable[[RawFeedItem], FeedItem | None]] = {
    "hacker_news": normalize_hacker_news,
    "hacker_news_show": normalize_hacker_news,
    "y_combinator_launches": normalize_hacker_news,
    "github_trending": normalize_github_trending,
    "github_releases": normalize_github_release,
    "npm_new_packages": normalize_npm_package,
    "product_hunt": normalize_product_hunt,
    "reddit_programming": normalize_reddit,
    "reddit_webdev": normalize_reddit,
    "lobsters": normalize_rss_entry,
    "dev_to": normalize_rss_entry,
    "this_week_in_rust": normalize_rss_entry,
    "go_weekly": normalize_rss_entry,
    "supabase_blog": normalize_rss_entry,
}


def normalize_item(raw: RawFeedItem) -> FeedItem | None:
    """Normalize one raw item. Returns None (and logs) when it cannot be mapped."""
    normalizer = NORMALIZERS.get(raw.source_name)
    if normalizer is None:
        logger.warning("No normalizer for source '%s', dropping item", raw.source_name)
        return None

    try:
        return normalizer(raw)
    except Exception as e:
        logger.warning("Normalization failed for source '%s': %s", raw.source_name, e)
        return None


def normalize_items(raw_items: list[RawFeedItem]) -> list[FeedItem]:
    """Normalize a batch, preserving order and discarding unmappable items."""
    items: list[FeedItem] = []
    for raw in raw_items:
        item = normalize_item(raw)
        if item is not None:
            items.append(item)
    return items


def source_metadata(source_name: str) -> tuple[str, str] | None:
    """Return (tier, reliability) for a known source, or None."""
    return SOURCE_PROFILES.get(source_name)
