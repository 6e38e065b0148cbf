"""RSS/Atom feed source adapter."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import feedparser

from techscout.ingestion.adapter import SourceAdapter
from techscout.ingestion.normalize import RawFeedItem

logger = logging.getLogger(__name__)


def _parse_pub_date(entry: dict) -> str | None:
    """Extract and normalize the publication date from a feed entry."""
    raw = entry.get("published") or entry.get("updated")
    if raw:
        try:
            return parsedate_to_datetime(raw).isoformat()
        except (ValueError, TypeError):
            pass
    # feedparser sometimes provides a parsed tuple
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if parsed:
        try:
            return datetime(*parsed[:6], tzinfo=timezone.utc).isoformat()
        except (ValueError, TypeError):
            pass
    return None


def _get_content(entry: dict) -> str:
    """Best available body: content:encoded first, then summary/description."""
    if entry.get("content"):
        return entry["content"][0].get("value", "")
    return entry.get("summary", "") or entry.get("description", "")


def entry_payload(entry: dict) -> dict:
    """Flatten a feedparser entry into the payload the RSS normalizer reads."""
    return {
        "title": (entry.get("title") or "").strip(),
        "link": entry.get("link"),
        "summary": _get_content(entry),
        "published": _parse_pub_date(entry),
        "id": entry.get("id"),
        "tags": [t.get("term") for t in entry.get("tags", []) if t.get("term")],
    }


class RSSFeedAdapter(SourceAdapter):
    """Adapter for a single RSS or Atom feed.

    Metadata is passed per instance, so one class serves curated blogs,
    community feeds, and stack-conditional newsletters alike.
    """

    fetch_method = "rss"

    def __init__(
        self,
        name: str,
        url: str,
        *,
        tier: str,
        reliability: str,
        frequency: str = "daily",
        conditional_on: tuple[str, ...] | None = None,
        max_items: int = 30,
        **kwargs,
    ) -> None:
        self.name = name
        self.url = url
        self.tier = tier
        self.reliability = reliability
        self.frequency = frequency
        self.conditional_on = conditional_on
        self._max_items = max_items
        super().__init__(**kwargs)

    async def fetch(self) -> list[RawFeedItem]:
        async with self._client() as client:
            response = await client.get(self.url)
            response.raise_for_status()

        feed = feedparser.parse(response.content)
        if feed.bozo and not feed.entries:
            raise ValueError(f"Unparseable feed at {self.url}: {feed.get('bozo_exception')}")

        items: list[RawFeedItem] = []
        for entry in feed.entries[: self._max_items]:
            payload = entry_payload(entry)
            if not payload["title"]:
                logger.debug("Skipping entry without title: %s", payload["link"])
                continue
            items.append(self._raw(payload))

        logger.info("Fetched %d entries from %s", len(items), self.name)
        return items
