"""Tests for the Hacker News and YC launch adapters."""

from __future__ import annotations

import time

import httpx
import pytest

from techscout.ingestion.hn_adapter import HackerNewsAdapter, HackerNewsShowAdapter
from techscout.ingestion.yc_adapter import YCLaunchesAdapter, is_launch_title


def _make_hn_item(story_id, title="Test Story", score=150, item_type="story", time_val=None):
    return {
        "id": story_id,
        "type": item_type,
        "title": title,
        "score": score,
        "url": f"https://example.com/{story_id}",
        "time": time_val if time_val is not None else int(time.time()) - 3600,
    }


def _transport(listing, story_ids, items_by_id, failing_ids=()):
    """Fake the HN Firebase API: one listing plus individual items."""
    requested = []

    def handler(request):
        path = request.url.path
        requested.append(path)
        if path.endswith(f"/{listing}.json"):
            return httpx.Response(200, json=story_ids)
        item_id = int(path.rsplit("/", 1)[-1].removesuffix(".json"))
        if item_id in failing_ids:
            return httpx.Response(500)
        return httpx.Response(200, json=items_by_id.get(item_id))

    transport = httpx.MockTransport(handler)
    transport.requested = requested
    return transport


class TestHackerNewsAdapter:
    @pytest.mark.asyncio
    async def test_fetches_stories_above_score_threshold(self):
        items_by_id = {
            1: _make_hn_item(1, "High Score", score=200),
            2: _make_hn_item(2, "Low Score", score=10),
            3: _make_hn_item(3, "Medium Score", score=50),
        }
        adapter = HackerNewsAdapter(transport=_transport("topstories", [1, 2, 3], items_by_id))

        result = await adapter.fetch()

        assert [r.raw_data["title"] for r in result] == ["High Score", "Medium Score"]
        assert all(r.source_name == "hacker_news" for r in result)

    @pytest.mark.asyncio
    async def test_skips_non_story_types_and_failed_items(self):
        items_by_id = {
            1: _make_hn_item(1, "A job", item_type="job"),
            2: _make_hn_item(2, "Broken"),
            3: _make_hn_item(3, "Real story"),
        }
        transport = _transport("topstories", [1, 2, 3], items_by_id, failing_ids={2})

        result = await HackerNewsAdapter(transport=transport).fetch()

        assert [r.raw_data["title"] for r in result] == ["Real story"]

    @pytest.mark.asyncio
    async def test_requests_at_most_twice_max_items(self):
        ids = list(range(1, 21))
        items_by_id = {i: _make_hn_item(i, f"Story {i}") for i in ids}
        transport = _transport("topstories", ids, items_by_id)

        result = await HackerNewsAdapter(max_items=3, transport=transport).fetch()

        item_requests = [p for p in transport.requested if "/item/" in p]
        assert len(item_requests) == 6
        assert [r.raw_data["id"] for r in result] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_listing_error_propagates(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        with pytest.raises(httpx.HTTPStatusError):
            await HackerNewsAdapter(transport=transport).fetch()

    @pytest.mark.asyncio
    async def test_malformed_listing_fails_safely(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"oops": 1}))
        result = await HackerNewsAdapter(transport=transport).safe_fetch()
        assert result.success is False
        assert "Unexpected topstories payload" in result.error

    @pytest.mark.asyncio
    async def test_show_hn_uses_show_listing(self):
        items_by_id = {5: _make_hn_item(5, "Show HN: Thing", score=35)}
        transport = _transport("showstories", [5], items_by_id)

        result = await HackerNewsShowAdapter(transport=transport).fetch()

        assert [r.source_name for r in result] == ["hacker_news_show"]


class TestYCLaunches:
    @pytest.mark.parametrize("title, expected", [
        ("Launch HN: Acme (YC W26) – Databases for agents", True),
        ("Show HN: Acme (YC S25)", True),
        ("Launching Acme on HN today", True),
        ("Show HN: My weekend project", False),
    ])
    def test_is_launch_title(self, title, expected):
        assert is_launch_title(title) is expected

    @pytest.mark.asyncio
    async def test_filters_launches_by_score_and_age(self):
        old = int(time.time()) - 30 * 24 * 3600
        items_by_id = {
            1: _make_hn_item(1, "Launch HN: Fresh (YC W26)", score=80),
            2: _make_hn_item(2, "Launch HN: Stale (YC S24)", score=80, time_val=old),
            3: _make_hn_item(3, "Launch HN: Quiet (YC W26)", score=5),
            4: _make_hn_item(4, "Show HN: Not a launch", score=300),
        }
        transport = _transport("showstories", [1, 2, 3, 4], items_by_id)

        result = await YCLaunchesAdapter(transport=transport).fetch()

        assert [r.raw_data["id"] for r in result] == [1]
        assert result[0].source_name == "y_combinator_launches"
