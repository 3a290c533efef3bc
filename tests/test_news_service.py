"""Tests for the public service facade."""

from __future__ import annotations

import pytest

from conftest import FakeFetcher, rss_item
from newswire.news_service import NewsService
from newswire.pipeline.section_config import UnknownSectionError
from newswire.services.source_fetcher import ProviderCredentials


@pytest.fixture
def service(make_aggregator):
    fetcher = FakeFetcher("a", [
        rss_item("Seoul markets climb", "https://a.com/1", minutes_ago=2),
        rss_item("Rain expected in Tokyo", "https://b.com/1", minutes_ago=20),
    ])
    return NewsService(make_aggregator([fetcher]), credentials=ProviderCredentials(news_api_key="k"))


@pytest.mark.asyncio
async def test_section_response_shape(service):
    payload = await service.get_section("world", "full")

    assert payload["success"] is True
    assert payload["section"] == "world"
    assert payload["partial"] is False
    assert payload["total"] == 2
    assert payload["cached"] is False
    article = payload["articles"][0]
    assert article["title"] == "Seoul markets climb"
    assert article["age_minutes"] in (1, 2)
    assert 1.0 <= article["rating"] <= 5.0
    assert isinstance(article["published_at"], str)


@pytest.mark.asyncio
async def test_empty_section_is_still_a_success(make_aggregator):
    service = NewsService(make_aggregator([]))

    payload = await service.get_section("world", "full")

    assert payload["success"] is True
    assert payload["articles"] == []
    assert await service.get_article_by_id("world", "missing") is None
    await service.wait_for_background()


@pytest.mark.asyncio
async def test_unknown_section_raises(service):
    with pytest.raises(UnknownSectionError):
        await service.get_section("sports")


@pytest.mark.asyncio
async def test_article_lookup_falls_back_to_top_article(service):
    payload = await service.get_section("world", "fast")
    second = payload["articles"][1]

    found = await service.get_article_by_id("world", second["id"])
    fallback = await service.get_article_by_id("world", "no-such-id")

    assert found["id"] == second["id"]
    assert fallback["id"] == payload["articles"][0]["id"]
    await service.wait_for_background()


@pytest.mark.asyncio
async def test_search_matches_title_case_insensitively(service):
    result = await service.search_news("TOKYO", section="world")

    assert result["total"] == 1
    assert result["articles"][0]["title"] == "Rain expected in Tokyo"
    assert (await service.search_news("", section="world"))["total"] == 0
    await service.wait_for_background()


@pytest.mark.asyncio
async def test_status_reports_sections_and_providers(service):
    await service.get_section("world", "full")

    status = await service.get_status()

    assert status["sections"]["world"]["ttl"] == {"fast": 60, "full": 600}
    assert status["providers"]["newsapi"] is True
    assert status["providers"]["youtube"] is False
    assert status["enrichment"] is False
    assert status["cache"]["backend"] == "memory"
    assert "world_full_complete" in status["last_runs"]


@pytest.mark.asyncio
async def test_clear_cache_forces_refetch(service):
    await service.get_section("world", "full")

    cleared = await service.clear_cache()
    payload = await service.get_section("world", "full")

    assert cleared == {"success": True, "cleared": {"memory": 1, "persistent": 0}}
    assert payload["cached"] is False


@pytest.mark.asyncio
async def test_close_shuts_down_aggregator(service):
    await service.get_section("world", "fast")

    await service.close()

    assert service.aggregator.background_tasks == 0


@pytest.mark.asyncio
async def test_refresh_section_bypasses_cache(service):
    await service.get_section("world", "full")
    fetcher = service.aggregator.fetchers["world"][0]

    refreshed = await service.refresh_section("world")

    assert refreshed["success"] is True
    assert refreshed["partial"] is False
    assert refreshed["total"] == 2
    assert fetcher.calls == 2


@pytest.mark.asyncio
async def test_cache_status_is_read_only(service):
    await service.get_section("world", "full")

    status = await service.get_cache_status()

    assert status["backend"] == "memory"
    assert status["memory_keys"] == 1
    assert status["persistent_configured"] is False
