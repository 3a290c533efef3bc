"""Shared fixtures: fake fetchers with controlled latency and small section configs."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import pytest

from newswire.models.content import Article
from newswire.pipeline.content_aggregator import ContentAggregator, FetchTimings
from newswire.pipeline.section_config import RankingWeights, SectionConfig, SectionRegistry, SourceSpec
from newswire.services.cache_service import StalenessCache
from newswire.services.source_ranking_service import SourceRankingService
from newswire.utils.text import make_article_id, source_domain


def rss_item(title: str, url: str, minutes_ago: float = 1, feed_name: str = "Feed") -> Dict[str, Any]:
    published = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
    return {
        "title": title,
        "link": url,
        "summary": f"{title} summary",
        "published": published.isoformat(),
        "feed_name": feed_name,
    }


def make_article(
    title: str,
    url: str,
    minutes_ago: Optional[float] = 5,
    source: str = "Example",
    reactions: int = 0,
    language: str = "en",
    provider: str = "rss",
) -> Article:
    published = None
    if minutes_ago is not None:
        published = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
    return Article(
        id=make_article_id(source, url, title),
        title=title,
        url=url,
        source=source,
        provider=provider,
        description=title,
        source_domain=source_domain(url),
        published_at=published,
        language=language,
        reactions=reactions,
    )


class FakeFetcher:
    """Stands in for a provider fetcher: fixed items after a fixed delay."""

    def __init__(
        self,
        name: str,
        items: Sequence[Dict[str, Any]] = (),
        delay: float = 0.0,
        phase: int = 1,
        provider: str = "rss",
        error: Optional[Exception] = None,
    ) -> None:
        self.name = name
        self.items = list(items)
        self.delay = delay
        self.provider = provider
        self._phase = phase
        self.error = error
        self.calls = 0

    @property
    def source_id(self) -> str:
        return f"{self.provider}:{self.name}"

    @property
    def phase(self) -> int:
        return self._phase

    async def fetch(self, section: str) -> List[Dict[str, Any]]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.items)


def section_config(name: str = "world", language: str = "en", recency_hours: float = 12) -> SectionConfig:
    return SectionConfig(
        name=name,
        language=language,
        recency_hours=recency_hours,
        fast_ttl=60,
        full_ttl=600,
        weights=RankingWeights(
            freshness=0.35, volume=0.15, engagement=0.10,
            source_trust=0.30, diversity=0.05, language=0.05,
        ),
        sources=(SourceSpec(provider="rss", phase=1, options={"name": "stub", "url": "https://example.com/rss"}),),
    )


def registry_for(*names: str) -> SectionRegistry:
    return SectionRegistry({n: section_config(n) for n in names}, aliases={"kr": "korea"} if "korea" in names else None)


@pytest.fixture
def ranker() -> SourceRankingService:
    return SourceRankingService(tau_minutes=90, environ={})


@pytest.fixture
def memory_cache() -> StalenessCache:
    return StalenessCache()


@pytest.fixture
def fast_timings() -> FetchTimings:
    return FetchTimings(
        phase1_deadline=0.2,
        phase2_deadline=1.0,
        first_batch_size=24,
        full_max=100,
        source_timeout=2.0,
        enrich_timeout=1.0,
        revalidate_after=300,
    )


@pytest.fixture
def make_aggregator(ranker, memory_cache, fast_timings):
    def factory(fetchers: Sequence[FakeFetcher], section: str = "world", **kwargs) -> ContentAggregator:
        aggregator = ContentAggregator(
            registry=kwargs.pop("registry", registry_for(section)),
            fetchers={section: list(fetchers)},
            cache=kwargs.pop("cache", memory_cache),
            ranker=ranker,
            timings=kwargs.pop("timings", fast_timings),
            **kwargs,
        )
        return aggregator

    return factory
