"""
Public facade over the section aggregator.

Responses are plain dicts ready to serialize. ``success`` is true whenever
the request was valid, even if no provider contributed an article.
"""

import logging
from typing import Any, Dict, List, Optional

from newswire.models.content import Article
from newswire.pipeline.content_aggregator import ContentAggregator
from newswire.pipeline.section_config import SectionRegistry
from newswire.services.http_client import HttpClient
from newswire.services.source_fetcher import ProviderCredentials
from newswire.utils.dates import utc_now


class NewsService:

    def __init__(
        self,
        aggregator: ContentAggregator,
        credentials: Optional[ProviderCredentials] = None,
        http: Optional[HttpClient] = None,
        default_section: str = "world",
    ) -> None:
        self.aggregator = aggregator
        self.registry: SectionRegistry = aggregator.registry
        self.cache = aggregator.cache
        self.credentials = credentials or ProviderCredentials()
        self.http = http
        self.default_section = default_section
        self.started_at = utc_now()
        self.logger = logging.getLogger(__name__)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        await self.aggregator.shutdown()
        if self.http is not None:
            await self.http.close()

    async def get_section(self, section: str, mode: str = "fast") -> Dict[str, Any]:
        """Ranked articles for a section. Unknown sections raise UnknownSectionError."""
        name = self.registry.resolve(section)
        result = await self.aggregator.get_section(name, mode)
        now = utc_now()
        return {
            "success": True,
            "section": name,
            "articles": [a.to_dict(now=now, include_age=True) for a in result.articles],
            "partial": result.partial,
            "total": len(result.articles),
            "timestamp": result.timestamp.isoformat(),
            "cached": result.cached,
        }

    async def refresh_section(self, section: str, mode: str = "full") -> Dict[str, Any]:
        result = await self.aggregator.refresh(section, mode)
        return {
            "success": True,
            "section": self.registry.resolve(section),
            "partial": result.partial,
            "total": len(result.articles),
            "timestamp": result.timestamp.isoformat(),
        }

    async def get_article_by_id(self, section: str, article_id: str) -> Optional[Dict[str, Any]]:
        """
        Look an article up in the section's current result.

        An unknown id falls back to the top article so a stale deep link still
        lands somewhere useful. Returns None only when the section is empty.
        """
        name = self.registry.resolve(section)
        result = await self.aggregator.get_section(name, "fast")
        if not result.articles:
            return None

        for article in result.articles:
            if article.id == article_id:
                return article.to_dict(include_age=True)

        self.logger.debug(f"Article {article_id} not in '{name}', returning top article")
        return result.articles[0].to_dict(include_age=True)

    async def search_news(self, query: str, section: Optional[str] = None, limit: int = 20) -> Dict[str, Any]:
        """Case-insensitive substring match over a section's titles and descriptions."""
        name = self.registry.resolve(section or self.default_section)
        needle = (query or "").strip().lower()
        result = await self.aggregator.get_section(name, "fast")

        matches: List[Article] = [
            a for a in result.articles
            if needle and (
                needle in a.title.lower()
                or needle in a.description.lower()
                or needle in (a.translated_title or "").lower()
            )
        ]
        return {
            "success": True,
            "query": query,
            "section": name,
            "articles": [a.to_dict(include_age=True) for a in matches[:limit]],
            "total": len(matches),
        }

    async def get_cache_status(self) -> Dict[str, Any]:
        return await self.cache.status()

    async def clear_cache(self) -> Dict[str, Any]:
        cleared = await self.cache.clear()
        return {"success": True, "cleared": cleared}

    async def get_status(self) -> Dict[str, Any]:
        sections = {}
        for config in self.registry:
            sections[config.name] = {
                "language": config.language,
                "providers": config.provider_names,
                "sources": len(config.sources),
                "ttl": {"fast": config.fast_ttl, "full": config.full_ttl},
                "weights": config.weights.as_dict(),
            }

        return {
            "success": True,
            "started_at": self.started_at.isoformat(),
            "sections": sections,
            "providers": self.credentials.presence(),
            "enrichment": self.aggregator.enricher is not None,
            "cache": await self.cache.status(),
            "background_tasks": self.aggregator.background_tasks,
            "fetches_in_flight": self.aggregator.fetches_in_flight,
            "errors": self.aggregator.error_handler.get_error_statistics(),
            "last_runs": {
                key: {
                    "finished_at": run.finished_at.isoformat(),
                    "duration_ms": round(run.duration_ms, 1),
                    "sources_done": run.sources_done,
                    "sources_pending": run.sources_pending,
                    "articles": run.articles,
                    "errors": run.errors,
                }
                for key, run in self.aggregator.last_runs.items()
            },
        }

    async def wait_for_background(self) -> None:
        await self.aggregator.wait_for_background()
