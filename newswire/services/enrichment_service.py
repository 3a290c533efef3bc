import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from newswire.models.content import Article
from newswire.services.ai_service import AIService


class EnrichmentService:
    """
    Adds AI summaries and translated headlines to ranked articles.

    Enrichment is best effort: any failure returns the article unchanged.
    Only the top ``max_articles`` of a batch are sent to the model.
    """

    def __init__(self, ai_service: AIService, max_concurrency: int = 4, max_articles: int = 20, max_points: int = 3):
        self.ai = ai_service
        self.max_articles = max_articles
        self.max_points = max_points
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self.stats: Dict[str, int] = {"enriched": 0, "skipped": 0, "failed": 0}
        self.logger = logging.getLogger(__name__)

    async def enrich(self, article: Article, target_language: Optional[str] = None) -> Article:
        if article.is_enriched:
            self.stats["skipped"] += 1
            return article

        target_language = target_language or article.language
        async with self._semaphore:
            try:
                summary_points = await self.ai.summarize(
                    article.title,
                    article.description,
                    article.source,
                    language=target_language,
                    max_points=self.max_points,
                )
                translated_title = None
                if article.language != target_language:
                    translated_title = await self.ai.translate(article.title, target_language)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.stats["failed"] += 1
                self.logger.warning(f"Enrichment failed for {article.id[:10]} ({article.source}): {e}")
                return article

        self.stats["enriched"] += 1
        return replace(article, summary_points=summary_points, translated_title=translated_title)

    async def enrich_many(self, articles: List[Article], target_language: Optional[str] = None) -> List[Article]:
        head = articles[: self.max_articles]
        tail = articles[self.max_articles:]

        results = await asyncio.gather(
            *(self.enrich(a, target_language) for a in head),
            return_exceptions=True
        )
        enriched: List[Article] = [
            original if isinstance(result, BaseException) else result
            for original, result in zip(head, results)
        ]
        self.logger.info(f"✨ Enriched {sum(1 for a in enriched if a.is_enriched)}/{len(head)} articles")
        return enriched + tail

    def get_statistics(self) -> Dict[str, Any]:
        return dict(self.stats)
