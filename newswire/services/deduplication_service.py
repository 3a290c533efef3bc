import logging
from typing import Any, Dict, List, Set

from newswire.models.content import Article


class DeduplicationService:
    """
    Collapses articles that represent the same content.

    Identity is the article id (canonical url hash, or source + title when an
    item carries no url). The first occurrence wins and order is preserved, so
    applying it twice gives the same result as applying it once.
    """

    def __init__(self) -> None:
        self.stats: Dict[str, int] = {
            "total_processed": 0,
            "duplicates_removed": 0,
        }
        self.logger = logging.getLogger(__name__)

    def deduplicate(self, articles: List[Article]) -> List[Article]:
        seen: Set[str] = set()
        unique: List[Article] = []

        for article in articles:
            if article.id in seen:
                self.logger.debug(f"Duplicate dropped: {article.title[:50]} ({article.provider})")
                continue
            seen.add(article.id)
            unique.append(article)

        self.stats["total_processed"] += len(articles)
        self.stats["duplicates_removed"] += len(articles) - len(unique)
        return unique

    def get_statistics(self) -> Dict[str, Any]:
        return dict(self.stats)

    def reset_statistics(self) -> None:
        for k in list(self.stats.keys()):
            self.stats[k] = 0
