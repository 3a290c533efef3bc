import logging
from datetime import datetime
from typing import List, Optional

from newswire.models.content import Article
from newswire.utils.dates import minutes_since, utc_now

logger = logging.getLogger(__name__)


def filter_recent(articles: List[Article], horizon_hours: float, now: Optional[datetime] = None) -> List[Article]:
    """
    Keep articles published within the last ``horizon_hours``.

    Articles without a usable publication time are dropped. Future
    timestamps count as age 0 and are kept.
    """
    now = now or utc_now()
    horizon_minutes = horizon_hours * 60
    kept: List[Article] = []
    undated = 0

    for article in articles:
        age = minutes_since(article.published_at, now)
        if age is None:
            undated += 1
            continue
        if age <= horizon_minutes:
            kept.append(article)

    if undated:
        logger.debug(f"Dropped {undated} undated articles")
    return kept
