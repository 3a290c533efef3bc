"""
Date helpers for publication timestamps coming from heterogeneous providers.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_published(value: Any) -> Optional[datetime]:
    """
    Parse a provider timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings, RFC-822 strings (RSS pubDate), epoch seconds and
    datetime objects. Naive values are taken as UTC. Anything unparseable
    yields None so the article is later dropped by the recency filter.
    """
    if value is None or value == "":
        return None

    try:
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, (int, float)):
            dt = datetime.fromtimestamp(float(value), tz=timezone.utc)
        else:
            dt = date_parser.parse(str(value).strip())
    except (ValueError, OverflowError, TypeError) as e:
        logger.debug(f"Unparseable publication date {value!r}: {e}")
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def minutes_since(published_at: Optional[datetime], now: Optional[datetime] = None) -> Optional[float]:
    """Age in minutes; future timestamps count as 0."""
    if published_at is None:
        return None
    now = now or utc_now()
    return max(0.0, (now - published_at).total_seconds() / 60.0)


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None
