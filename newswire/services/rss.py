import calendar
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser

from newswire.services.source_fetcher import RawItem, SourceFetcher

logger = logging.getLogger(__name__)

RSS_HEADERS = {
    "Accept": "application/rss+xml,application/atom+xml,application/xml;q=0.9,*/*;q=0.8",
}


def _entry_image(entry: Any) -> Optional[str]:
    for media in (getattr(entry, "media_thumbnail", None) or []):
        if media.get("url"):
            return media["url"]
    for media in (getattr(entry, "media_content", None) or []):
        if media.get("url") and str(media.get("medium", "image")) == "image":
            return media["url"]
    for enclosure in (getattr(entry, "enclosures", None) or []):
        if str(enclosure.get("type", "")).startswith("image/") and enclosure.get("href"):
            return enclosure["href"]
    return None


def _entry_published(entry: Any) -> Optional[str]:
    """
    Publication time as an ISO string.

    The parsed struct is preferred since feedparser already resolved the
    many date dialects found in feeds. Entries without a date return None.
    """
    for attr in ("published_parsed", "updated_parsed"):
        parsed = getattr(entry, attr, None)
        if parsed:
            return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc).isoformat()
    for attr in ("published", "updated", "dc_date"):
        value = getattr(entry, attr, None)
        if value:
            return value
    return None


def parse_feed(content: str, feed_name: str) -> List[RawItem]:
    """Parse RSS/Atom feed content into plain item dicts."""
    parsed = feedparser.parse(content)
    if parsed.bozo and not parsed.entries:
        raise ValueError(f"Unparseable feed {feed_name}: {parsed.get('bozo_exception')}")

    items: List[RawItem] = []
    for entry in parsed.entries:
        title = (getattr(entry, "title", "") or "").strip()
        link = (getattr(entry, "link", "") or "").strip()
        if not title and not link:
            continue
        items.append({
            "title": title,
            "link": link,
            "summary": getattr(entry, "summary", getattr(entry, "description", "")) or "",
            "published": _entry_published(entry),
            "image": _entry_image(entry),
            "feed_name": feed_name,
        })
    return items


class RSSFetcher(SourceFetcher):
    """One RSS or Atom feed."""

    provider = "rss"

    @property
    def feed_name(self) -> str:
        return self.options.get("name") or self.options["url"]

    async def _fetch(self, section: str) -> List[RawItem]:
        content = await self.http.get_text(self.options["url"], headers=RSS_HEADERS)
        items = parse_feed(content, self.feed_name)
        max_items = self.options.get("max_items")
        if max_items:
            items = items[:max_items]
        return items
