"""
Normalizers mapping provider-native items into the canonical Article.

There is one variant per provider, registered under the provider tag. A new
provider means a new variant here, the orchestrator never looks inside raw
items.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from newswire.models.content import Article
from newswire.utils.dates import parse_published
from newswire.utils.text import detect_language, make_article_id, source_domain, strip_html

logger = logging.getLogger(__name__)

RawItem = Mapping[str, Any]


def _to_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def build_article(
    provider: str,
    title: str,
    url: str,
    source: str,
    description: str = "",
    image: Optional[str] = None,
    published: Any = None,
    reactions: Any = 0,
    followers: Any = 0,
) -> Optional[Article]:
    title = strip_html(title)
    url = (url or "").strip()
    if not title and not url:
        return None

    description = strip_html(description) or title
    domain = source_domain(url)
    source = (source or "").strip() or domain or "Unknown"

    return Article(
        id=make_article_id(source, url, title),
        title=title,
        url=url,
        source=source,
        provider=provider,
        description=description,
        image=image or None,
        source_domain=domain,
        published_at=parse_published(published),
        language=detect_language(f"{title} {description}"),
        reactions=_to_int(reactions),
        followers=_to_int(followers),
    )


class Normalizer:
    provider = ""

    def normalize(self, raw: RawItem) -> Optional[Article]:
        raise NotImplementedError


class NewsAPINormalizer(Normalizer):
    provider = "newsapi"

    def normalize(self, raw: RawItem) -> Optional[Article]:
        source = raw.get("source") or {}
        return build_article(
            self.provider,
            title=raw.get("title") or "",
            url=raw.get("url") or "",
            source=source.get("name") if isinstance(source, dict) else str(source),
            description=raw.get("description") or "",
            image=raw.get("urlToImage"),
            published=raw.get("publishedAt"),
        )


class GNewsNormalizer(Normalizer):
    provider = "gnews"

    def normalize(self, raw: RawItem) -> Optional[Article]:
        source = raw.get("source") or {}
        return build_article(
            self.provider,
            title=raw.get("title") or "",
            url=raw.get("url") or "",
            source=source.get("name") if isinstance(source, dict) else str(source),
            description=raw.get("description") or "",
            image=raw.get("image"),
            published=raw.get("publishedAt"),
        )


class NaverNormalizer(Normalizer):
    provider = "naver"

    def normalize(self, raw: RawItem) -> Optional[Article]:
        # originallink is the publisher's page, link may be a news.naver.com mirror
        url = raw.get("originallink") or raw.get("link") or ""
        return build_article(
            self.provider,
            title=raw.get("title") or "",
            url=url,
            source=source_domain(url) or "Naver",
            description=raw.get("description") or "",
            published=raw.get("pubDate"),
        )


class RedditNormalizer(Normalizer):
    provider = "reddit"

    def normalize(self, raw: RawItem) -> Optional[Article]:
        data = raw.get("data", raw)
        permalink = data.get("permalink")
        url = f"https://www.reddit.com{permalink}" if permalink else data.get("url") or ""
        thumbnail = data.get("thumbnail")
        subreddit = data.get("subreddit")
        return build_article(
            self.provider,
            title=data.get("title") or "",
            url=url,
            source=f"r/{subreddit}" if subreddit else "Reddit",
            description=data.get("selftext") or "",
            image=thumbnail if thumbnail and str(thumbnail).startswith("http") else None,
            published=data.get("created_utc"),
            reactions=data.get("ups") or data.get("score"),
            followers=data.get("subreddit_subscribers"),
        )


class YouTubeNormalizer(Normalizer):
    provider = "youtube"

    def normalize(self, raw: RawItem) -> Optional[Article]:
        snippet = raw.get("snippet") or {}
        statistics = raw.get("statistics") or {}
        video_id = raw.get("id")
        if isinstance(video_id, dict):
            video_id = video_id.get("videoId")
        thumbnails = snippet.get("thumbnails") or {}
        image = (thumbnails.get("high") or thumbnails.get("default") or {}).get("url")
        return build_article(
            self.provider,
            title=snippet.get("title") or "",
            url=f"https://www.youtube.com/watch?v={video_id}" if video_id else "",
            source=snippet.get("channelTitle") or "YouTube",
            description=snippet.get("description") or "",
            image=image,
            published=snippet.get("publishedAt"),
            reactions=statistics.get("likeCount"),
        )


class RSSNormalizer(Normalizer):
    provider = "rss"

    def normalize(self, raw: RawItem) -> Optional[Article]:
        return build_article(
            self.provider,
            title=raw.get("title") or "",
            url=raw.get("link") or raw.get("url") or "",
            source=raw.get("feed_name") or "",
            description=raw.get("summary") or raw.get("description") or "",
            image=raw.get("image"),
            published=raw.get("published") or raw.get("updated"),
        )


NORMALIZERS: Dict[str, Normalizer] = {
    n.provider: n for n in (
        NewsAPINormalizer(),
        GNewsNormalizer(),
        NaverNormalizer(),
        RedditNormalizer(),
        YouTubeNormalizer(),
        RSSNormalizer(),
    )
}


def normalize_items(provider: str, raw_items: List[RawItem]) -> List[Article]:
    """Normalize a provider batch, dropping items that cannot be mapped."""
    normalizer = NORMALIZERS.get(provider)
    if normalizer is None:
        logger.warning(f"No normalizer registered for provider '{provider}', dropping {len(raw_items)} items")
        return []

    articles: List[Article] = []
    for raw in raw_items:
        try:
            article = normalizer.normalize(raw)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.debug(f"Skipping malformed {provider} item: {e}")
            continue
        if article is not None:
            articles.append(article)
    return articles
