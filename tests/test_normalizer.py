"""Tests for provider-specific normalization into the canonical article."""

from __future__ import annotations

from datetime import datetime, timezone

from newswire.services.normalizer import NORMALIZERS, normalize_items
from newswire.utils.text import make_article_id


def test_every_provider_has_a_normalizer():
    assert set(NORMALIZERS) == {"newsapi", "gnews", "naver", "reddit", "youtube", "rss"}


def test_newsapi_item():
    raw = {
        "source": {"id": "reuters", "name": "Reuters"},
        "title": "Markets rally",
        "description": "Stocks rose on Monday.",
        "url": "https://www.reuters.com/markets/rally/",
        "urlToImage": "https://img.reuters.com/1.jpg",
        "publishedAt": "2024-05-01T12:00:00Z",
    }

    [article] = normalize_items("newsapi", [raw])

    assert article.source == "Reuters"
    assert article.source_domain == "reuters.com"
    assert article.image == "https://img.reuters.com/1.jpg"
    assert article.published_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert article.language == "en"
    assert article.provider == "newsapi"


def test_gnews_item():
    raw = {
        "title": "Tech giant unveils chip",
        "description": "",
        "url": "https://techcrunch.com/2024/05/01/chip",
        "image": "https://techcrunch.com/chip.jpg",
        "publishedAt": "2024-05-01T08:30:00Z",
        "source": {"name": "TechCrunch", "url": "https://techcrunch.com"},
    }

    [article] = normalize_items("gnews", [raw])

    assert article.source == "TechCrunch"
    # An empty description falls back to the title
    assert article.description == "Tech giant unveils chip"


def test_naver_item_strips_markup_and_prefers_original_link():
    raw = {
        "title": "<b>속보</b> 서울 &quot;폭우&quot; 경보",
        "originallink": "https://www.yna.co.kr/view/AKR2024",
        "link": "https://n.news.naver.com/article/001/123",
        "description": "기상청은 <b>폭우</b> 경보를 발령했다.",
        "pubDate": "Wed, 01 May 2024 21:00:00 +0900",
    }

    [article] = normalize_items("naver", [raw])

    assert article.title == '속보 서울 "폭우" 경보'
    assert article.url == "https://www.yna.co.kr/view/AKR2024"
    assert article.source_domain == "yna.co.kr"
    assert article.language == "ko"
    assert article.published_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_reddit_listing_child():
    raw = {
        "kind": "t3",
        "data": {
            "title": "Huge news from Europe",
            "permalink": "/r/worldnews/comments/abc/huge_news/",
            "url": "https://example.com/story",
            "subreddit": "worldnews",
            "ups": 1500,
            "subreddit_subscribers": 30000000,
            "created_utc": 1714564800,
            "thumbnail": "self",
        },
    }

    [article] = normalize_items("reddit", [raw])

    assert article.url == "https://www.reddit.com/r/worldnews/comments/abc/huge_news/"
    assert article.source == "r/worldnews"
    assert article.reactions == 1500
    assert article.followers == 30000000
    assert article.image is None
    assert article.published_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_youtube_video():
    raw = {
        "id": "dQw4w9WgXcQ",
        "snippet": {
            "title": "ニュース速報",
            "channelTitle": "NHK",
            "description": "最新のニュース",
            "publishedAt": "2024-05-01T12:00:00Z",
            "thumbnails": {"high": {"url": "https://i.ytimg.com/vi/x/hq.jpg"}},
        },
        "statistics": {"likeCount": "420"},
    }

    [article] = normalize_items("youtube", [raw])

    assert article.url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
    assert article.reactions == 420
    assert article.language == "ja"
    assert article.image == "https://i.ytimg.com/vi/x/hq.jpg"


def test_rss_item():
    raw = {
        "title": "Election results",
        "link": "https://feeds.bbci.co.uk/news/world-123?at_medium=RSS",
        "summary": "<p>Votes are <em>counted</em>.</p>",
        "published": "2024-05-01T12:00:00+00:00",
        "feed_name": "BBC World",
    }

    [article] = normalize_items("rss", [raw])

    assert article.source == "BBC World"
    assert article.description == "Votes are counted ."


def test_same_url_from_different_providers_shares_id():
    newsapi = normalize_items("newsapi", [{"title": "Story", "url": "https://www.a.com/x/?utm_source=feed", "source": {"name": "A"}}])
    rss = normalize_items("rss", [{"title": "STORY!", "link": "http://a.com/x", "feed_name": "A feed"}])

    assert newsapi[0].id == rss[0].id


def test_items_without_title_and_url_are_dropped():
    items = normalize_items("rss", [{"summary": "orphan"}, {"title": "Kept", "link": ""}])

    assert [a.title for a in items] == ["Kept"]
    assert items[0].id == make_article_id(items[0].source, "", "Kept")


def test_malformed_items_are_skipped():
    items = normalize_items("newsapi", [None, {"title": "Fine", "url": "https://a.com/1"}])

    assert [a.title for a in items] == ["Fine"]


def test_unknown_provider_yields_nothing():
    assert normalize_items("carrier-pigeon", [{"title": "x"}]) == []
