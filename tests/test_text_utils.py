"""Tests for url, text and date helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from newswire.utils.dates import minutes_since, parse_published
from newswire.utils.text import canonical_url, detect_language, make_article_id, source_domain, strip_html, truncate


@pytest.mark.parametrize("text,expected", [
    ("Breaking news", "en"),
    ("서울 날씨", "ko"),
    ("東京のニュース", "ja"),
    ("", "en"),
    (None, "en"),
])
def test_detect_language(text, expected):
    assert detect_language(text) == expected


def test_source_domain():
    assert source_domain("https://WWW.BBC.co.uk:443/news") == "bbc.co.uk"
    assert source_domain("") == ""
    assert source_domain("not a url") == ""


def test_canonical_url_drops_tracking_and_normalizes():
    assert canonical_url("http://www.example.com/a/b/?utm_source=x&id=2&fbclid=y&a=1#top") == "https://example.com/a/b?a=1&id=2"


def test_article_id_is_stable():
    first = make_article_id("Reuters", "https://reuters.com/x", "Title")
    second = make_article_id("AP", "https://www.reuters.com/x/", "Other title")

    assert first == second
    assert len(first) == 40


def test_article_id_without_url_uses_source_and_title():
    assert make_article_id("Feed", None, "Hello, World!") == make_article_id("feed", "", "hello world")
    assert make_article_id("Feed", None, "Hello") != make_article_id("Other", None, "Hello")


def test_strip_html():
    assert strip_html("<p>Hi &amp; bye</p>") == "Hi & bye"
    assert strip_html("  plain   text ") == "plain text"
    assert strip_html(None) == ""


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("a" * 20, 10) == "a" * 9 + "…"


@pytest.mark.parametrize("value", [
    "2024-05-01T12:00:00Z",
    "Wed, 01 May 2024 12:00:00 GMT",
    "2024-05-01T21:00:00+09:00",
    1714564800,
    datetime(2024, 5, 1, 12, 0),
])
def test_parse_published_formats(value):
    assert parse_published(value) == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", [None, "", "yesterday-ish?", "not a date at all"])
def test_parse_published_rejects_garbage(value):
    assert parse_published(value) is None


def test_minutes_since():
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    assert minutes_since(now - timedelta(minutes=30), now) == pytest.approx(30)
    assert minutes_since(now + timedelta(minutes=5), now) == 0.0
    assert minutes_since(None, now) is None
