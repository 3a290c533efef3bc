"""Tests for the recency window and content-identity deduplication."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

from conftest import make_article
from newswire.services.deduplication_service import DeduplicationService
from newswire.services.recency_filter import filter_recent
from newswire.utils.dates import utc_now


def test_recency_window_keeps_recent_and_future_items():
    now = utc_now()
    fresh = make_article("Fresh", "https://a.com/1", minutes_ago=1)
    stale = make_article("Stale", "https://a.com/2", minutes_ago=13 * 60)
    undated = make_article("Undated", "https://a.com/3", minutes_ago=None)
    future = replace(make_article("Future", "https://a.com/4"), published_at=now + timedelta(minutes=10))

    kept = filter_recent([fresh, stale, undated, future], 12, now)

    assert [a.title for a in kept] == ["Fresh", "Future"]


def test_recency_window_boundary_is_inclusive():
    now = utc_now()
    edge = replace(make_article("Edge", "https://a.com/1"), published_at=now - timedelta(hours=12))

    assert filter_recent([edge], 12, now) == [edge]


def test_dedup_keeps_first_occurrence_in_order():
    service = DeduplicationService()
    a = make_article("A", "https://a.com/1", provider="newsapi")
    b = make_article("B", "https://b.com/1")
    a_again = make_article("A copy", "http://www.a.com/1/", provider="rss")

    unique = service.deduplicate([a, b, a_again])

    assert [x.title for x in unique] == ["A", "B"]
    assert unique[0].provider == "newsapi"
    assert service.get_statistics() == {"total_processed": 3, "duplicates_removed": 1}


def test_dedup_is_idempotent():
    service = DeduplicationService()
    articles = [make_article(t, f"https://a.com/{t}") for t in "xyzx"]

    once = service.deduplicate(articles)
    twice = service.deduplicate(once)

    assert [a.id for a in twice] == [a.id for a in once]
    assert len(once) == 3

    service.reset_statistics()
    assert service.get_statistics()["total_processed"] == 0
