"""Tests for section scoring, ratings, tags and ordering."""

from __future__ import annotations

import json
import math
from dataclasses import replace
from datetime import timedelta

import pytest

from conftest import make_article, section_config
from newswire.pipeline.section_config import RankingWeights
from newswire.services.source_ranking_service import SourceRankingService
from newswire.utils.dates import utc_now


def flat_weights(**overrides) -> RankingWeights:
    values = dict(freshness=0.0, volume=0.0, engagement=0.0, source_trust=0.0, diversity=0.0, language=0.0)
    values.update(overrides)
    return RankingWeights(**values)


def test_component_formulas(ranker):
    assert ranker.freshness(0) == pytest.approx(1.0)
    assert ranker.freshness(90) == pytest.approx(math.exp(-1))
    assert ranker.freshness(None) == 0.0
    assert ranker.volume(500) == pytest.approx(0.5)
    assert ranker.volume(5000) == 1.0
    assert ranker.engagement(0) == 0.0
    assert ranker.engagement(999) == pytest.approx(0.75)
    assert ranker.engagement(10 ** 6) == 1.0


def test_rating_bounds():
    assert SourceRankingService.rating_for(0.0) == 1.0
    assert SourceRankingService.rating_for(-3.0) == 1.0
    assert SourceRankingService.rating_for(0.5) == 3.0
    assert SourceRankingService.rating_for(2.0) == 5.0
    assert SourceRankingService.rating_for(0.333) == 2.3


def test_rank_is_deterministic_and_does_not_mutate(ranker):
    now = utc_now()
    articles = [
        make_article("Alpha", "https://reuters.com/a", minutes_ago=10),
        make_article("Beta", "https://unknown.example/b", minutes_ago=200, reactions=50),
    ]

    first = ranker.rank(section_config(), articles, now)
    second = ranker.rank(section_config(), articles, now)

    assert [(a.id, a.score, a.rating) for a in first] == [(a.id, a.score, a.rating) for a in second]
    assert articles[0].score == 0.0
    assert articles[0].section is None
    assert all(1.0 <= a.rating <= 5.0 for a in first)
    assert all(a.section == "world" for a in first)


def test_equal_scores_prefer_recent_then_input_order(ranker):
    now = utc_now()
    config = replace(section_config(), weights=flat_weights(language=1.0))
    older = replace(make_article("Older", "https://a.com/1"), published_at=now - timedelta(minutes=30))
    newer = replace(make_article("Newer", "https://b.com/1"), published_at=now - timedelta(minutes=5))
    twin = replace(make_article("Twin", "https://c.com/1"), published_at=now - timedelta(minutes=5))

    ranked = ranker.rank(config, [older, newer, twin], now)

    assert [a.title for a in ranked] == ["Newer", "Twin", "Older"]


def test_unlisted_domain_gets_default_trust(ranker):
    assert ranker.trust_for("unknown.example") == 1.0
    assert ranker.trust_for("") == 1.0


def test_subdomain_inherits_parent_trust(ranker):
    assert ranker.trust_for("reuters.com") == 5.0
    assert ranker.trust_for("feeds.bbc.co.uk") == 5.0
    assert ranker.trust_for("news.yna.co.kr") == 4.0


def test_trusted_source_outranks_unlisted_one(ranker):
    now = utc_now()
    config = replace(section_config(), weights=flat_weights(source_trust=1.0))
    articles = [
        make_article("Blog post", "https://unknown.example/1", minutes_ago=5),
        make_article("Wire story", "https://reuters.com/1", minutes_ago=5),
    ]

    ranked = ranker.rank(config, articles, now)

    assert ranked[0].title == "Wire story"
    assert ranked[0].score == pytest.approx(1.0)
    assert ranked[1].score == pytest.approx(0.2)


def test_diversity_penalises_crowded_domains(ranker):
    now = utc_now()
    config = replace(section_config(), weights=flat_weights(diversity=1.0))
    articles = [
        make_article("One", "https://a.com/1", minutes_ago=5),
        make_article("Two", "https://a.com/2", minutes_ago=5),
        make_article("Solo", "https://b.com/1", minutes_ago=5),
    ]

    ranked = ranker.rank(config, articles, now)

    assert ranked[0].title == "Solo"
    assert ranked[0].score == pytest.approx(1.0)
    assert ranked[1].score == pytest.approx(0.5)


def test_language_match_component(ranker):
    now = utc_now()
    config = replace(section_config("korea", language="ko"), weights=flat_weights(language=1.0))
    articles = [
        make_article("English story", "https://a.com/1", language="en"),
        make_article("한국 기사", "https://b.com/1", language="ko"),
    ]

    ranked = ranker.rank(config, articles, now)

    assert ranked[0].language == "ko"
    assert ranked[1].score == 0.0


def test_breaking_tag_in_korean_title(ranker):
    article = make_article("[속보] 서울 지진", "https://yna.co.kr/1", language="ko")

    tags = ranker.generate_tags(article, 0.1, "korea")

    assert tags == ["breaking"]


def test_english_keywords_match_whole_words_only(ranker):
    assert ranker.generate_tags(make_article("Groundbreaking study on sleep", "https://a.com/1"), 0.1, "tech") == []
    assert ranker.generate_tags(make_article("Unimportant detail emerges", "https://a.com/2"), 0.1, "tech") == []
    assert ranker.generate_tags(make_article("Just in: markets rally", "https://a.com/3"), 0.1, "business") == ["breaking"]


def test_japanese_keyword_matches_inside_title(ranker):
    article = make_article("【速報】東京で地震", "https://nhk.or.jp/1", language="ja")

    assert ranker.generate_tags(article, 0.1, "japan") == ["breaking"]


def test_buzz_section_and_tag_cap(ranker):
    article = make_article("Breaking: important update", "https://a.com/1")

    tags = ranker.generate_tags(article, 0.9, "buzz")

    assert tags == ["breaking", "trending"]
    assert ranker.generate_tags(make_article("Cats", "https://a.com/2"), 0.1, "buzz") == ["buzz"]


def test_tau_from_environment():
    assert SourceRankingService(environ={"RANK_TAU_MIN": "30"}).tau_minutes == 30.0
    assert SourceRankingService(environ={"RANK_TAU_MIN": "-1"}).tau_minutes == 90.0
    assert SourceRankingService(environ={"RANK_TAU_MIN": "soon"}).tau_minutes == 90.0


def test_missing_authority_file_falls_back_to_default_trust(tmp_path):
    service = SourceRankingService(config_path=str(tmp_path / "absent.json"), environ={})

    assert service.trust_for("reuters.com") == 1.0


def test_public_suffix_entry_never_vouches_for_subdomains(tmp_path):
    authority = tmp_path / "authority.json"
    authority.write_text(json.dumps({
        "config": {"max_trust": 5, "default_trust": 1},
        "tier_1": {"score": 5, "sources": ["co.uk", "bbc.co.uk", "or.jp"]},
    }), encoding="utf-8")
    service = SourceRankingService(config_path=str(authority), environ={})

    assert service.trust_for("example.co.uk") == 1.0
    assert service.trust_for("spam.or.jp") == 1.0
    assert service.trust_for("feeds.bbc.co.uk") == 5.0
