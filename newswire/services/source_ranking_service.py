"""
Source Ranking Service for per-section weighted scoring.

Each article gets a score from six components (freshness, volume, engagement,
source trust, domain diversity, language match) weighted by its section, a
1.0 to 5.0 rating derived from the score, and at most two tags.
"""

import json
import logging
import math
import os
import re
from collections import Counter
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Mapping, Optional

from newswire.models.content import MAX_TAGS, TAG_VOCABULARY, Article
from newswire.pipeline.section_config import SectionConfig
from newswire.utils.dates import minutes_since, utc_now

DEFAULT_TAU_MINUTES = 90.0
VOLUME_MAX = 1000.0
ENGAGEMENT_LOG_MAX = 4.0
TRENDING_THRESHOLD = 0.65

BREAKING_KEYWORDS = {
    'en': ('breaking', 'urgent', 'just in'),
    'ko': ('속보', '긴급', '단독'),
    'ja': ('速報', '緊急', '号外'),
}
IMPORTANT_KEYWORDS = {
    'en': ('important',),
    'ko': ('중요',),
    'ja': ('重要',),
}

# Second-level registries the trust walk never climbs to
PUBLIC_SUFFIXES = frozenset({
    'co.uk', 'org.uk', 'ac.uk', 'gov.uk', 'me.uk',
    'co.kr', 'or.kr', 'go.kr', 'ne.kr', 'ac.kr', 're.kr',
    'co.jp', 'or.jp', 'ne.jp', 'ac.jp', 'go.jp', 'ad.jp',
    'com.au', 'net.au', 'org.au', 'co.nz', 'com.cn', 'com.tw', 'com.hk', 'com.br', 'co.in',
})


def _keyword_pattern(keywords: Mapping[str, tuple]) -> re.Pattern:
    """English keywords match whole words only; Korean and Japanese match anywhere."""
    parts = []
    for language, words in keywords.items():
        for word in words:
            escaped = re.escape(word)
            parts.append(rf'\b{escaped}\b' if language == 'en' else escaped)
    return re.compile('|'.join(parts))


BREAKING_PATTERN = _keyword_pattern(BREAKING_KEYWORDS)
IMPORTANT_PATTERN = _keyword_pattern(IMPORTANT_KEYWORDS)


def _tau_from_environment(environ: Mapping[str, str], logger: logging.Logger) -> float:
    raw = environ.get('RANK_TAU_MIN')
    if not raw:
        return DEFAULT_TAU_MINUTES
    try:
        tau = float(raw)
    except ValueError:
        logger.warning(f"⚠️ Ignoring RANK_TAU_MIN={raw!r}: not a number")
        return DEFAULT_TAU_MINUTES
    if tau <= 0:
        logger.warning(f"⚠️ Ignoring RANK_TAU_MIN={raw!r}: must be positive")
        return DEFAULT_TAU_MINUTES
    return tau


class SourceRankingService:
    """
    Service for scoring and ordering a section's articles.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        tau_minutes: Optional[float] = None,
        environ: Optional[Mapping[str, str]] = None
    ):
        self.logger = logging.getLogger(__name__)
        environ = os.environ if environ is None else environ

        if config_path is None:
            config_path = os.path.join(
                os.path.dirname(os.path.dirname(__file__)),
                'config',
                'sources_authority.json'
            )

        self.authority_config = self._load_authority_config(config_path)
        self.source_scores = self._build_source_score_map()
        self.max_trust = float(self.authority_config['config']['max_trust'])
        self.default_trust = float(self.authority_config['config']['default_trust'])
        self.tau_minutes = tau_minutes if tau_minutes is not None else _tau_from_environment(environ, self.logger)

        self.logger.info(f"Source ranking service initialized with {len(self.source_scores)} scored domains (τ={self.tau_minutes:g}min)")

    def _load_authority_config(self, config_path: str) -> Dict:
        """Load the domain trust tiers."""
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = json.load(f)
            self.logger.info(f"Loaded source authority config from {config_path}")
            return config
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to load source authority config: {e}")
            # Every domain falls back to the default trust
            return {'config': {'max_trust': 5, 'default_trust': 1}}

    def _build_source_score_map(self) -> Dict[str, int]:
        """Build a map of domain to trust score."""
        source_scores = {}

        for tier_name, tier_data in self.authority_config.items():
            if tier_name == 'config':
                continue

            score = tier_data.get('score', 0)
            for source in tier_data.get('sources', []):
                source_scores[source.lower()] = score

        return source_scores

    def trust_for(self, domain: str) -> float:
        """Trust of a domain or its closest listed parent domain, never a public suffix."""
        parts = (domain or '').lower().split('.')
        for i in range(len(parts) - 1):
            candidate = '.'.join(parts[i:])
            if candidate in PUBLIC_SUFFIXES:
                break
            if candidate in self.source_scores:
                return float(self.source_scores[candidate])
        return self.default_trust

    def freshness(self, age_minutes: Optional[float]) -> float:
        if age_minutes is None:
            return 0.0
        return math.exp(-age_minutes / self.tau_minutes)

    @staticmethod
    def volume(reactions: int) -> float:
        return min(1.0, reactions / VOLUME_MAX)

    @staticmethod
    def engagement(reactions: int) -> float:
        return min(1.0, math.log10(reactions + 1) / ENGAGEMENT_LOG_MAX)

    def score_item(
        self,
        article: Article,
        section: SectionConfig,
        now: datetime,
        domain_counts: Mapping[str, int]
    ) -> float:
        w = section.weights
        reactions = max(0, article.reactions)

        components = {
            'freshness': self.freshness(minutes_since(article.published_at, now)),
            'volume': self.volume(reactions),
            'engagement': self.engagement(reactions),
            'source_trust': self.trust_for(article.source_domain) / self.max_trust,
            'diversity': 1.0 / max(1, domain_counts.get(article.source_domain, 1)),
            'language': 1.0 if article.language == section.language else 0.0,
        }

        return (
            w.freshness * components['freshness']
            + w.volume * components['volume']
            + w.engagement * components['engagement']
            + w.source_trust * components['source_trust']
            + w.diversity * components['diversity']
            + w.language * components['language']
        )

    @staticmethod
    def rating_for(score: float) -> float:
        return round(max(1.0, min(5.0, score * 4 + 1)), 1)

    @staticmethod
    def generate_tags(article: Article, score: float, section_name: str) -> List[str]:
        title = (article.title or '').lower()
        candidates = {
            'breaking': BREAKING_PATTERN.search(title) is not None,
            'trending': score > TRENDING_THRESHOLD,
            'buzz': section_name == 'buzz',
            'important': IMPORTANT_PATTERN.search(title) is not None,
        }
        return [tag for tag in TAG_VOCABULARY if candidates[tag]][:MAX_TAGS]

    def rank(self, section: SectionConfig, articles: List[Article], now: Optional[datetime] = None) -> List[Article]:
        """
        Score, rate and tag articles for a section and return them best first.

        Inputs are not mutated. Ties go to the more recent article, then to
        the earlier position in the input.
        """
        now = now or utc_now()
        domain_counts = Counter(a.source_domain for a in articles)

        ranked: List[Article] = []
        for article in articles:
            score = self.score_item(article, section, now, domain_counts)
            ranked.append(replace(
                article,
                section=section.name,
                score=score,
                rating=self.rating_for(score),
                tags=self.generate_tags(article, score, section.name),
            ))

        def sort_key(a: Article):
            published = a.published_at.timestamp() if a.published_at else float('-inf')
            return (-a.score, -published)

        # list.sort is stable, equal keys keep input order
        ranked.sort(key=sort_key)

        if ranked:
            self.logger.debug(f"Ranked {len(ranked)} items for '{section.name}', top score {ranked[0].score:.3f}")
        return ranked
