import logging
from typing import Dict, List, Optional, Type

from newswire.pipeline.section_config import SectionConfig, SectionRegistry
from newswire.services.http_client import HttpClient
from newswire.services.news_api import GNewsFetcher, NaverFetcher, NewsAPIFetcher
from newswire.services.rss import RSSFetcher
from newswire.services.social_api import RedditFetcher, YouTubeFetcher
from newswire.services.source_fetcher import ProviderCredentials, SourceFetcher
from newswire.utils.error_monitoring import CircuitBreaker, ErrorHandler

logger = logging.getLogger(__name__)

FETCHER_TYPES: Dict[str, Type[SourceFetcher]] = {
    cls.provider: cls for cls in (
        NewsAPIFetcher,
        GNewsFetcher,
        NaverFetcher,
        RedditFetcher,
        YouTubeFetcher,
        RSSFetcher,
    )
}


def build_section_fetchers(
    section: SectionConfig,
    http: HttpClient,
    credentials: ProviderCredentials,
    error_handler: Optional[ErrorHandler] = None,
    breaker: Optional[CircuitBreaker] = None,
) -> List[SourceFetcher]:
    fetchers: List[SourceFetcher] = []
    for spec in section.sources:
        fetcher_cls = FETCHER_TYPES.get(spec.provider)
        if fetcher_cls is None:
            logger.warning(f"No fetcher for provider '{spec.provider}' in section '{section.name}'")
            continue
        fetchers.append(fetcher_cls(spec, http, credentials, error_handler, breaker))
    return fetchers


def build_fetchers(
    registry: SectionRegistry,
    http: HttpClient,
    credentials: ProviderCredentials,
    error_handler: Optional[ErrorHandler] = None,
    breaker: Optional[CircuitBreaker] = None,
) -> Dict[str, List[SourceFetcher]]:
    """One fetcher list per section. Handler and breaker are shared."""
    error_handler = error_handler or ErrorHandler()
    breaker = breaker or CircuitBreaker()
    fetchers = {
        section.name: build_section_fetchers(section, http, credentials, error_handler, breaker)
        for section in registry
    }
    configured = sum(1 for fs in fetchers.values() for f in fs if f.is_configured())
    total = sum(len(fs) for fs in fetchers.values())
    logger.info(f"Built {total} source fetchers ({configured} with credentials)")
    return fetchers
