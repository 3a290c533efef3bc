"""
Base class for provider fetchers.

A fetcher returns provider-native items for one configured source. Failures
are recorded and turned into an empty contribution, so ``fetch`` never
raises to the orchestrator. Repeatedly failing sources are skipped by a
circuit breaker until its recovery timeout elapses.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from newswire.pipeline.section_config import SourceSpec
from newswire.services.http_client import HttpClient
from newswire.utils.error_monitoring import CircuitBreaker, ErrorHandler

RawItem = Dict[str, Any]


@dataclass(frozen=True)
class ProviderCredentials:
    news_api_key: Optional[str] = None
    gnews_api_key: Optional[str] = None
    naver_client_id: Optional[str] = None
    naver_client_secret: Optional[str] = None
    reddit_token: Optional[str] = None
    reddit_user_agent: str = "newswire/1.0"
    youtube_api_key: Optional[str] = None

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> "ProviderCredentials":
        env = os.environ if environ is None else environ
        return cls(
            news_api_key=env.get('NEWS_API_KEY') or None,
            gnews_api_key=env.get('GNEWS_API_KEY') or None,
            naver_client_id=env.get('NAVER_CLIENT_ID') or None,
            naver_client_secret=env.get('NAVER_CLIENT_SECRET') or None,
            reddit_token=env.get('REDDIT_TOKEN') or None,
            reddit_user_agent=env.get('REDDIT_USER_AGENT') or "newswire/1.0",
            youtube_api_key=env.get('YOUTUBE_API_KEY') or None,
        )

    def presence(self) -> Dict[str, bool]:
        """Which providers have credentials, without exposing them."""
        return {
            'newsapi': bool(self.news_api_key),
            'gnews': bool(self.gnews_api_key),
            'naver': bool(self.naver_client_id and self.naver_client_secret),
            'reddit': bool(self.reddit_token),
            'youtube': bool(self.youtube_api_key),
            'rss': True,
        }


class SourceFetcher(ABC):
    provider = ""

    def __init__(
        self,
        spec: SourceSpec,
        http: HttpClient,
        credentials: ProviderCredentials,
        error_handler: Optional[ErrorHandler] = None,
        breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self.spec = spec
        self.http = http
        self.credentials = credentials
        self.error_handler = error_handler or ErrorHandler()
        self.breaker = breaker or CircuitBreaker()
        self.logger = logging.getLogger(self.__class__.__module__)

    @property
    def source_id(self) -> str:
        return self.spec.source_id

    @property
    def phase(self) -> int:
        return self.spec.phase

    @property
    def options(self) -> Mapping[str, Any]:
        return self.spec.options

    def is_configured(self) -> bool:
        return True

    async def fetch(self, section: str) -> List[RawItem]:
        if not self.is_configured():
            self.logger.debug(f"Skipping {self.source_id}: no credentials")
            return []
        if not self.breaker.should_attempt(self.source_id):
            self.logger.debug(f"Skipping {self.source_id}: circuit open")
            return []

        try:
            items = await self._fetch(section)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.breaker.record_failure(self.source_id)
            self.error_handler.handle_error(e, self.source_id, f"fetch:{section}")
            return []

        self.breaker.record_success(self.source_id)
        self.logger.debug(f"📥 {self.source_id}: {len(items)} raw items for '{section}'")
        return items

    @abstractmethod
    async def _fetch(self, section: str) -> List[RawItem]:
        """Provider-specific request. May raise, ``fetch`` handles it."""
