"""
Fetchers for the news search APIs: NewsAPI, GNews and Naver.
"""

import asyncio
from typing import Any, Dict, List

from newswire.services.source_fetcher import RawItem, SourceFetcher

NEWSAPI_URL = "https://newsapi.org/v2/top-headlines"
GNEWS_URL = "https://gnews.io/api/v4/top-headlines"
NAVER_URL = "https://openapi.naver.com/v1/search/news.json"


class NewsAPIFetcher(SourceFetcher):
    """
    NewsAPI top headlines.

    With a ``countries`` option the request fans out one call per country and
    a failing country only loses its own share.
    """

    provider = "newsapi"

    def is_configured(self) -> bool:
        return bool(self.credentials.news_api_key)

    def _params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"pageSize": self.options.get("page_size", 50)}
        if self.options.get("category"):
            params["category"] = self.options["category"]
        if self.options.get("country"):
            params["country"] = self.options["country"]
        elif self.options.get("language"):
            # NewsAPI rejects country and language together on some plans
            params["language"] = self.options["language"]
        return params

    async def _headlines(self, params: Dict[str, Any]) -> List[RawItem]:
        data = await self.http.get_json(
            NEWSAPI_URL,
            params=params,
            headers={"X-Api-Key": self.credentials.news_api_key},
        )
        if data.get("status") == "error":
            raise ValueError(f"NewsAPI error {data.get('code')}: {data.get('message')}")
        return list(data.get("articles") or [])

    async def _fetch(self, section: str) -> List[RawItem]:
        countries = self.options.get("countries")
        if not countries:
            return await self._headlines(self._params())

        base = self._params()
        base.pop("language", None)
        results = await asyncio.gather(
            *(self._headlines({**base, "country": c}) for c in countries),
            return_exceptions=True
        )

        if all(isinstance(r, Exception) for r in results):
            raise results[0]

        items: List[RawItem] = []
        for country, result in zip(countries, results):
            if isinstance(result, Exception):
                self.logger.warning(f"NewsAPI failed for country {country}: {result}")
                continue
            items.extend(result)
        return items


class GNewsFetcher(SourceFetcher):
    provider = "gnews"

    def is_configured(self) -> bool:
        return bool(self.credentials.gnews_api_key)

    async def _fetch(self, section: str) -> List[RawItem]:
        params: Dict[str, Any] = {
            "token": self.credentials.gnews_api_key,
            "lang": self.options.get("lang", "en"),
            "max": self.options.get("max", 50),
        }
        if self.options.get("topic"):
            params["topic"] = self.options["topic"]
        if self.options.get("country"):
            params["country"] = self.options["country"]

        data = await self.http.get_json(GNEWS_URL, params=params)
        if data.get("errors"):
            raise ValueError(f"GNews error: {data['errors']}")
        return list(data.get("articles") or [])


class NaverFetcher(SourceFetcher):
    """Naver news search, used for the Korean sections."""

    provider = "naver"

    def is_configured(self) -> bool:
        return bool(self.credentials.naver_client_id and self.credentials.naver_client_secret)

    async def _fetch(self, section: str) -> List[RawItem]:
        params = {
            "query": self.options.get("query", "뉴스"),
            "display": self.options.get("display", 50),
            "sort": self.options.get("sort", "date"),
        }
        headers = {
            "X-Naver-Client-Id": self.credentials.naver_client_id,
            "X-Naver-Client-Secret": self.credentials.naver_client_secret,
        }
        data = await self.http.get_json(NAVER_URL, params=params, headers=headers)
        if "errorCode" in data:
            raise ValueError(f"Naver error {data.get('errorCode')}: {data.get('errorMessage')}")
        return list(data.get("items") or [])
