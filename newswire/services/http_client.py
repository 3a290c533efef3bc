import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

import aiohttp

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; newswire/1.0; +https://github.com/newswire)",
    "Accept-Language": "en-US,en;q=0.9,ko;q=0.8,ja;q=0.7",
}


class ProviderError(Exception):
    """Raised by the HTTP layer when a provider request cannot be completed."""

    def __init__(self, message: str, status: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.url = url


class HttpClient:
    """
    Shared aiohttp session for all provider fetchers.

    Network errors, timeouts and 5xx responses are retried with exponential
    backoff. 4xx responses fail immediately since retrying cannot help.
    """

    def __init__(self, timeout: float = 8.0, max_retries: int = 3, backoff_base: float = 0.25):
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._session: Optional[aiohttp.ClientSession] = None
        self.logger = logging.getLogger(__name__)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=DEFAULT_HEADERS,
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        as_json: bool = True,
    ) -> Any:
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            client_error: Optional[ProviderError] = None
            try:
                session = self._get_session()
                async with session.get(url, params=params, headers=headers) as resp:
                    if resp.status >= 500:
                        last_error = ProviderError(f"HTTP {resp.status} for {url}", status=resp.status, url=url)
                    elif resp.status >= 400:
                        body = (await resp.text())[:200]
                        client_error = ProviderError(f"HTTP {resp.status} for {url}: {body}", status=resp.status, url=url)
                    elif as_json:
                        return await resp.json(content_type=None)
                    else:
                        return await resp.text()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                last_error = exc

            # Client errors are not retried
            if client_error is not None:
                raise client_error

            if attempt < self.max_retries - 1:
                wait_time = self.backoff_base * (2 ** attempt)
                self.logger.debug(f"Retrying {url} in {wait_time:.2f}s after: {last_error!r}")
                await asyncio.sleep(wait_time)

        raise ProviderError(
            f"Request failed after {self.max_retries} attempts: {last_error!r}",
            status=getattr(last_error, "status", None),
            url=url,
        ) from last_error

    async def get_json(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return await self._request(url, params=params, headers=headers, as_json=True)

    async def get_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        return await self._request(url, headers=headers, as_json=False)
