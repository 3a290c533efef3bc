"""
Fetchers for social and video platforms: Reddit listings and YouTube charts.
"""

from typing import List

from newswire.services.source_fetcher import RawItem, SourceFetcher

REDDIT_BASE_URL = "https://oauth.reddit.com"
YOUTUBE_VIDEOS_URL = "https://www.googleapis.com/youtube/v3/videos"


class RedditFetcher(SourceFetcher):
    """One Reddit listing endpoint such as ``/r/worldnews/new``."""

    provider = "reddit"

    def is_configured(self) -> bool:
        return bool(self.credentials.reddit_token)

    async def _fetch(self, section: str) -> List[RawItem]:
        path = self.options.get("path", "/r/all/new")
        data = await self.http.get_json(
            f"{REDDIT_BASE_URL}{path}",
            params={"limit": self.options.get("limit", 100), "raw_json": 1},
            headers={
                "Authorization": f"Bearer {self.credentials.reddit_token}",
                "User-Agent": self.credentials.reddit_user_agent,
            },
        )
        children = (data.get("data") or {}).get("children") or []
        # Stickied posts are moderator notices, not news
        return [c for c in children if not (c.get("data") or {}).get("stickied")]


class YouTubeFetcher(SourceFetcher):
    """Most popular videos for one region."""

    provider = "youtube"

    def is_configured(self) -> bool:
        return bool(self.credentials.youtube_api_key)

    async def _fetch(self, section: str) -> List[RawItem]:
        params = {
            "part": "snippet,statistics",
            "chart": "mostPopular",
            "regionCode": self.options.get("region_code", "US"),
            "maxResults": self.options.get("max_results", 30),
            "key": self.credentials.youtube_api_key,
        }
        if self.options.get("category_id"):
            params["videoCategoryId"] = self.options["category_id"]

        data = await self.http.get_json(YOUTUBE_VIDEOS_URL, params=params)
        if data.get("error"):
            error = data["error"]
            raise ValueError(f"YouTube error {error.get('code')}: {error.get('message')}")
        return list(data.get("items") or [])
