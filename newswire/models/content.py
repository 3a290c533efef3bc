"""
Content models for the newswire aggregator.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from newswire.utils.dates import isoformat, minutes_since, parse_published

# Closed tag vocabulary, in priority order
TAG_VOCABULARY = ("breaking", "trending", "buzz", "important")
MAX_TAGS = 2


@dataclass
class Article:
    """Canonical article produced by a normalizer and refined by the ranker."""

    id: str
    title: str
    url: str
    source: str
    provider: str
    description: str = ""
    image: Optional[str] = None
    source_domain: str = ""
    published_at: Optional[datetime] = None
    language: str = "en"
    reactions: int = 0
    followers: int = 0
    score: float = 0.0
    rating: float = 1.0
    tags: List[str] = field(default_factory=list)
    section: Optional[str] = None
    translated_title: Optional[str] = None
    summary_points: List[str] = field(default_factory=list)

    def __hash__(self):
        """Identity is the content hash."""
        return hash(self.id)

    def __eq__(self, other):
        if not isinstance(other, Article):
            return False
        return self.id == other.id

    @property
    def is_enriched(self) -> bool:
        return bool(self.summary_points) or self.translated_title is not None

    def to_dict(self, now: Optional[datetime] = None, include_age: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        data["published_at"] = isoformat(self.published_at)
        if include_age:
            age = minutes_since(self.published_at, now)
            data["age_minutes"] = int(age) if age is not None else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Article":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            url=data.get("url", ""),
            source=data.get("source", ""),
            provider=data.get("provider", ""),
            description=data.get("description") or "",
            image=data.get("image"),
            source_domain=data.get("source_domain", ""),
            published_at=parse_published(data.get("published_at")),
            language=data.get("language", "en"),
            reactions=int(data.get("reactions") or 0),
            followers=int(data.get("followers") or 0),
            score=float(data.get("score") or 0.0),
            rating=float(data.get("rating") or 1.0),
            tags=list(data.get("tags") or []),
            section=data.get("section"),
            translated_title=data.get("translated_title"),
            summary_points=list(data.get("summary_points") or []),
        )


@dataclass
class CacheEntry:
    """One cached section result. Keys are always overwritten whole."""

    payload: List[Article]
    written_at: datetime
    partial: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payload": [a.to_dict() for a in self.payload],
            "written_at": self.written_at.isoformat(),
            "partial": self.partial,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        written_at = parse_published(data.get("written_at"))
        if written_at is None:
            raise ValueError("cache entry without written_at")
        return cls(
            payload=[Article.from_dict(a) for a in data.get("payload", [])],
            written_at=written_at,
            partial=bool(data.get("partial", False)),
        )


@dataclass
class SectionResult:
    articles: List[Article]
    partial: bool
    timestamp: datetime
    cached: bool = False
