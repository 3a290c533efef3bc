"""
Per-section configuration: sources, ranking weights, TTLs and recency horizon.

Loaded once at startup from ``config/sections.json`` and validated. Weight
vectors can be overridden per section with ``WEIGHTS_<SECTION>="f,v,e,s,d,l"``
and the default TTLs with ``FAST_REDIS_TTL_SEC`` / ``FULL_REDIS_TTL_SEC``.
Instances are frozen and never mutated after loading.
"""

import json
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(
    os.path.dirname(os.path.dirname(__file__)),
    'config',
    'sections.json'
)

KNOWN_PROVIDERS = ('newsapi', 'gnews', 'naver', 'reddit', 'youtube', 'rss')
SUPPORTED_LANGUAGES = ('en', 'ko', 'ja')
WEIGHT_KEYS = ('freshness', 'volume', 'engagement', 'source_trust', 'diversity', 'language')


class SectionConfigError(Exception):
    """Raised when the section configuration is malformed."""
    pass


class UnknownSectionError(Exception):
    """Raised when a caller asks for a section that is not configured."""

    def __init__(self, section: str, known: Iterable[str] = ()):
        self.section = section
        self.known = sorted(known)
        super().__init__(f"Unknown section '{section}'. Known sections: {', '.join(self.known)}")


@dataclass(frozen=True)
class RankingWeights:
    freshness: float
    volume: float
    engagement: float
    source_trust: float
    diversity: float = 0.0
    language: float = 0.0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], section: str) -> "RankingWeights":
        missing = [k for k in WEIGHT_KEYS if k not in data]
        if missing:
            raise SectionConfigError(f"Section '{section}' weights missing: {', '.join(missing)}")
        try:
            values = {k: float(data[k]) for k in WEIGHT_KEYS}
        except (TypeError, ValueError) as e:
            raise SectionConfigError(f"Section '{section}' has a non-numeric weight: {e}")
        weights = cls(**values)
        weights.validate(section)
        return weights

    @classmethod
    def parse_override(cls, raw: str, base: "RankingWeights") -> "RankingWeights":
        """
        Parse ``"f,v,e,s"`` or ``"f,v,e,s,d,l"``.

        A four-value override keeps the base diversity and language weights.
        """
        parts = [p.strip() for p in raw.split(',') if p.strip()]
        if len(parts) not in (4, len(WEIGHT_KEYS)):
            raise ValueError(f"expected 4 or {len(WEIGHT_KEYS)} comma-separated values, got {len(parts)}")
        values = [float(p) for p in parts]
        if any(v < 0 for v in values):
            raise ValueError("weights must be non-negative")
        return replace(base, **dict(zip(WEIGHT_KEYS, values)))

    def validate(self, section: str) -> None:
        for key in WEIGHT_KEYS:
            if getattr(self, key) < 0:
                raise SectionConfigError(f"Section '{section}' weight '{key}' is negative")

    def as_dict(self) -> Dict[str, float]:
        return {k: getattr(self, k) for k in WEIGHT_KEYS}


@dataclass(frozen=True)
class SourceSpec:
    """
    One fetchable source of a section.

    ``provider`` selects the fetcher and normalizer variant. RSS feeds use
    provider ``rss`` and carry ``url`` and ``name`` in ``options``.
    """
    provider: str
    phase: int
    options: Mapping[str, Any] = field(default_factory=dict, hash=False, compare=False)

    @property
    def source_id(self) -> str:
        label = (
            self.options.get('name')
            or self.options.get('path')
            or self.options.get('region_code')
            or self.options.get('country')
            or self.options.get('category')
            or self.options.get('topic')
            or self.options.get('query')
        )
        return f"{self.provider}:{label}" if label else self.provider


@dataclass(frozen=True)
class SectionConfig:
    name: str
    language: str
    recency_hours: float
    fast_ttl: int
    full_ttl: int
    weights: RankingWeights
    sources: Tuple[SourceSpec, ...] = ()

    def sources_for_phase(self, phase: int) -> List[SourceSpec]:
        return [s for s in self.sources if s.phase == phase]

    @property
    def provider_names(self) -> List[str]:
        seen: List[str] = []
        for spec in self.sources:
            if spec.provider not in seen:
                seen.append(spec.provider)
        return seen


class SectionRegistry:
    """Immutable lookup of configured sections, resolving aliases."""

    def __init__(self, sections: Dict[str, SectionConfig], aliases: Optional[Dict[str, str]] = None):
        self._sections = dict(sections)
        self._aliases = dict(aliases or {})
        for alias, target in self._aliases.items():
            if target not in self._sections:
                raise SectionConfigError(f"Alias '{alias}' points at unknown section '{target}'")

    def resolve(self, section: str) -> str:
        key = (section or '').strip().lower()
        key = self._aliases.get(key, key)
        if key not in self._sections:
            raise UnknownSectionError(section, self._sections.keys())
        return key

    def get(self, section: str) -> SectionConfig:
        return self._sections[self.resolve(section)]

    def names(self) -> List[str]:
        return list(self._sections.keys())

    def __contains__(self, section: str) -> bool:
        try:
            self.resolve(section)
        except UnknownSectionError:
            return False
        return True

    def __iter__(self):
        return iter(self._sections.values())

    def __len__(self) -> int:
        return len(self._sections)


def _positive_int(value: Any, what: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise SectionConfigError(f"{what} must be an integer, got {value!r}")
    if number <= 0:
        raise SectionConfigError(f"{what} must be positive, got {number}")
    return number


def _env_ttl(environ: Mapping[str, str], name: str) -> Optional[int]:
    raw = environ.get(name)
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"⚠️ Ignoring {name}={raw!r}: not an integer")
        return None
    if value <= 0:
        logger.warning(f"⚠️ Ignoring {name}={raw!r}: must be positive")
        return None
    return value


def _parse_sources(name: str, data: Mapping[str, Any]) -> Tuple[SourceSpec, ...]:
    specs: List[SourceSpec] = []

    for entry in data.get('providers', []):
        provider = entry.get('name')
        if provider not in KNOWN_PROVIDERS or provider == 'rss':
            raise SectionConfigError(f"Section '{name}' lists unknown provider {provider!r}")
        specs.append(SourceSpec(provider=provider, phase=entry.get('phase', 1), options=dict(entry.get('options', {}))))

    for feed in data.get('rss_feeds', []):
        if not feed.get('url'):
            raise SectionConfigError(f"Section '{name}' has an RSS feed without url")
        options = {'url': feed['url'], 'name': feed.get('name') or feed['url']}
        specs.append(SourceSpec(provider='rss', phase=feed.get('phase', 1), options=options))

    for spec in specs:
        if spec.phase not in (1, 2):
            raise SectionConfigError(f"Section '{name}' source {spec.source_id} has phase {spec.phase}, expected 1 or 2")

    return tuple(specs)


def parse_section(name: str, data: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None) -> SectionConfig:
    environ = os.environ if environ is None else environ

    language = data.get('language', 'en')
    if language not in SUPPORTED_LANGUAGES:
        raise SectionConfigError(f"Section '{name}' language {language!r} not in {SUPPORTED_LANGUAGES}")

    try:
        recency_hours = float(data.get('recency_hours', 12))
    except (TypeError, ValueError):
        raise SectionConfigError(f"Section '{name}' recency_hours must be a number")
    if recency_hours <= 0:
        raise SectionConfigError(f"Section '{name}' recency_hours must be positive")

    ttl = data.get('ttl', {})
    fast_ttl = _env_ttl(environ, 'FAST_REDIS_TTL_SEC') or _positive_int(ttl.get('fast', 60), f"Section '{name}' ttl.fast")
    full_ttl = _env_ttl(environ, 'FULL_REDIS_TTL_SEC') or _positive_int(ttl.get('full', 600), f"Section '{name}' ttl.full")

    weights = RankingWeights.from_mapping(data.get('weights', {}), name)
    override = environ.get(f"WEIGHTS_{name.upper()}")
    if override:
        try:
            weights = RankingWeights.parse_override(override, weights)
            logger.info(f"⚖️ Weights for '{name}' overridden from environment: {weights.as_dict()}")
        except ValueError as e:
            logger.warning(f"⚠️ Ignoring WEIGHTS_{name.upper()}={override!r}: {e}")

    return SectionConfig(
        name=name,
        language=language,
        recency_hours=recency_hours,
        fast_ttl=fast_ttl,
        full_ttl=full_ttl,
        weights=weights,
        sources=_parse_sources(name, data),
    )


def load_section_configs(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None
) -> SectionRegistry:
    """Load and validate every section from JSON, applying environment overrides."""
    config_path = config_path or DEFAULT_CONFIG_PATH
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise SectionConfigError(f"Failed to load section config from {config_path}: {e}")

    sections_raw = raw.get('sections')
    if not isinstance(sections_raw, dict) or not sections_raw:
        raise SectionConfigError(f"No sections defined in {config_path}")

    sections = {
        name.lower(): parse_section(name.lower(), data, environ)
        for name, data in sections_raw.items()
    }
    registry = SectionRegistry(sections, raw.get('aliases'))
    logger.info(f"Loaded {len(registry)} sections from {config_path}")
    return registry
