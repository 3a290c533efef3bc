"""
Staged fetch orchestration for a section.

Fast mode answers from whatever phase-1 sources finish within a short
deadline, caches that partial result and refines it in a detached phase-2
task. Full mode waits for every source. Cache hits older than the revalidate
window are served as-is and refreshed in the background.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Protocol, Sequence, Set, Tuple

from newswire.models.content import Article, CacheEntry, SectionResult
from newswire.pipeline.section_config import SectionConfig, SectionRegistry
from newswire.services.cache_service import StalenessCache
from newswire.services.deduplication_service import DeduplicationService
from newswire.services.enrichment_service import EnrichmentService
from newswire.services.normalizer import normalize_items
from newswire.services.recency_filter import filter_recent
from newswire.services.source_ranking_service import SourceRankingService
from newswire.utils.dates import utc_now
from newswire.utils.error_monitoring import ErrorHandler
from newswire.utils.logging_config import PerformanceTracker, log_pipeline_metrics

MODES = ("fast", "full")


class Fetcher(Protocol):
    provider: str

    @property
    def source_id(self) -> str: ...

    @property
    def phase(self) -> int: ...

    def fetch(self, section: str) -> Awaitable[List[Dict[str, Any]]]: ...


@dataclass
class FetchTimings:
    """Deadlines and sizes of the staged fetch, in seconds and item counts."""
    phase1_deadline: float = 0.6
    phase2_deadline: float = 1.5
    first_batch_size: int = 24
    full_max: int = 100
    source_timeout: float = 8.0
    enrich_timeout: float = 20.0
    revalidate_after: float = 300.0

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> "FetchTimings":
        env = os.environ if environ is None else environ
        defaults = cls()
        logger = logging.getLogger(__name__)

        def number(name: str, default: float, scale: float = 1.0) -> float:
            raw = env.get(name)
            if not raw:
                return default
            try:
                value = float(raw) * scale
            except ValueError:
                logger.warning(f"⚠️ Ignoring {name}={raw!r}: not a number")
                return default
            if value <= 0:
                logger.warning(f"⚠️ Ignoring {name}={raw!r}: must be positive")
                return default
            return value

        return cls(
            phase1_deadline=number('FAST_PHASE1_DEADLINE_MS', defaults.phase1_deadline, 0.001),
            phase2_deadline=number('FAST_PHASE2_DEADLINE_MS', defaults.phase2_deadline, 0.001),
            first_batch_size=int(number('FAST_FIRST_BATCH_SIZE', defaults.first_batch_size)),
            full_max=int(number('FAST_FULL_MAX', defaults.full_max)),
            source_timeout=number('SOURCE_TIMEOUT_MS', defaults.source_timeout, 0.001),
            enrich_timeout=number('ENRICH_TIMEOUT_SEC', defaults.enrich_timeout),
            revalidate_after=number('REVALIDATE_AFTER_SEC', defaults.revalidate_after),
        )


@dataclass
class FetchResult:
    """Result from one source fetch"""
    source: str
    section: str
    items: List[Article]
    fetch_time: float
    error: Optional[str] = None


@dataclass
class RunReport:
    section: str
    mode: str
    phase: str
    finished_at: datetime
    duration_ms: float
    sources_done: int
    sources_pending: int
    articles: int
    errors: List[str] = field(default_factory=list)


def cache_key(section: str, mode: str) -> str:
    return f"{section}_{mode}"


class ContentAggregator:
    """
    Runs the fetch phases for a section and keeps the section cache current.

    The cache, ranker and fetchers are injected. Background work (phase 2 and
    revalidation) runs in tracked tasks with their own error boundary.
    """

    def __init__(
        self,
        registry: SectionRegistry,
        fetchers: Mapping[str, Sequence[Fetcher]],
        cache: StalenessCache,
        ranker: SourceRankingService,
        deduplicator: Optional[DeduplicationService] = None,
        enricher: Optional[EnrichmentService] = None,
        timings: Optional[FetchTimings] = None,
        error_handler: Optional[ErrorHandler] = None,
    ) -> None:
        self.registry = registry
        self.fetchers = {name: list(fs) for name, fs in fetchers.items()}
        self.cache = cache
        self.ranker = ranker
        self.deduplicator = deduplicator or DeduplicationService()
        self.enricher = enricher
        self.timings = timings or FetchTimings()
        self.error_handler = error_handler or ErrorHandler()

        self._background: Set[asyncio.Task] = set()
        self._in_flight: Set[asyncio.Task] = set()
        self._revalidating: Set[str] = set()
        self.last_runs: Dict[str, RunReport] = {}

        self.logger = logging.getLogger(__name__)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    # Public API

    async def get_section(self, section: str, mode: str = "fast") -> SectionResult:
        config = self.registry.get(section)
        if mode not in MODES:
            raise ValueError(f"Unknown mode '{mode}', expected one of {MODES}")
        key = cache_key(config.name, mode)

        entry = await self.cache.get(key)
        if entry is not None:
            age = (utc_now() - entry.written_at).total_seconds()
            if age > self.timings.revalidate_after:
                self._schedule_revalidation(config, mode)
            self.logger.debug(f"🎯 Cache hit '{key}' (partial={entry.partial}, age={age:.0f}s)")
            return SectionResult(entry.payload, entry.partial, entry.written_at, cached=True)

        self.logger.info(f"🔄 Cache miss '{key}', fetching")
        if mode == "full":
            return await self._refresh_complete(config, mode)
        return await self._fast_path(config)

    async def refresh(self, section: str, mode: str = "full") -> SectionResult:
        """Bypass the cache and rebuild a section entry from every source."""
        config = self.registry.get(section)
        if mode not in MODES:
            raise ValueError(f"Unknown mode '{mode}', expected one of {MODES}")
        return await self._refresh_complete(config, mode)

    @property
    def background_tasks(self) -> int:
        return len(self._background)

    @property
    def fetches_in_flight(self) -> int:
        return len(self._in_flight)

    async def wait_for_background(self) -> None:
        """Wait until phase-2, revalidation and every started fetch have finished."""
        while self._background or self._in_flight:
            await asyncio.gather(*list(self._background | self._in_flight), return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._background | self._in_flight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            self.logger.info(f"🛑 Cancelled {len(tasks)} background tasks")

    # Phases

    async def _fast_path(self, config: SectionConfig) -> SectionResult:
        key = cache_key(config.name, "fast")
        phase1 = [f for f in self._fetchers_for(config) if f.phase == 1]

        with PerformanceTracker(f"{config.name} phase 1", self.logger) as tracker:
            tasks = self._start_fetches(config, phase1)
            results, pending = await self._collect(tasks, self.timings.phase1_deadline)
            ranked = self._process(config, self._articles(results), stage="phase1")
            first_batch = ranked[: self.timings.first_batch_size]

            written_at = utc_now()
            await self.cache.set(key, CacheEntry(first_batch, written_at, partial=True), config.fast_ttl)

        self._record_run(config, "fast", "phase1", tracker.duration_ms, results, pending, len(first_batch))
        if pending:
            self.logger.info(f"⏳ {config.name} phase 1: {len(pending)} sources still running, handed to phase 2")

        # Unfinished phase-1 fetches carry over into phase 2
        self._spawn(self._phase_two(config, key, ranked, pending), name=f"phase2:{config.name}")
        return SectionResult(first_batch, True, written_at)

    async def _phase_two(
        self,
        config: SectionConfig,
        key: str,
        phase1_ranked: List[Article],
        carried: Set[asyncio.Task],
    ) -> None:
        try:
            with PerformanceTracker(f"{config.name} phase 2", self.logger) as tracker:
                phase2 = [f for f in self._fetchers_for(config) if f.phase == 2]
                tasks = list(carried) + self._start_fetches(config, phase2)
                results, pending = await self._collect(tasks, self.timings.phase2_deadline)

                merged = phase1_ranked + self._articles(results)
                ranked = self._process(config, merged, stage="phase2")[: self.timings.full_max]
                ranked = await self._enrich(config, ranked)

                await self.cache.set(key, CacheEntry(ranked, utc_now(), partial=False), config.full_ttl)

            self._record_run(config, "fast", "phase2", tracker.duration_ms, results, pending, len(ranked))
            self.logger.info(f"✅ {config.name} phase 2 cached {len(ranked)} articles ({len(pending)} sources abandoned)")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error_handler.handle_error(e, f"phase2:{config.name}", "refine")
            self.logger.error(f"❌ Phase 2 for '{config.name}' failed, keeping phase-1 entry: {e}")

    async def _refresh_complete(self, config: SectionConfig, mode: str) -> SectionResult:
        """Single phase over every source, each bounded by its own timeout."""
        key = cache_key(config.name, mode)

        with PerformanceTracker(f"{config.name} {mode} refresh", self.logger) as tracker:
            tasks = self._start_fetches(config, self._fetchers_for(config))
            results, pending = await self._collect(tasks, None)
            ranked = self._process(config, self._articles(results), stage=f"{mode}_refresh")[: self.timings.full_max]
            ranked = await self._enrich(config, ranked)

            written_at = utc_now()
            await self.cache.set(key, CacheEntry(ranked, written_at, partial=False), config.full_ttl)

        self._record_run(config, mode, "complete", tracker.duration_ms, results, pending, len(ranked))
        return SectionResult(ranked, False, written_at)

    def _schedule_revalidation(self, config: SectionConfig, mode: str) -> None:
        key = cache_key(config.name, mode)
        if key in self._revalidating:
            return
        self._revalidating.add(key)

        async def revalidate() -> None:
            try:
                await self._refresh_complete(config, mode)
                self.logger.info(f"♻️ Revalidated '{key}'")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.error_handler.handle_error(e, f"revalidate:{config.name}", mode)
                self.logger.error(f"❌ Revalidation of '{key}' failed: {e}")
            finally:
                self._revalidating.discard(key)

        self._spawn(revalidate(), name=f"revalidate:{key}")

    # Fetch helpers

    def _fetchers_for(self, config: SectionConfig) -> List[Fetcher]:
        return self.fetchers.get(config.name, [])

    def _start_fetches(self, config: SectionConfig, fetchers: Sequence[Fetcher]) -> List[asyncio.Task]:
        tasks = []
        for f in fetchers:
            task = asyncio.create_task(self._fetch_one(config, f), name=f"fetch:{f.source_id}")
            self._in_flight.add(task)
            task.add_done_callback(self._fetch_finished)
            tasks.append(task)
        return tasks

    async def _collect(
        self,
        tasks: Sequence[asyncio.Task],
        deadline: Optional[float],
    ) -> Tuple[List[FetchResult], Set[asyncio.Task]]:
        """Wait for tasks up to the deadline. Unfinished tasks are returned, not cancelled."""
        if not tasks:
            return [], set()
        done, pending = await asyncio.wait(tasks, timeout=deadline)
        results = [t.result() for t in done if not t.cancelled() and t.exception() is None]
        return results, pending

    async def _fetch_one(self, config: SectionConfig, fetcher: Fetcher) -> FetchResult:
        loop = asyncio.get_running_loop()
        start = loop.time()
        try:
            raw = await asyncio.wait_for(fetcher.fetch(config.name), timeout=self.timings.source_timeout)
            items = normalize_items(fetcher.provider, raw or [])
            return FetchResult(fetcher.source_id, config.name, items, loop.time() - start)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error_handler.handle_error(e, fetcher.source_id, f"fetch:{config.name}")
            return FetchResult(fetcher.source_id, config.name, [], loop.time() - start, error=str(e) or type(e).__name__)

    def _fetch_finished(self, task: asyncio.Task) -> None:
        # Fetches abandoned after phase 2 finish here and their results are dropped
        self._in_flight.discard(task)
        if not task.cancelled():
            task.exception()

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # Processing

    @staticmethod
    def _articles(results: List[FetchResult]) -> List[Article]:
        articles: List[Article] = []
        for result in results:
            articles.extend(result.items)
        return articles

    def _process(self, config: SectionConfig, articles: List[Article], stage: str) -> List[Article]:
        with PerformanceTracker(f"{config.name} {stage} processing", self.logger) as tracker:
            now = utc_now()
            recent = filter_recent(articles, config.recency_hours, now)
            unique = self.deduplicator.deduplicate(recent)
            ranked = self.ranker.rank(config, unique, now)

        log_pipeline_metrics(
            self.logger,
            f"{config.name}/{stage}",
            input_count=len(articles),
            output_count=len(ranked),
            duration_ms=tracker.duration_ms,
            recent=len(recent),
            unique=len(unique),
        )
        return ranked

    async def _enrich(self, config: SectionConfig, articles: List[Article]) -> List[Article]:
        if self.enricher is None or not articles:
            return articles
        try:
            return await asyncio.wait_for(
                self.enricher.enrich_many(articles, config.language),
                timeout=self.timings.enrich_timeout
            )
        except asyncio.TimeoutError:
            self.logger.warning(f"⏱️ Enrichment for '{config.name}' timed out after {self.timings.enrich_timeout:.0f}s, keeping plain articles")
        except Exception as e:
            self.error_handler.handle_error(e, "enrichment", f"enrich:{config.name}")
        return articles

    def _record_run(
        self,
        config: SectionConfig,
        mode: str,
        phase: str,
        duration_ms: float,
        results: List[FetchResult],
        pending: Set[asyncio.Task],
        article_count: int,
    ) -> None:
        self.last_runs[f"{config.name}_{mode}_{phase}"] = RunReport(
            section=config.name,
            mode=mode,
            phase=phase,
            finished_at=utc_now(),
            duration_ms=duration_ms,
            sources_done=len(results),
            sources_pending=len(pending),
            articles=article_count,
            errors=[f"{r.source}: {r.error}" for r in results if r.error],
        )
