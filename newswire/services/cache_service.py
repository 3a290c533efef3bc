from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

import aiosqlite

from newswire.models.content import CacheEntry
from newswire.utils.error_monitoring import CircuitBreaker, ErrorHandler

CACHE_SERVICE_NAME = "cache"


class CacheBackend:
    """Key/value store over opaque string keys and JSON string values."""

    name = "abstract"

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        raise NotImplementedError

    async def clear(self) -> int:
        raise NotImplementedError

    async def count(self) -> int:
        raise NotImplementedError


class MemoryCacheBackend(CacheBackend):
    """
    Process-local map with per-key expiry.

    Each write schedules a ``call_later`` eviction timer and cancels the
    timer of the value it replaces, so an old timer never evicts a newer
    value. Reads also check the deadline in case no loop was running.
    """

    name = "memory"

    def __init__(self) -> None:
        self._data: Dict[str, Tuple[str, float]] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    async def get(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if time.monotonic() >= expires_at:
            self._evict(key)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        old_timer = self._timers.pop(key, None)
        if old_timer is not None:
            old_timer.cancel()

        self._data[key] = (value, time.monotonic() + ttl_seconds)
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(ttl_seconds, self._evict, key)

    def _evict(self, key: str) -> None:
        self._data.pop(key, None)
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    async def clear(self) -> int:
        removed = len(self._data)
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._data.clear()
        return removed

    async def count(self) -> int:
        now = time.monotonic()
        return sum(1 for _, expires_at in self._data.values() if expires_at > now)


class SqliteCacheBackend(CacheBackend):
    """
    Persistent backend on a SQLite file, shared by every process on the host.

    Expiry is wall-clock based so that all processes agree on it.
    """

    name = "sqlite"

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self.logger = logging.getLogger(__name__)

    async def initialize_db(self) -> None:
        """Create the cache table if needed."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at REAL NOT NULL
                )
                """
            )
            await db.execute("CREATE INDEX IF NOT EXISTS idx_cache_expires ON cache_entries(expires_at)")
            await db.commit()
        self.logger.info(f"SQLite cache ready at {self.db_path}")

    async def get(self, key: str) -> Optional[str]:
        async with aiosqlite.connect(self.db_path) as db:
            cur = await db.execute(
                "SELECT value, expires_at FROM cache_entries WHERE key = ?",
                (key,)
            )
            row = await cur.fetchone()
            if row is None:
                return None
            value, expires_at = row
            if expires_at <= time.time():
                await db.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
                await db.commit()
                return None
            return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO cache_entries (key, value, expires_at) VALUES (?, ?, ?)",
                (key, value, time.time() + ttl_seconds)
            )
            await db.commit()

    async def clear(self) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            cur = await db.execute("DELETE FROM cache_entries")
            await db.commit()
            return cur.rowcount if cur.rowcount is not None else 0

    async def count(self) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            cur = await db.execute(
                "SELECT COUNT(*) FROM cache_entries WHERE expires_at > ?",
                (time.time(),)
            )
            row = await cur.fetchone()
            return row[0] if row else 0


class StalenessCache:
    """
    Section cache with a persistent backend and an in-memory fallback.

    A persistent-backend failure never reaches the caller: reads and writes
    switch to the memory backend, and the circuit breaker decides when the
    persistent backend is tried again.
    """

    def __init__(
        self,
        persistent: Optional[CacheBackend] = None,
        memory: Optional[MemoryCacheBackend] = None,
        breaker: Optional[CircuitBreaker] = None,
        error_handler: Optional[ErrorHandler] = None,
    ) -> None:
        self.persistent = persistent
        self.memory = memory or MemoryCacheBackend()
        self.breaker = breaker or CircuitBreaker(failure_threshold=1, recovery_timeout=timedelta(seconds=30))
        self.error_handler = error_handler or ErrorHandler()
        self.stats: Dict[str, int] = {"hits": 0, "misses": 0, "writes": 0, "fallbacks": 0}
        self._pending_clear = False
        self.logger = logging.getLogger(__name__)

    async def initialize(self) -> None:
        if self.persistent is None:
            self.logger.info("💾 Cache running on process memory only")
            return
        initialize_db = getattr(self.persistent, "initialize_db", None)
        if initialize_db is None:
            return
        try:
            await initialize_db()
            self.breaker.record_success(CACHE_SERVICE_NAME)
        except Exception as e:
            self._record_backend_failure(e, "initialize")

    @property
    def degraded(self) -> bool:
        return self.persistent is not None and self.breaker.is_open(CACHE_SERVICE_NAME)

    def _use_persistent(self) -> bool:
        return self.persistent is not None and self.breaker.should_attempt(CACHE_SERVICE_NAME)

    async def _persistent_ready(self) -> bool:
        """
        True when the persistent backend may serve the next call.

        A clear that failed while the backend was down is replayed here first,
        so no entry written before that clear is served after recovery.
        """
        if not self._use_persistent():
            return False
        if not self._pending_clear:
            return True
        try:
            removed = await self.persistent.clear()
        except Exception as e:
            self._record_backend_failure(e, "clear")
            return False
        self._pending_clear = False
        self.breaker.record_success(CACHE_SERVICE_NAME)
        self.logger.warning(f"🧹 Applied pending cache clear to {self.persistent.name}: {removed} entries")
        return True

    def _record_backend_failure(self, error: Exception, operation: str) -> None:
        self.stats["fallbacks"] += 1
        self.breaker.record_failure(CACHE_SERVICE_NAME)
        self.error_handler.handle_error(error, CACHE_SERVICE_NAME, operation)
        self.logger.warning(f"⚠️ Persistent cache {operation} failed, using memory backend: {error!r}")

    def _decode(self, key: str, raw: Optional[str]) -> Optional[CacheEntry]:
        if raw is None:
            return None
        try:
            return CacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Discarding undecodable cache entry '{key}': {e}")
            return None

    async def get(self, key: str) -> Optional[CacheEntry]:
        candidates = []
        if await self._persistent_ready():
            try:
                candidates.append(self._decode(key, await self.persistent.get(key)))
                self.breaker.record_success(CACHE_SERVICE_NAME)
            except Exception as e:
                self._record_backend_failure(e, "get")
        # Writes made while the backend was down live only in memory
        candidates.append(self._decode(key, await self.memory.get(key)))

        entries = [c for c in candidates if c is not None]
        if not entries:
            self.stats["misses"] += 1
            return None
        self.stats["hits"] += 1
        return max(entries, key=lambda e: e.written_at)

    async def set(self, key: str, entry: CacheEntry, ttl_seconds: int) -> None:
        value = json.dumps(entry.to_dict(), ensure_ascii=False)
        self.stats["writes"] += 1

        if await self._persistent_ready():
            try:
                await self.persistent.set(key, value, ttl_seconds)
                self.breaker.record_success(CACHE_SERVICE_NAME)
                self.logger.debug(f"💾 Cached '{key}' (partial={entry.partial}, {len(entry.payload)} items, ttl={ttl_seconds}s)")
                return
            except Exception as e:
                self._record_backend_failure(e, "set")

        await self.memory.set(key, value, ttl_seconds)
        self.logger.debug(f"💾 Cached '{key}' in memory (partial={entry.partial}, {len(entry.payload)} items, ttl={ttl_seconds}s)")

    async def clear(self) -> Dict[str, int]:
        cleared = {"memory": await self.memory.clear(), "persistent": 0}
        if self.persistent is not None:
            # Attempted even with the circuit open; a failure is replayed on recovery
            try:
                cleared["persistent"] = await self.persistent.clear()
                self._pending_clear = False
                self.breaker.record_success(CACHE_SERVICE_NAME)
            except Exception as e:
                self._pending_clear = True
                self._record_backend_failure(e, "clear")
        self.logger.warning(f"🧹 Cache cleared: {cleared}" + (" (persistent clear pending)" if self._pending_clear else ""))
        return cleared

    async def status(self) -> Dict[str, Any]:
        """Read-only report of the active backend."""
        report: Dict[str, Any] = {
            "backend": self.persistent.name if self._use_persistent() else self.memory.name,
            "persistent_configured": self.persistent is not None,
            "degraded": self.degraded,
            "memory_keys": await self.memory.count(),
            "stats": dict(self.stats),
        }
        if self.persistent is not None:
            report["db_path"] = getattr(self.persistent, "db_path", None)
            report["pending_clear"] = self._pending_clear
            if self._use_persistent():
                try:
                    report["persistent_keys"] = await self.persistent.count()
                except Exception as e:
                    self._record_backend_failure(e, "status")
                    report["backend"] = self.memory.name
                    report["degraded"] = True
        return report
