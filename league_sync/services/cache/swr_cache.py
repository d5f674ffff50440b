"""
In-process TTL cache with stale-while-revalidate reads.

Each entry records when it was written. Reads classify it by age:

- age < stale_after: fresh, returned as is
- stale_after <= age < expire_after: stale, returned immediately while one
  background refresh is started for the key
- otherwise (or no entry): the loader is awaited; if it fails and an expired
  value exists, that value is returned instead of the error

Starting a new refresh for a key cancels the one already in flight.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from league_sync.core import metrics
from league_sync.services.cache.mirror import JsonFileMirror

logger = logging.getLogger(__name__)

Loader = Callable[[str], Awaitable[Any]]


class CacheState(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    MISS = "miss"
    EXPIRED = "expired"  # load failed, expired value served


@dataclass
class CacheEntry:
    value: Any
    written_at: float


@dataclass
class CacheLookup:
    state: CacheState
    value: Any = None
    age: Optional[float] = None


class SwrCache:
    """
    Keyed cache with fresh/stale/miss semantics.

    Args:
        name: Label used in logs and metrics
        stale_after: Seconds after which an entry is served stale
        expire_after: Seconds after which an entry must be reloaded
        mirror: Optional durable mirror written on every set
        clock: Wall clock in seconds, injectable for tests
    """

    def __init__(
        self,
        name: str,
        stale_after: float,
        expire_after: float,
        mirror: Optional[JsonFileMirror] = None,
        clock: Callable[[], float] = time.time,
    ):
        if stale_after > expire_after:
            raise ValueError("stale_after must not exceed expire_after")
        self.name = name
        self.stale_after = stale_after
        self.expire_after = expire_after
        self.mirror = mirror
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._stats = {
            'hits': 0,
            'stale_hits': 0,
            'misses': 0,
            'fallbacks': 0,
            'refreshes': 0,
            'refresh_failures': 0,
            'cancelled_refreshes': 0,
        }
        self._load_ms_total = 0.0
        self._loads = 0

    # ========================================================================
    # Reads
    # ========================================================================

    def peek(self, key: str) -> Optional[CacheEntry]:
        """The raw entry, regardless of age."""
        return self._entries.get(key)

    def age_of(self, key: str) -> Optional[float]:
        entry = self._entries.get(key)
        return None if entry is None else self.clock() - entry.written_at

    async def get(self, key: str, loader: Optional[Loader] = None) -> CacheLookup:
        """
        Look a key up, loading or refreshing through `loader` as needed.

        Without a loader a stale entry is still returned as STALE but no
        refresh can start, and an expired or absent entry yields MISS.

        Raises:
            Whatever the loader raised, when there is no value to fall back on
        """
        entry = self._entries.get(key)
        age = None if entry is None else self.clock() - entry.written_at

        if entry is not None and age < self.stale_after:
            self._count('hits', CacheState.FRESH)
            return CacheLookup(CacheState.FRESH, entry.value, age)

        if entry is not None and age < self.expire_after:
            self._count('stale_hits', CacheState.STALE)
            if loader is not None and not self.is_refreshing(key):
                self._start_refresh(key, loader)
            return CacheLookup(CacheState.STALE, entry.value, age)

        self._count('misses', CacheState.MISS)
        if loader is None:
            return CacheLookup(CacheState.MISS, None, age)

        self._cancel_inflight(key)
        try:
            value = await self._load(key, loader)
        except Exception as e:
            self._stats['refresh_failures'] += 1
            metrics.cache_refresh_failures_total.labels(cache=self.name).inc()
            if entry is None:
                raise
            self._stats['fallbacks'] += 1
            logger.warning(f"[{self.name}] load for {key} failed, serving expired value: {e}")
            return CacheLookup(CacheState.EXPIRED, entry.value, age)

        self.set(key, value)
        return CacheLookup(CacheState.MISS, value, 0.0)

    # ========================================================================
    # Writes
    # ========================================================================

    def set(self, key: str, value: Any, written_at: Optional[float] = None) -> None:
        """Store a value and mirror it when a durable mirror is configured."""
        entry = CacheEntry(value=value, written_at=self.clock() if written_at is None else written_at)
        self._entries[key] = entry
        if self.mirror is not None:
            try:
                self.mirror.save(key, value, entry.written_at)
            except (OSError, TypeError, ValueError) as e:
                logger.warning(f"[{self.name}] mirror write for {key} failed: {e}")

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one key, or everything when key is None."""
        if key is None:
            for pending in list(self._inflight):
                self._cancel_inflight(pending)
            self._entries.clear()
            if self.mirror is not None:
                self.mirror.clear()
            return

        self._cancel_inflight(key)
        self._entries.pop(key, None)
        if self.mirror is not None:
            self.mirror.delete(key)

    def rehydrate(self) -> int:
        """
        Load entries from the durable mirror.

        Only entries younger than expire_after are restored; the original
        write time is kept so their age carries over.

        Returns:
            Number of entries restored
        """
        if self.mirror is None:
            return 0
        now = self.clock()
        restored = 0
        for key, (value, written_at) in self.mirror.load().items():
            if now - written_at < self.expire_after:
                self._entries[key] = CacheEntry(value=value, written_at=written_at)
                restored += 1
        if restored:
            logger.info(f"[{self.name}] rehydrated {restored} entries from mirror")
        return restored

    # ========================================================================
    # Refresh
    # ========================================================================

    def refresh(self, key: str, loader: Loader) -> asyncio.Task:
        """Start a background refresh, cancelling any in flight for the key."""
        self._cancel_inflight(key)
        return self._start_refresh(key, loader)

    def is_refreshing(self, key: str) -> bool:
        task = self._inflight.get(key)
        return task is not None and not task.done()

    async def drain(self) -> None:
        """Wait for every background refresh in flight to finish."""
        tasks = [t for t in self._inflight.values() if not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _start_refresh(self, key: str, loader: Loader) -> asyncio.Task:
        task = asyncio.create_task(self._run_refresh(key, loader))
        self._inflight[key] = task
        self._stats['refreshes'] += 1
        return task

    def _cancel_inflight(self, key: str) -> None:
        task = self._inflight.pop(key, None)
        if task is not None and not task.done():
            task.cancel()
            self._stats['cancelled_refreshes'] += 1
            logger.debug(f"[{self.name}] cancelled superseded refresh for {key}")

    async def _run_refresh(self, key: str, loader: Loader) -> None:
        try:
            value = await self._load(key, loader)
            self.set(key, value)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._stats['refresh_failures'] += 1
            metrics.cache_refresh_failures_total.labels(cache=self.name).inc()
            logger.warning(f"[{self.name}] background refresh for {key} failed: {e}")
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]

    async def _load(self, key: str, loader: Loader) -> Any:
        started = time.perf_counter()
        try:
            return await loader(key)
        finally:
            self._load_ms_total += (time.perf_counter() - started) * 1000
            self._loads += 1

    # ========================================================================
    # Stats
    # ========================================================================

    def _count(self, stat: str, state: CacheState) -> None:
        self._stats[stat] += 1
        metrics.record_cache_lookup(self.name, state.value)

    def stats(self) -> Dict[str, Any]:
        lookups = self._stats['hits'] + self._stats['stale_hits'] + self._stats['misses']
        return {
            **self._stats,
            'size': len(self._entries),
            'keys': sorted(self._entries),
            'refreshing': sorted(k for k in self._inflight if self.is_refreshing(k)),
            'hit_rate': (self._stats['hits'] + self._stats['stale_hits']) / lookups if lookups else 0.0,
            'average_load_ms': self._load_ms_total / self._loads if self._loads else 0.0,
        }

    def keys(self) -> List[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
