"""Concrete implementation of the response cache.

In-memory TTL cache for provider responses. A miss starts the producer as a
task and stores it under the key straight away, so concurrent callers for the
same key await one shared computation instead of each calling upstream.
Failed computations are dropped, never cached.
"""

import asyncio
import functools
import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

# Domain Layer Imports
from shiplink.domain.interfaces.cache import CacheService
from shiplink.domain.models.common import (
    CacheKey,
    CacheStats,
    SHIPPING_PREFIX,
    TRACKING_PREFIX,
    shipping_cache_key,
    stable_hash,
    tracking_cache_key,
)
from shiplink.infrastructure.background import PeriodicTask

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default Configuration Constants (overridable via settings, see main.create_dependencies)
DEFAULT_MAX_SIZE = 1000
DEFAULT_TTL_SECONDS = 5 * 60
TRACKING_TTL_SECONDS = 10 * 60
SHIPPING_TTL_SECONDS = 30 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60
EVICTION_FRACTION = 0.1


@dataclass
class CacheEntry:
    """Internal representation of a cache entry.

    While `in_flight` is set the entry holds no value yet; it is settled
    when the producer finishes.
    """
    key: CacheKey
    value: Any = None
    created_at: float = 0.0  # Last write, monotonic clock
    expires_at: float = 0.0
    in_flight: Optional["asyncio.Task[Any]"] = None

    @property
    def settled(self) -> bool:
        return self.in_flight is None

    def is_fresh(self, now: float) -> bool:
        return self.settled and self.expires_at > now


def _consume_exception(task: "asyncio.Task[Any]") -> None:
    # Every waiter may have been cancelled; retrieve the error so asyncio does not warn.
    if not task.cancelled():
        task.exception()


async def _batch_member(batch: "asyncio.Future[Dict[CacheKey, Any]]", key: CacheKey) -> Any:
    values = await asyncio.shield(batch)
    return values[key]


class ResponseCache(CacheService):
    """TTL cache with in-flight deduplication and capacity eviction."""

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        tracking_ttl: float = TRACKING_TTL_SECONDS,
        shipping_ttl: float = SHIPPING_TTL_SECONDS,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ):
        """Initializes the cache.

        Args:
            max_size: Entry count at which the oldest entries are evicted.
            default_ttl: TTL in seconds for keys without a known namespace.
            tracking_ttl: TTL in seconds for 'tracking:' keys.
            shipping_ttl: TTL in seconds for 'shipping:' keys.
            sweep_interval: Seconds between background expiry sweeps.
        """
        if max_size <= 0:
            raise ValueError("Cache max_size must be positive.")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.tracking_ttl = tracking_ttl
        self.shipping_ttl = shipping_ttl
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._sweeper = PeriodicTask("cache-sweep", sweep_interval, self.cleanup_expired_entries)
        logger.info(
            f"ResponseCache initialized: max_size={max_size}, ttl(default={default_ttl}s, "
            f"tracking={tracking_ttl}s, shipping={shipping_ttl}s), sweep every {sweep_interval}s"
        )

    # --- Lifecycle ---

    def start(self) -> None:
        """Starts the background sweep (no-op outside a running event loop)."""
        self._sweeper.start()

    async def close(self) -> None:
        await self._sweeper.stop()

    async def __aenter__(self) -> "ResponseCache":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # --- CacheService Interface Implementation ---

    def ttl_for(self, key: CacheKey) -> float:
        """Returns the default TTL of the key's namespace."""
        prefix = key.split(":", 1)[0]
        if prefix == TRACKING_PREFIX:
            return self.tracking_ttl
        if prefix == SHIPPING_PREFIX:
            return self.shipping_ttl
        return self.default_ttl

    async def get_or_compute(
        self,
        key: CacheKey,
        producer: Callable[[], Awaitable[T]],
        ttl: Optional[float] = None,
    ) -> T:
        self.start()
        now = time.monotonic()
        entry = self._entries.get(key)

        if entry is not None:
            if entry.in_flight is not None:
                self._hits += 1
                logger.debug(f"Joining in-flight computation for key: {key}")
                return await asyncio.shield(entry.in_flight)
            if entry.expires_at > now:
                self._hits += 1
                logger.debug(f"Cache hit for key: {key}")
                return entry.value

        self._misses += 1
        logger.debug(f"Cache miss for key: {key}, executing producer")
        if entry is None and len(self._entries) >= self.max_size:
            self._evict_oldest_entries()

        effective_ttl = ttl if ttl is not None else self.ttl_for(key)
        new_entry = CacheEntry(key=key, created_at=now, expires_at=now)
        task = asyncio.ensure_future(self._run_producer(new_entry, producer, effective_ttl))
        task.add_done_callback(_consume_exception)
        new_entry.in_flight = task
        # Stored before the first await so later callers find the task.
        self._entries[key] = new_entry
        return await asyncio.shield(task)

    async def _run_producer(
        self, entry: CacheEntry, producer: Callable[[], Awaitable[T]], ttl: float
    ) -> T:
        try:
            value = await producer()
        except BaseException as e:
            if self._entries.get(entry.key) is entry:
                del self._entries[entry.key]
            logger.debug(f"Producer failed for key: {entry.key} ({type(e).__name__}), nothing cached")
            raise

        now = time.monotonic()
        entry.value = value
        entry.created_at = now
        entry.expires_at = now + ttl
        entry.in_flight = None
        logger.debug(f"Cached data for key: {entry.key}, expires in {ttl}s")
        return value

    async def get_or_compute_many(
        self,
        keys: Sequence[CacheKey],
        producer: Callable[[List[CacheKey]], Awaitable[Dict[CacheKey, Any]]],
        ttl: Optional[float] = None,
    ) -> List[Any]:
        self.start()
        now = time.monotonic()
        settled: Dict[CacheKey, Any] = {}
        waiting: Dict[CacheKey, "asyncio.Task[Any]"] = {}
        missing: List[CacheKey] = []

        for key in dict.fromkeys(keys):
            entry = self._entries.get(key)
            if entry is not None and entry.in_flight is not None:
                self._hits += 1
                waiting[key] = entry.in_flight
            elif entry is not None and entry.expires_at > now:
                self._hits += 1
                settled[key] = entry.value
            else:
                self._misses += 1
                missing.append(key)

        if missing:
            logger.debug(f"Cache miss for {len(missing)} keys, executing batch producer")
            batch = asyncio.ensure_future(producer(list(missing)))
            batch.add_done_callback(_consume_exception)
            # Every missing key is registered before the first await.
            for key in missing:
                if key not in self._entries and len(self._entries) >= self.max_size:
                    self._evict_oldest_entries()
                effective_ttl = ttl if ttl is not None else self.ttl_for(key)
                new_entry = CacheEntry(key=key, created_at=now, expires_at=now)
                task = asyncio.ensure_future(
                    self._run_producer(new_entry, functools.partial(_batch_member, batch, key), effective_ttl)
                )
                task.add_done_callback(_consume_exception)
                new_entry.in_flight = task
                self._entries[key] = new_entry
                waiting[key] = task

        if waiting:
            outcomes = await asyncio.gather(
                *(asyncio.shield(task) for task in waiting.values()), return_exceptions=True
            )
            settled.update(zip(waiting, outcomes))
        return [settled[key] for key in keys]

    def get(self, key: CacheKey) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(time.monotonic()):
            return None
        return entry.value

    def set(self, key: CacheKey, value: Any, ttl: Optional[float] = None) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_oldest_entries()
        now = time.monotonic()
        effective_ttl = ttl if ttl is not None else self.ttl_for(key)
        self._entries[key] = CacheEntry(key=key, value=value, created_at=now, expires_at=now + effective_ttl)
        logger.debug(f"Manually cached data for key: {key}")

    def delete(self, key: CacheKey) -> bool:
        deleted = self._entries.pop(key, None) is not None
        if deleted:
            logger.debug(f"Deleted cache entry for key: {key}")
        return deleted

    def clear(self) -> None:
        size = len(self._entries)
        self._entries.clear()
        logger.info(f"Cleared {size} cache entries")

    def clear_by_pattern(self, pattern: str) -> int:
        """Deletes every entry whose key matches the regular expression."""
        regex = re.compile(pattern)
        matching = [key for key in self._entries if regex.search(key)]
        for key in matching:
            del self._entries[key]
        if matching:
            logger.debug(f"Cleared {len(matching)} cache entries matching pattern: {pattern}")
        return len(matching)

    def has(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.is_fresh(time.monotonic())

    def get_ttl(self, key: CacheKey) -> float:
        """Seconds left for key: -1 when absent, 0 when expired or still computing."""
        entry = self._entries.get(key)
        if entry is None:
            return -1
        if not entry.settled:
            return 0
        return max(0.0, entry.expires_at - time.monotonic())

    def stats(self) -> CacheStats:
        now = time.monotonic()
        expired = sum(1 for e in self._entries.values() if e.settled and e.expires_at <= now)
        in_flight = sum(1 for e in self._entries.values() if not e.settled)
        lookups = self._hits + self._misses
        return CacheStats(
            total_entries=len(self._entries),
            expired_entries=expired,
            in_flight=in_flight,
            hits=self._hits,
            misses=self._misses,
            hit_rate=(self._hits / lookups * 100) if lookups else 0.0,
        )

    def update_config(
        self,
        max_size: Optional[int] = None,
        default_ttl: Optional[float] = None,
        tracking_ttl: Optional[float] = None,
        shipping_ttl: Optional[float] = None,
    ) -> None:
        if max_size is not None:
            if max_size <= 0:
                raise ValueError("Cache max_size must be positive.")
            self.max_size = max_size
        if default_ttl is not None:
            self.default_ttl = default_ttl
        if tracking_ttl is not None:
            self.tracking_ttl = tracking_ttl
        if shipping_ttl is not None:
            self.shipping_ttl = shipping_ttl
        logger.info(
            f"Cache configuration updated: max_size={self.max_size}, default_ttl={self.default_ttl}s, "
            f"tracking_ttl={self.tracking_ttl}s, shipping_ttl={self.shipping_ttl}s"
        )

    # --- Namespaced helpers ---

    async def cache_tracking_data(
        self,
        tracking_number: str,
        producer: Callable[[], Awaitable[T]],
        last_update_only: bool = False,
    ) -> T:
        key = tracking_cache_key(tracking_number, last_update_only)
        return await self.get_or_compute(key, producer, self.tracking_ttl)

    async def cache_shipping_rates(
        self,
        origin: str,
        destination: str,
        package_hash: str,
        producer: Callable[[], Awaitable[T]],
    ) -> T:
        key = shipping_cache_key(origin, destination, package_hash)
        return await self.get_or_compute(key, producer, self.shipping_ttl)

    generate_hash = staticmethod(stable_hash)

    # --- Maintenance ---

    def cleanup_expired_entries(self) -> int:
        """Removes settled entries whose TTL has passed. Returns the count removed."""
        now = time.monotonic()
        expired = [key for key, entry in self._entries.items() if entry.settled and entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Cleaned up {len(expired)} expired cache entries")
        return len(expired)

    def _evict_oldest_entries(self) -> int:
        """Evicts the oldest 10% of entries by last write. In-flight entries are kept."""
        to_remove = math.ceil(len(self._entries) * EVICTION_FRACTION)
        candidates = sorted(
            (entry for entry in self._entries.values() if entry.settled),
            key=lambda entry: entry.created_at,
        )
        evicted = candidates[:to_remove]
        for entry in evicted:
            del self._entries[entry.key]
        if len(evicted) < to_remove:
            logger.warning(
                f"Cache full with {len(self._entries)} entries, only {len(evicted)} could be evicted"
            )
        logger.debug(f"Evicted {len(evicted)} oldest cache entries")
        return len(evicted)
