"""Interface for response caching.

Defines the contract for storing, retrieving and deduplicating provider
responses with per-entry TTLs.
"""

import abc
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

# Import relevant domain models
from ..models.common import CacheKey, CacheStats

T = TypeVar("T")


class CacheService(abc.ABC):
    """Abstract Base Class for caching operations."""

    @abc.abstractmethod
    async def get_or_compute(
        self,
        key: CacheKey,
        producer: Callable[[], Awaitable[T]],
        ttl: Optional[float] = None,
    ) -> T:
        """Returns the cached value for key, computing it at most once.

        Concurrent callers asking for a key whose producer is still running
        share that single computation. Failed computations are not cached.

        Args:
            key: The cache key.
            producer: Zero-argument coroutine function computing the value.
            ttl: Time-to-live in seconds (namespace default if None).

        Returns:
            The cached or freshly computed value.

        Raises:
            Exception: Whatever the producer raised, unchanged.
        """
        pass

    @abc.abstractmethod
    async def get_or_compute_many(
        self,
        keys: Sequence[CacheKey],
        producer: Callable[[List[CacheKey]], Awaitable[Dict[CacheKey, Any]]],
        ttl: Optional[float] = None,
    ) -> List[Any]:
        """Batch form of get_or_compute.

        Fresh keys are served from the cache and keys already being computed
        join that computation. The remaining keys are computed by a single
        producer call, which is registered as in flight for each of them.

        Args:
            keys: The cache keys, possibly repeated.
            producer: Coroutine function mapping the missing keys to values.
            ttl: Time-to-live in seconds (namespace default if None).

        Returns:
            One outcome per key in request order: the value, or the exception
            its computation raised.
        """
        pass

    @abc.abstractmethod
    def get(self, key: CacheKey) -> Optional[Any]:
        """Returns a settled, unexpired value without computing anything."""
        pass

    @abc.abstractmethod
    def set(self, key: CacheKey, value: Any, ttl: Optional[float] = None) -> None:
        """Stores a value under key.

        Args:
            key: The cache key to store the item under.
            value: The item to store.
            ttl: Time-to-live in seconds (namespace default if None).
        """
        pass

    @abc.abstractmethod
    def delete(self, key: CacheKey) -> bool:
        """Deletes an entry. Returns True if something was removed."""
        pass

    @abc.abstractmethod
    def clear(self) -> None:
        """Removes every entry."""
        pass

    @abc.abstractmethod
    def stats(self) -> CacheStats:
        """Returns a snapshot of the cache for health checks and operators."""
        pass
