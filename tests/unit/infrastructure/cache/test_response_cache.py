import asyncio

import pytest

from shiplink.domain.errors import TransportError
from shiplink.domain.models.common import CacheKey
from shiplink.infrastructure.cache.caching_service import ResponseCache


def make_producer(value="fresh", delay=0.0):
    calls = {"count": 0}

    async def producer():
        calls["count"] += 1
        if delay:
            await asyncio.sleep(delay)
        return f"{value}-{calls['count']}"

    return producer, calls


async def test_concurrent_callers_share_one_computation(cache: ResponseCache):
    """Concurrent misses for the same key run the producer once."""
    producer, calls = make_producer(delay=0.05)
    key = CacheKey("tracking:123")

    results = await asyncio.gather(*(cache.get_or_compute(key, producer) for _ in range(5)))

    assert results == ["fresh-1"] * 5
    assert calls["count"] == 1
    assert cache.stats()["in_flight"] == 0


async def test_hit_returns_cached_value(cache: ResponseCache):
    producer, calls = make_producer()
    key = CacheKey("tracking:123")

    assert await cache.get_or_compute(key, producer) == "fresh-1"
    assert await cache.get_or_compute(key, producer) == "fresh-1"
    assert calls["count"] == 1
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 50.0


async def test_expired_entry_is_recomputed(cache: ResponseCache):
    """An expired value is never served."""
    producer, calls = make_producer()
    key = CacheKey("custom:key")

    assert await cache.get_or_compute(key, producer, ttl=0.01) == "fresh-1"
    await asyncio.sleep(0.03)
    assert cache.get(key) is None
    assert await cache.get_or_compute(key, producer, ttl=0.01) == "fresh-2"
    assert calls["count"] == 2


async def test_failed_producer_is_not_cached(cache: ResponseCache):
    key = CacheKey("tracking:fails")
    attempts = {"count": 0}

    async def flaky():
        attempts["count"] += 1
        if attempts["count"] == 1:
            raise TransportError("upstream down")
        return "recovered"

    with pytest.raises(TransportError, match="upstream down"):
        await cache.get_or_compute(key, flaky)
    assert cache.get_ttl(key) == -1

    assert await cache.get_or_compute(key, flaky) == "recovered"
    assert attempts["count"] == 2


async def test_failure_reaches_every_waiter(cache: ResponseCache):
    key = CacheKey("tracking:shared-failure")
    calls = {"count": 0}

    async def failing():
        calls["count"] += 1
        await asyncio.sleep(0.02)
        raise TransportError("both transports failed")

    results = await asyncio.gather(
        cache.get_or_compute(key, failing),
        cache.get_or_compute(key, failing),
        return_exceptions=True,
    )

    assert calls["count"] == 1
    assert all(isinstance(result, TransportError) for result in results)


async def test_cancelled_waiter_does_not_cancel_shared_computation(cache: ResponseCache):
    producer, calls = make_producer(delay=0.05)
    key = CacheKey("tracking:cancel")

    first = asyncio.ensure_future(cache.get_or_compute(key, producer))
    await asyncio.sleep(0)
    second = asyncio.ensure_future(cache.get_or_compute(key, producer))
    await asyncio.sleep(0)
    first.cancel()

    assert await second == "fresh-1"
    assert calls["count"] == 1
    assert cache.get(key) == "fresh-1"


def test_eviction_removes_oldest_tenth():
    cache = ResponseCache(max_size=10)
    for i in range(10):
        cache.set(CacheKey(f"custom:{i}"), i)

    cache.set(CacheKey("custom:new"), "new")

    assert cache.stats()["total_entries"] == 10
    assert not cache.has(CacheKey("custom:0"))
    assert cache.has(CacheKey("custom:1"))
    assert cache.get(CacheKey("custom:new")) == "new"


async def test_eviction_keeps_in_flight_entries():
    small = ResponseCache(max_size=2)
    release = asyncio.Event()

    async def slow():
        await release.wait()
        return "slow-value"

    pending = asyncio.ensure_future(small.get_or_compute(CacheKey("custom:slow"), slow))
    await asyncio.sleep(0)
    small.set(CacheKey("custom:a"), "a")
    small.set(CacheKey("custom:b"), "b")

    release.set()
    assert await pending == "slow-value"
    assert small.get(CacheKey("custom:slow")) == "slow-value"
    assert not small.has(CacheKey("custom:a"))
    await small.close()


def test_ttl_depends_on_key_namespace():
    cache = ResponseCache(default_ttl=1, tracking_ttl=2, shipping_ttl=3)
    assert cache.ttl_for(CacheKey("tracking:1")) == 2
    assert cache.ttl_for(CacheKey("shipping:ae-dubai:jo-amman:abc")) == 3
    assert cache.ttl_for(CacheKey("other")) == 1


def test_delete_clear_and_patterns():
    cache = ResponseCache()
    cache.set(CacheKey("tracking:1"), "one")
    cache.set(CacheKey("tracking:2"), "two")
    cache.set(CacheKey("shipping:x"), "rate")

    assert cache.delete(CacheKey("tracking:1")) is True
    assert cache.delete(CacheKey("tracking:1")) is False
    assert cache.clear_by_pattern(r"^tracking:") == 1
    assert cache.get(CacheKey("shipping:x")) == "rate"
    assert 0 < cache.get_ttl(CacheKey("shipping:x")) <= cache.shipping_ttl

    cache.clear()
    assert cache.stats()["total_entries"] == 0


async def test_cleanup_expired_entries(cache: ResponseCache):
    cache.set(CacheKey("custom:short"), "short", ttl=0.01)
    cache.set(CacheKey("custom:long"), "long", ttl=60)
    await asyncio.sleep(0.03)

    assert cache.stats()["expired_entries"] == 1
    assert cache.cleanup_expired_entries() == 1
    assert cache.stats()["total_entries"] == 1


def test_generate_hash_is_stable():
    first = ResponseCache.generate_hash({"length": 20, "width": 15})
    second = ResponseCache.generate_hash({"width": 15, "length": 20})
    assert first == second
    assert len(first) == 16


def test_invalid_max_size_rejected():
    with pytest.raises(ValueError):
        ResponseCache(max_size=0)


def make_batch_producer(delay=0.0, error=None):
    batches = []

    async def producer(keys):
        batches.append(list(keys))
        if delay:
            await asyncio.sleep(delay)
        if error is not None:
            raise error
        return {key: f"batch-{key}" for key in keys}

    return producer, batches


async def test_batch_joins_in_flight_keys_and_computes_the_rest(cache: ResponseCache):
    single, calls = make_producer(delay=0.05)
    batch, batches = make_batch_producer()
    a, b = CacheKey("tracking:A"), CacheKey("tracking:B")

    first, many = await asyncio.gather(
        cache.get_or_compute(a, single),
        cache.get_or_compute_many([a, b, a], batch),
    )

    assert first == "fresh-1"
    assert many == ["fresh-1", "batch-tracking:B", "fresh-1"]
    assert calls["count"] == 1
    assert batches == [[b]]


async def test_batch_keys_are_in_flight_for_single_lookups(cache: ResponseCache):
    single, calls = make_producer()
    batch, batches = make_batch_producer(delay=0.05)
    a, b = CacheKey("tracking:A"), CacheKey("tracking:B")

    many, first = await asyncio.gather(
        cache.get_or_compute_many([a, b], batch),
        cache.get_or_compute(b, single),
    )

    assert many == ["batch-tracking:A", "batch-tracking:B"]
    assert first == "batch-tracking:B"
    assert calls["count"] == 0
    assert len(batches) == 1


async def test_batch_serves_fresh_entries_without_calling_producer(cache: ResponseCache):
    batch, batches = make_batch_producer()
    cache.set(CacheKey("tracking:A"), "cached")

    assert await cache.get_or_compute_many([CacheKey("tracking:A")], batch) == ["cached"]
    assert batches == []


async def test_batch_failure_is_returned_per_key_and_not_cached(cache: ResponseCache):
    error = TransportError("upstream down")
    batch, _ = make_batch_producer(error=error)
    keys = [CacheKey("tracking:A"), CacheKey("tracking:B")]

    outcomes = await cache.get_or_compute_many(keys, batch)

    assert outcomes == [error, error]
    assert cache.stats()["total_entries"] == 0


async def test_tracking_helper_applies_tracking_ttl():
    cache = ResponseCache(default_ttl=5, tracking_ttl=120, shipping_ttl=600)
    producer, calls = make_producer()

    assert await cache.cache_tracking_data("123", producer) == "fresh-1"
    assert await cache.cache_tracking_data("123", producer, last_update_only=True) == "fresh-2"
    assert await cache.cache_tracking_data("123", producer) == "fresh-1"

    assert calls["count"] == 2
    assert 5 < cache.get_ttl(CacheKey("tracking:123")) <= 120
    assert cache.has(CacheKey("tracking:123:last"))
    await cache.close()


async def test_shipping_helper_applies_shipping_ttl():
    cache = ResponseCache(default_ttl=5, tracking_ttl=120, shipping_ttl=600)
    producer, calls = make_producer()
    package_hash = ResponseCache.generate_hash({"weight": 1})

    first = await cache.cache_shipping_rates("AE-Dubai", "JO-Amman", package_hash, producer)
    second = await cache.cache_shipping_rates("AE-Dubai", "JO-Amman", package_hash, producer)

    assert first == second == "fresh-1"
    assert calls["count"] == 1
    key = CacheKey(f"shipping:AE-Dubai:JO-Amman:{package_hash}")
    assert 120 < cache.get_ttl(key) <= 600
    await cache.close()


def test_update_config_changes_ttls_for_new_entries():
    cache = ResponseCache()

    cache.update_config(max_size=10, default_ttl=1, tracking_ttl=2, shipping_ttl=3)
    cache.set(CacheKey("tracking:1"), "one")

    assert cache.max_size == 10
    assert cache.ttl_for(CacheKey("shipping:x")) == 3
    assert cache.ttl_for(CacheKey("other")) == 1
    assert 0 < cache.get_ttl(CacheKey("tracking:1")) <= 2
    with pytest.raises(ValueError):
        cache.update_config(max_size=0)
    assert cache.max_size == 10
