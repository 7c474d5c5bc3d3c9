import asyncio
import logging

import pytest
from unittest.mock import MagicMock

from shiplink.domain.errors import TransportError
from shiplink.domain.interfaces.cache import CacheService
from shiplink.domain.models.health import HealthState
from shiplink.infrastructure.monitoring.health_monitor import HealthMonitor
from shiplink.infrastructure.resilience.rate_limiter import RateLimiter

from conftest import FakeTransport


class BrokenProbeTransport(FakeTransport):
    async def probe(self):
        raise TransportError("HTTP client info is missing UserName")


@pytest.fixture
def cache_service():
    cache = MagicMock(spec=CacheService)
    cache.stats.return_value = {
        "total_entries": 0, "expired_entries": 0, "in_flight": 0, "hits": 0, "misses": 0, "hit_rate": 0.0,
    }
    return cache


@pytest.fixture
async def monitor(cache_service):
    health_monitor = HealthMonitor(FakeTransport("http"), FakeTransport("soap"), cache_service)
    yield health_monitor
    await health_monitor.close()


async def test_all_probes_pass_is_healthy(monitor: HealthMonitor):
    health = await monitor.check_health()

    assert health.status is HealthState.HEALTHY
    assert health.primary_transport and health.secondary_transport and health.cache_service
    assert health.errors == []


async def test_one_failing_probe_is_degraded(cache_service):
    monitor = HealthMonitor(FakeTransport("http"), FakeTransport("soap", ready=False), cache_service)

    health = await monitor.check_health()

    assert health.status is HealthState.DEGRADED
    assert health.secondary_transport is False
    assert health.errors == ["Secondary transport (soap) not ready"]


async def test_failing_probes_do_not_stop_the_others(cache_service):
    """Two failing probes give UNHEALTHY with one diagnostic each; the cache is still probed."""
    monitor = HealthMonitor(BrokenProbeTransport("http"), FakeTransport("soap", ready=False), cache_service)

    health = await monitor.check_health()

    assert health.status is HealthState.UNHEALTHY
    assert health.cache_service is True
    assert len(health.errors) == 2
    assert health.errors[0] == "Primary transport (http) unhealthy: HTTP client info is missing UserName"
    cache_service.stats.assert_called_once()


async def test_cache_probe_failure_is_reported(cache_service):
    cache_service.stats.side_effect = RuntimeError("cache unavailable")
    monitor = HealthMonitor(FakeTransport("http"), FakeTransport("soap"), cache_service)

    health = await monitor.check_health()

    assert health.status is HealthState.DEGRADED
    assert health.errors == ["Cache service unhealthy: cache unavailable"]


async def test_monitor_records_success_and_error(monitor: HealthMonitor):
    async def ok():
        return "value"

    async def fails():
        raise TransportError("boom")

    assert await monitor.monitor("soap.track_shipments", ok) == "value"
    with pytest.raises(TransportError):
        await monitor.monitor("soap.track_shipments", fails)

    metrics = monitor.get_performance_metrics()
    assert metrics["request_count"] == 2
    assert metrics["error_rate_percent"] == 50.0
    assert metrics["last_request_time"] is not None


async def test_slow_requests_are_counted(cache_service):
    monitor = HealthMonitor(
        FakeTransport("http"), FakeTransport("soap"), cache_service, slow_request_threshold_ms=10
    )

    async def slow():
        await asyncio.sleep(0.03)

    await monitor.monitor("slow", slow)
    assert monitor.get_performance_metrics()["slow_request_count"] == 1
    await monitor.close()


async def test_reset_keeps_slow_request_threshold(monitor: HealthMonitor):
    monitor.update_thresholds(slow_request_threshold_ms=1234)

    async def ok():
        return None

    await monitor.monitor("op", ok)
    monitor.reset_metrics()

    metrics = monitor.get_performance_metrics()
    assert metrics["request_count"] == 0
    assert metrics["average_response_time_ms"] == 0.0
    assert metrics["slow_request_threshold_ms"] == 1234


@pytest.mark.parametrize("threshold", [0, -5])
async def test_update_thresholds_rejects_non_positive_values(monitor: HealthMonitor, threshold):
    monitor.update_thresholds(slow_request_threshold_ms=250)

    with pytest.raises(ValueError):
        monitor.update_thresholds(slow_request_threshold_ms=threshold)
    assert monitor.get_performance_metrics()["slow_request_threshold_ms"] == 250


def test_constructor_rejects_non_positive_threshold(cache_service):
    with pytest.raises(ValueError):
        HealthMonitor(FakeTransport("http"), FakeTransport("soap"), cache_service, slow_request_threshold_ms=0)


async def test_latency_history_is_bounded(cache_service):
    monitor = HealthMonitor(FakeTransport("http"), FakeTransport("soap"), cache_service, max_request_history=3)

    async def ok():
        return None

    for _ in range(5):
        await monitor.monitor("op", ok)

    assert monitor.get_performance_metrics()["request_count"] == 5
    assert len(monitor._metrics.response_times) == 3
    await monitor.close()


async def test_system_stats_include_rate_limit_status(cache_service):
    limiter = RateLimiter(max_requests=5, time_window=60)
    monitor = HealthMonitor(FakeTransport("http"), FakeTransport("soap"), cache_service, rate_limiter=limiter)
    await limiter.wait_for_permission("http")

    stats = await monitor.get_system_stats("http")

    assert stats["rate_limit"]["remaining"] == 4
    assert stats["health"].status is HealthState.HEALTHY
    assert stats["cache"]["total_entries"] == 0
    assert stats["performance"]["request_count"] == 0


async def test_health_endpoint_payload(monitor: HealthMonitor):
    payload = await monitor.get_health_endpoint()

    assert payload["status"] == "healthy"
    assert isinstance(payload["timestamp"], float)


async def test_summary_warns_on_high_error_rate(monitor: HealthMonitor, caplog):
    async def fails():
        raise TransportError("boom")

    for _ in range(2):
        with pytest.raises(TransportError):
            await monitor.monitor("op", fails)

    with caplog.at_level(logging.WARNING, logger="shiplink.infrastructure.monitoring.health_monitor"):
        monitor.log_performance_summary()
    assert "High error rate detected" in caplog.text
