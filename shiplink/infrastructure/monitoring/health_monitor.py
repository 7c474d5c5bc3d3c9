"""Health and performance monitoring.

Records latency and outcome of every monitored provider call and probes the
transports and the cache to produce a composite health verdict. Probes are
isolated from each other: a failing probe becomes a diagnostic message and
never stops the remaining probes from running.
"""

import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar, Union

from shiplink.domain.interfaces.cache import CacheService
from shiplink.domain.interfaces.transport import Transport
from shiplink.domain.models.common import DEFAULT_RATE_LIMIT_KEY, MetricsSnapshot, RateLimitKey
from shiplink.domain.models.health import (
    DEFAULT_MAX_REQUEST_HISTORY,
    DEFAULT_SLOW_REQUEST_THRESHOLD_MS,
    HealthState,
    HealthStatus,
    PerformanceMetrics,
    SystemStats,
)
from shiplink.infrastructure.background import PeriodicTask
from shiplink.infrastructure.resilience.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SUMMARY_INTERVAL_SECONDS = 5 * 60
HIGH_ERROR_RATE_PERCENT = 10
HIGH_SLOW_REQUEST_PERCENT = 20


def _check_slow_request_threshold(threshold_ms: float) -> None:
    if threshold_ms <= 0:
        raise ValueError("Slow request threshold must be positive.")


class HealthMonitor:
    """Aggregates call metrics and subsystem probes into a health verdict."""

    def __init__(
        self,
        primary_transport: Transport,
        secondary_transport: Transport,
        cache_service: CacheService,
        rate_limiter: Optional[RateLimiter] = None,
        slow_request_threshold_ms: float = DEFAULT_SLOW_REQUEST_THRESHOLD_MS,
        max_request_history: int = DEFAULT_MAX_REQUEST_HISTORY,
        summary_interval: float = DEFAULT_SUMMARY_INTERVAL_SECONDS,
    ):
        """Initializes the monitor.

        Args:
            primary_transport: Probed for reachability with its non-mutating probe().
            secondary_transport: Probed for readiness.
            cache_service: Probed by asking for its statistics.
            rate_limiter: Optional limiter whose status is included in system stats.
            slow_request_threshold_ms: Latency above which a call counts as slow.
            max_request_history: Number of latencies kept for the running average.
            summary_interval: Seconds between performance summary log lines.
        """
        _check_slow_request_threshold(slow_request_threshold_ms)
        self.primary_transport = primary_transport
        self.secondary_transport = secondary_transport
        self.cache_service = cache_service
        self.rate_limiter = rate_limiter
        self._metrics = PerformanceMetrics(
            slow_request_threshold_ms=slow_request_threshold_ms,
            max_history=max_request_history,
        )
        self._summary = PeriodicTask("performance-summary", summary_interval, self.log_performance_summary)

    def start(self) -> None:
        self._summary.start()

    async def close(self) -> None:
        await self._summary.stop()

    async def monitor(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Runs operation and records its latency and outcome.

        Errors are recorded and re-raised unchanged.
        """
        self.start()
        start_time = time.perf_counter()
        logger.debug(f"Starting request: {name}")
        try:
            result = await operation()
        except Exception as e:
            response_time = (time.perf_counter() - start_time) * 1000
            self._metrics.record(response_time, is_error=True)
            logger.error(f"Request {name} failed after {response_time:.0f}ms: {e}")
            raise
        response_time = (time.perf_counter() - start_time) * 1000
        self._metrics.record(response_time, is_error=False)
        logger.debug(f"Request {name} completed in {response_time:.0f}ms")
        return result

    async def check_health(self) -> HealthStatus:
        """Probes every subsystem and classifies the overall health."""
        start_time = time.perf_counter()
        errors: List[str] = []

        primary_healthy = await self._run_probe(
            f"Primary transport ({self.primary_transport.name})", self._probe_primary, errors
        )
        secondary_healthy = await self._run_probe(
            f"Secondary transport ({self.secondary_transport.name})", self._probe_secondary, errors
        )
        cache_healthy = await self._run_probe("Cache service", self._probe_cache, errors)

        failures = [primary_healthy, secondary_healthy, cache_healthy].count(False)
        response_time = (time.perf_counter() - start_time) * 1000
        status = HealthStatus(
            status=HealthState.from_failure_count(failures),
            primary_transport=primary_healthy,
            secondary_transport=secondary_healthy,
            cache_service=cache_healthy,
            last_checked=time.time(),
            response_time_ms=response_time,
            errors=errors,
        )
        logger.info(f"Health check completed in {response_time:.0f}ms - Status: {status.status.value}")
        return status

    async def _run_probe(
        self,
        label: str,
        probe: Callable[[], Awaitable[Union[bool, None]]],
        errors: List[str],
    ) -> bool:
        try:
            outcome = await probe()
        except Exception as e:
            errors.append(f"{label} unhealthy: {e or type(e).__name__}")
            return False
        if outcome is False:
            errors.append(f"{label} not ready")
            return False
        return True

    async def _probe_primary(self) -> None:
        await self.primary_transport.probe()

    async def _probe_secondary(self) -> bool:
        return self.secondary_transport.is_ready()

    async def _probe_cache(self) -> None:
        self.cache_service.stats()

    def get_performance_metrics(self) -> MetricsSnapshot:
        return self._metrics.snapshot()

    async def get_system_stats(self, rate_limit_key: RateLimitKey = DEFAULT_RATE_LIMIT_KEY) -> SystemStats:
        """Performance, health, cache and quota usage in one report."""
        health = await self.check_health()
        if self.rate_limiter is not None:
            rate_limit = self.rate_limiter.status(rate_limit_key)
        else:
            rate_limit = {"remaining": 0, "reset_at": 0.0, "is_limited": False}
        return SystemStats(
            performance=self.get_performance_metrics(),
            health=health,
            cache=self.cache_service.stats(),
            rate_limit=rate_limit,
        )

    async def get_health_endpoint(self) -> Dict[str, Union[str, float]]:
        """Minimal payload for external monitoring tools."""
        health = await self.check_health()
        return {"status": health.status.value, "timestamp": health.last_checked}

    def reset_metrics(self) -> None:
        """Clears accumulated counters; thresholds are kept."""
        self._metrics.reset()
        logger.info("Performance metrics reset")

    def update_thresholds(self, slow_request_threshold_ms: Optional[float] = None) -> None:
        if slow_request_threshold_ms is not None:
            _check_slow_request_threshold(slow_request_threshold_ms)
            self._metrics.slow_request_threshold_ms = slow_request_threshold_ms
        logger.info(f"Performance thresholds updated: slow_request_threshold_ms={self._metrics.slow_request_threshold_ms}")

    def log_performance_summary(self) -> None:
        metrics = self._metrics
        if metrics.request_count == 0:
            return

        logger.info(
            f"Performance summary: requests={metrics.request_count}, "
            f"avg={metrics.average_response_time_ms:.0f}ms, "
            f"error_rate={metrics.error_rate_percent:.2f}%, "
            f"slow={metrics.slow_request_count} ({metrics.slow_request_percent:.0f}%)"
        )
        if metrics.error_rate_percent > HIGH_ERROR_RATE_PERCENT:
            logger.warning(f"High error rate detected: {metrics.error_rate_percent:.2f}%")
        if metrics.slow_request_percent > HIGH_SLOW_REQUEST_PERCENT:
            logger.warning(f"High slow request percentage: {metrics.slow_request_percent:.0f}%")
