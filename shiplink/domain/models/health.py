"""Domain models for health checks and performance metrics."""

import enum
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, TypedDict

from .common import CacheStats, MetricsSnapshot, RateLimitStatus

DEFAULT_SLOW_REQUEST_THRESHOLD_MS = 5000.0
DEFAULT_MAX_REQUEST_HISTORY = 100


class HealthState(str, enum.Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @classmethod
    def from_failure_count(cls, failures: int) -> "HealthState":
        """No failing probe is healthy, exactly one is degraded, more is unhealthy."""
        if failures <= 0:
            return cls.HEALTHY
        if failures == 1:
            return cls.DEGRADED
        return cls.UNHEALTHY


@dataclass
class HealthStatus:
    """Composite health verdict computed fresh on every probe."""
    status: HealthState
    primary_transport: bool
    secondary_transport: bool
    cache_service: bool
    last_checked: float
    response_time_ms: float
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "primary_transport": self.primary_transport,
            "secondary_transport": self.secondary_transport,
            "cache_service": self.cache_service,
            "last_checked": self.last_checked,
            "response_time_ms": self.response_time_ms,
            "errors": list(self.errors),
        }


@dataclass
class PerformanceMetrics:
    """Running request metrics over a bounded latency history.

    slow_request_threshold_ms is configuration and is never touched by reset().
    """
    slow_request_threshold_ms: float = DEFAULT_SLOW_REQUEST_THRESHOLD_MS
    max_history: int = DEFAULT_MAX_REQUEST_HISTORY
    request_count: int = 0
    error_count: int = 0
    slow_request_count: int = 0
    last_request_time: Optional[float] = None
    response_times: Deque[float] = field(default_factory=deque)

    def __post_init__(self) -> None:
        self.response_times = deque(self.response_times, maxlen=self.max_history)

    def record(self, response_time_ms: float, is_error: bool) -> None:
        self.request_count += 1
        self.last_request_time = time.time()
        self.response_times.append(response_time_ms)
        if response_time_ms > self.slow_request_threshold_ms:
            self.slow_request_count += 1
        if is_error:
            self.error_count += 1

    @property
    def average_response_time_ms(self) -> float:
        if not self.response_times:
            return 0.0
        return sum(self.response_times) / len(self.response_times)

    @property
    def error_rate_percent(self) -> float:
        if self.request_count == 0:
            return 0.0
        return self.error_count / self.request_count * 100

    @property
    def slow_request_percent(self) -> float:
        if self.request_count == 0:
            return 0.0
        return self.slow_request_count / self.request_count * 100

    def reset(self) -> None:
        self.request_count = 0
        self.error_count = 0
        self.slow_request_count = 0
        self.last_request_time = None
        self.response_times.clear()

    def snapshot(self) -> MetricsSnapshot:
        return MetricsSnapshot(
            request_count=self.request_count,
            average_response_time_ms=self.average_response_time_ms,
            error_rate_percent=self.error_rate_percent,
            slow_request_count=self.slow_request_count,
            last_request_time=self.last_request_time,
            slow_request_threshold_ms=self.slow_request_threshold_ms,
        )


class SystemStats(TypedDict):
    performance: MetricsSnapshot
    health: HealthStatus
    cache: CacheStats
    rate_limit: RateLimitStatus
