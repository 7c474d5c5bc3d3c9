"""Defines common Value Objects used across different domain contexts.

These objects represent simple values or concepts like cache keys, tracking
numbers and operator-facing snapshots, ensuring consistency and type safety.
"""

import hashlib
import json
from typing import NewType, TypedDict, Optional

# === Core Value Objects ===

# Using NewType for semantic clarity, although they are strings at runtime.
TrackingNumber = NewType("TrackingNumber", str)  # Aramex waybill number
CountryCode = NewType("CountryCode", str)        # ISO 3166-1 alpha-2, e.g. 'AE'

# === Caching Context ===
CacheKey = NewType("CacheKey", str)              # Unique key for a cache entry
CachePrefix = NewType("CachePrefix", str)        # Key namespace, e.g. 'tracking'

TRACKING_PREFIX = CachePrefix("tracking")
SHIPPING_PREFIX = CachePrefix("shipping")

# === Rate Limiting Context ===
RateLimitKey = NewType("RateLimitKey", str)      # Quota bucket, e.g. 'soap', 'http'

DEFAULT_RATE_LIMIT_KEY = RateLimitKey("default")


def tracking_cache_key(tracking_number: str, last_update_only: bool = False) -> CacheKey:
    """Builds the cache key for a single tracked shipment.

    Last-update-only lookups hold a truncated history and get their own key.
    """
    suffix = ":last" if last_update_only else ""
    return CacheKey(f"{TRACKING_PREFIX}:{tracking_number}{suffix}")


def shipping_cache_key(origin: str, destination: str, package_hash: str) -> CacheKey:
    """Builds the cache key for a rate quote on one route and package."""
    return CacheKey(f"{SHIPPING_PREFIX}:{origin}:{destination}:{package_hash}")


# --- Structured Data ---
class RateLimitStatus(TypedDict):
    """Current quota usage for one rate limit key."""
    remaining: int
    reset_at: float  # Unix timestamp of the next window reset
    is_limited: bool


class CacheStats(TypedDict):
    """Snapshot of the response cache for operators."""
    total_entries: int
    expired_entries: int
    in_flight: int
    hits: int
    misses: int
    hit_rate: float  # Percentage, 0-100


class MetricsSnapshot(TypedDict):
    """Operator-facing view of the performance metrics."""
    request_count: int
    average_response_time_ms: float
    error_rate_percent: float
    slow_request_count: int
    last_request_time: Optional[float]
    slow_request_threshold_ms: float


class BackoffPolicy(TypedDict):
    """Value Object representing retry backoff configuration."""
    max_retries: int
    initial_delay: float
    factor: float


def stable_hash(obj: object) -> str:
    """Stable 16 character hash of a JSON-serialisable object (e.g. package details)."""
    encoded = json.dumps(obj, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()[:16]
