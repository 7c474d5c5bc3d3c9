"""Implementation of a per-key rate limiter.

Controls the frequency of outgoing requests so the provider quota is not
exceeded. Each key has a fixed window counter; callers over quota are made to
wait for the window reset rather than rejected. Calls that fail with a
rate-limit-shaped error are retried with exponential backoff.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from shiplink.domain.errors import ErrorKind, error_kind
from shiplink.domain.events.api_events import ApiCallDeferred, RetryScheduled, dispatch_event
from shiplink.domain.models.common import (
    BackoffPolicy,
    DEFAULT_RATE_LIMIT_KEY,
    RateLimitKey,
    RateLimitStatus,
)
from shiplink.infrastructure.background import PeriodicTask

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_REQUESTS = 60  # Aramex typical limit...
DEFAULT_TIME_WINDOW_SECONDS = 60  # ...per minute
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 60


def _check_retry_policy(retry_attempts: int, retry_delay: float) -> None:
    if retry_attempts < 0:
        raise ValueError("Retry attempts must not be negative.")
    if retry_delay < 0:
        raise ValueError("Retry delay must not be negative.")


@dataclass
class RateWindow:
    """Request counter for one key. Times use the monotonic clock."""
    count: int
    window_reset_at: float


class RateLimiter:
    """Fixed window rate limiter with backoff retry for rate limited calls."""

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        time_window: float = DEFAULT_TIME_WINDOW_SECONDS,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ):
        """Initializes the rate limiter.

        Args:
            max_requests: Maximum number of requests allowed per key in one window.
            time_window: The window length in seconds.
            retry_attempts: Retries allowed after a rate limited failure.
            retry_delay: Delay in seconds before the first retry.
            backoff_factor: Multiplier applied to the delay on each retry.
            sweep_interval: Seconds between removals of expired windows.
        """
        if max_requests <= 0 or time_window <= 0:
            raise ValueError("Max requests and time window must be positive.")
        _check_retry_policy(retry_attempts, retry_delay)
        self.max_requests = max_requests
        self.time_window = time_window
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.backoff_factor = backoff_factor
        self._windows: Dict[RateLimitKey, RateWindow] = {}
        self._lock = asyncio.Lock()
        self._sweeper = PeriodicTask("rate-window-sweep", sweep_interval, self.cleanup_expired_entries)
        logger.info(
            f"RateLimiter initialized: {max_requests} requests / {time_window} seconds, "
            f"{retry_attempts} retries from {retry_delay}s x{backoff_factor}"
        )

    @property
    def backoff_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            max_retries=self.retry_attempts,
            initial_delay=self.retry_delay,
            factor=self.backoff_factor,
        )

    def start(self) -> None:
        self._sweeper.start()

    async def close(self) -> None:
        await self._sweeper.stop()

    async def execute(
        self,
        key: RateLimitKey,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """Runs operation within the quota of key, retrying rate limited failures.

        Args:
            key: Quota bucket the call is counted against.
            operation: Zero-argument coroutine function performing the call.

        Returns:
            The operation's result.

        Raises:
            Exception: The operation's error, unchanged. Rate limited errors
                are only raised once the retry budget is spent.
        """
        self.start()
        attempt = 0
        while True:
            await self.wait_for_permission(key)
            try:
                return await operation()
            except Exception as e:
                if error_kind(e) is not ErrorKind.RATE_LIMITED:
                    raise
                if attempt >= self.retry_attempts:
                    logger.error(
                        f"Rate limit retries ({self.retry_attempts}) exhausted for key '{key}'. Last error: {e}"
                    )
                    raise
                delay = self.retry_delay * (self.backoff_factor ** attempt)
                attempt += 1
                logger.warning(f"Rate limit hit for key '{key}', retrying in {delay:.2f}s (attempt {attempt})")
                dispatch_event(RetryScheduled(key=key, attempt_number=attempt, delay_seconds=delay))
                await asyncio.sleep(delay)

    async def wait_for_permission(self, key: RateLimitKey = DEFAULT_RATE_LIMIT_KEY) -> None:
        """Takes one slot in the current window of key, waiting for a reset if none is left."""
        while True:
            async with self._lock:
                now = time.monotonic()
                window = self._windows.get(key)
                if window is None or window.window_reset_at <= now:
                    window = RateWindow(count=0, window_reset_at=now + self.time_window)
                    self._windows[key] = window
                if window.count < self.max_requests:
                    window.count += 1
                    return
                wait_time = max(0.0, window.window_reset_at - now)

            logger.warning(f"Rate limit exceeded for key: {key}, waiting {wait_time:.2f}s")
            dispatch_event(ApiCallDeferred(key=key, wait_time_seconds=wait_time))
            await asyncio.sleep(wait_time)
            # Loop again; the window is reset by whichever caller gets there first.

    def status(self, key: RateLimitKey = DEFAULT_RATE_LIMIT_KEY) -> RateLimitStatus:
        """Current usage of key. Pure read, never creates or resets a window."""
        now = time.monotonic()
        window = self._windows.get(key)
        if window is None or window.window_reset_at <= now:
            return RateLimitStatus(
                remaining=self.max_requests,
                reset_at=time.time() + self.time_window,
                is_limited=False,
            )
        remaining = max(0, self.max_requests - window.count)
        return RateLimitStatus(
            remaining=remaining,
            reset_at=time.time() + (window.window_reset_at - now),
            is_limited=remaining == 0,
        )

    def reset(self, key: RateLimitKey = DEFAULT_RATE_LIMIT_KEY) -> None:
        self._windows.pop(key, None)
        logger.debug(f"Rate limit reset for key: {key}")

    def update_config(
        self,
        max_requests: Optional[int] = None,
        retry_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ) -> None:
        if max_requests is not None and max_requests <= 0:
            raise ValueError("Max requests must be positive.")
        _check_retry_policy(
            retry_attempts if retry_attempts is not None else self.retry_attempts,
            retry_delay if retry_delay is not None else self.retry_delay,
        )
        if max_requests is not None:
            self.max_requests = max_requests
        if retry_attempts is not None:
            self.retry_attempts = retry_attempts
        if retry_delay is not None:
            self.retry_delay = retry_delay
        logger.info(
            f"Rate limit configuration updated: max_requests={self.max_requests}, "
            f"retry_attempts={self.retry_attempts}, retry_delay={self.retry_delay}s"
        )

    def cleanup_expired_entries(self) -> int:
        """Removes windows whose reset time has passed."""
        now = time.monotonic()
        expired = [key for key, window in self._windows.items() if window.window_reset_at <= now]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug(f"Cleaned up {len(expired)} expired rate limit entries")
        return len(expired)
