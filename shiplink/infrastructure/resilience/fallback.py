"""Dual-transport fallback policy.

Every logical provider request tries the primary transport (when it reports
ready) and falls back exactly once to the secondary transport. Each attempt
runs through the rate limiter and is observed by the health monitor. The
limiter's retries happen underneath an attempt, never across the fallback.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar

from shiplink.domain.events.api_events import (
    ApiCallFailed,
    ApiCallInitiated,
    ApiCallSucceeded,
    TransportFallbackTriggered,
    dispatch_event,
)
from shiplink.domain.interfaces.transport import Transport
from shiplink.domain.models.common import RateLimitKey
from shiplink.domain.models.transport import TransportRequest
from shiplink.infrastructure.monitoring.health_monitor import HealthMonitor
from shiplink.infrastructure.resilience.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Maps a raw response onto the canonical shape; receives the transport that answered.
Translator = Callable[[Transport, Dict[str, Any]], T]


class TransportFallback:
    """Runs a request on the primary transport with one fallback hop."""

    def __init__(
        self,
        primary: Transport,
        secondary: Transport,
        rate_limiter: RateLimiter,
        health_monitor: Optional[HealthMonitor] = None,
    ):
        """Initializes the fallback policy.

        Args:
            primary: Transport tried first when it reports ready.
            secondary: Transport used when the primary is skipped, not ready or fails.
            rate_limiter: Limiter every attempt runs through, keyed by transport name.
            health_monitor: Optional monitor recording latency and outcome of each attempt.
        """
        self.primary = primary
        self.secondary = secondary
        self.rate_limiter = rate_limiter
        self.health_monitor = health_monitor
        logger.info(f"TransportFallback initialized: primary='{primary.name}', fallback='{secondary.name}'")

    async def execute(
        self,
        request: TransportRequest,
        translate: Translator,
        skip_primary: bool = False,
    ) -> T:
        """Executes request and translates the answer of whichever transport succeeded.

        Args:
            request: The logical operation to perform.
            translate: Maps the raw response onto the canonical result. A
                translation failure on the primary counts as a primary failure.
            skip_primary: Go straight to the secondary transport.

        Returns:
            The translated result.

        Raises:
            Exception: The secondary transport's error. The primary's error
                is logged but never surfaced.
        """
        operation = request.operation
        if skip_primary:
            logger.debug(f"Primary transport '{self.primary.name}' skipped for {operation} by caller")
        elif not self.primary.is_ready():
            logger.warning(
                f"Primary transport '{self.primary.name}' not ready, falling back to '{self.secondary.name}'"
            )
            dispatch_event(TransportFallbackTriggered(
                reason="not_ready",
                primary_transport=self.primary.name,
                fallback_transport=self.secondary.name,
                operation=operation,
            ))
        else:
            try:
                return await self._attempt(self.primary, request, translate)
            except Exception as e:
                logger.warning(
                    f"Primary transport '{self.primary.name}' failed for {operation}: {e}. "
                    f"Falling back to '{self.secondary.name}'"
                )
                dispatch_event(TransportFallbackTriggered(
                    reason=type(e).__name__,
                    primary_transport=self.primary.name,
                    fallback_transport=self.secondary.name,
                    operation=operation,
                ))

        try:
            return await self._attempt(self.secondary, request, translate)
        except Exception as e:
            logger.error(f"Transport '{self.secondary.name}' failed for {operation}: {e}")
            raise

    async def _attempt(self, transport: Transport, request: TransportRequest, translate: Translator) -> T:
        operation = request.operation
        dispatch_event(ApiCallInitiated(transport=transport.name, operation=operation))
        start_time = time.perf_counter()

        async def limited_call() -> Dict[str, Any]:
            return await self.rate_limiter.execute(RateLimitKey(transport.name), lambda: transport.call(request))

        try:
            if self.health_monitor is not None:
                raw = await self.health_monitor.monitor(f"{transport.name}.{operation}", limited_call)
            else:
                raw = await limited_call()
            result = translate(transport, raw)
        except Exception as e:
            dispatch_event(ApiCallFailed(
                transport=transport.name,
                operation=operation,
                error_type=type(e).__name__,
                error_message=str(e),
            ))
            raise

        latency_ms = (time.perf_counter() - start_time) * 1000
        dispatch_event(ApiCallSucceeded(transport=transport.name, operation=operation, latency_ms=latency_ms))
        return result
