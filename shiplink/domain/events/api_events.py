"""Domain Events related to provider calls and resilience.

Examples include events for when calls are deferred, retried, fail, succeed
or fall back to the secondary transport.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


# --- Specific API Events ---

@dataclass
class ApiCallInitiated(DomainEvent):
    """Event triggered when a provider call is about to be made."""
    transport: str  # e.g., 'soap', 'http'
    operation: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when a provider call succeeds."""
    transport: str
    operation: str
    latency_ms: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when a provider call fails definitively (after retries)."""
    transport: str
    operation: str
    error_type: str
    error_message: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallDeferred(DomainEvent):
    """Event triggered when a call waits for its rate limit window to reset."""
    key: str
    wait_time_seconds: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a rate limited call is scheduled for another attempt."""
    key: str
    attempt_number: int
    delay_seconds: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class TransportFallbackTriggered(DomainEvent):
    """Event triggered when the primary transport is skipped or fails."""
    reason: str  # e.g., 'not_ready', 'TransportError'
    primary_transport: str
    fallback_transport: str
    operation: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


def dispatch_event(event: DomainEvent) -> None:
    """Publishes an event. Events are only logged; there are no subscribers yet."""
    logger.debug(f"EVENT: {event}")
