"""Domain error taxonomy.

Transport failures are classified exactly once, when the error is raised at
the transport boundary. Everything downstream (rate limiter retries, fallback,
health metrics) reads that classification instead of re-inspecting messages.
"""

import enum
from typing import Any, Optional

RATE_LIMIT_STATUS_CODES = frozenset({429, 503})
RATE_LIMIT_VOCABULARY = ("rate limit", "too many requests", "quota exceeded")


class ErrorKind(enum.Enum):
    """Closed classification of a failed remote call."""
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    SERVER = "server"
    CLIENT = "client"
    UNKNOWN = "unknown"


def classify_failure(status_code: Optional[int], message: str = "") -> ErrorKind:
    """Maps an upstream status code and message onto an ErrorKind.

    Args:
        status_code: HTTP status returned by the provider, if any.
        message: Error text returned by the provider or the client library.

    Returns:
        RATE_LIMITED for 429/503 or rate limit vocabulary in the message,
        otherwise a kind derived from the status code range.
    """
    lowered = (message or "").lower()
    if status_code in RATE_LIMIT_STATUS_CODES:
        return ErrorKind.RATE_LIMITED
    if any(phrase in lowered for phrase in RATE_LIMIT_VOCABULARY):
        return ErrorKind.RATE_LIMITED
    if status_code is None:
        return ErrorKind.UNKNOWN
    if status_code >= 500:
        return ErrorKind.SERVER
    if status_code >= 400:
        return ErrorKind.CLIENT
    return ErrorKind.UNKNOWN


class ShipLinkError(Exception):
    """Base class for all shiplink errors."""


class ConfigurationError(ShipLinkError):
    """Raised when provider credentials or settings are missing or invalid."""


class TransportError(ShipLinkError):
    """A remote call failed.

    Attributes:
        status_code: Upstream status code, when the provider answered.
        payload: Raw response body, when one was received.
        transport: Name of the transport that raised the error.
        kind: Classification computed once from status code and message.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Any = None,
        transport: Optional[str] = None,
        kind: Optional[ErrorKind] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload
        self.transport = transport
        self.kind = kind or classify_failure(status_code, message)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self.message!r}, status_code={self.status_code}, "
            f"transport={self.transport!r}, kind={self.kind.value})"
        )


class RateLimitExceeded(TransportError):
    """The provider refused the call because the quota was exhausted.

    Retried by the RateLimiter; once its retry budget is spent the last
    instance is surfaced to the caller unchanged.
    """

    def __init__(self, message: str = "Rate limit exceeded", **kwargs: Any):
        kwargs.setdefault("kind", ErrorKind.RATE_LIMITED)
        super().__init__(message, **kwargs)


def error_kind(error: BaseException) -> ErrorKind:
    """Returns the classification carried by an error raised at a transport."""
    if isinstance(error, TransportError):
        return error.kind
    return ErrorKind.UNKNOWN
