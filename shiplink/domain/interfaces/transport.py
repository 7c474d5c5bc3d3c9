"""Interface for provider transports.

Defines the contract shared by the JSON/HTTP and XML/SOAP clients of the
shipping provider, so the orchestration layer can treat them uniformly.
"""

import abc
from typing import Any, Dict

from ..errors import TransportError
from ..models.transport import TransportRequest


class Transport(abc.ABC):
    """Abstract Base Class for one wire protocol of the provider API."""

    #: Short name used for logging, metrics and rate limit keys.
    name: str = "transport"

    @abc.abstractmethod
    def is_ready(self) -> bool:
        """Returns True when the transport can accept calls right now."""
        pass

    @abc.abstractmethod
    async def call(self, request: TransportRequest) -> Dict[str, Any]:
        """Sends one logical request and returns the decoded raw response.

        Args:
            request: The operation and provider payload to send.

        Returns:
            The provider response decoded into a dictionary, in the
            transport's own field naming.

        Raises:
            TransportError: If the remote call fails.
        """
        pass

    async def probe(self) -> None:
        """Lightweight, non-mutating reachability check used by health checks.

        Raises:
            TransportError: If the transport is not usable.
        """
        if not self.is_ready():
            raise TransportError(f"{self.name} transport not ready", transport=self.name)
