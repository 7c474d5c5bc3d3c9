"""JSON/HTTP transport for the Aramex ShippingAPI.V2 endpoints.

A thin shim: injects the client credentials, posts the payload, decodes the
JSON answer and translates every failure into a classified TransportError.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from shiplink.domain.errors import ErrorKind, RateLimitExceeded, TransportError, classify_failure
from shiplink.domain.interfaces.transport import Transport
from shiplink.domain.models.transport import HTTP_TRANSPORT, TransportRequest
from shiplink.infrastructure.config.settings import ProviderConfig
from shiplink.infrastructure.transports.endpoints import (
    HTTP_CLIENT_SOURCE,
    HTTP_CLIENT_VERSION,
    HTTP_PATHS,
    PRODUCTION_BASE_URL,
    SANDBOX_BASE_URL,
)

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        message = data.get("ErrorMessage") or data.get("message")
        if message:
            return str(message)
    return f"HTTP {response.status_code} {response.reason_phrase}".strip()


class HttpJsonTransport(Transport):
    """Posts provider requests as JSON over HTTPS."""

    name = HTTP_TRANSPORT

    def __init__(self, config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initializes the transport.

        Args:
            config: Validated provider credentials and client settings.
            transport: Optional httpx transport, e.g. httpx.MockTransport in tests.
        """
        self.config = config
        self.base_url = SANDBOX_BASE_URL if config.is_sandbox else PRODUCTION_BASE_URL
        self._transport = transport
        self.client_info: Dict[str, Any] = {
            "UserName": config.username,
            "Password": config.password,
            "Version": HTTP_CLIENT_VERSION,
            "AccountNumber": config.account_number,
            "AccountPin": config.account_pin,
            "AccountEntity": config.account_entity,
            "AccountCountryCode": config.account_country_code,
            "Source": HTTP_CLIENT_SOURCE,
        }
        logger.info(f"HttpJsonTransport initialized for {self.base_url}")

    def is_ready(self) -> bool:
        return True

    async def probe(self) -> None:
        """Checks the client info is usable without calling the provider."""
        if not self.client_info.get("UserName"):
            raise TransportError("HTTP client info is missing UserName", transport=self.name)

    async def call(self, request: TransportRequest) -> Dict[str, Any]:
        path = HTTP_PATHS[request.operation]
        body = {"ClientInfo": self.client_info, "Transaction": None, **request.payload}
        if self.config.debug:
            logger.debug(f"POST {path} payload keys: {sorted(request.payload)}")

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.config.timeout_seconds,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                transport=self._transport,
            ) as client:
                response = await client.post(path, json=body)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._status_error(e.response) from e
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Request to {path} timed out after {self.config.timeout_ms}ms",
                transport=self.name,
                kind=ErrorKind.NETWORK,
            ) from e
        except httpx.RequestError as e:
            raise TransportError(
                f"Request to {path} failed: {e}", transport=self.name, kind=ErrorKind.NETWORK
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(
                f"Invalid JSON returned by {path}",
                status_code=response.status_code,
                payload=response.text,
                transport=self.name,
            ) from e
        if not isinstance(data, dict):
            raise TransportError(
                f"Unexpected response shape from {path}",
                status_code=response.status_code,
                payload=data,
                transport=self.name,
            )
        return data

    def _status_error(self, response: httpx.Response) -> TransportError:
        message = _error_message(response)
        payload = response.text
        if self.config.debug:
            logger.error(f"Aramex API Error: status={response.status_code} message={message} data={payload}")
        if classify_failure(response.status_code, message) is ErrorKind.RATE_LIMITED:
            return RateLimitExceeded(
                message, status_code=response.status_code, payload=payload, transport=self.name
            )
        return TransportError(message, status_code=response.status_code, payload=payload, transport=self.name)
