"""XML/SOAP transport for the Aramex ShippingAPI v1 services.

Builds SOAP 1.1 envelopes from the provider-shaped payload and parses the
answer back into the same PascalCase dictionary shape the service contracts
use (HasErrors, Notifications, TrackingResults, TotalAmount).
"""

import logging
import time
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional

import httpx

from shiplink.domain.errors import ErrorKind, RateLimitExceeded, TransportError, classify_failure
from shiplink.domain.interfaces.transport import Transport
from shiplink.domain.models.transport import SOAP_TRANSPORT, TransportRequest
from shiplink.infrastructure.config.settings import ProviderConfig
from shiplink.infrastructure.transports.endpoints import (
    ARAMEX_NS,
    ARRAYS_NS,
    SOAP_ACTIONS,
    SOAP_CLIENT_VERSION,
    SOAP_ENVELOPE_NS,
    SOAP_PATHS,
    SOAP_PRODUCTION_HOST,
    SOAP_REQUEST_ELEMENTS,
    SOAP_SANDBOX_HOST,
)

logger = logging.getLogger(__name__)

XSI_NIL = "{http://www.w3.org/2001/XMLSchema-instance}nil"

ET.register_namespace("soap", SOAP_ENVELOPE_NS)
ET.register_namespace("arr", ARRAYS_NS)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _append_value(parent: ET.Element, name: str, value: Any) -> None:
    if value is None:
        return
    element = ET.SubElement(parent, f"{{{ARAMEX_NS}}}{name}")
    if isinstance(value, dict):
        for key, item in value.items():
            _append_value(element, key, item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            # Plain string arrays use the WCF serialization namespace.
            child = ET.SubElement(element, f"{{{ARRAYS_NS}}}string")
            child.text = str(item)
    elif isinstance(value, bool):
        element.text = "true" if value else "false"
    else:
        element.text = str(value)


def build_envelope(operation: str, body: Dict[str, Any]) -> bytes:
    """Serialises a provider-shaped dictionary into a SOAP 1.1 request."""
    envelope = ET.Element(f"{{{SOAP_ENVELOPE_NS}}}Envelope")
    soap_body = ET.SubElement(envelope, f"{{{SOAP_ENVELOPE_NS}}}Body")
    request_element = ET.SubElement(soap_body, f"{{{ARAMEX_NS}}}{SOAP_REQUEST_ELEMENTS[operation]}")
    for key, value in body.items():
        _append_value(request_element, key, value)
    return ET.tostring(envelope, encoding="utf-8", xml_declaration=True)


def _element_value(element: ET.Element) -> Any:
    children = list(element)
    if not children:
        if element.get(XSI_NIL) == "true":
            return None
        return (element.text or "").strip()
    return {_local(child.tag): _element_value(child) for child in children}


def _parse_notifications(element: ET.Element) -> List[Dict[str, str]]:
    return [
        {_local(field.tag): (field.text or "").strip() for field in notification}
        for notification in element
    ]


def _parse_tracking_results(element: ET.Element) -> Dict[str, List[Dict[str, Any]]]:
    """Flattens the WCF key/value array into {waybill: [TrackingResult, ...]}."""
    results: Dict[str, List[Dict[str, Any]]] = {}
    for pair in element:
        key: Optional[str] = None
        records: List[Dict[str, Any]] = []
        for part in pair:
            name = _local(part.tag)
            if name == "Key":
                key = (part.text or "").strip()
            elif name == "Value":
                records = [_element_value(record) for record in part]
        if key:
            results[key] = records
    return results


def _parse_amount(element: ET.Element) -> Dict[str, Any]:
    amount = _element_value(element)
    if isinstance(amount, dict) and amount.get("Value") not in (None, ""):
        try:
            amount["Value"] = float(amount["Value"])
        except ValueError:
            logger.warning(f"Non-numeric amount in SOAP response: {amount['Value']}")
    return amount


def parse_response(content: bytes) -> Dict[str, Any]:
    """Parses a SOAP response body into a dictionary.

    Raises:
        TransportError: On malformed XML, a missing body or a SOAP fault.
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise TransportError(f"Malformed SOAP response: {e}", payload=content, transport=SoapTransport.name) from e

    body = root.find(f"{{{SOAP_ENVELOPE_NS}}}Body")
    if body is None or len(body) == 0:
        raise TransportError("SOAP response has no body", payload=content, transport=SoapTransport.name)

    response_element = body[0]
    if _local(response_element.tag) == "Fault":
        fault = _element_value(response_element)
        message = fault.get("faultstring") if isinstance(fault, dict) else None
        raise TransportError(f"SOAP fault: {message or 'unknown fault'}", payload=fault, transport=SoapTransport.name)

    parsed: Dict[str, Any] = {}
    for child in response_element:
        name = _local(child.tag)
        if name == "HasErrors":
            parsed[name] = (child.text or "").strip().lower() == "true"
        elif name == "Notifications":
            parsed[name] = _parse_notifications(child)
        elif name == "TrackingResults":
            parsed[name] = _parse_tracking_results(child)
        elif name == "TotalAmount":
            parsed[name] = _parse_amount(child)
        else:
            parsed[name] = _element_value(child)
    return parsed


class SoapTransport(Transport):
    """Posts provider requests as SOAP envelopes."""

    name = SOAP_TRANSPORT

    def __init__(
        self,
        config: ProviderConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        enabled: bool = True,
    ):
        self.config = config
        self.host = SOAP_SANDBOX_HOST if config.is_sandbox else SOAP_PRODUCTION_HOST
        self._transport = transport
        self._ready = enabled
        self.client_info: Dict[str, Any] = {
            "UserName": config.username,
            "Password": config.password,
            "Version": SOAP_CLIENT_VERSION,
            "AccountNumber": config.account_number,
            "AccountPin": config.account_pin,
            "AccountEntity": config.account_entity,
            "AccountCountryCode": config.account_country_code,
        }
        if enabled:
            logger.info(f"SoapTransport initialized for {self.host}")
        else:
            logger.warning("SoapTransport created disabled; calls will use the fallback transport")

    def is_ready(self) -> bool:
        return self._ready

    def mark_unavailable(self, reason: str) -> None:
        self._ready = False
        logger.error(f"SOAP transport marked unavailable: {reason}")

    def reinitialize(self) -> None:
        self._ready = True
        logger.info("SOAP transport reinitialized")

    async def call(self, request: TransportRequest) -> Dict[str, Any]:
        if not self._ready:
            raise TransportError("SOAP client not initialized", transport=self.name)

        operation = request.operation
        body = {
            "ClientInfo": self.client_info,
            "Transaction": {"Reference1": f"Track-{int(time.time() * 1000)}"},
            **request.payload,
        }
        envelope = build_envelope(operation, body)
        url = f"{self.host}{SOAP_PATHS[operation]}"
        headers = {"Content-Type": "text/xml; charset=utf-8", "SOAPAction": SOAP_ACTIONS[operation]}
        if self.config.debug:
            logger.debug(f"SOAP Request to {url}: {envelope.decode('utf-8')}")

        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport) as client:
                response = await client.post(url, content=envelope, headers=headers)
        except httpx.TimeoutException as e:
            raise TransportError(
                f"SOAP call timed out after {self.config.timeout_ms}ms", transport=self.name, kind=ErrorKind.NETWORK
            ) from e
        except httpx.RequestError as e:
            raise TransportError(f"SOAP call failed: {e}", transport=self.name, kind=ErrorKind.NETWORK) from e

        if self.config.debug:
            logger.debug(f"Raw SOAP Response: {response.text}")

        if response.is_error:
            try:
                parse_response(response.content)
                message = f"SOAP call failed with HTTP {response.status_code}"
            except TransportError as e:
                message = e.message
            if classify_failure(response.status_code, message) is ErrorKind.RATE_LIMITED:
                raise RateLimitExceeded(
                    message, status_code=response.status_code, payload=response.text, transport=self.name
                )
            raise TransportError(message, status_code=response.status_code, payload=response.text, transport=self.name)

        return parse_response(response.content)
