"""Transport-agnostic request model shared by both wire protocols."""

from dataclasses import dataclass, field
from typing import Any, Dict

TRACK_SHIPMENTS = "track_shipments"
CALCULATE_RATE = "calculate_rate"

SUPPORTED_OPERATIONS = (TRACK_SHIPMENTS, CALCULATE_RATE)


@dataclass
class TransportRequest:
    """A logical provider operation, independent of JSON or SOAP encoding.

    The payload uses the provider's field names (e.g. 'Shipments',
    'OriginAddress'); client credentials are injected by each transport.
    """
    operation: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.operation not in SUPPORTED_OPERATIONS:
            raise ValueError(f"Unsupported operation: {self.operation}")

# Names of the two wire protocols, also used as rate limit keys.
SOAP_TRANSPORT = "soap"
HTTP_TRANSPORT = "http"
