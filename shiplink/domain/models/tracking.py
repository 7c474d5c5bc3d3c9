"""Domain models related to shipment tracking.

The canonical TrackingResult is the only shape that leaves the tracking
service; transport-specific payloads are mapped onto it and never leak.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .common import TrackingNumber

NOT_FOUND_STATUS = "Not Found"
ERROR_STATUS = "Error"


@dataclass
class TrackingEvent:
    """One status update recorded for a shipment."""
    timestamp: str
    status: str
    location: str
    description: str
    event_code: Optional[str] = None


@dataclass
class TrackingResult:
    """Canonical, transport-agnostic tracking result."""
    success: bool
    tracking_number: TrackingNumber
    status: str
    current_location: Optional[str] = None
    estimated_delivery: Optional[str] = None
    events: List[TrackingEvent] = field(default_factory=list)
    message: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    package_info: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def not_found(cls, tracking_number: str) -> "TrackingResult":
        """A missing shipment is a normal outcome, not a fault."""
        return cls(
            success=False,
            tracking_number=TrackingNumber(tracking_number),
            status=NOT_FOUND_STATUS,
            message="Tracking information not available",
            errors=["Package not found in system"],
        )

    @classmethod
    def failed(cls, tracking_number: str, error_message: str) -> "TrackingResult":
        """Per-item failure used when a batch could not be resolved."""
        return cls(
            success=False,
            tracking_number=TrackingNumber(tracking_number),
            status=ERROR_STATUS,
            message=error_message,
            errors=[error_message],
        )


@dataclass
class PackageStatus:
    """Condensed view of the latest known state of a shipment."""
    status: str
    location: Optional[str] = None
    last_update: Optional[str] = None
