"""Domain models related to shipping rate quotes."""

from dataclasses import dataclass, field
from typing import List, Optional

VALID_WEIGHT_UNITS = ("kg", "lb")
VALID_DIMENSION_UNITS = ("cm", "in")
VALID_SERVICE_TYPES = ("EXP", "DOM", "PDX", "PPX", "GND")
VALID_PAYMENT_TYPES = ("P", "C", "3")  # Prepaid, Collect, Third party


@dataclass
class ShippingLocation:
    country: str
    city: str
    postal_code: Optional[str] = None
    state: Optional[str] = None
    address: Optional[str] = None


@dataclass
class PackageDetails:
    length: float
    width: float
    height: float
    weight: float
    unit: str = "kg"
    dimension_unit: str = "cm"


@dataclass
class ShippingSearchRequest:
    """A rate quote request for one package on one route."""
    origin: ShippingLocation
    destination: ShippingLocation
    package_details: PackageDetails
    service_type: Optional[str] = None
    payment_type: Optional[str] = None
    description_of_goods: Optional[str] = None

    def validate(self) -> List[str]:
        """Returns human readable problems with the request (empty when valid)."""
        problems: List[str] = []
        for label, location in (("origin", self.origin), ("destination", self.destination)):
            if not (location.country or "").strip():
                problems.append(f"{label}.country must not be empty")
            if not (location.city or "").strip():
                problems.append(f"{label}.city must not be empty")

        details = self.package_details
        for name in ("length", "width", "height", "weight"):
            value = getattr(details, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                problems.append(f"package_details.{name} must be a positive number")
        if details.unit not in VALID_WEIGHT_UNITS:
            problems.append(f"package_details.unit must be one of {', '.join(VALID_WEIGHT_UNITS)}")
        if details.dimension_unit not in VALID_DIMENSION_UNITS:
            problems.append(
                f"package_details.dimension_unit must be one of {', '.join(VALID_DIMENSION_UNITS)}"
            )

        if self.service_type is not None and self.service_type not in VALID_SERVICE_TYPES:
            problems.append(f"service_type must be one of {', '.join(VALID_SERVICE_TYPES)}")
        if self.payment_type is not None and self.payment_type not in VALID_PAYMENT_TYPES:
            problems.append(f"payment_type must be one of {', '.join(VALID_PAYMENT_TYPES)}")
        return problems


@dataclass
class ShippingServiceOption:
    service_id: str
    service_name: str
    service_type: str
    estimated_delivery_time: Optional[str]
    amount: float
    currency: str
    description: Optional[str] = None


@dataclass
class ShippingSearchResult:
    """Canonical, transport-agnostic rate quote result."""
    success: bool
    services: List[ShippingServiceOption] = field(default_factory=list)
    message: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    @classmethod
    def failed(cls, errors: List[str], message: Optional[str] = None) -> "ShippingSearchResult":
        return cls(success=False, services=[], message=message or "; ".join(errors), errors=list(errors))
