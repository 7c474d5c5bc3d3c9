"""Core service for shipping rate quotes.

Validates quote requests, maps them onto the provider's rate calculator
request and caches canonical results per route and package. JSON/HTTP is
the primary transport; SOAP is the fallback.
"""

import logging
from typing import Any, Dict, List, Optional

# Domain Layer Imports
from shiplink.domain.interfaces.cache import CacheService
from shiplink.domain.interfaces.transport import Transport
from shiplink.domain.models.common import CacheKey, CountryCode, shipping_cache_key, stable_hash
from shiplink.domain.models.shipping import (
    PackageDetails,
    ShippingLocation,
    ShippingSearchRequest,
    ShippingSearchResult,
    ShippingServiceOption,
)
from shiplink.domain.models.transport import CALCULATE_RATE, SOAP_TRANSPORT, TransportRequest

# Infrastructure Layer Imports
from shiplink.infrastructure.resilience.fallback import TransportFallback

logger = logging.getLogger(__name__)

DEFAULT_PRODUCT_GROUP = "EXP"
DEFAULT_PRODUCT_TYPE = "PDX"
DEFAULT_PAYMENT_TYPE = "P"  # Prepaid
DEFAULT_DESCRIPTION_OF_GOODS = "General Merchandise"
RATE_SUCCESS_MESSAGE = "Rate calculation successful"

# Used by get_available_services when only a route is known.
DEFAULT_PACKAGE = PackageDetails(length=20, width=15, height=10, weight=1, unit="kg", dimension_unit="cm")

COUNTRY_CODES: Dict[str, str] = {
    "UAE": "AE",
    "United Arab Emirates": "AE",
    "US": "US",
    "United States": "US",
    "UK": "GB",
    "United Kingdom": "GB",
    "Jordan": "JO",
    "Saudi Arabia": "SA",
    "Kuwait": "KW",
    "Qatar": "QA",
    "Bahrain": "BH",
    "Oman": "OM",
}


def get_country_code(country: str) -> CountryCode:
    """Maps common country names to ISO codes; unknown values pass through."""
    return CountryCode(COUNTRY_CODES.get(country, country))


def parse_route_location(value: str) -> ShippingLocation:
    """Parses a 'City,CountryCode' string."""
    city, _, country = value.partition(",")
    return ShippingLocation(country=country.strip(), city=city.strip())


def _address(location: ShippingLocation) -> Dict[str, Any]:
    return {
        "Line1": location.address or "",
        "City": location.city,
        "StateOrProvinceCode": location.state,
        "PostCode": location.postal_code,
        "CountryCode": get_country_code(location.country),
    }


def map_to_provider_request(request: ShippingSearchRequest) -> Dict[str, Any]:
    """Builds the rate calculator payload (addresses and shipment details)."""
    origin = _address(request.origin)
    details = request.package_details
    return {
        "OriginAddress": origin,
        "DestinationAddress": _address(request.destination),
        "ShipmentDetails": {
            "Dimensions": {
                "Length": details.length,
                "Width": details.width,
                "Height": details.height,
                "Unit": details.dimension_unit or "cm",
            },
            "ActualWeight": {"Value": details.weight, "Unit": details.unit or "kg"},
            "ProductGroup": DEFAULT_PRODUCT_GROUP,
            "ProductType": request.service_type or DEFAULT_PRODUCT_TYPE,
            "PaymentType": request.payment_type or DEFAULT_PAYMENT_TYPE,
            "NumberOfPieces": 1,
            "DescriptionOfGoods": request.description_of_goods or DEFAULT_DESCRIPTION_OF_GOODS,
            "GoodsOriginCountry": origin["CountryCode"],
        },
    }


def _amount_option(
    product_type: str, amount: Any, currency: Optional[str], delivery: Optional[str]
) -> ShippingServiceOption:
    return ShippingServiceOption(
        service_id=product_type,
        service_name=f"Aramex {product_type}",
        service_type=product_type,
        estimated_delivery_time=delivery,
        amount=float(amount),
        currency=currency or "",
        description=f"{DEFAULT_PRODUCT_GROUP} - {product_type}",
    )


def map_http_rate_response(raw: Dict[str, Any], product_type: str) -> ShippingSearchResult:
    if raw.get("hasErrors"):
        message = raw.get("errorMessage")
        return ShippingSearchResult.failed([message or "Unknown error occurred"], message=message)

    services = [
        ShippingServiceOption(
            service_id=rate.get("serviceCode", ""),
            service_name=rate.get("serviceName", ""),
            service_type=rate.get("productType", ""),
            estimated_delivery_time=rate.get("estimatedDeliveryDate"),
            amount=float(rate.get("rate") or 0),
            currency=rate.get("currencyCode", ""),
            description=f"{rate.get('productGroup')} - {rate.get('serviceName')}",
        )
        for rate in raw.get("rateDetails") or []
    ]
    if not services and raw.get("totalAmount") is not None:
        services.append(_amount_option(
            product_type, raw["totalAmount"], raw.get("currencyCode"), raw.get("estimatedDeliveryDate")
        ))
    return ShippingSearchResult(success=True, services=services, message=RATE_SUCCESS_MESSAGE)


def map_soap_rate_response(raw: Dict[str, Any], product_type: str) -> ShippingSearchResult:
    if raw.get("HasErrors"):
        notifications = raw.get("Notifications") or []
        errors = [f"{n.get('Code')}: {n.get('Message')}" for n in notifications] or ["Unknown SOAP error occurred"]
        return ShippingSearchResult.failed(errors)

    total = raw.get("TotalAmount") or {}
    services: List[ShippingServiceOption] = []
    if total.get("Value") not in (None, ""):
        services.append(_amount_option(product_type, total["Value"], total.get("CurrencyCode"), None))
    return ShippingSearchResult(success=True, services=services, message=RATE_SUCCESS_MESSAGE)


class ShippingService:
    """Orchestrates rate quotes for a route and package."""

    def __init__(self, fallback: TransportFallback, cache: CacheService):
        """Initializes the ShippingService.

        Args:
            fallback: Fallback policy with HTTP as primary and SOAP as secondary.
            cache: Response cache shared with the other services.
        """
        self.fallback = fallback
        self.cache = cache

    async def calculate_rates(self, request: ShippingSearchRequest) -> ShippingSearchResult:
        """Quotes the available services for one package on one route.

        Returns:
            The canonical result. Invalid requests and provider-side errors
            yield success=False results.

        Raises:
            TransportError: If neither transport could be reached.
        """
        problems = request.validate()
        if problems:
            logger.warning(f"Rejected invalid rate request: {problems}")
            return ShippingSearchResult.failed(problems, message="Invalid shipping request")

        payload = map_to_provider_request(request)
        product_type = payload["ShipmentDetails"]["ProductType"]
        key = self._cache_key(payload)
        logger.debug(f"Calculating shipping rates for {key}")

        async def fetch() -> ShippingSearchResult:
            def translate(transport: Transport, raw: Dict[str, Any]) -> ShippingSearchResult:
                if transport.name == SOAP_TRANSPORT:
                    return map_soap_rate_response(raw, product_type)
                return map_http_rate_response(raw, product_type)

            transport_request = TransportRequest(operation=CALCULATE_RATE, payload=payload)
            return await self.fallback.execute(transport_request, translate)

        result = await self.cache.get_or_compute(key, fetch)
        if not result.success:
            self.cache.delete(key)
        return result

    async def get_available_services(self, origin: str, destination: str) -> ShippingSearchResult:
        """Quotes a default 20x15x10 cm, 1 kg package between two 'City,CountryCode' locations."""
        logger.debug(f"Getting available services from {origin} to {destination}")
        request = ShippingSearchRequest(
            origin=parse_route_location(origin),
            destination=parse_route_location(destination),
            package_details=DEFAULT_PACKAGE,
        )
        return await self.calculate_rates(request)

    @staticmethod
    def _cache_key(payload: Dict[str, Any]) -> CacheKey:
        origin = _route_part(payload["OriginAddress"])
        destination = _route_part(payload["DestinationAddress"])
        return shipping_cache_key(origin, destination, stable_hash(payload))


def _route_part(address: Dict[str, Any]) -> str:
    return f"{address['CountryCode']}-{address['City']}".lower()
