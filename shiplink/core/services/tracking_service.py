"""Core service for shipment tracking.

Composes the response cache and the dual-transport fallback into the
tracking use cases and maps both provider shapes onto the canonical
TrackingResult. SOAP is the primary transport; JSON/HTTP is the fallback.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence

# Domain Layer Imports
from shiplink.domain.interfaces.cache import CacheService
from shiplink.domain.interfaces.transport import Transport
from shiplink.domain.models.common import CacheKey, TrackingNumber, tracking_cache_key
from shiplink.domain.models.tracking import (
    ERROR_STATUS,
    PackageStatus,
    TrackingEvent,
    TrackingResult,
)
from shiplink.domain.models.transport import SOAP_TRANSPORT, TRACK_SHIPMENTS, TransportRequest

# Infrastructure Layer Imports
from shiplink.infrastructure.resilience.fallback import TransportFallback

logger = logging.getLogger(__name__)

_WCF_DATE = re.compile(r"/Date\((-?\d+)([+-]\d{4})?\)/")
_EPOCH_START = datetime.min.replace(tzinfo=timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parses provider timestamps (ISO-8601 with 'Z' or WCF '/Date(ms)/').

    Unparseable values sort last, so they never become the current status.
    """
    if not value:
        return _EPOCH_START
    text = str(value).strip()
    match = _WCF_DATE.fullmatch(text)
    try:
        if match:
            return datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError):
        logger.debug(f"Unparseable tracking timestamp: {text}")
        return _EPOCH_START
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _error_results(tracking_numbers: Sequence[str], message: str) -> List[TrackingResult]:
    return [TrackingResult.failed(number, message) for number in tracking_numbers]


def map_soap_tracking_response(raw: Dict[str, Any], tracking_numbers: Sequence[str]) -> List[TrackingResult]:
    """Maps a SOAP ShipmentTrackingResponse onto one result per requested number."""
    if raw.get("HasErrors"):
        notifications = raw.get("Notifications") or []
        message = ", ".join(f"{n.get('Code')}: {n.get('Message')}" for n in notifications)
        return _error_results(tracking_numbers, message or "Unknown SOAP error occurred")

    all_results = raw.get("TrackingResults") or {}
    mapped: List[TrackingResult] = []
    for number in tracking_numbers:
        records = all_results.get(number) or []
        if not records:
            mapped.append(TrackingResult.not_found(number))
            continue

        records = sorted(records, key=lambda r: parse_timestamp(r.get("UpdateDateTime")), reverse=True)
        latest = records[0]
        mapped.append(TrackingResult(
            success=True,
            tracking_number=TrackingNumber(number),
            status=latest.get("UpdateDescription") or latest.get("UpdateCode") or "Unknown",
            current_location=latest.get("UpdateLocation"),
            events=[
                TrackingEvent(
                    timestamp=record.get("UpdateDateTime", ""),
                    status=record.get("UpdateCode", ""),
                    location=record.get("UpdateLocation", ""),
                    description=record.get("UpdateDescription", ""),
                    event_code=record.get("UpdateCode"),
                )
                for record in records
            ],
            package_info={"service": "Aramex"},
        ))
    return mapped


def map_http_tracking_response(raw: Dict[str, Any], tracking_numbers: Sequence[str]) -> List[TrackingResult]:
    """Maps a JSON tracking response onto one result per requested number."""
    if raw.get("hasErrors"):
        message = raw.get("errorMessage") or "Unknown error occurred"
        return _error_results(tracking_numbers, message)

    shipments = raw.get("shipments") or []
    mapped: List[TrackingResult] = []
    for number in tracking_numbers:
        shipment = next(
            (s for s in shipments if number in (s.get("trackingNumber"), s.get("shipmentNumber"))),
            None,
        )
        if shipment is None:
            mapped.append(TrackingResult.not_found(number))
            continue

        events = sorted(
            shipment.get("shipmentEvents") or [],
            key=lambda e: parse_timestamp(e.get("eventDate")),
            reverse=True,
        )
        mapped.append(TrackingResult(
            success=True,
            tracking_number=TrackingNumber(number),
            status=shipment.get("statusDescription") or shipment.get("status") or "Unknown",
            current_location=shipment.get("currentLocation"),
            estimated_delivery=shipment.get("estimatedDeliveryDate"),
            events=[
                TrackingEvent(
                    timestamp=event.get("eventDate", ""),
                    status=event.get("eventCode", ""),
                    location=event.get("location", ""),
                    description=event.get("eventDescription", ""),
                    event_code=event.get("eventCode"),
                )
                for event in events
            ],
        ))
    return mapped


class TrackingService:
    """Orchestrates single, batch and status tracking requests."""

    def __init__(self, fallback: TransportFallback, cache: CacheService):
        """Initializes the TrackingService.

        Args:
            fallback: Fallback policy with SOAP as primary and HTTP as secondary.
            cache: Response cache shared with the other services.
        """
        self.fallback = fallback
        self.cache = cache

    async def track_package(
        self,
        tracking_number: str,
        use_soap: bool = True,
        last_update_only: bool = False,
    ) -> TrackingResult:
        """Tracks one shipment, serving repeated and concurrent lookups from the cache.

        Returns:
            The canonical result. An unknown shipment yields a 'Not Found'
            result rather than an exception.

        Raises:
            TransportError: If neither transport could be reached.
        """
        logger.debug(f"Tracking package {tracking_number} (use_soap={use_soap})")
        key = tracking_cache_key(tracking_number, last_update_only)

        async def fetch() -> TrackingResult:
            results = await self._fetch([tracking_number], use_soap, last_update_only)
            return results[0] if results else TrackingResult.not_found(tracking_number)

        result = await self.cache.get_or_compute(key, fetch)
        if result.status == ERROR_STATUS:
            # Provider-side errors are reported but not kept.
            self.cache.delete(key)
        return result

    async def track_batch(
        self,
        tracking_numbers: Sequence[str],
        last_update_only: bool = False,
        use_soap: bool = True,
    ) -> List[TrackingResult]:
        """Tracks several shipments in one upstream call.

        Cached numbers are served from the cache and numbers already being
        tracked join that lookup; only the rest are sent upstream.

        Returns:
            Exactly one result per requested number, in request order. A
            failed upstream call is reported on each affected item.
        """
        logger.debug(f"Tracking batch of {len(tracking_numbers)} packages (use_soap={use_soap})")
        numbers_by_key: Dict[CacheKey, str] = {
            tracking_cache_key(number, last_update_only): number for number in tracking_numbers
        }

        async def fetch(missing: List[CacheKey]) -> Dict[CacheKey, TrackingResult]:
            numbers = [numbers_by_key[key] for key in missing]
            try:
                fetched = await self._fetch(numbers, use_soap, last_update_only)
            except Exception as e:
                logger.error(f"Batch tracking failed for {len(numbers)} packages: {e}")
                raise
            return dict(zip(missing, fetched))

        outcomes = await self.cache.get_or_compute_many(list(numbers_by_key), fetch)
        resolved: Dict[str, TrackingResult] = {}
        for key, outcome in zip(numbers_by_key, outcomes):
            number = numbers_by_key[key]
            if isinstance(outcome, BaseException):
                resolved[number] = TrackingResult.failed(number, f"Tracking failed: {outcome}")
                continue
            if outcome.status == ERROR_STATUS:
                self.cache.delete(key)
            resolved[number] = outcome

        return [resolved[number] for number in tracking_numbers]

    async def get_package_status(self, tracking_number: str) -> PackageStatus:
        """Returns the latest known status, location and update time of a shipment."""
        result = await self.track_package(tracking_number)
        return PackageStatus(
            status=result.status or "Unknown",
            location=result.current_location,
            last_update=result.events[0].timestamp if result.events else None,
        )

    async def _fetch(
        self, tracking_numbers: List[str], use_soap: bool, last_update_only: bool
    ) -> List[TrackingResult]:
        request = TransportRequest(
            operation=TRACK_SHIPMENTS,
            payload={"Shipments": list(tracking_numbers), "GetLastTrackingUpdateOnly": last_update_only},
        )

        def translate(transport: Transport, raw: Dict[str, Any]) -> List[TrackingResult]:
            if transport.name == SOAP_TRANSPORT:
                return map_soap_tracking_response(raw, tracking_numbers)
            return map_http_tracking_response(raw, tracking_numbers)

        return await self.fallback.execute(request, translate, skip_primary=not use_soap)
