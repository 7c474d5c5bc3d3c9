"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py) and delegates the work
to the tracking and shipping services and the health monitor. Errors are
caught here, at the command edge, and shown through the UserInterface.
"""

import logging
from typing import List, Optional

# Core Services Imports
from shiplink.core.services.shipping_service import DEFAULT_PACKAGE, ShippingService, parse_route_location
from shiplink.core.services.tracking_service import TrackingService

# Domain Layer Imports
from shiplink.domain.errors import ShipLinkError
from shiplink.domain.interfaces.user_interface import UserInterface
from shiplink.domain.models.common import RateLimitKey
from shiplink.domain.models.health import HealthState
from shiplink.domain.models.shipping import PackageDetails, ShippingSearchRequest
from shiplink.domain.models.transport import HTTP_TRANSPORT

# Infrastructure Layer Imports
from shiplink.infrastructure.monitoring.health_monitor import HealthMonitor

logger = logging.getLogger(__name__)


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services.

    Every handler returns True on success so the CLI can set its exit code.
    """

    def __init__(
        self,
        tracking_service: TrackingService,
        shipping_service: ShippingService,
        health_monitor: HealthMonitor,
        ui: UserInterface,
    ):
        """Initializes the CommandHandler with required services."""
        self.tracking_service = tracking_service
        self.shipping_service = shipping_service
        self.health_monitor = health_monitor
        self.ui = ui

    async def handle_track(
        self,
        tracking_numbers: List[str],
        use_soap: bool = True,
        last_update_only: bool = False,
    ) -> bool:
        """Handles the 'track' command for one or more shipments."""
        logger.info(f"Handling 'track' command for {len(tracking_numbers)} shipment(s)")
        if not tracking_numbers:
            self.ui.display_error("At least one tracking number is required.")
            return False
        try:
            if len(tracking_numbers) == 1:
                results = [await self.tracking_service.track_package(
                    tracking_numbers[0], use_soap=use_soap, last_update_only=last_update_only
                )]
            else:
                results = await self.tracking_service.track_batch(
                    tracking_numbers, last_update_only=last_update_only, use_soap=use_soap
                )
        except ShipLinkError as e:
            logger.error(f"Track command failed: {e}", exc_info=True)
            self.ui.display_error(f"Tracking failed: {e}")
            return False

        self.ui.display_tracking(results)
        return all(result.success for result in results)

    async def handle_status(self, tracking_number: str) -> bool:
        """Handles the 'status' command."""
        logger.info(f"Handling 'status' command for {tracking_number}")
        try:
            status = await self.tracking_service.get_package_status(tracking_number)
        except ShipLinkError as e:
            logger.error(f"Status command failed: {e}", exc_info=True)
            self.ui.display_error(f"Could not get package status: {e}")
            return False
        self.ui.display_package_status(tracking_number, status)
        return True

    async def handle_rates(
        self,
        origin: str,
        destination: str,
        package: Optional[PackageDetails] = None,
        service_type: Optional[str] = None,
    ) -> bool:
        """Handles the 'rates' command. Without package details a default parcel is quoted."""
        logger.info(f"Handling 'rates' command from {origin} to {destination}")
        try:
            if package is None and service_type is None:
                result = await self.shipping_service.get_available_services(origin, destination)
            else:
                request = ShippingSearchRequest(
                    origin=parse_route_location(origin),
                    destination=parse_route_location(destination),
                    package_details=package or DEFAULT_PACKAGE,
                    service_type=service_type,
                )
                result = await self.shipping_service.calculate_rates(request)
        except ShipLinkError as e:
            logger.error(f"Rates command failed: {e}", exc_info=True)
            self.ui.display_error(f"Rate calculation failed: {e}")
            return False

        self.ui.display_rates(result)
        return result.success

    async def handle_health(self) -> bool:
        """Handles the 'health' command. Unhealthy counts as a failure."""
        health = await self.health_monitor.check_health()
        self.ui.display_health(health)
        return health.status is not HealthState.UNHEALTHY

    async def handle_stats(self) -> bool:
        stats = await self.health_monitor.get_system_stats(RateLimitKey(HTTP_TRANSPORT))
        self.ui.display_stats(stats)
        return True

