"""Interface for presenting results to the user.

Defines the contract for displaying tracking results, rate quotes, health
reports and plain messages, allowing different UI implementations
(e.g., console, JSON output).
"""

import abc
from typing import Any, List

from shiplink.domain.models.health import HealthStatus, SystemStats
from shiplink.domain.models.shipping import ShippingSearchResult
from shiplink.domain.models.tracking import PackageStatus, TrackingResult


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user.

        Args:
            error_message: The error message string.
            **kwargs: Additional arguments for formatting.
        """
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message to the user."""
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user."""
        pass

    @abc.abstractmethod
    def display_tracking(self, results: List[TrackingResult]) -> None:
        """Displays canonical tracking results, one per requested shipment."""
        pass

    @abc.abstractmethod
    def display_package_status(self, tracking_number: str, status: PackageStatus) -> None:
        pass

    @abc.abstractmethod
    def display_rates(self, result: ShippingSearchResult) -> None:
        pass

    @abc.abstractmethod
    def display_health(self, health: HealthStatus) -> None:
        pass

    @abc.abstractmethod
    def display_stats(self, stats: SystemStats) -> None:
        """Displays performance metrics, health, cache and quota usage."""
        pass
