import io

import pytest
from rich.console import Console
from rich.panel import Panel
from unittest.mock import MagicMock

from shiplink.domain.models.health import HealthState, HealthStatus
from shiplink.domain.models.shipping import ShippingSearchResult, ShippingServiceOption
from shiplink.domain.models.tracking import PackageStatus, TrackingEvent, TrackingResult
from shiplink.infrastructure.cli.display import ConsoleDisplay


@pytest.fixture
def mock_console():
    """Fixture to create a mock rich Console object."""
    return MagicMock()


@pytest.fixture
def console():
    """A real console writing to memory, so rendered text can be inspected."""
    return Console(file=io.StringIO(), record=True, width=140, color_system=None)


def rendered(console: Console) -> str:
    return console.export_text()


def healthy_status(**overrides):
    values = dict(
        status=HealthState.HEALTHY,
        primary_transport=True,
        secondary_transport=True,
        cache_service=True,
        last_checked=0.0,
        response_time_ms=12.0,
        errors=[],
    )
    values.update(overrides)
    return HealthStatus(**values)


def test_display_error_prints_panel(mock_console: MagicMock):
    """Test that display_error wraps the message in a panel."""
    ConsoleDisplay(console=mock_console).display_error("Something broke")

    mock_console.print.assert_called_once()
    args, _ = mock_console.print.call_args
    assert isinstance(args[0], Panel)


def test_display_tracking_success_and_not_found(console: Console):
    results = [
        TrackingResult(
            success=True,
            tracking_number="A",
            status="Delivered",
            current_location="Amman",
            events=[TrackingEvent("2024-01-02T10:00:00Z", "SH005", "Amman", "Delivered")],
        ),
        TrackingResult.not_found("B"),
    ]

    ConsoleDisplay(console=console).display_tracking(results)

    text = rendered(console)
    assert "SH005" in text
    assert "Location: Amman" in text
    assert "Not Found" in text
    assert "Tracking information not available" in text


def test_display_package_status(console: Console):
    ConsoleDisplay(console=console).display_package_status(
        "123", PackageStatus(status="In Transit", location=None, last_update="2024-01-01")
    )

    text = rendered(console)
    assert "In Transit" in text
    assert "2024-01-01" in text


def test_display_rates_table(console: Console):
    result = ShippingSearchResult(success=True, services=[
        ShippingServiceOption("PPX", "Priority Parcel Express", "PPX", "2024-01-05", 1234.5, "AED"),
    ])

    ConsoleDisplay(console=console).display_rates(result)

    text = rendered(console)
    assert "Priority Parcel Express" in text
    assert "1,234.50 AED" in text


def test_display_rates_failure_and_empty(console: Console):
    display = ConsoleDisplay(console=console)
    display.display_rates(ShippingSearchResult.failed(["origin.city must not be empty"]))
    display.display_rates(ShippingSearchResult(success=True))

    text = rendered(console)
    assert "origin.city must not be empty" in text
    assert "No shipping services available" in text


def test_display_health_lists_diagnostics(console: Console):
    health = healthy_status(
        status=HealthState.DEGRADED,
        secondary_transport=False,
        errors=["Secondary transport (soap) not ready"],
    )

    ConsoleDisplay(console=console).display_health(health)

    text = rendered(console)
    assert "degraded" in text
    assert "failing" in text
    assert "Secondary transport (soap) not ready" in text


def test_display_stats(console: Console):
    stats = {
        "performance": {
            "request_count": 4,
            "average_response_time_ms": 250.0,
            "error_rate_percent": 25.0,
            "slow_request_count": 1,
            "last_request_time": None,
            "slow_request_threshold_ms": 5000.0,
        },
        "health": healthy_status(),
        "cache": {"total_entries": 3, "expired_entries": 0, "in_flight": 0, "hits": 1, "misses": 3,
                  "hit_rate": 25.0},
        "rate_limit": {"remaining": 59, "reset_at": 0.0, "is_limited": False},
    }

    ConsoleDisplay(console=console).display_stats(stats)

    text = rendered(console)
    assert "System Statistics" in text
    assert "25.00%" in text
    assert "59" in text
    assert "healthy" in text
