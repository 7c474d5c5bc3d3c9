"""Rich console implementation of the UserInterface."""

import logging
from datetime import datetime
from typing import Any, List, Optional

from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from shiplink.domain.interfaces.user_interface import UserInterface
from shiplink.domain.models.health import HealthState, HealthStatus, SystemStats
from shiplink.domain.models.shipping import ShippingSearchResult
from shiplink.domain.models.tracking import PackageStatus, TrackingResult

logger = logging.getLogger(__name__)

HEALTH_STYLES = {
    HealthState.HEALTHY: "bold green",
    HealthState.DEGRADED: "bold yellow",
    HealthState.UNHEALTHY: "bold red",
}


def _flag(value: bool) -> str:
    return "[green]ok[/green]" if value else "[red]failing[/red]"


def _format_epoch(value: Optional[float]) -> str:
    if not value:
        return "-"
    return datetime.fromtimestamp(value).strftime("%Y-%m-%d %H:%M:%S")


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        """Initializes the rich Console (injectable for tests)."""
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message in a distinct style.

        Args:
            error_message: The error message to display.
        """
        panel = Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        logger.debug(f"Display warning: {warning_message}")
        panel = Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_tracking(self, results: List[TrackingResult]) -> None:
        """Prints one panel per shipment with its event history as a table."""
        for result in results:
            title_style = "bold green" if result.success else "bold red"
            header = f"[{title_style}]{result.tracking_number}[/{title_style}] [dim]|[/dim] {result.status}"
            if not result.success:
                body = Text(result.message or "; ".join(result.errors) or result.status, style="white")
                self.console.print(Panel(body, title=header, title_align="left", border_style="red", box=ROUNDED))
                continue

            table = Table(show_header=True, box=SIMPLE, padding=(0, 1))
            table.add_column("Time", style="dim")
            table.add_column("Code", style="cyan")
            table.add_column("Location")
            table.add_column("Description")
            for event in result.events:
                table.add_row(event.timestamp, event.status, event.location, event.description)

            subtitle = f"Location: {result.current_location or '-'}"
            if result.estimated_delivery:
                subtitle += f" | ETA: {result.estimated_delivery}"
            self.console.print(Panel(
                table,
                title=header,
                title_align="left",
                subtitle=subtitle,
                subtitle_align="left",
                border_style="green",
                box=ROUNDED,
            ))

    def display_package_status(self, tracking_number: str, status: PackageStatus) -> None:
        table = Table(show_header=False, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Field", style="bold cyan")
        table.add_column("Value")
        table.add_row("Shipment", tracking_number)
        table.add_row("Status", status.status)
        table.add_row("Location", status.location or "-")
        table.add_row("Last update", status.last_update or "-")
        self.console.print(table)

    def display_rates(self, result: ShippingSearchResult) -> None:
        if not result.success:
            self.display_error("\n".join(result.errors) or result.message or "Rate calculation failed")
            return
        if not result.services:
            self.display_info("No shipping services available for this route.")
            return

        table = Table(title="Shipping Rates", show_header=True, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Service", style="bold")
        table.add_column("Type", style="cyan")
        table.add_column("Amount", justify="right")
        table.add_column("Delivery")
        for option in result.services:
            table.add_row(
                option.service_name or option.service_id,
                option.service_type,
                f"{option.amount:,.2f} {option.currency}".strip(),
                option.estimated_delivery_time or "-",
            )
        self.console.print(table)

    def display_health(self, health: HealthStatus) -> None:
        style = HEALTH_STYLES.get(health.status, "bold")
        table = Table(show_header=False, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Check", style="bold cyan")
        table.add_column("Result")
        table.add_row("Status", f"[{style}]{health.status.value}[/{style}]")
        table.add_row("Primary transport", _flag(health.primary_transport))
        table.add_row("Secondary transport", _flag(health.secondary_transport))
        table.add_row("Cache", _flag(health.cache_service))
        table.add_row("Checked in", f"{health.response_time_ms:.0f} ms")
        self.console.print(table)
        for error in health.errors:
            self.display_warning(error)

    def display_stats(self, stats: SystemStats) -> None:
        performance = stats["performance"]
        cache = stats["cache"]
        rate_limit = stats["rate_limit"]

        table = Table(title="System Statistics", show_header=True, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Area", style="bold cyan")
        table.add_column("Metric")
        table.add_column("Value", justify="right")
        table.add_row("Performance", "Requests", str(performance["request_count"]))
        table.add_row("", "Average response", f"{performance['average_response_time_ms']:.0f} ms")
        table.add_row("", "Error rate", f"{performance['error_rate_percent']:.2f}%")
        table.add_row(
            "", "Slow requests",
            f"{performance['slow_request_count']} (> {performance['slow_request_threshold_ms']:.0f} ms)",
        )
        table.add_row("", "Last request", _format_epoch(performance["last_request_time"]))
        table.add_row("Cache", "Entries", str(cache["total_entries"]))
        table.add_row("", "Expired", str(cache["expired_entries"]))
        table.add_row("", "In flight", str(cache["in_flight"]))
        table.add_row("", "Hit rate", f"{cache['hit_rate']:.1f}%")
        table.add_row("Rate limit", "Remaining", str(rate_limit["remaining"]))
        table.add_row("", "Resets at", _format_epoch(rate_limit["reset_at"]))
        table.add_row("", "Limited", "yes" if rate_limit["is_limited"] else "no")
        self.console.print(table)
        self.display_health(stats["health"])
