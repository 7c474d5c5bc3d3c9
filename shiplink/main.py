"""Main entry point for the shiplink application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import logging
import sys
from typing import Any, Coroutine, Dict, List, Optional

import typer
from typing_extensions import Annotated

# --- Core Layer ---
from shiplink.core.command_handler import CommandHandler
from shiplink.core.services.shipping_service import DEFAULT_PACKAGE, ShippingService
from shiplink.core.services.tracking_service import TrackingService

# --- Domain Layer ---
from shiplink.domain.errors import ConfigurationError
from shiplink.domain.models.shipping import PackageDetails

# --- Infrastructure Layer ---
# Config
from shiplink.infrastructure.config.settings import (
    create_config_from_environment,
    get_config,
    load_configuration,
    set_config,
)
# UI
from shiplink.infrastructure.cli.display import ConsoleDisplay
# Cache
from shiplink.infrastructure.cache.caching_service import ResponseCache
# Resilience
from shiplink.infrastructure.resilience.fallback import TransportFallback
from shiplink.infrastructure.resilience.rate_limiter import RateLimiter
# Monitoring
from shiplink.infrastructure.monitoring.health_monitor import HealthMonitor
from shiplink.infrastructure.monitoring.logger_setup import setup_logging
# Transports
from shiplink.infrastructure.transports.http_transport import HttpJsonTransport
from shiplink.infrastructure.transports.soap_transport import SoapTransport

logger = logging.getLogger(__name__)

# --- Dependency Injection Container (Manual) ---

def create_dependencies(http_transport=None) -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root.

    Args:
        http_transport: Optional httpx transport shared by both provider
            transports (e.g. httpx.MockTransport in tests).

    Raises:
        ConfigurationError: If the provider credentials are missing or invalid.
    """
    # 1. Load Configuration First
    load_configuration()
    setup_logging(
        log_level=get_config('logging.level', 'INFO'),
        log_file=get_config('logging.file'),
    )
    logger.info("Initializing application dependencies...")
    dependencies: Dict[str, Any] = {}

    provider_config = create_config_from_environment()
    dependencies['provider_config'] = provider_config

    # 2. Instantiate Infrastructure Adapters & Services
    dependencies['ui'] = ConsoleDisplay()
    dependencies['cache_service'] = ResponseCache(
        max_size=get_config('cache.max_size', 1000),
        default_ttl=get_config('cache.default_ttl_seconds', 300),
        tracking_ttl=get_config('cache.tracking_ttl_seconds', 600),
        shipping_ttl=get_config('cache.shipping_ttl_seconds', 1800),
    )
    dependencies['rate_limiter'] = RateLimiter(
        max_requests=get_config('rate_limit.max_requests', 60),
        time_window=get_config('rate_limit.window_seconds', 60),
        retry_attempts=get_config('rate_limit.retry_attempts', 3),
        retry_delay=get_config('rate_limit.retry_delay_seconds', 1.0),
    )
    dependencies['soap_transport'] = SoapTransport(provider_config, transport=http_transport)
    dependencies['http_transport'] = HttpJsonTransport(provider_config, transport=http_transport)

    # 3. Monitoring observes the HTTP API as primary and SOAP as secondary
    dependencies['health_monitor'] = HealthMonitor(
        primary_transport=dependencies['http_transport'],
        secondary_transport=dependencies['soap_transport'],
        cache_service=dependencies['cache_service'],
        rate_limiter=dependencies['rate_limiter'],
        slow_request_threshold_ms=get_config('health.slow_request_threshold_ms', 5000),
    )

    # 4. Fallback policies: tracking prefers SOAP, rate quotes prefer HTTP
    tracking_fallback = TransportFallback(
        primary=dependencies['soap_transport'],
        secondary=dependencies['http_transport'],
        rate_limiter=dependencies['rate_limiter'],
        health_monitor=dependencies['health_monitor'],
    )
    shipping_fallback = TransportFallback(
        primary=dependencies['http_transport'],
        secondary=dependencies['soap_transport'],
        rate_limiter=dependencies['rate_limiter'],
        health_monitor=dependencies['health_monitor'],
    )

    # 5. Instantiate Core Services (injecting dependencies)
    dependencies['tracking_service'] = TrackingService(tracking_fallback, dependencies['cache_service'])
    dependencies['shipping_service'] = ShippingService(shipping_fallback, dependencies['cache_service'])
    logger.info("Core services initialized.")

    # 6. Instantiate Command Handler
    dependencies['command_handler'] = CommandHandler(
        tracking_service=dependencies['tracking_service'],
        shipping_service=dependencies['shipping_service'],
        health_monitor=dependencies['health_monitor'],
        ui=dependencies['ui'],
    )
    logger.info("All dependencies initialized successfully.")
    return dependencies


async def shutdown_dependencies(dependencies: Dict[str, Any]) -> None:
    """Stops the background sweeps and summaries owned by the dependencies."""
    for name in ('health_monitor', 'rate_limiter', 'cache_service'):
        component = dependencies.get(name)
        if component is not None:
            await component.close()
    logger.debug("Background tasks stopped.")


# --- Get Wired-up Dependencies ---
# Built on first use so importing this module never reads credentials.
_dependencies: Optional[Dict[str, Any]] = None


def get_dependencies() -> Dict[str, Any]:
    global _dependencies
    if _dependencies is None:
        try:
            _dependencies = create_dependencies()
        except ConfigurationError as e:
            logger.error(f"Fatal Error during application initialization: {e}")
            ConsoleDisplay().display_error(f"Application Initialization Failed: {e}")
            raise typer.Exit(code=1)
    return _dependencies


def reset_dependencies() -> None:
    """Drops the wired-up instances (used by tests and after config changes)."""
    global _dependencies
    _dependencies = None


# --- Typer App Definition ---
app = typer.Typer(
    name="shiplink",
    help="shiplink: resilient Aramex tracking and rate quotes with caching, rate limiting and transport fallback.",
    add_completion=False,
)


# --- Helper for Running Async Commands ---
def run_async(coro_factory) -> bool:
    """Runs one command coroutine in a fresh event loop, then stops background tasks.

    Args:
        coro_factory: Callable taking the CommandHandler and returning the
            coroutine to run.
    """
    dependencies = get_dependencies()

    async def runner() -> bool:
        try:
            return await coro_factory(dependencies['command_handler'])
        finally:
            await shutdown_dependencies(dependencies)

    try:
        return asyncio.run(runner())
    except Exception as e:
        logger.error(f"Error executing async command: {e}", exc_info=True)
        dependencies['ui'].display_error(f"Command execution failed: {e}")
        return False


def _finish(ok: bool) -> None:
    if not ok:
        raise typer.Exit(code=1)


# --- CLI Commands ---

@app.command()
def track(
    tracking_numbers: Annotated[List[str], typer.Argument(help="One or more Aramex tracking numbers.")],
    http: Annotated[bool, typer.Option("--http", help="Skip SOAP and use the JSON/HTTP API directly.")] = False,
    last_update_only: Annotated[
        bool, typer.Option("--last-update-only", help="Only return the most recent update per shipment.")
    ] = False,
):
    """Track one or more shipments."""
    _finish(run_async(lambda handler: handler.handle_track(
        tracking_numbers, use_soap=not http, last_update_only=last_update_only
    )))


@app.command()
def status(
    tracking_number: Annotated[str, typer.Argument(help="Aramex tracking number.")],
):
    """Show the latest status of a shipment."""
    _finish(run_async(lambda handler: handler.handle_status(tracking_number)))


@app.command()
def rates(
    origin: Annotated[str, typer.Argument(help="Origin as 'City,CountryCode', e.g. 'Dubai,AE'.")],
    destination: Annotated[str, typer.Argument(help="Destination as 'City,CountryCode'.")],
    length: Annotated[Optional[float], typer.Option(help="Package length.")] = None,
    width: Annotated[Optional[float], typer.Option(help="Package width.")] = None,
    height: Annotated[Optional[float], typer.Option(help="Package height.")] = None,
    weight: Annotated[Optional[float], typer.Option(help="Package weight.")] = None,
    unit: Annotated[str, typer.Option(help="Weight unit ('kg' or 'lb').")] = "kg",
    dimension_unit: Annotated[str, typer.Option(help="Dimension unit ('cm' or 'in').")] = "cm",
    service_type: Annotated[
        Optional[str], typer.Option("--service-type", "-s", help="Product type, e.g. PDX, PPX, EXP.")
    ] = None,
):
    """Quote shipping rates between two locations."""
    package = None
    if any(value is not None for value in (length, width, height, weight)) or (unit, dimension_unit) != ("kg", "cm"):
        package = PackageDetails(
            length=length if length is not None else DEFAULT_PACKAGE.length,
            width=width if width is not None else DEFAULT_PACKAGE.width,
            height=height if height is not None else DEFAULT_PACKAGE.height,
            weight=weight if weight is not None else DEFAULT_PACKAGE.weight,
            unit=unit,
            dimension_unit=dimension_unit,
        )
    _finish(run_async(lambda handler: handler.handle_rates(origin, destination, package, service_type)))


@app.command()
def health():
    """Probe the transports and the cache and report overall health."""
    _finish(run_async(lambda handler: handler.handle_health()))


@app.command()
def stats():
    """Show performance, health, cache and rate limit statistics."""
    _finish(run_async(lambda handler: handler.handle_stats()))


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
    sandbox: Annotated[
        Optional[bool], typer.Option("--sandbox/--production", help="Override ARAMEX_SANDBOX.")
    ] = None,
):
    """Resilient Aramex client."""
    if verbose:
        set_config('logging.level', 'DEBUG')
    if sandbox is not None:
        set_config('aramex.sandbox', sandbox)


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    sys.exit(cli_entry_point())
