import asyncio

import pytest
from typer.testing import CliRunner
from typing import Any, Dict, List, Optional

from shiplink.domain.interfaces.transport import Transport
from shiplink.domain.models.transport import HTTP_TRANSPORT, SOAP_TRANSPORT, TransportRequest
from shiplink.infrastructure.cache.caching_service import ResponseCache
from shiplink.infrastructure.config.settings import ProviderConfig, clear_test_config
from shiplink.infrastructure.resilience.rate_limiter import RateLimiter


class FakeTransport(Transport):
    """Scripted transport: returns queued responses or raises queued errors, in order.

    Once the script runs out the last entry is repeated. A delay keeps each call
    in flight for that many seconds.
    """

    def __init__(self, name: str, responses: Optional[List[Any]] = None, ready: bool = True, delay: float = 0.0):
        self.name = name
        self.ready = ready
        self.delay = delay
        self.responses = list(responses or [{}])
        self.requests: List[TransportRequest] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def is_ready(self) -> bool:
        return self.ready

    async def call(self, request: TransportRequest) -> Dict[str, Any]:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        index = min(len(self.requests), len(self.responses)) - 1
        outcome = self.responses[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def provider_config():
    return ProviderConfig(
        username="testuser@example.com",
        password="secret-password",
        account_number="20016",
        account_pin="331421",
        account_entity="AMM",
        account_country_code="JO",
        sandbox=True,
        timeout_ms=5000,
    )


@pytest.fixture
def soap_transport():
    return FakeTransport(SOAP_TRANSPORT)


@pytest.fixture
def http_transport():
    return FakeTransport(HTTP_TRANSPORT)


@pytest.fixture
async def rate_limiter():
    limiter = RateLimiter(max_requests=100, time_window=60, retry_attempts=2, retry_delay=0.01)
    yield limiter
    await limiter.close()


@pytest.fixture
async def cache():
    response_cache = ResponseCache(max_size=100)
    yield response_cache
    await response_cache.close()


@pytest.fixture(autouse=True)
def clean_test_config():
    yield
    clear_test_config()
