"""
Test Configuration and Fixtures

Shared fixtures for building isolated sync stacks against an in-process
provider fake.
"""

import os

import pytest

from staffsync.connectors.auth.auth_manager import AuthManager
from staffsync.connectors.auth.token_cache import InMemoryTokenCache
from staffsync.connectors.circuit_breaker import CircuitBreaker
from staffsync.connectors.provider_client import ProviderClient, counts_toward_circuit
from staffsync.connectors.retry import BackoffPolicy
from staffsync.monitoring.metrics import SyncMetrics
from tests.support.clock import FakeClock, RecordingSleep
from tests.support.provider import FakeProvider

os.environ.setdefault("STAFFSYNC_LOG_LEVEL", "WARNING")

BASE_URL = "https://provider.test"


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests (may use real services)")


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def clock():
    return FakeClock.fixed(year=2026, month=3, day=1)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def metrics():
    return SyncMetrics()


@pytest.fixture
def token_cache(clock):
    return InMemoryTokenCache(clock=clock.monotonic)


@pytest.fixture
def auth_manager(provider, token_cache, clock):
    return AuthManager(
        base_url=BASE_URL,
        username="api_user",
        password="secret",
        organization_code="ORG1",
        cache=token_cache,
        transport=provider.transport,
        clock=clock.now,
    )


@pytest.fixture
def circuit_breaker(clock):
    return CircuitBreaker(is_failure=counts_toward_circuit, clock=clock.monotonic)


@pytest.fixture
def provider_client(provider, auth_manager, circuit_breaker, metrics, sleep):
    return ProviderClient(
        base_url=BASE_URL,
        auth=auth_manager,
        circuit_breaker=circuit_breaker,
        backoff=BackoffPolicy(),
        transport=provider.transport,
        metrics=metrics,
        sleep=sleep,
    )
