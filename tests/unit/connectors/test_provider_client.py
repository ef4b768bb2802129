"""
Unit tests for ProviderClient.

Covers bearer injection, the 401 refresh-once branch, error classification
and the breaker/backoff composition.
"""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest
from structlog.testing import capture_logs

from staffsync.connectors.circuit_breaker import CircuitState
from staffsync.connectors.provider_client import ProviderClient, ProviderPage
from staffsync.kernel.errors import (
    AuthenticationError,
    CircuitOpenError,
    ClientError,
    TransportError,
)

pytestmark = pytest.mark.unit


def _counter(metrics, name: str, **labels) -> float:
    return metrics.registry.get_sample_value(name, labels) or 0.0


class TestProviderPage:
    def test_parses_data_and_total_pages(self):
        page = ProviderPage.from_payload({"data": [{"id": 1}], "meta": {"total_pages": "3"}})
        assert page.data == [{"id": 1}]
        assert page.total_pages == 3

    def test_tolerates_missing_meta_and_junk(self):
        page = ProviderPage.from_payload({"data": [{"id": 1}, "junk"], "meta": None})
        assert page.data == [{"id": 1}]
        assert page.total_pages is None

    def test_bare_list_payload(self):
        assert ProviderPage.from_payload([{"id": 1}]).data == [{"id": 1}]

    def test_non_dict_payload_is_empty(self):
        assert ProviderPage.from_payload("oops").data == []


@pytest.mark.asyncio
async def test_requests_carry_bearer_token_and_paging_params(provider_client, provider):
    provider.job_pages = [[{"id": "1"}], [{"id": "2"}]]

    page = await provider_client.get_jobs(page=2, limit=50)

    assert page.data == [{"id": "2"}]
    assert page.total_pages == 2
    request = provider.api_requests()[0]
    assert request.headers["Authorization"] == "Bearer access-1"
    assert request.url.params["page"] == "2"
    assert request.url.params["limit"] == "50"
    assert request.url.params["include_details"] == "true"


@pytest.mark.asyncio
async def test_updated_since_is_sent_as_utc_iso(provider_client, provider):
    provider.updated_since = [{"id": "9"}]

    page = await provider_client.get_jobs_updated_since(datetime(2026, 2, 1, 6, 0, tzinfo=timezone.utc))

    assert page.data == [{"id": "9"}]
    assert provider.api_requests()[0].url.params["updated_since"] == "2026-02-01T06:00:00Z"


@pytest.mark.asyncio
async def test_single_record_endpoints_unwrap_data(provider_client, provider):
    provider.jobs_by_id["42"] = {"id": "42", "title": "RN"}

    assert await provider_client.get_job("42") == {"id": "42", "title": "RN"}
    assert await provider_client.get_specialties() == [{"id": 1, "name": "ICU"}]
    assert await provider_client.health_check() == {"status": "ok"}


@pytest.mark.asyncio
async def test_401_refreshes_and_replays_once(provider_client, provider):
    provider.reject_tokens = {"access-1"}
    provider.job_pages = [[{"id": "1"}]]
    await provider_client._auth.get_access_token()

    page = await provider_client.get_jobs()

    assert page.data == [{"id": "1"}]
    api = provider.api_requests()
    assert [r.headers["Authorization"] for r in api] == ["Bearer access-1", "Bearer access-2"]
    assert provider.token_requests[-1]["grant_type"] == "refresh_token"


@pytest.mark.asyncio
async def test_second_401_raises_authentication_error(provider_client, provider, sleep):
    provider.reject_tokens = {"access-1", "access-2"}
    await provider_client._auth.get_access_token()

    with pytest.raises(AuthenticationError):
        await provider_client.get_jobs()

    assert len(provider.api_requests()) == 2
    assert sleep.delays == []
    assert provider_client.circuit_breaker.failure_count == 0


@pytest.mark.asyncio
async def test_5xx_is_retried_with_backoff(provider_client, provider, sleep):
    provider.fail_statuses = [503, 502]
    provider.job_pages = [[{"id": "1"}]]

    page = await provider_client.get_jobs()

    assert page.data == [{"id": "1"}]
    assert sleep.delays == [1.0, 2.0]
    assert provider_client.circuit_breaker.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_exhausted_retries_surface_transport_error(provider_client, provider, sleep, metrics):
    provider.fail_statuses = [500] * 4

    with pytest.raises(TransportError) as exc_info:
        await provider_client.get_jobs()

    assert exc_info.value.upstream_status == 500
    assert len(provider.api_requests()) == 4
    assert sleep.delays == [1.0, 2.0, 4.0]
    assert _counter(
        metrics,
        "staffsync_provider_errors_total",
        operation="get_jobs",
        error_code="provider.transport",
    ) == 1.0


@pytest.mark.asyncio
async def test_429_counts_as_transport_error(provider_client, provider, sleep):
    provider.fail_statuses = [429]
    provider.job_pages = [[{"id": "1"}]]

    await provider_client.get_jobs()

    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_4xx_is_not_retried(provider_client, provider, sleep):
    with pytest.raises(ClientError) as exc_info:
        await provider_client.get_job("missing")

    assert exc_info.value.upstream_status == 404
    assert sleep.delays == []
    assert provider_client.circuit_breaker.failure_count == 0


@pytest.mark.asyncio
async def test_network_errors_become_transport_errors(auth_manager, circuit_breaker, sleep):
    from staffsync.connectors.retry import BackoffPolicy

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/token":
            return httpx.Response(200, json={"access_token": "t", "expires_in": 3600})
        raise httpx.ConnectError("connection refused", request=request)

    transport = httpx.MockTransport(handler)
    auth_manager._transport = transport
    client = ProviderClient(
        base_url="https://provider.test",
        auth=auth_manager,
        circuit_breaker=circuit_breaker,
        backoff=BackoffPolicy(max_retries=1),
        transport=transport,
        sleep=sleep,
    )

    with pytest.raises(TransportError):
        await client.get_jobs()
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_breaker_opens_and_fails_fast(provider_client, provider, metrics):
    # Each call exhausts 4 attempts; the breaker counts one failure per call.
    provider.fail_statuses = [503] * 20

    for _ in range(5):
        with pytest.raises(TransportError):
            await provider_client.get_jobs()

    assert provider_client.circuit_breaker.state == CircuitState.OPEN
    sent = len(provider.api_requests())

    with pytest.raises(CircuitOpenError):
        await provider_client.get_jobs()

    assert len(provider.api_requests()) == sent
    assert _counter(
        metrics,
        "staffsync_provider_errors_total",
        operation="get_jobs",
        error_code="provider.circuit_open",
    ) == 1.0


@pytest.mark.asyncio
async def test_successful_calls_are_recorded(provider_client, provider, metrics):
    provider.job_pages = [[{"id": "1"}]]

    await provider_client.get_jobs()

    assert _counter(
        metrics,
        "staffsync_provider_requests_total",
        operation="get_jobs",
        method="GET",
        status_code="200",
    ) == 1.0


@pytest.mark.asyncio
async def test_async_context_manager_closes_client(auth_manager, circuit_breaker, provider):
    from staffsync.connectors.retry import BackoffPolicy

    async with ProviderClient(
        base_url="https://provider.test",
        auth=auth_manager,
        circuit_breaker=circuit_breaker,
        backoff=BackoffPolicy(),
        transport=provider.transport,
    ) as client:
        await client.health_check()

    assert client._client.is_closed


@pytest.mark.asyncio
async def test_retry_log_reports_jittered_delay(auth_manager, circuit_breaker, provider, sleep):
    from staffsync.connectors.retry import BackoffPolicy

    provider.fail_statuses = [503, 503]
    client = ProviderClient(
        base_url="https://provider.test",
        auth=auth_manager,
        circuit_breaker=circuit_breaker,
        backoff=BackoffPolicy(jitter=True),
        transport=provider.transport,
        sleep=sleep,
    )

    with capture_logs() as logs:
        await client.health_check()

    retries = [entry for entry in logs if entry["event"] == "Retrying provider request"]
    assert [entry["delay"] for entry in retries] == [round(delay, 3) for delay in sleep.delays]
    assert 1.0 <= sleep.delays[0] <= 1.5
