"""
Unit tests for SyncOrchestrator.

The provider is the in-process FakeProvider; persistence uses in-memory
gateways.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from staffsync.connectors.provider_client import ProviderPage
from staffsync.kernel.errors import ClientError, PersistenceError, TransportError
from staffsync.kernel.ids import facility_id
from staffsync.persistence.gateway import InMemoryGateway
from staffsync.sync.orchestrator import SyncOrchestrator, SyncResult
from staffsync.transformers.facility import FacilityTransformer
from staffsync.transformers.job import JobTransformer
from tests.support.clock import RecordingSleep

pytestmark = pytest.mark.unit


def _jobs(*ids: str) -> list[dict]:
    return [{"id": job_id, "title": f"icu rn {job_id}", "city": "Reno", "state": "NV"} for job_id in ids]


@pytest.fixture
def job_gateway(clock):
    return InMemoryGateway(entity="job", clock=clock.now)


@pytest.fixture
def facility_gateway(clock):
    return InMemoryGateway(entity="facility", clock=clock.now)


@pytest.fixture
def page_sleep():
    return RecordingSleep()


@pytest.fixture
def orchestrator(provider_client, job_gateway, facility_gateway, metrics, clock, page_sleep):
    return SyncOrchestrator(
        client=provider_client,
        job_gateway=job_gateway,
        facility_gateway=facility_gateway,
        job_transformer=JobTransformer(clock=clock.now),
        facility_transformer=FacilityTransformer(clock=clock.now),
        metrics=metrics,
        page_size=5,
        clock=clock.now,
        sleep=page_sleep,
    )


def _records(metrics, entity: str, outcome: str) -> float:
    return metrics.registry.get_sample_value(
        "staffsync_sync_records_total", {"entity": entity, "outcome": outcome}
    ) or 0.0


class TestFullSync:
    @pytest.mark.asyncio
    async def test_malformed_record_does_not_abort_batch(self, orchestrator, provider, job_gateway, metrics):
        records = _jobs("1", "2", "3", "4", "5", "6", "7", "8", "9", "10")
        del records[3]["id"]
        provider.job_pages = [records]

        result = await orchestrator.full_sync()

        assert (result.total, result.succeeded, result.failed) == (10, 9, 1)
        assert set(job_gateway.records) == {"1", "2", "3", "5", "6", "7", "8", "9", "10"}
        assert result.failures[0].external_id is None
        assert result.failures[0].error_code == "sync.transform_failed"
        assert _records(metrics, "job", "succeeded") == 9.0
        assert _records(metrics, "job", "failed") == 1.0

    @pytest.mark.asyncio
    async def test_walks_all_pages_until_total_pages(self, orchestrator, provider, job_gateway):
        provider.job_pages = [_jobs("1", "2"), _jobs("3", "4"), _jobs("5")]

        result = await orchestrator.full_sync()

        assert result.pages == 3
        assert result.total == 5
        pages = [r.url.params["page"] for r in provider.api_requests()]
        assert pages == ["1", "2", "3"]
        assert all(r.url.params["include_details"] == "true" for r in provider.api_requests())
        assert all(r.url.params["limit"] == "5" for r in provider.api_requests())
        assert len(job_gateway) == 5

    @pytest.mark.asyncio
    async def test_stops_on_empty_page(self, orchestrator, provider):
        provider.job_pages = [_jobs("1"), [], _jobs("3")]

        result = await orchestrator.full_sync()

        assert result.total == 1
        assert len(provider.api_requests()) == 2

    @pytest.mark.asyncio
    async def test_start_and_end_page_bound_the_run(self, orchestrator, provider):
        provider.job_pages = [_jobs("1"), _jobs("2"), _jobs("3"), _jobs("4")]

        result = await orchestrator.full_sync(start_page=2, end_page=3)

        assert result.total == 2
        assert [r.url.params["page"] for r in provider.api_requests()] == ["2", "3"]

    @pytest.mark.asyncio
    async def test_start_page_past_last_page_processes_nothing(self, orchestrator, job_gateway):
        orchestrator._client.get_jobs = AsyncMock(return_value=ProviderPage(data=_jobs("9"), total_pages=2))

        result = await orchestrator.full_sync(start_page=3)

        assert (result.total, result.pages) == (0, 0)
        assert len(job_gateway) == 0

    @pytest.mark.asyncio
    async def test_zero_total_pages_is_not_a_stop_signal(self, orchestrator, job_gateway):
        orchestrator._client.get_jobs = AsyncMock(
            side_effect=[
                ProviderPage(data=_jobs("1"), total_pages=0),
                ProviderPage(data=_jobs("2"), total_pages=0),
                ProviderPage(data=[], total_pages=0),
            ]
        )

        result = await orchestrator.full_sync()

        assert (result.total, result.pages) == (2, 2)
        assert set(job_gateway.records) == {"1", "2"}

    @pytest.mark.asyncio
    async def test_page_pause_between_pages_only(self, orchestrator, provider, page_sleep):
        orchestrator.page_pause_seconds = 1.0
        provider.job_pages = [_jobs("1"), _jobs("2"), _jobs("3")]

        await orchestrator.full_sync()

        assert page_sleep.delays == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_no_pause_by_default(self, orchestrator, provider, page_sleep):
        provider.job_pages = [_jobs("1"), _jobs("2")]
        await orchestrator.full_sync()
        assert page_sleep.delays == []

    @pytest.mark.asyncio
    async def test_page_fetch_failure_propagates(self, orchestrator, provider, job_gateway, metrics):
        provider.job_pages = [_jobs("1"), _jobs("2")]
        orchestrator._client.get_jobs = AsyncMock(
            side_effect=[ProviderPage(data=_jobs("1"), total_pages=2), TransportError(upstream_status=503)]
        )

        with pytest.raises(TransportError):
            await orchestrator.full_sync()

        assert len(job_gateway) == 1
        assert metrics.registry.get_sample_value(
            "staffsync_sync_runs_total", {"mode": "full", "status": "failed"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_dry_run_skips_persistence_only(self, orchestrator, provider, job_gateway, facility_gateway):
        orchestrator.dry_run = True
        records = _jobs("1", "2")
        records[0]["facility"] = {"id": "F-1", "name": "mercy hosp"}
        provider.job_pages = [records]

        result = await orchestrator.full_sync()

        assert result.dry_run is True
        assert (result.total, result.succeeded, result.failed) == (2, 2, 0)
        assert len(job_gateway) == 0
        assert len(facility_gateway) == 0

    @pytest.mark.asyncio
    async def test_dry_run_still_counts_transform_failures(self, orchestrator, provider):
        orchestrator.dry_run = True
        provider.job_pages = [[{"title": "no id"}, *_jobs("2")]]

        result = await orchestrator.full_sync()

        assert (result.succeeded, result.failed) == (1, 1)

    @pytest.mark.asyncio
    async def test_result_timestamps(self, orchestrator, provider, clock):
        provider.job_pages = [_jobs("1")]
        result = await orchestrator.full_sync()
        assert result.started_at == clock.now()
        assert result.completed_at == clock.now()
        assert result.as_dict()["started_at"] == "2026-03-01T00:00:00Z"


class TestRecordProcessing:
    @pytest.mark.asyncio
    async def test_embedded_facility_is_persisted(self, orchestrator, job_gateway, facility_gateway):
        job = await orchestrator.process_job(
            {
                "id": "J-1",
                "title": "er rn",
                "facility": {"id": "F-9", "name": "st. luke's hosp", "type": "acute care"},
            }
        )

        facility = await facility_gateway.find_by_external_id("F-9")
        assert facility is not None
        assert facility.name == "Saint Luke's Hospital"
        assert facility.type == "Hospital"
        assert job.facility_id == facility_id("F-9")
        assert await job_gateway.find_by_external_id("J-1") is not None

    @pytest.mark.asyncio
    async def test_embedded_facility_without_name_uses_job_facility_name(self, orchestrator, facility_gateway):
        await orchestrator.process_job({"id": "J-1", "facility_name": "Mercy Hosp", "facility": {"id": "F-2"}})

        facility = await facility_gateway.find_by_external_id("F-2")
        assert facility.name == "Mercy Hospital"

    @pytest.mark.asyncio
    async def test_embedded_facility_without_id_is_skipped(self, orchestrator, facility_gateway):
        await orchestrator.process_job({"id": "J-1", "facility": {"name": "Nameless"}})
        assert len(facility_gateway) == 0

    @pytest.mark.asyncio
    async def test_gateway_failure_becomes_persistence_error(self, orchestrator, job_gateway):
        job_gateway.upsert = AsyncMock(side_effect=ConnectionError("store down"))

        with pytest.raises(PersistenceError) as exc_info:
            await orchestrator.process_job({"id": "J-1"})

        assert exc_info.value.external_id == "J-1"

    @pytest.mark.asyncio
    async def test_persistence_failures_are_isolated_in_batch(self, orchestrator, job_gateway):
        original = job_gateway.upsert

        async def flaky(record):
            if record.external_id == "2":
                raise ConnectionError("store down")
            return await original(record)

        job_gateway.upsert = flaky
        result = SyncResult(mode="test")

        await orchestrator.process_records(_jobs("1", "2", "3"), orchestrator.process_job, result=result, entity="job")

        assert (result.total, result.succeeded, result.failed) == (3, 2, 1)
        assert result.failures[0].external_id == "2"
        assert result.failures[0].error_code == "sync.persist_failed"

    @pytest.mark.asyncio
    async def test_delete_job(self, orchestrator, job_gateway):
        await orchestrator.process_job({"id": "J-1"})

        assert await orchestrator.delete_job("J-1") is True
        assert (await job_gateway.find_by_external_id("J-1")).is_deleted is True


class TestIncrementalAndFacilities:
    @pytest.mark.asyncio
    async def test_incremental_sync_processes_updated_records(self, orchestrator, provider, job_gateway):
        provider.updated_since = _jobs("7", "8") + [{"title": "broken"}]

        result = await orchestrator.incremental_sync(datetime(2026, 2, 28, tzinfo=timezone.utc))

        assert result.mode == "incremental"
        assert (result.total, result.succeeded, result.failed) == (3, 2, 1)
        assert set(job_gateway.records) == {"7", "8"}
        assert provider.api_requests()[0].url.params["updated_since"] == "2026-02-28T00:00:00Z"

    @pytest.mark.asyncio
    async def test_incremental_fetch_failure_propagates(self, orchestrator, provider):
        orchestrator._client.get_jobs_updated_since = AsyncMock(side_effect=ClientError(upstream_status=400))

        with pytest.raises(ClientError):
            await orchestrator.incremental_sync(datetime(2026, 2, 28, tzinfo=timezone.utc))

    @pytest.mark.asyncio
    async def test_sync_facilities_pages_through_facilities(self, orchestrator, provider, facility_gateway):
        provider.facility_pages = [
            [{"id": "F-1", "name": "mercy hosp"}, {"id": "F-2", "name": "univ med ctr"}],
            [{"id": "F-3", "name": "st. jude"}],
        ]

        result = await orchestrator.sync_facilities()

        assert (result.total, result.pages) == (3, 2)
        assert (await facility_gateway.find_by_external_id("F-2")).name == "University Medical Center"
