"""
Sync Orchestrator

Drives full, incremental and facility pulls from the provider: paginate,
transform, persist. A bad record is logged and counted, never fatal; a page
that cannot be fetched aborts the run.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from staffsync.connectors.provider_client import ProviderClient, ProviderPage
from staffsync.kernel.errors import PersistenceError, StaffSyncError, error_code_of
from staffsync.kernel.time import isoformat_z, utc_now
from staffsync.models.common import CanonicalModel
from staffsync.models.facility import CanonicalFacility
from staffsync.models.job import CanonicalJob
from staffsync.monitoring.metrics import SyncMetrics
from staffsync.persistence.gateway import PersistenceGateway
from staffsync.transformers.facility import FacilityTransformer
from staffsync.transformers.job import JobTransformer
from staffsync.transformers.text import is_blank

logger = structlog.get_logger()


@dataclass
class RecordFailure:
    external_id: str | None
    error_code: str
    message: str


@dataclass
class SyncResult:
    mode: str
    dry_run: bool = False
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    pages: int = 0
    failures: list[RecordFailure] = field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None or self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def as_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "dry_run": self.dry_run,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "pages": self.pages,
            "failures": [failure.__dict__ for failure in self.failures],
            "started_at": isoformat_z(self.started_at) if self.started_at else None,
            "completed_at": isoformat_z(self.completed_at) if self.completed_at else None,
        }


class SyncOrchestrator:
    """
    Batch sync between the provider and the canonical store.

    Everything it touches (client, transformers, gateways, metrics) is passed
    in, so tests can build isolated instances.

    Example usage:
        orchestrator = SyncOrchestrator(
            client=client,
            job_gateway=InMemoryGateway(entity="job"),
            facility_gateway=InMemoryGateway(entity="facility"),
        )
        result = await orchestrator.full_sync()
    """

    def __init__(
        self,
        *,
        client: ProviderClient,
        job_gateway: PersistenceGateway[CanonicalJob],
        facility_gateway: PersistenceGateway[CanonicalFacility],
        job_transformer: JobTransformer | None = None,
        facility_transformer: FacilityTransformer | None = None,
        metrics: SyncMetrics | None = None,
        page_size: int = 100,
        page_pause_seconds: float = 0.0,
        dry_run: bool = False,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self.job_gateway = job_gateway
        self.facility_gateway = facility_gateway
        self._jobs = job_transformer or JobTransformer(clock=clock)
        self._facilities = facility_transformer or FacilityTransformer(clock=clock)
        self._metrics = metrics
        self.page_size = page_size
        self.page_pause_seconds = page_pause_seconds
        self.dry_run = dry_run
        self._clock = clock
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def full_sync(self, start_page: int = 1, end_page: int | None = None) -> SyncResult:
        """Pull every job page from `start_page` through `end_page` (or the last page)."""

        async def fetch(page: int) -> ProviderPage:
            return await self._client.get_jobs(page=page, limit=self.page_size, include_details=True)

        return await self._run_paged("full", "job", fetch, self.process_job, start_page, end_page)

    async def sync_facilities(self, start_page: int = 1, end_page: int | None = None) -> SyncResult:
        async def fetch(page: int) -> ProviderPage:
            return await self._client.get_facilities(page=page, limit=self.page_size)

        return await self._run_paged("facilities", "facility", fetch, self.process_facility, start_page, end_page)

    async def incremental_sync(self, since: datetime) -> SyncResult:
        """Single `updated_since` pull; `total` is the number of records processed."""
        result = self._start("incremental")
        logger.info("Starting incremental sync", since=isoformat_z(since), dry_run=self.dry_run)

        try:
            page = await self._client.get_jobs_updated_since(since)
        except Exception as exc:
            self._abort(result, exc)
            raise

        result.pages = 1
        await self.process_records(page.data, self.process_job, result=result, entity="job")
        return self._finish(result)

    # ------------------------------------------------------------------
    # Record processing
    # ------------------------------------------------------------------

    async def process_records(
        self,
        records: Sequence[Any],
        handler: Callable[[Any], Awaitable[Any]],
        *,
        result: SyncResult,
        entity: str,
    ) -> SyncResult:
        """Apply `handler` to each record, isolating failures per record."""
        for record in records:
            result.total += 1
            try:
                await handler(record)
            except Exception as exc:
                external_id = _external_id_of(record)
                code = error_code_of(exc)
                message = exc.message if isinstance(exc, StaffSyncError) else str(exc)
                result.failed += 1
                result.failures.append(RecordFailure(external_id=external_id, error_code=code, message=message))
                logger.error(
                    "Failed to process record",
                    entity=entity,
                    external_id=external_id,
                    error_code=code,
                    error=message,
                )
                self._record_outcome(entity, "failed")
            else:
                result.succeeded += 1
                self._record_outcome(entity, "skipped" if self.dry_run else "succeeded")
        return result

    async def process_job(self, record: Any) -> CanonicalJob:
        """
        Transform and persist one job, plus the facility embedded in it.

        Raises:
            TransformationError: the job or its facility could not be mapped
            PersistenceError: the store rejected a write
        """
        job = self._jobs.transform(record)
        await self._persist(self.job_gateway, job)

        embedded = record.get("facility")
        if isinstance(embedded, dict) and not is_blank(embedded.get("id")):
            payload = dict(embedded)
            if is_blank(payload.get("name")):
                payload["name"] = job.facility_name
            facility = self._facilities.transform(payload)
            await self._persist(self.facility_gateway, facility)

        return job

    async def process_facility(self, record: Any) -> CanonicalFacility:
        facility = self._facilities.transform(record)
        await self._persist(self.facility_gateway, facility)
        return facility

    async def delete_job(self, external_id: str) -> bool:
        if self.dry_run:
            logger.info("Dry run: skipping delete", external_id=external_id)
            return False
        try:
            return await self.job_gateway.mark_deleted(external_id)
        except StaffSyncError:
            raise
        except Exception as exc:
            raise PersistenceError(external_id=external_id, message=f"Failed to delete job {external_id}") from exc

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _persist(self, gateway: PersistenceGateway[Any], record: CanonicalModel) -> None:
        if self.dry_run:
            logger.debug("Dry run: skipping upsert", entity=gateway.entity, external_id=record.external_id)
            return
        try:
            await gateway.upsert(record)
        except StaffSyncError:
            raise
        except Exception as exc:
            raise PersistenceError(
                external_id=record.external_id,
                message=f"Failed to persist {gateway.entity} {record.external_id}",
                meta={"reason": type(exc).__name__},
            ) from exc

    async def _run_paged(
        self,
        mode: str,
        entity: str,
        fetch: Callable[[int], Awaitable[ProviderPage]],
        handler: Callable[[Any], Awaitable[Any]],
        start_page: int,
        end_page: int | None,
    ) -> SyncResult:
        result = self._start(mode)
        logger.info(
            "Starting sync",
            mode=mode,
            start_page=start_page,
            end_page=end_page,
            page_size=self.page_size,
            dry_run=self.dry_run,
        )

        page = start_page
        while end_page is None or page <= end_page:
            try:
                response = await fetch(page)
            except Exception as exc:
                self._abort(result, exc, page=page)
                raise

            if response.total_pages and page > response.total_pages:
                logger.info("Page past last page", mode=mode, page=page, total_pages=response.total_pages)
                break
            if not response.data:
                logger.info("No more records", mode=mode, page=page)
                break

            await self.process_records(response.data, handler, result=result, entity=entity)
            result.pages += 1
            logger.info(
                "Processed page",
                mode=mode,
                page=page,
                total_pages=response.total_pages,
                records=len(response.data),
                succeeded=result.succeeded,
                failed=result.failed,
            )

            page += 1
            if response.total_pages and page > response.total_pages:
                break
            if end_page is not None and page > end_page:
                break
            if self.page_pause_seconds > 0:
                await self._sleep(self.page_pause_seconds)

        return self._finish(result)

    def _start(self, mode: str) -> SyncResult:
        return SyncResult(mode=mode, dry_run=self.dry_run, started_at=self._clock())

    def _finish(self, result: SyncResult) -> SyncResult:
        result.completed_at = self._clock()
        status = "partial" if result.failed else "succeeded"
        logger.info(
            "Sync completed",
            mode=result.mode,
            total=result.total,
            succeeded=result.succeeded,
            failed=result.failed,
            pages=result.pages,
            duration_seconds=round(result.duration_seconds, 2),
        )
        if self._metrics is not None:
            self._metrics.record_sync_run(result.mode, status)
        return result

    def _abort(self, result: SyncResult, exc: BaseException, *, page: int | None = None) -> None:
        logger.error(
            "Sync aborted",
            mode=result.mode,
            page=page,
            error_code=error_code_of(exc),
            error=str(exc),
            processed=result.total,
        )
        if self._metrics is not None:
            self._metrics.record_sync_run(result.mode, "failed")

    def _record_outcome(self, entity: str, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.record_sync_record(entity, outcome)


def _external_id_of(record: Any) -> str | None:
    if isinstance(record, dict) and not is_blank(record.get("id")):
        return str(record["id"]).strip()
    return None
