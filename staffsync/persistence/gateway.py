"""
Persistence Gateway

The narrow contract the sync layer needs from the canonical store: upsert by
external id, soft delete, and lookup. Storage engines live behind it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Generic, TypeVar

import structlog

from staffsync.kernel.time import utc_now
from staffsync.models.common import CanonicalModel

logger = structlog.get_logger()

RecordT = TypeVar("RecordT", bound=CanonicalModel)


class PersistenceGateway(ABC, Generic[RecordT]):
    """
    Keyed store for one canonical record type.

    `upsert` is idempotent: applying the same record twice leaves one stored
    record, and locally owned fields (`LOCAL_FIELDS`) of an existing record
    survive the update.
    """

    def __init__(self, *, entity: str, clock: Callable[[], datetime] = utc_now):
        self.entity = entity
        self._clock = clock

    @abstractmethod
    async def _load(self, external_id: str) -> RecordT | None:
        """Return the stored record or None."""

    @abstractmethod
    async def _save(self, record: RecordT) -> None:
        """Write the record under its external id, replacing any previous one."""

    async def find_by_external_id(self, external_id: str) -> RecordT | None:
        return await self._load(str(external_id))

    async def upsert(self, record: RecordT) -> RecordT:
        existing = await self._load(record.external_id)
        if existing is not None:
            record = record.with_local_fields_from(existing)
        await self._save(record)
        logger.debug(
            "Upserted canonical record",
            entity=self.entity,
            external_id=record.external_id,
            created=existing is None,
        )
        return record

    async def mark_deleted(self, external_id: str) -> bool:
        """Soft-delete a record. Returns False when the id is unknown."""
        existing = await self._load(str(external_id))
        if existing is None:
            logger.warning("Delete requested for unknown record", entity=self.entity, external_id=external_id)
            return False
        await self._save(existing.soft_delete(self._clock()))
        logger.info("Marked record as deleted", entity=self.entity, external_id=external_id)
        return True


class InMemoryGateway(PersistenceGateway[RecordT]):
    """Dict-backed gateway for tests, dry runs and local development."""

    def __init__(self, *, entity: str, clock: Callable[[], datetime] = utc_now):
        super().__init__(entity=entity, clock=clock)
        self._records: dict[str, RecordT] = {}

    @property
    def records(self) -> dict[str, RecordT]:
        return dict(self._records)

    def __len__(self) -> int:
        return len(self._records)

    async def _load(self, external_id: str) -> RecordT | None:
        return self._records.get(external_id)

    async def _save(self, record: RecordT) -> None:
        self._records[record.external_id] = record
