"""Shared pieces of the canonical schema."""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Coordinates(BaseModel):
    model_config = CAMEL_CONFIG

    latitude: float
    longitude: float


class SyncMetadata(BaseModel):
    """Audit trail: the raw provider payload and when it was last applied."""

    model_config = CAMEL_CONFIG

    original_data: dict[str, Any] = Field(default_factory=dict)
    last_synced_at: datetime


class CanonicalModel(BaseModel):
    """Base for canonical records.

    Fields are snake_case in Python and camelCase when dumped with
    `by_alias=True`, which is the shape the job board reads.
    """

    model_config = CAMEL_CONFIG

    # Fields owned by the local system; a re-sync never overwrites them.
    LOCAL_FIELDS: ClassVar[tuple[str, ...]] = ("created_at",)

    id: str
    external_id: str
    is_deleted: bool = False
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    metadata: SyncMetadata

    def to_document(self) -> dict[str, Any]:
        """JSON-safe camelCase payload for storage."""
        return self.model_dump(mode="json", by_alias=True)

    def with_local_fields_from(self, existing: CanonicalModel) -> CanonicalModel:
        """Copy of this record carrying `existing`'s locally owned values."""
        return self.model_copy(update={name: getattr(existing, name) for name in self.LOCAL_FIELDS})

    def soft_delete(self, at: datetime) -> CanonicalModel:
        return self.model_copy(update={"is_deleted": True, "deleted_at": at, "updated_at": at})
