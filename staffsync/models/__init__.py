"""Canonical record schema."""

from staffsync.models.common import CanonicalModel, Coordinates, SyncMetadata
from staffsync.models.facility import CanonicalFacility
from staffsync.models.job import (
    CanonicalJob,
    JobStatus,
    ParsedRequirements,
    ParsedShift,
    ShiftType,
)

__all__ = [
    "CanonicalFacility",
    "CanonicalJob",
    "CanonicalModel",
    "Coordinates",
    "JobStatus",
    "ParsedRequirements",
    "ParsedShift",
    "ShiftType",
    "SyncMetadata",
]
