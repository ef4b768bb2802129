"""Canonical job record."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, Field

from staffsync.models.common import CAMEL_CONFIG, CanonicalModel, Coordinates


class ShiftType(str, Enum):
    DAY = "Day"
    NIGHT = "Night"
    EVENING = "Evening"
    ROTATING = "Rotating"
    PRN = "PRN"
    WEEKEND = "Weekend"


class JobStatus(str, Enum):
    ACTIVE = "active"
    FILLED = "filled"
    EXPIRED = "expired"
    DRAFT = "draft"


class ParsedRequirements(BaseModel):
    model_config = CAMEL_CONFIG

    certifications: list[str] = Field(default_factory=list)
    experience: int | None = None
    skills: list[str] = Field(default_factory=list)


class ParsedShift(BaseModel):
    model_config = CAMEL_CONFIG

    type: ShiftType | None = None
    hours: int | None = None
    schedule: str | None = None


class CanonicalJob(CanonicalModel):
    """A travel job as the local job board stores it."""

    LOCAL_FIELDS: ClassVar[tuple[str, ...]] = (
        "views_count",
        "applications_count",
        "is_featured",
        "recruiter_id",
        "created_at",
    )

    title: str
    specialty: str

    # Facility linkage
    facility_name: str = ""
    facility_external_id: str | None = None
    facility_id: str | None = None
    facility_type: str | None = None

    # Location
    city: str = ""
    state: str = ""
    zip_code: str | None = None
    coordinates: Coordinates | None = None

    # Assignment
    start_date: datetime | None = None
    end_date: datetime | None = None
    weekly_hours: int = Field(default=36, ge=0)
    shift_details: str = ""
    shift_type: ShiftType | None = None
    pay_rate: float | None = Field(default=None, ge=0)
    housing_stipend: float | None = Field(default=None, ge=0)
    requirements: str = ""
    benefits: str = ""
    description: str = ""
    status: JobStatus = JobStatus.ACTIVE
    is_urgent: bool = False

    # Locally owned
    is_featured: bool = False
    recruiter_id: str | None = None
    views_count: int = 0
    applications_count: int = 0

    # SEO
    seo_title: str = ""
    seo_description: str = ""
    seo_keywords: list[str] = Field(default_factory=list)

    parsed_requirements: ParsedRequirements = Field(default_factory=ParsedRequirements)
    parsed_shift: ParsedShift = Field(default_factory=ParsedShift)

    def soft_delete(self, at: datetime) -> CanonicalJob:
        """Deleted jobs stay in the store but drop off the board as expired."""
        return self.model_copy(
            update={"is_deleted": True, "deleted_at": at, "updated_at": at, "status": JobStatus.EXPIRED}
        )
