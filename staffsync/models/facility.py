"""Canonical facility record."""

from __future__ import annotations

from pydantic import Field

from staffsync.models.common import CanonicalModel, Coordinates


class CanonicalFacility(CanonicalModel):
    name: str
    type: str = "Hospital"

    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    coordinates: Coordinates | None = None

    phone: str | None = None
    website: str | None = None
    description: str = ""
    bed_count: int | None = None
    trauma_level: str | None = None
    specialties: list[str] = Field(default_factory=list)
    image_url: str | None = None
    rating: float | None = None
    is_teaching_hospital: bool = False
    is_magnet_designated: bool = False
