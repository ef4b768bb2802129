"""
Facility Transformer

Maps provider facility payloads (standalone or embedded in a job) onto
`CanonicalFacility`.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError

from staffsync.kernel.errors import TransformationError
from staffsync.kernel.ids import facility_id
from staffsync.kernel.time import try_parse_datetime, utc_now
from staffsync.models.common import Coordinates, SyncMetadata
from staffsync.models.facility import CanonicalFacility
from staffsync.transformers.text import (
    apply_replacements,
    as_text,
    capitalize_word,
    collapse_whitespace,
    compile_replacements,
    dedupe,
    extract_coordinates,
    first_present,
    is_blank,
    map_lookup,
    optional_text,
    parse_bool,
    parse_money,
    title_case,
)

logger = structlog.get_logger()

SMALL_WORDS = frozenset({"of", "and", "the", "at", "by", "for", "in", "to", "with"})

# Dotted forms come before their bare forms so "Univ." is not left as "University.".
NAME_REPLACEMENTS = compile_replacements(
    [
        ("Med Ctr", "Medical Center"),
        ("Med Center", "Medical Center"),
        ("Hosp", "Hospital"),
        ("Reg Med Ctr", "Regional Medical Center"),
        ("Reg Medical Center", "Regional Medical Center"),
        ("Univ.", "University"),
        ("Univ", "University"),
        ("St.", "Saint"),
        ("St ", "Saint "),
        ("Med.", "Medical"),
        ("Ctr.", "Center"),
        ("Ctr", "Center"),
    ]
)

FACILITY_TYPE_MAP = {
    "acute care": "Hospital",
    "acute care hospital": "Hospital",
    "ambulatory care": "Ambulatory Care",
    "ambulatory surgical center": "Ambulatory Surgical Center",
    "asc": "Ambulatory Surgical Center",
    "behavioral health": "Behavioral Health",
    "behavioral health facility": "Behavioral Health",
    "clinic": "Clinic",
    "community health center": "Community Health Center",
    "critical access": "Critical Access Hospital",
    "critical access hospital": "Critical Access Hospital",
    "home health": "Home Health",
    "home health agency": "Home Health",
    "hospice": "Hospice",
    "hospital": "Hospital",
    "long term acute care": "Long-Term Acute Care",
    "ltac": "Long-Term Acute Care",
    "ltach": "Long-Term Acute Care",
    "long term care": "Long-Term Care",
    "ltc": "Long-Term Care",
    "nursing home": "Nursing Home",
    "outpatient": "Outpatient Facility",
    "outpatient facility": "Outpatient Facility",
    "rehabilitation": "Rehabilitation",
    "rehabilitation facility": "Rehabilitation",
    "rehab": "Rehabilitation",
    "skilled nursing": "Skilled Nursing Facility",
    "skilled nursing facility": "Skilled Nursing Facility",
    "snf": "Skilled Nursing Facility",
    "urgent care": "Urgent Care",
    "urgent care center": "Urgent Care",
}

TRAUMA_LEVELS = {
    "Level I": ("I", "1", "LEVEL1", "LEVELI"),
    "Level II": ("II", "2", "LEVEL2", "LEVELII"),
    "Level III": ("III", "3", "LEVEL3", "LEVELIII"),
    "Level IV": ("IV", "4", "LEVEL4", "LEVELIV"),
    "Level V": ("V", "5", "LEVEL5", "LEVELV"),
}
_TRAUMA_LOOKUP = {alias: level for level, aliases in TRAUMA_LEVELS.items() for alias in aliases}


def normalize_facility_name(name: Any) -> str:
    if is_blank(name):
        return ""

    words = collapse_whitespace(str(name)).split(" ")
    cased = [
        word.lower() if index > 0 and word.lower() in SMALL_WORDS else capitalize_word(word)
        for index, word in enumerate(words)
    ]
    return apply_replacements(" ".join(cased), NAME_REPLACEMENTS)


def map_facility_type(value: Any) -> str:
    return map_lookup(value, FACILITY_TYPE_MAP, default="Hospital")


def format_phone(phone: Any) -> str | None:
    """Ten-digit US numbers become "(AAA) BBB-CCCC"; anything else is kept."""
    if is_blank(phone):
        return None
    raw = str(phone).strip()
    digits = re.sub(r"\D", "", raw)
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return raw


def parse_bed_count(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    digits = re.sub(r"\D", "", str(value))
    return int(digits) if digits else None


def parse_trauma_level(value: Any) -> str | None:
    if is_blank(value) or isinstance(value, bool):
        return None
    raw = str(value).strip()
    return _TRAUMA_LOOKUP.get(re.sub(r"\s+", "", raw.upper()), raw)


def extract_specialties(record: dict[str, Any]) -> list[str]:
    """Specialties from a list, a comma-separated string and `services`."""
    collected: list[str] = []

    specialties = record.get("specialties")
    if isinstance(specialties, list):
        collected.extend(title_case(item.strip()) for item in specialties if isinstance(item, str) and item.strip())
    elif isinstance(specialties, str):
        collected.extend(title_case(item.strip()) for item in specialties.split(",") if item.strip())

    services = record.get("services")
    if isinstance(services, list):
        collected.extend(title_case(item.strip()) for item in services if isinstance(item, str) and item.strip())

    return dedupe(collected)


class FacilityTransformer:
    """Provider facility payload -> CanonicalFacility."""

    def __init__(self, *, clock: Callable[[], datetime] = utc_now):
        self._clock = clock

    def transform(self, record: Any) -> CanonicalFacility:
        external_id = record.get("id") if isinstance(record, dict) else None
        if is_blank(external_id):
            raise TransformationError(external_id=None, message="Facility record has no id")
        external_id = str(external_id).strip()

        try:
            return self._build(external_id, record)
        except (ValidationError, TypeError, ValueError, AttributeError, OverflowError) as exc:
            logger.error("Failed to transform facility data", external_id=external_id, error=str(exc))
            raise TransformationError(
                external_id=external_id,
                message=f"Failed to transform facility {external_id}",
                meta={"reason": type(exc).__name__},
            ) from exc

    def _build(self, external_id: str, record: dict[str, Any]) -> CanonicalFacility:
        now = self._clock()
        location = record.get("location") if isinstance(record.get("location"), dict) else {}
        coordinates = extract_coordinates(
            [
                record.get("coordinates"),
                location.get("coordinates"),
                {"latitude": record.get("latitude"), "longitude": record.get("longitude")},
            ]
        )

        return CanonicalFacility(
            id=facility_id(external_id),
            external_id=external_id,
            name=normalize_facility_name(record.get("name")),
            type=map_facility_type(first_present(record.get("type"), record.get("facility_type"))),
            address=as_text(record.get("address")),
            city=as_text(record.get("city")),
            state=as_text(record.get("state")),
            zip_code=as_text(first_present(record.get("zip_code"), record.get("zipCode"))),
            coordinates=Coordinates(**coordinates) if coordinates else None,
            phone=format_phone(record.get("phone")),
            website=optional_text(record.get("website")),
            description=as_text(record.get("description")),
            bed_count=parse_bed_count(first_present(record.get("bed_count"), record.get("bedCount"))),
            trauma_level=parse_trauma_level(first_present(record.get("trauma_level"), record.get("traumaLevel"))),
            specialties=extract_specialties(record),
            image_url=optional_text(first_present(record.get("image_url"), record.get("imageUrl"))),
            rating=parse_money(record.get("rating")),
            is_teaching_hospital=parse_bool(
                first_present(record.get("is_teaching_hospital"), record.get("isTeachingHospital"))
            ),
            is_magnet_designated=parse_bool(
                first_present(record.get("is_magnet_designated"), record.get("isMagnetDesignated"))
            ),
            created_at=try_parse_datetime(record.get("created_at")) or now,
            updated_at=try_parse_datetime(record.get("updated_at")) or now,
            metadata=SyncMetadata(original_data=record, last_synced_at=now),
        )
