"""
Job Transformer

Maps provider job payloads onto `CanonicalJob`. Pure: the only input besides
the payload is the injected clock.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import structlog
from pydantic import ValidationError

from staffsync.kernel.errors import TransformationError
from staffsync.kernel.ids import facility_id, job_id
from staffsync.kernel.time import try_parse_datetime, utc_now
from staffsync.models.common import Coordinates, SyncMetadata
from staffsync.models.job import (
    CanonicalJob,
    JobStatus,
    ParsedRequirements,
    ParsedShift,
    ShiftType,
)
from staffsync.transformers.text import (
    apply_replacements,
    as_text,
    collapse_whitespace,
    compile_replacements,
    dedupe,
    extract_coordinates,
    first_present,
    format_money,
    is_blank,
    map_lookup,
    optional_text,
    parse_bool,
    parse_money,
    title_case,
    to_int,
)

logger = structlog.get_logger()

DEFAULT_BRAND = "Excel Medical Staffing"
DEFAULT_WEEKLY_HOURS = 36
URGENT_WINDOW = timedelta(days=14)

TITLE_ABBREVIATIONS = compile_replacements(
    [
        ("Rn", "RN"),
        ("Lpn", "LPN"),
        ("Icu", "ICU"),
        ("Er", "ER"),
        ("Ccu", "CCU"),
        ("Pacu", "PACU"),
        ("Ob", "OB"),
        ("Gyn", "GYN"),
        ("Obgyn", "OBGYN"),
        ("Ot", "OT"),
        ("Pt", "PT"),
        ("St", "ST"),
    ]
)

SPECIALTY_MAP = {
    "icu": "ICU",
    "intensive care": "ICU",
    "intensive care unit": "ICU",
    "er": "Emergency",
    "emergency room": "Emergency",
    "emergency department": "Emergency",
    "med surg": "Med/Surg",
    "medical surgical": "Med/Surg",
    "medical/surgical": "Med/Surg",
    "telemetry": "Telemetry",
    "tele": "Telemetry",
    "labor and delivery": "Labor & Delivery",
    "l&d": "Labor & Delivery",
    "labor & delivery": "Labor & Delivery",
    "operating room": "OR",
    "or": "OR",
    "pacu": "PACU",
    "post anesthesia": "PACU",
    "post anesthesia care unit": "PACU",
    "cath lab": "Cath Lab",
    "catheterization laboratory": "Cath Lab",
    "physical therapy": "Physical Therapy",
    "pt": "Physical Therapy",
    "occupational therapy": "Occupational Therapy",
    "ot": "Occupational Therapy",
    "speech therapy": "Speech Therapy",
    "st": "Speech Therapy",
    "slp": "Speech Therapy",
}

STATUS_MAP = {
    "active": JobStatus.ACTIVE,
    "open": JobStatus.ACTIVE,
    "available": JobStatus.ACTIVE,
    "filled": JobStatus.FILLED,
    "closed": JobStatus.FILLED,
    "expired": JobStatus.EXPIRED,
    "draft": JobStatus.DRAFT,
    "pending": JobStatus.DRAFT,
}

# Checked in order; the first matching shift type wins.
SHIFT_PATTERNS: list[tuple[ShiftType, re.Pattern[str]]] = [
    (ShiftType.DAY, re.compile(r"day shift|\bdays?\b", re.IGNORECASE)),
    (ShiftType.NIGHT, re.compile(r"night shift|\bnights?\b", re.IGNORECASE)),
    (ShiftType.EVENING, re.compile(r"evening shift|\bevenings?\b", re.IGNORECASE)),
    (ShiftType.ROTATING, re.compile(r"rotating|rotation|\brotate\b", re.IGNORECASE)),
    (ShiftType.PRN, re.compile(r"prn|per diem|\bas needed\b", re.IGNORECASE)),
    (ShiftType.WEEKEND, re.compile(r"weekend", re.IGNORECASE)),
]

SCHEDULE_RE = re.compile(r"(\d+)\s*x\s*(\d+)", re.IGNORECASE)
WEEKLY_HOURS_RE = re.compile(r"(\d+)\s*hours?\s*(?:per|a|/)\s*week", re.IGNORECASE)
SHIFT_LENGTH_RE = re.compile(r"(\d+)\s*hour", re.IGNORECASE)

URGENT_KEYWORDS = ("urgent", "immediate", "asap", "critical need", "start asap")

CERTIFICATION_RE = re.compile(r"\b(BLS|ACLS|PALS|TNCC|CCRN|CEN|CNOR|RN|LPN|CNA)\b", re.IGNORECASE)
EXPERIENCE_RE = re.compile(r"(\d+)\+?\s*years?\s*(?:of)?\s*experience", re.IGNORECASE)

SKILLS = (
    "Ventilator",
    "IV",
    "Infusion",
    "Medication Administration",
    "Patient Assessment",
    "Wound Care",
    "Trauma",
    "Triage",
    "Electronic Medical Records",
    "EMR",
    "Epic",
    "Cerner",
    "Meditech",
    "Charting",
    "Documentation",
    "Care Planning",
)
SKILL_PATTERNS = [(skill, re.compile(rf"\b{re.escape(skill)}\b", re.IGNORECASE)) for skill in SKILLS]


def normalize_job_title(title: Any) -> str:
    if is_blank(title):
        return ""
    return apply_replacements(title_case(collapse_whitespace(str(title))), TITLE_ABBREVIATIONS)


def map_specialty(specialty: Any) -> str:
    return map_lookup(specialty, SPECIALTY_MAP, default="Other")


def map_status(status: Any) -> JobStatus:
    if is_blank(status):
        return JobStatus.ACTIVE
    return STATUS_MAP.get(str(status).lower().strip(), JobStatus.ACTIVE)


def extract_shift_type(shift_details: str) -> ShiftType | None:
    if not shift_details:
        return None
    for shift_type, pattern in SHIFT_PATTERNS:
        if pattern.search(shift_details):
            return shift_type
    return None


def parse_weekly_hours(weekly_hours: Any, shift_details: str) -> int:
    """
    Weekly hours, in order of preference:
    explicit field, "NxM" schedule, "N hours per week" phrase, then 36.
    """
    explicit = to_int(weekly_hours)
    if explicit is not None and explicit >= 0:
        return explicit

    if shift_details:
        schedule = SCHEDULE_RE.search(shift_details)
        if schedule:
            return int(schedule.group(1)) * int(schedule.group(2))

        weekly = WEEKLY_HOURS_RE.search(shift_details)
        if weekly:
            return int(weekly.group(1))

    return DEFAULT_WEEKLY_HOURS


def parse_shift_details(shift_details: str) -> ParsedShift:
    if not shift_details:
        return ParsedShift()

    length = SHIFT_LENGTH_RE.search(shift_details)
    schedule = SCHEDULE_RE.search(shift_details)
    return ParsedShift(
        type=extract_shift_type(shift_details),
        hours=int(length.group(1)) if length else None,
        schedule=f"{schedule.group(1)}x{schedule.group(2)}" if schedule else None,
    )


def parse_requirements(requirements: str) -> ParsedRequirements:
    if not requirements:
        return ParsedRequirements()

    certifications = dedupe(match.upper() for match in CERTIFICATION_RE.findall(requirements))
    experience = EXPERIENCE_RE.search(requirements)
    skills = [skill for skill, pattern in SKILL_PATTERNS if pattern.search(requirements)]

    return ParsedRequirements(
        certifications=certifications,
        experience=int(experience.group(1)) if experience else None,
        skills=skills,
    )


class JobTransformer:
    """
    Provider job payload -> CanonicalJob.

    Example usage:
        transformer = JobTransformer(brand="Excel Medical Staffing")
        job = transformer.transform({"id": "12345", "title": "icu rn", ...})
    """

    def __init__(self, *, brand: str = DEFAULT_BRAND, clock: Callable[[], datetime] = utc_now):
        self._brand = brand
        self._clock = clock

    def transform(self, record: Any) -> CanonicalJob:
        """
        Raises:
            TransformationError: the payload has no id or an unusable shape
        """
        external_id = record.get("id") if isinstance(record, dict) else None
        if is_blank(external_id):
            raise TransformationError(external_id=None, message="Job record has no id")
        external_id = str(external_id).strip()

        try:
            job = self._build(external_id, record)
        except (ValidationError, TypeError, ValueError, AttributeError, OverflowError) as exc:
            logger.error("Failed to transform job data", external_id=external_id, error=str(exc))
            raise TransformationError(
                external_id=external_id,
                message=f"Failed to transform job {external_id}",
                meta={"reason": type(exc).__name__},
            ) from exc
        return job

    def _build(self, external_id: str, record: dict[str, Any]) -> CanonicalJob:
        now = self._clock()
        facility = record.get("facility") if isinstance(record.get("facility"), dict) else {}
        location = record.get("location") if isinstance(record.get("location"), dict) else {}
        shift_details = as_text(record.get("shift_details"))
        requirements = as_text(record.get("requirements"))

        facility_external_id = optional_text(first_present(record.get("facility_id"), facility.get("id")))
        coordinates = extract_coordinates(
            [
                record.get("coordinates"),
                location.get("coordinates"),
                {"latitude": record.get("latitude"), "longitude": record.get("longitude")},
                facility.get("coordinates"),
            ]
        )

        job = CanonicalJob(
            id=job_id(external_id),
            external_id=external_id,
            title=normalize_job_title(record.get("title")),
            specialty=map_specialty(record.get("specialty")),
            facility_name=as_text(first_present(record.get("facility_name"), facility.get("name"))),
            facility_external_id=facility_external_id,
            facility_id=facility_id(facility_external_id) if facility_external_id else None,
            facility_type=optional_text(first_present(record.get("facility_type"), facility.get("type"))),
            city=as_text(first_present(record.get("city"), location.get("city"))),
            state=as_text(first_present(record.get("state"), location.get("state"))),
            zip_code=optional_text(first_present(record.get("zip_code"), location.get("zip_code"))),
            coordinates=Coordinates(**coordinates) if coordinates else None,
            start_date=try_parse_datetime(record.get("start_date")),
            end_date=try_parse_datetime(record.get("end_date")),
            weekly_hours=parse_weekly_hours(record.get("weekly_hours"), shift_details),
            shift_details=shift_details,
            shift_type=extract_shift_type(shift_details),
            pay_rate=parse_money(record.get("pay_rate")),
            housing_stipend=parse_money(record.get("housing_stipend")),
            requirements=requirements,
            benefits=as_text(record.get("benefits")),
            description=as_text(record.get("description")),
            status=map_status(record.get("status")),
            is_urgent=self._determine_urgency(record, now),
            created_at=try_parse_datetime(record.get("created_at")) or now,
            updated_at=try_parse_datetime(record.get("updated_at")) or now,
            parsed_requirements=parse_requirements(requirements),
            parsed_shift=parse_shift_details(shift_details),
            metadata=SyncMetadata(original_data=record, last_synced_at=now),
        )

        return job.model_copy(
            update={
                "seo_title": self.seo_title(job),
                "seo_description": self.seo_description(job),
                "seo_keywords": self.seo_keywords(job),
            }
        )

    def _determine_urgency(self, record: dict[str, Any], now: datetime) -> bool:
        if parse_bool(record.get("is_urgent")) or parse_bool(record.get("urgent")):
            return True

        start_date = try_parse_datetime(record.get("start_date"))
        if start_date is not None and now <= start_date <= now + URGENT_WINDOW:
            return True

        text = f"{as_text(record.get('title'))} {as_text(record.get('description'))}".lower()
        return any(keyword in text for keyword in URGENT_KEYWORDS)

    # SEO

    def seo_title(self, job: CanonicalJob) -> str:
        return f"{job.title} in {job.city}, {job.state} - Travel Nursing Job | {self._brand}"

    def seo_description(self, job: CanonicalJob) -> str:
        parts = [f"{job.title} position at {job.facility_name} in {job.city}, {job.state}. "]
        if job.weekly_hours:
            parts.append(f"{job.weekly_hours} hours per week. ")
        if job.pay_rate:
            parts.append(f"${format_money(job.pay_rate)}/week. ")
        if job.start_date:
            start = job.start_date
            parts.append(f"Starting {start:%B} {start.day}, {start.year}. ")
        parts.append(f"Apply now with {self._brand}.")
        return "".join(parts)

    @staticmethod
    def seo_keywords(job: CanonicalJob) -> list[str]:
        return [
            f"{job.title} jobs",
            f"travel nursing {job.city}",
            f"{job.specialty} {job.city}",
            f"healthcare staffing {job.state}",
            f"{job.facility_name} jobs",
            f"travel nurse jobs {job.state}",
            f"{job.specialty} travel nurse",
            f"healthcare jobs {job.city} {job.state}",
        ]
