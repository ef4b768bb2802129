from __future__ import annotations

from uuid import UUID, uuid5


# Fixed namespaces. Changing either one re-keys every stored record.
JOB_NAMESPACE = UUID("1b671a64-40d5-491e-99b0-da01ff1f3341")
FACILITY_NAMESPACE = UUID("2c671a64-40d5-491e-99b0-da01ff1f3342")


def canonical_id(namespace: UUID, external_id: str | int) -> str:
    """Derive the internal id for a provider record.

    UUIDv5 over the provider's external id, so the same external id always
    maps to the same internal id and jobs/facilities never share ids.
    """
    value = str(external_id).strip() if external_id is not None else ""
    if not value:
        raise ValueError("external_id must be a non-empty value")
    return str(uuid5(namespace, value))


def job_id(external_id: str | int) -> str:
    return canonical_id(JOB_NAMESPACE, external_id)


def facility_id(external_id: str | int) -> str:
    return canonical_id(FACILITY_NAMESPACE, external_id)
