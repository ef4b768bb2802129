"""Pure mappings from provider payloads to canonical records."""

from staffsync.transformers.facility import FacilityTransformer
from staffsync.transformers.job import JobTransformer

__all__ = ["FacilityTransformer", "JobTransformer"]
