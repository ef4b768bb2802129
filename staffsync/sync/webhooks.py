"""
Webhook Ingestor

Applies single provider-pushed events through the same transform+persist
path as batch sync. Unlike batch sync, failures propagate: each delivery is a
retryable unit on the provider's side.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, Field

from staffsync.kernel.errors import TransformationError, error_code_of
from staffsync.monitoring.metrics import SyncMetrics
from staffsync.sync.orchestrator import SyncOrchestrator
from staffsync.transformers.text import is_blank

logger = structlog.get_logger()


class WebhookEventType(str, Enum):
    JOB_CREATED = "job.created"
    JOB_UPDATED = "job.updated"
    JOB_DELETED = "job.deleted"
    FACILITY_UPDATED = "facility.updated"


# Metric label per known event type; anything else is "unknown".
_EVENT_ENTITIES = {member.value: member.value.split(".", 1)[0] for member in WebhookEventType}


class WebhookOutcome(str, Enum):
    PROCESSED = "processed"
    DELETED = "deleted"
    IGNORED = "ignored"


class WebhookEvent(BaseModel):
    """Provider callback envelope: `{type, data}`."""

    type: str
    data: dict[str, Any] = Field(default_factory=dict)


class WebhookIngestor:
    def __init__(self, orchestrator: SyncOrchestrator, *, metrics: SyncMetrics | None = None):
        self._orchestrator = orchestrator
        self._metrics = metrics

    async def handle(self, event: WebhookEvent | dict[str, Any]) -> WebhookOutcome:
        """
        Dispatch one event.

        Unknown event types are logged and ignored.

        Raises:
            TransformationError: the payload could not be mapped
            PersistenceError: the store rejected the write
        """
        if not isinstance(event, WebhookEvent):
            event = WebhookEvent.model_validate(event)

        external_id = event.data.get("id")
        logger.info("Webhook event received", event_type=event.type, external_id=external_id)

        try:
            outcome = await self._dispatch(event)
        except Exception as exc:
            logger.error(
                "Webhook event failed",
                event_type=event.type,
                external_id=external_id,
                error_code=error_code_of(exc),
                error=str(exc),
            )
            self._record(event.type, "failed")
            raise

        self._record(event.type, outcome.value)
        return outcome

    async def _dispatch(self, event: WebhookEvent) -> WebhookOutcome:
        if event.type in (WebhookEventType.JOB_CREATED, WebhookEventType.JOB_UPDATED):
            await self._orchestrator.process_job(event.data)
            return WebhookOutcome.PROCESSED

        if event.type == WebhookEventType.JOB_DELETED:
            external_id = event.data.get("id")
            if is_blank(external_id):
                raise TransformationError(external_id=None, message="job.deleted event has no id")
            deleted = await self._orchestrator.delete_job(str(external_id).strip())
            return WebhookOutcome.DELETED if deleted else WebhookOutcome.IGNORED

        if event.type == WebhookEventType.FACILITY_UPDATED:
            await self._orchestrator.process_facility(event.data)
            return WebhookOutcome.PROCESSED

        logger.info("Ignoring unhandled webhook event type", event_type=event.type)
        return WebhookOutcome.IGNORED

    def _record(self, event_type: str, outcome: str) -> None:
        if self._metrics is None:
            return
        entity = _EVENT_ENTITIES.get(event_type, "unknown")
        self._metrics.record_sync_record(entity, f"webhook_{outcome}")
