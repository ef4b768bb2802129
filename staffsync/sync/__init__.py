"""Batch sync and webhook ingestion."""

from staffsync.sync.orchestrator import RecordFailure, SyncOrchestrator, SyncResult
from staffsync.sync.webhooks import (
    WebhookEvent,
    WebhookEventType,
    WebhookIngestor,
    WebhookOutcome,
)

__all__ = [
    "RecordFailure",
    "SyncOrchestrator",
    "SyncResult",
    "WebhookEvent",
    "WebhookEventType",
    "WebhookIngestor",
    "WebhookOutcome",
]
