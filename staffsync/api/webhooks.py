"""
Webhook Router

Receives provider callbacks and hands them to the `WebhookIngestor` stored on
`app.state`. Errors propagate to the exception handlers so the provider sees a
5xx and redelivers.
"""

from __future__ import annotations

import hmac

import structlog
from fastapi import APIRouter, Header, HTTPException, Request

from staffsync.sync.webhooks import WebhookEvent, WebhookIngestor

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def _verify_shared_secret(expected: str | None, token: str | None) -> bool:
    if not expected:
        return True
    if not token:
        return False
    return hmac.compare_digest(token, expected)


@router.post("/provider")
async def provider_webhook(
    event: WebhookEvent,
    request: Request,
    x_webhook_secret: str | None = Header(default=None, alias="X-Webhook-Secret"),
):
    """Apply one `{type, data}` event from the staffing provider."""
    if not _verify_shared_secret(request.app.state.webhook_secret, x_webhook_secret):
        logger.warning("Invalid webhook secret", event_type=event.type)
        raise HTTPException(status_code=401, detail="Invalid webhook secret")

    ingestor: WebhookIngestor = request.app.state.ingestor
    outcome = await ingestor.handle(event)
    return {"ok": True, "type": event.type, "outcome": outcome.value}
