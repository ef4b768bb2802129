"""FastAPI application exposing the provider webhook endpoint."""

from __future__ import annotations

import structlog
from fastapi import FastAPI

from staffsync import __version__
from staffsync.api.webhooks import router as webhooks_router
from staffsync.config import Settings
from staffsync.kernel.http.errors import register_exception_handlers
from staffsync.sync.webhooks import WebhookIngestor

logger = structlog.get_logger()


def create_app(ingestor: WebhookIngestor, settings: Settings) -> FastAPI:
    app = FastAPI(title="staffsync", version=__version__)
    app.state.ingestor = ingestor
    app.state.webhook_secret = settings.webhook_shared_secret
    if not settings.webhook_shared_secret:
        logger.warning("Webhook shared secret not configured; accepting unsigned deliveries")

    register_exception_handlers(app)
    app.include_router(webhooks_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
