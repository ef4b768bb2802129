from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from staffsync.api.main import create_app
from staffsync.config import Settings
from staffsync.persistence.gateway import InMemoryGateway
from staffsync.sync.orchestrator import SyncOrchestrator
from staffsync.sync.webhooks import WebhookIngestor

pytestmark = pytest.mark.unit

SECRET = "hook-secret"


@pytest.fixture
def orchestrator(provider_client, clock):
    return SyncOrchestrator(
        client=provider_client,
        job_gateway=InMemoryGateway(entity="job", clock=clock.now),
        facility_gateway=InMemoryGateway(entity="facility", clock=clock.now),
        clock=clock.now,
    )


def _client(orchestrator, secret: str | None = SECRET) -> TestClient:
    settings = Settings(webhook_shared_secret=secret)
    return TestClient(create_app(WebhookIngestor(orchestrator), settings))


def test_health(orchestrator):
    response = _client(orchestrator).get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_rejects_missing_or_wrong_secret(orchestrator):
    client = _client(orchestrator)
    body = {"type": "job.created", "data": {"id": "J-1"}}

    missing = client.post("/webhooks/provider", json=body)
    wrong = client.post("/webhooks/provider", json=body, headers={"X-Webhook-Secret": "nope"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert wrong.json()["code"] == "http.401"
    assert len(orchestrator.job_gateway) == 0


def test_applies_event_with_valid_secret(orchestrator):
    client = _client(orchestrator)

    response = client.post(
        "/webhooks/provider",
        json={"type": "job.created", "data": {"id": "J-1", "title": "icu rn"}},
        headers={"X-Webhook-Secret": SECRET},
    )

    assert response.status_code == 200
    assert response.json() == {"ok": True, "type": "job.created", "outcome": "processed"}
    assert "J-1" in orchestrator.job_gateway.records


def test_unsigned_deliveries_accepted_without_configured_secret(orchestrator):
    client = _client(orchestrator, secret=None)

    response = client.post("/webhooks/provider", json={"type": "job.deleted", "data": {"id": "unknown"}})

    assert response.status_code == 200
    assert response.json()["outcome"] == "ignored"


def test_malformed_record_returns_typed_error(orchestrator):
    client = _client(orchestrator)

    response = client.post(
        "/webhooks/provider",
        json={"type": "job.created", "data": {"title": "no id"}},
        headers={"X-Webhook-Secret": SECRET},
    )

    assert response.status_code == 422
    assert response.json()["code"] == "sync.transform_failed"


def test_persistence_failure_returns_5xx_for_redelivery(orchestrator):
    orchestrator.job_gateway.upsert = AsyncMock(side_effect=ConnectionError("down"))
    client = _client(orchestrator)

    response = client.post(
        "/webhooks/provider",
        json={"type": "job.updated", "data": {"id": "J-1"}},
        headers={"X-Webhook-Secret": SECRET},
    )

    assert response.status_code == 500
    assert response.json()["code"] == "sync.persist_failed"


def test_envelope_without_type_is_rejected(orchestrator):
    response = _client(orchestrator).post(
        "/webhooks/provider", json={"data": {}}, headers={"X-Webhook-Secret": SECRET}
    )
    assert response.status_code == 422
    assert response.json()["code"] == "http.validation_error"
