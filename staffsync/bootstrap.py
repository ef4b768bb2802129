"""
Component wiring.

Builds the provider client, sync orchestrator and webhook ingestor from
`Settings`. Every call returns fresh instances; nothing is cached at module
level.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from staffsync.config import Settings
from staffsync.connectors.auth.auth_manager import AuthManager
from staffsync.connectors.auth.token_cache import InMemoryTokenCache, RedisTokenCache, TokenCache
from staffsync.connectors.circuit_breaker import CircuitBreaker, CircuitState
from staffsync.connectors.provider_client import ProviderClient, counts_toward_circuit
from staffsync.connectors.retry import BackoffPolicy
from staffsync.models.facility import CanonicalFacility
from staffsync.models.job import CanonicalJob
from staffsync.monitoring.metrics import SyncMetrics
from staffsync.persistence.gateway import InMemoryGateway, PersistenceGateway
from staffsync.persistence.redis_gateway import RedisGateway
from staffsync.sync.orchestrator import SyncOrchestrator
from staffsync.sync.webhooks import WebhookIngestor
from staffsync.transformers.facility import FacilityTransformer
from staffsync.transformers.job import JobTransformer

logger = structlog.get_logger()


@dataclass
class Components:
    settings: Settings
    metrics: SyncMetrics
    auth: AuthManager
    circuit_breaker: CircuitBreaker
    client: ProviderClient
    orchestrator: SyncOrchestrator
    ingestor: WebhookIngestor

    async def aclose(self) -> None:
        await self.client.aclose()


def build_token_cache(settings: Settings) -> TokenCache:
    if settings.redis_url:
        return RedisTokenCache.from_url(
            settings.redis_url,
            prefix=settings.token_cache_prefix,
            encryption_key=settings.token_encryption_key,
        )
    return InMemoryTokenCache(prefix=settings.token_cache_prefix, encryption_key=settings.token_encryption_key)


def build_gateways(
    settings: Settings,
) -> tuple[PersistenceGateway[CanonicalJob], PersistenceGateway[CanonicalFacility]]:
    if settings.redis_url:
        return (
            RedisGateway.from_url(settings.redis_url, CanonicalJob, entity="job"),
            RedisGateway.from_url(settings.redis_url, CanonicalFacility, entity="facility"),
        )
    logger.warning("No Redis URL configured; canonical records are kept in memory only")
    return InMemoryGateway(entity="job"), InMemoryGateway(entity="facility")


def build_backoff(settings: Settings) -> BackoffPolicy:
    return BackoffPolicy(
        initial_delay=settings.retry_initial_delay_seconds,
        factor=settings.retry_backoff_factor,
        max_delay=settings.retry_max_delay_seconds,
        max_retries=settings.retry_max_retries,
        jitter=settings.retry_jitter,
    )


def build_circuit_breaker(settings: Settings, metrics: SyncMetrics) -> CircuitBreaker:
    name = "provider"

    def on_state_change(previous: CircuitState, current: CircuitState) -> None:
        metrics.record_circuit_transition(name, previous.value, current.value)

    return CircuitBreaker(
        failure_threshold=settings.circuit_breaker_threshold,
        reset_timeout=settings.circuit_breaker_reset_seconds,
        name=name,
        is_failure=counts_toward_circuit,
        on_state_change=on_state_change,
    )


def build_components(
    settings: Settings,
    *,
    dry_run: bool = False,
    page_size: int | None = None,
    page_pause_seconds: float = 0.0,
    transport: httpx.AsyncBaseTransport | None = None,
    **overrides: Any,
) -> Components:
    """
    Wire a complete sync stack.

    `overrides` may replace `token_cache`, `job_gateway` or `facility_gateway`.
    """
    metrics = SyncMetrics(pushgateway_url=settings.metrics_pushgateway_url, job_name=settings.metrics_job_name)

    auth = AuthManager(
        base_url=settings.provider_base_url,
        username=settings.provider_username,
        password=settings.provider_password,
        organization_code=settings.provider_org_code,
        cache=overrides.get("token_cache") or build_token_cache(settings),
        transport=transport,
        timeout=settings.provider_timeout_seconds,
    )
    breaker = build_circuit_breaker(settings, metrics)
    client = ProviderClient(
        base_url=settings.provider_base_url,
        auth=auth,
        circuit_breaker=breaker,
        backoff=build_backoff(settings),
        timeout=settings.provider_timeout_seconds,
        transport=transport,
        metrics=metrics,
    )

    if "job_gateway" in overrides and "facility_gateway" in overrides:
        job_gateway, facility_gateway = overrides["job_gateway"], overrides["facility_gateway"]
    else:
        job_gateway, facility_gateway = build_gateways(settings)

    orchestrator = SyncOrchestrator(
        client=client,
        job_gateway=job_gateway,
        facility_gateway=facility_gateway,
        job_transformer=JobTransformer(brand=settings.seo_brand),
        facility_transformer=FacilityTransformer(),
        metrics=metrics,
        page_size=page_size or settings.sync_page_size,
        page_pause_seconds=page_pause_seconds,
        dry_run=dry_run,
    )
    ingestor = WebhookIngestor(orchestrator, metrics=metrics)

    return Components(
        settings=settings,
        metrics=metrics,
        auth=auth,
        circuit_breaker=breaker,
        client=client,
        orchestrator=orchestrator,
        ingestor=ingestor,
    )


def create_webhook_app(settings: Settings | None = None):
    """ASGI factory: `create_webhook_app()` with settings from the environment."""
    from staffsync.api.main import create_app
    from staffsync.config import get_settings
    from staffsync.kernel.log import configure_logging

    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)
    components = build_components(settings)
    return create_app(components.ingestor, settings)
