"""
Prometheus Metrics

Collectors for provider calls, circuit transitions and sync outcomes.
Each `SyncMetrics` owns its registry, so isolated instances can coexist.
"""

from __future__ import annotations

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, push_to_gateway

logger = structlog.get_logger()


class SyncMetrics:
    """
    Narrow record/flush surface over Prometheus collectors.

    Tracks:
    - Provider request counts, latency and errors
    - Circuit breaker transitions
    - Per-record sync outcomes and run outcomes
    """

    def __init__(
        self,
        *,
        registry: CollectorRegistry | None = None,
        pushgateway_url: str | None = None,
        job_name: str = "staffsync",
    ):
        self.registry = registry or CollectorRegistry()
        self._pushgateway_url = pushgateway_url
        self._job_name = job_name

        self.provider_requests_total = Counter(
            "staffsync_provider_requests_total",
            "Total provider HTTP requests",
            ["operation", "method", "status_code"],
            registry=self.registry,
        )
        self.provider_request_duration_seconds = Histogram(
            "staffsync_provider_request_duration_seconds",
            "Provider HTTP request duration in seconds",
            ["operation"],
            buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry,
        )
        self.provider_errors_total = Counter(
            "staffsync_provider_errors_total",
            "Provider calls that failed after resilience handling",
            ["operation", "error_code"],
            registry=self.registry,
        )
        self.circuit_transitions_total = Counter(
            "staffsync_circuit_transitions_total",
            "Circuit breaker state transitions",
            ["circuit", "from_state", "to_state"],
            registry=self.registry,
        )
        self.circuit_open = Gauge(
            "staffsync_circuit_open",
            "1 when the circuit is open or half-open",
            ["circuit"],
            registry=self.registry,
        )
        self.sync_records_total = Counter(
            "staffsync_sync_records_total",
            "Records processed by sync and webhook handling",
            ["entity", "outcome"],
            registry=self.registry,
        )
        self.sync_runs_total = Counter(
            "staffsync_sync_runs_total",
            "Sync runs by mode and final status",
            ["mode", "status"],
            registry=self.registry,
        )

    def record_api_call(self, operation: str, method: str, status_code: int, duration_seconds: float) -> None:
        self.provider_requests_total.labels(
            operation=operation,
            method=method,
            status_code=str(status_code),
        ).inc()
        self.provider_request_duration_seconds.labels(operation=operation).observe(duration_seconds)

    def record_api_error(self, operation: str, error_code: str) -> None:
        self.provider_errors_total.labels(operation=operation, error_code=error_code).inc()

    def record_circuit_transition(self, circuit: str, from_state: str, to_state: str) -> None:
        self.circuit_transitions_total.labels(circuit=circuit, from_state=from_state, to_state=to_state).inc()
        self.circuit_open.labels(circuit=circuit).set(0 if to_state == "CLOSED" else 1)

    def record_sync_record(self, entity: str, outcome: str) -> None:
        self.sync_records_total.labels(entity=entity, outcome=outcome).inc()

    def record_sync_run(self, mode: str, status: str) -> None:
        self.sync_runs_total.labels(mode=mode, status=status).inc()

    def flush(self) -> None:
        """Push collected metrics when a Pushgateway is configured."""
        if not self._pushgateway_url:
            return
        try:
            push_to_gateway(self._pushgateway_url, job=self._job_name, registry=self.registry)
        except Exception as exc:
            logger.warning("Metrics push failed", url=self._pushgateway_url, error=str(exc))
