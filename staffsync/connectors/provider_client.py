"""
Provider API client.

Every call goes through the same chain:
    circuit breaker -> retry/backoff -> bearer auth (+ one 401 refresh) -> httpx

The breaker and backoff policy are independent objects composed only here.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field

from staffsync.connectors.auth.auth_manager import AuthManager
from staffsync.connectors.circuit_breaker import CircuitBreaker
from staffsync.connectors.retry import BackoffPolicy, RetryContext, with_retry
from staffsync.kernel.errors import (
    AuthenticationError,
    ClientError,
    StaffSyncError,
    TransportError,
)
from staffsync.kernel.time import isoformat_z
from staffsync.monitoring.metrics import SyncMetrics

logger = structlog.get_logger()


RETRY_STATUSES = {429, 500, 502, 503, 504}

JOBS_PATH = "/api/v1/jobs"
FACILITIES_PATH = "/api/v1/facilities"
SPECIALTIES_PATH = "/api/v1/specialties"
HEALTH_PATH = "/api/v1/health"


def is_retryable(exc: BaseException) -> bool:
    """Only transport-level failures are worth another attempt."""
    return isinstance(exc, TransportError)


def counts_toward_circuit(exc: BaseException) -> bool:
    return isinstance(exc, TransportError)


class ProviderPage(BaseModel):
    """One page of a paginated provider listing."""

    data: list[dict[str, Any]] = Field(default_factory=list)
    total_pages: int | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ProviderPage":
        if isinstance(payload, list):
            return cls(data=[item for item in payload if isinstance(item, dict)])
        if not isinstance(payload, dict):
            return cls()

        raw_data = payload.get("data")
        data = [item for item in raw_data if isinstance(item, dict)] if isinstance(raw_data, list) else []

        meta = payload.get("meta") if isinstance(payload.get("meta"), dict) else {}
        total_pages = meta.get("total_pages")
        try:
            total_pages = int(total_pages) if total_pages is not None else None
        except (TypeError, ValueError):
            total_pages = None
        return cls(data=data, total_pages=total_pages)


def _unwrap_single(payload: Any) -> dict[str, Any]:
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload if isinstance(payload, dict) else {}


class ProviderClient:
    """
    Async client for the staffing provider's API.

    Example usage:
        async with ProviderClient(base_url=..., auth=auth, circuit_breaker=breaker,
                                  backoff=BackoffPolicy()) as client:
            page = await client.get_jobs(page=1, limit=100)
    """

    def __init__(
        self,
        *,
        base_url: str,
        auth: AuthManager,
        circuit_breaker: CircuitBreaker,
        backoff: BackoffPolicy,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        metrics: SyncMetrics | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._auth = auth
        self._breaker = circuit_breaker
        self._backoff = backoff
        self._metrics = metrics
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    async def __aenter__(self) -> "ProviderClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()
        await self._auth.aclose()

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def get_jobs(
        self,
        *,
        page: int = 1,
        limit: int = 100,
        include_details: bool = True,
        updated_since: datetime | None = None,
    ) -> ProviderPage:
        params: dict[str, Any] = {"page": page, "limit": limit, "include_details": include_details}
        if updated_since is not None:
            params["updated_since"] = isoformat_z(updated_since)
        payload = await self._request_json("GET", JOBS_PATH, params=params, operation="get_jobs")
        return ProviderPage.from_payload(payload)

    async def get_jobs_updated_since(self, since: datetime) -> ProviderPage:
        payload = await self._request_json(
            "GET",
            JOBS_PATH,
            params={"updated_since": isoformat_z(since)},
            operation="get_jobs_updated_since",
        )
        return ProviderPage.from_payload(payload)

    async def get_job(self, job_id: str) -> dict[str, Any]:
        payload = await self._request_json("GET", f"{JOBS_PATH}/{job_id}", operation="get_job")
        return _unwrap_single(payload)

    async def get_facilities(self, *, page: int = 1, limit: int = 100) -> ProviderPage:
        payload = await self._request_json(
            "GET",
            FACILITIES_PATH,
            params={"page": page, "limit": limit},
            operation="get_facilities",
        )
        return ProviderPage.from_payload(payload)

    async def get_facility(self, facility_id: str) -> dict[str, Any]:
        payload = await self._request_json("GET", f"{FACILITIES_PATH}/{facility_id}", operation="get_facility")
        return _unwrap_single(payload)

    async def get_specialties(self) -> list[Any]:
        payload = await self._request_json("GET", SPECIALTIES_PATH, operation="get_specialties")
        if isinstance(payload, dict):
            payload = payload.get("data", [])
        return payload if isinstance(payload, list) else []

    async def health_check(self) -> dict[str, Any]:
        payload = await self._request_json("GET", HEALTH_PATH, operation="health_check")
        return payload if isinstance(payload, dict) else {"status": payload}

    # ------------------------------------------------------------------
    # Request pipeline
    # ------------------------------------------------------------------

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        operation: str,
    ) -> Any:
        async def attempt() -> Any:
            response = await self._send(method, path, params=params, operation=operation)
            try:
                return response.json()
            except ValueError as exc:
                raise TransportError(
                    message="Provider returned a non-JSON body",
                    upstream_status=response.status_code,
                    meta={"operation": operation},
                ) from exc

        def on_retry(error: BaseException, context: RetryContext) -> None:
            logger.warning(
                "Retrying provider request",
                operation=operation,
                attempt=context.attempt,
                delay=round(context.delay, 3),
                error=str(error),
            )

        async def guarded() -> Any:
            return await with_retry(
                attempt,
                self._backoff,
                on_retry=on_retry,
                retryable=is_retryable,
                sleep=self._sleep,
            )

        try:
            return await self._breaker.execute(guarded)
        except StaffSyncError as exc:
            logger.error(
                "Provider request failed",
                operation=operation,
                path=path,
                error_code=exc.code,
                error=exc.message,
                circuit_state=self._breaker.state.value,
            )
            if self._metrics is not None:
                self._metrics.record_api_error(operation, exc.code)
            raise

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None,
        operation: str,
    ) -> httpx.Response:
        token = await self._auth.get_access_token()
        response = await self._dispatch(method, path, params=params, token=token, operation=operation)

        if response.status_code == 401:
            logger.warning("Authentication token rejected, refreshing", operation=operation)
            await self._auth.invalidate()
            token = await self._auth.get_access_token(force_refresh=True)
            response = await self._dispatch(method, path, params=params, token=token, operation=operation)
            if response.status_code == 401:
                raise AuthenticationError(
                    message="Provider rejected refreshed credentials",
                    meta={"operation": operation},
                )

        self._raise_for_status(response, operation)
        return response

    async def _dispatch(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None,
        token: str,
        operation: str,
    ) -> httpx.Response:
        logger.debug("API request", method=method, path=path, params=params)
        started = time.perf_counter()
        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as exc:
            raise TransportError(message="Provider request timed out", meta={"operation": operation}) from exc
        except httpx.TransportError as exc:
            raise TransportError(message=f"Provider unreachable: {exc}", meta={"operation": operation}) from exc

        duration = time.perf_counter() - started
        if self._metrics is not None:
            self._metrics.record_api_call(operation, method, response.status_code, duration)
        logger.debug(
            "API response",
            status_code=response.status_code,
            path=path,
            duration_ms=round(duration * 1000, 1),
        )
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, operation: str) -> None:
        status = response.status_code
        if status < 400:
            return
        if status in RETRY_STATUSES:
            raise TransportError(
                message=f"Provider returned HTTP {status}",
                upstream_status=status,
                meta={"operation": operation},
            )
        raise ClientError(
            upstream_status=status,
            message=f"Provider rejected request with HTTP {status}",
            meta={"operation": operation},
        )
