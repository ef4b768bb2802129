from __future__ import annotations

import re
from typing import Any


_ERROR_CODE_RE = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)*$")


class StaffSyncError(Exception):
    """Base typed error for the sync subsystem.

    Goals:
    - Stable `code` for programmatic handling and log filtering.
    - Human-readable `message`.
    - Optional `meta` payload for debugging (safe-to-expose only).
    """

    def __init__(
        self,
        *,
        code: str,
        message: str,
        status_code: int = 500,
        meta: dict[str, Any] | None = None,
    ) -> None:
        if not _ERROR_CODE_RE.fullmatch(code):
            raise ValueError(
                "Invalid error code. Expected dot-separated lowercase tokens, "
                f"got: {code!r}"
            )
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = int(status_code)
        self.meta = dict(meta or {})

    def to_public_dict(self, *, request_id: str | None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "detail": self.message,
            "code": self.code,
        }
        if request_id:
            payload["request_id"] = request_id
        if self.meta:
            payload["meta"] = self.meta
        return payload


class AuthenticationError(StaffSyncError):
    """Token acquisition failed. Never retried by the auth layer."""

    def __init__(
        self,
        *,
        message: str = "Authentication failed",
        code: str = "provider.auth_failed",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, status_code=502, meta=meta)


class TransportError(StaffSyncError):
    """Network failure, timeout, 429 or 5xx from the provider. Retryable."""

    def __init__(
        self,
        *,
        message: str = "Provider transport error",
        code: str = "provider.transport",
        upstream_status: int | None = None,
        meta: dict[str, Any] | None = None,
    ):
        meta = dict(meta or {})
        if upstream_status is not None:
            meta["upstream_status"] = upstream_status
        super().__init__(code=code, message=message, status_code=502, meta=meta)
        self.upstream_status = upstream_status


class ClientError(StaffSyncError):
    """4xx from the provider (other than a first 401). Surfaced immediately."""

    def __init__(
        self,
        *,
        upstream_status: int,
        message: str = "Provider rejected the request",
        code: str = "provider.client_error",
        meta: dict[str, Any] | None = None,
    ):
        meta = {**(meta or {}), "upstream_status": upstream_status}
        super().__init__(code=code, message=message, status_code=502, meta=meta)
        self.upstream_status = upstream_status


class CircuitOpenError(StaffSyncError):
    def __init__(
        self,
        *,
        message: str = "Circuit breaker is open",
        code: str = "provider.circuit_open",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, status_code=503, meta=meta)


class TransformationError(StaffSyncError):
    """A provider record could not be mapped to the canonical schema."""

    def __init__(
        self,
        *,
        external_id: str | None,
        message: str = "Failed to transform provider record",
        code: str = "sync.transform_failed",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            meta={**(meta or {}), "external_id": external_id},
        )
        self.external_id = external_id


class PersistenceError(StaffSyncError):
    def __init__(
        self,
        *,
        external_id: str | None,
        message: str = "Failed to persist canonical record",
        code: str = "sync.persist_failed",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=500,
            meta={**(meta or {}), "external_id": external_id},
        )
        self.external_id = external_id


def error_code_of(exc: BaseException) -> str:
    """Stable error kind for logs and metrics, including untyped exceptions."""
    if isinstance(exc, StaffSyncError):
        return exc.code
    return f"unhandled.{type(exc).__name__.lower()}"
