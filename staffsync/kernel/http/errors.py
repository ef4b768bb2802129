"""
HTTP error rendering for the webhook surface.

Every failure leaves as `{detail, code, request_id?, meta?}`. Provider
redelivery keys off the status: 4xx is final, 5xx is retried, and a 503 from
an open circuit carries `Retry-After`.
"""

from __future__ import annotations

import math
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from staffsync.kernel.errors import CircuitOpenError, StaffSyncError

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


def _request_id(request: Request) -> str | None:
    return request.headers.get(REQUEST_ID_HEADER)


def _render(
    status_code: int,
    *,
    code: str,
    detail: Any,
    request_id: str | None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {"detail": detail, "code": code}
    if request_id:
        content["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _retry_after(exc: StaffSyncError) -> dict[str, str] | None:
    if not isinstance(exc, CircuitOpenError):
        return None
    seconds = exc.meta.get("retry_in_seconds")
    if not isinstance(seconds, (int, float)):
        return None
    return {"Retry-After": str(max(1, math.ceil(seconds)))}


def _field_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    # Only location and message; raw pydantic ctx is not always JSON-safe.
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        errors.append({"field": field, "message": error.get("msg", "")})
    return errors


def register_exception_handlers(app: FastAPI) -> None:
    """Install the typed-error, HTTP, validation and catch-all handlers."""

    @app.exception_handler(StaffSyncError)
    async def _typed_error(request: Request, exc: StaffSyncError) -> Response:
        request_id = _request_id(request)
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "Request failed",
            path=request.url.path,
            status_code=exc.status_code,
            error_code=exc.code,
            external_id=exc.meta.get("external_id"),
            request_id=request_id,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_public_dict(request_id=request_id),
            headers=_retry_after(exc),
        )

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException) -> Response:
        return _render(
            exc.status_code,
            code=f"http.{exc.status_code}",
            detail=exc.detail,
            request_id=_request_id(request),
            headers=dict(exc.headers or {}),
        )

    @app.exception_handler(RequestValidationError)
    async def _invalid_payload(request: Request, exc: RequestValidationError) -> Response:
        errors = _field_errors(exc)
        logger.warning("Rejected malformed payload", path=request.url.path, fields=[e["field"] for e in errors])
        return _render(422, code="http.validation_error", detail=errors, request_id=_request_id(request))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> Response:
        request_id = _request_id(request)
        logger.exception(
            "Unhandled exception",
            path=request.url.path,
            error_type=type(exc).__name__,
            request_id=request_id,
        )
        return _render(500, code="internal.unhandled", detail="Internal Server Error", request_id=request_id)
