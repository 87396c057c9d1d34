"""Error envelope for webhook endpoints.

Every error response has the same shape so webhook senders and operators can
correlate a failed delivery with the logs:
    {
        "code": "error_code",
        "message": "Human-readable message",
        "details": null | object,
        "request_id": "uuid"
    }

Shopify and Meta retry deliveries that do not get a 2xx, so provider outages
surface as 502 and everything unexpected as 500.
"""
from __future__ import annotations

import logging

import httpx
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def _envelope(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: object = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "code": code,
            "message": message,
            "details": details,
            "request_id": getattr(request.state, "request_id", "unknown"),
        },
    )


def _split_detail(status_code: int, detail: object) -> tuple[str, str, object]:
    """Map an HTTPException detail onto (code, message, details)."""
    if isinstance(detail, dict):
        return (
            detail.get("code", f"http_{status_code}"),
            detail.get("message", "Request failed"),
            detail.get("details"),
        )
    if isinstance(detail, str):
        return f"http_{status_code}", detail, None
    return f"http_{status_code}", "Request failed", detail


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # pydantic v2 puts the raw exception object under "ctx"
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


def register_error_handlers(app: object) -> None:
    @app.exception_handler(HTTPException)  # type: ignore[arg-type]
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        code, message, details = _split_detail(exc.status_code, exc.detail)
        return _envelope(request, exc.status_code, code, message, details)

    @app.exception_handler(RequestValidationError)  # type: ignore[arg-type]
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning(
            "Validation error on %s %s: %s",
            request.method,
            request.url.path,
            exc.errors(),
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        return _envelope(
            request, 422, "validation_error", "Validation error", jsonable_errors(exc)
        )

    @app.exception_handler(httpx.HTTPError)  # type: ignore[arg-type]
    async def provider_exception_handler(
        request: Request, exc: httpx.HTTPError
    ) -> JSONResponse:
        logger.error(
            "Provider request failed on %s %s: %s",
            request.method,
            request.url.path,
            exc,
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        return _envelope(
            request, 502, "provider_unavailable", "Upstream provider request failed"
        )

    @app.exception_handler(Exception)  # type: ignore[arg-type]
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception(
            "Unhandled exception on %s %s",
            request.method,
            request.url.path,
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        return _envelope(request, 500, "internal_error", "Internal server error")
