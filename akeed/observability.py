import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from akeed.metrics import REQUEST_COUNT, REQUEST_ERRORS, REQUEST_LATENCY

logger = logging.getLogger(__name__)

# Delivery headers worth correlating with verification logs.
WEBHOOK_HEADERS = {
    "x-shopify-shop-domain": "shop_domain",
    "x-shopify-webhook-id": "webhook_id",
}


def _request_path(request: Request) -> str:
    route = request.scope.get("route")
    if route and hasattr(route, "path"):
        return route.path
    return request.url.path


def _webhook_context(request: Request) -> dict[str, str]:
    return {
        field: request.headers[header]
        for header, field in WEBHOOK_HEADERS.items()
        if request.headers.get(header)
    }


def _observe(
    request: Request, request_id: str, status_code: int, started: float
) -> dict:
    duration_ms = (time.monotonic() - started) * 1000.0
    path = _request_path(request)
    labels = (request.method, path, str(status_code))
    REQUEST_COUNT.labels(*labels).inc()
    REQUEST_LATENCY.labels(*labels).observe(duration_ms / 1000.0)
    if status_code >= 500:
        REQUEST_ERRORS.labels(*labels).inc()
    return {
        "request_id": request_id,
        "path": path,
        "method": request.method,
        "status": status_code,
        "duration_ms": round(duration_ms, 2),
        **_webhook_context(request),
    }


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Request ids, access logs and Prometheus request metrics."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_failed", extra=_observe(request, request_id, 500, started)
            )
            raise
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "request_completed",
            extra=_observe(request, request_id, response.status_code, started),
        )
        response.headers["x-request-id"] = request_id
        return response
