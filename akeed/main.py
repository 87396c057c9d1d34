from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from starlette.responses import JSONResponse, Response

from akeed.api.shopify import router as shopify_router
from akeed.api.whatsapp import router as whatsapp_router
from akeed.config import settings, validate_settings
from akeed.db import SessionLocal
from akeed.errors import register_error_handlers
from akeed.logging import configure_logging
from akeed.observability import ObservabilityMiddleware
from akeed.services.whatsapp_gateway import whatsapp_gateway

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[arg-type]
    for warning in validate_settings(settings):
        logger.warning("Config warning: %s", warning)
    if not whatsapp_gateway.is_configured():
        logger.warning("WhatsApp dispatch is disabled; COD orders will fail to send")
    logger.info("Akeed started (pid=%s)", os.getpid())
    yield
    logger.info("Akeed shutting down")


def _cors_origins() -> list[str]:
    return [o.strip() for o in settings.cors_origins.split(",") if o.strip()]


def _check_database() -> str:
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Readiness database check failed: %s", e)
        return f"error: {e}"
    finally:
        db.close()
    return "ok"


app = FastAPI(title="Akeed COD Verification API", lifespan=lifespan)
configure_logging()
register_error_handlers(app)

# Last added runs first: request ids exist before CORS and the routes.
if _cors_origins():
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )
app.add_middleware(ObservabilityMiddleware)

app.include_router(shopify_router)
app.include_router(whatsapp_router)


@app.get("/health")
def health_check() -> dict[str, str]:
    """Liveness probe: ok whenever the process is running."""
    return {"status": "ok"}


@app.get("/health/ready")
def readiness_check() -> JSONResponse:
    """Readiness probe.

    Only the database gates readiness; webhooks are still acknowledged while
    WhatsApp credentials are missing, so that is reported but not fatal.
    """
    database = _check_database()
    ready = database == "ok"
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ok" if ready else "degraded",
            "checks": {
                "database": database,
                "whatsapp": "configured"
                if whatsapp_gateway.is_configured()
                else "not_configured",
            },
        },
    )


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
