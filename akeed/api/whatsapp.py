"""WhatsApp Cloud API webhook routes."""

import hmac
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from akeed.api.deps import get_db
from akeed.config import settings
from akeed.services.whatsapp_webhooks import WhatsAppWebhookService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks/whatsapp", tags=["webhooks"])


@router.get("", response_class=PlainTextResponse)
def verify_subscription(
    mode: str | None = Query(default=None, alias="hub.mode"),
    verify_token: str | None = Query(default=None, alias="hub.verify_token"),
    challenge: str | None = Query(default=None, alias="hub.challenge"),
) -> PlainTextResponse:
    """Meta subscription handshake: echo the challenge for our verify token."""
    expected = settings.wa_verify_token
    if (
        mode == "subscribe"
        and expected
        and verify_token is not None
        and hmac.compare_digest(verify_token.encode(), expected.encode())
    ):
        logger.info("WhatsApp webhook subscription verified")
        return PlainTextResponse(challenge or "")
    logger.warning("Rejected WhatsApp webhook verification (mode=%s)", mode)
    raise HTTPException(status_code=403, detail="Verification failed")


@router.post("")
async def whatsapp_webhook(request: Request, db: Session = Depends(get_db)) -> dict:
    body = await request.body()
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")

    svc = WhatsAppWebhookService(db)
    await run_in_threadpool(svc.handle_incoming, payload)
    return {"status": "ok"}
