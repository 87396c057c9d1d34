"""Shopify webhook API routes."""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from akeed.api.deps import get_db
from akeed.services.shopify_orders import ShopifyOrderWebhookService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks/shopify", tags=["webhooks"])


@router.post("/orders-create")
async def shopify_order_created(request: Request, db: Session = Depends(get_db)) -> dict:
    """Handle Shopify `orders/create`; signature checks happen upstream."""
    shop_domain = request.headers.get("x-shopify-shop-domain", "").strip()
    if not shop_domain:
        raise HTTPException(status_code=400, detail="Missing X-Shopify-Shop-Domain header")

    body = await request.body()
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(payload, dict) or payload.get("id") is None:
        raise HTTPException(status_code=400, detail="Order payload has no id")

    svc = ShopifyOrderWebhookService(db)
    return await run_in_threadpool(
        svc.handle_order_create,
        payload,
        shop_domain=shop_domain,
        webhook_id=request.headers.get("x-shopify-webhook-id"),
        topic=request.headers.get("x-shopify-topic"),
    )
