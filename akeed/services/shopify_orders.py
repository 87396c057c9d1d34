"""Shopify `orders/create` webhook handling."""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from akeed.models.integration import Integration
from akeed.models.webhook_event import WebhookEvent
from akeed.schemas.order import NormalizedOrder
from akeed.schemas.shopify import ShopifyOrderWebhook
from akeed.services.eligibility import Platform
from akeed.services.orchestrator import VerificationOrchestrator
from akeed.services.phone import InvalidPhoneNumberError, standardize_phone
from akeed.services.shopify_gateway import normalize_store_domain

logger = logging.getLogger(__name__)

WEBHOOK_PROVIDER = "shopify"

BLOCKED_BILLING_STATUSES = frozenset(
    {"cancelled", "canceled", "declined", "expired", "frozen"}
)


def is_billing_blocked(integration: Integration) -> bool:
    if integration.is_active is False:
        return True
    status = (integration.billing_status or "").strip().lower()
    return status in BLOCKED_BILLING_STATUSES


def resolve_phone_details(payload: ShopifyOrderWebhook) -> tuple[str | None, str | None]:
    """First non-empty phone with the country code of the address it came from."""
    customer = payload.customer
    default_address = customer.default_address if customer else None
    billing = payload.billing_address
    shipping = payload.shipping_address

    default_country = default_address.country_code if default_address else None
    billing_country = billing.country_code if billing else None
    shipping_country = shipping.country_code if shipping else None

    candidates = [
        (payload.phone, shipping_country or billing_country or default_country),
        (customer.phone if customer else None, default_country),
        (default_address.phone if default_address else None, default_country),
        (billing.phone if billing else None, billing_country),
        (shipping.phone if shipping else None, shipping_country),
    ]
    for phone, country_code in candidates:
        if phone and phone.strip():
            return phone, country_code
    return None, None


def resolve_payment_method(payload: ShopifyOrderWebhook) -> str | None:
    gateway_names = [
        name.strip() for name in (payload.payment_gateway_names or []) if name and name.strip()
    ]
    if gateway_names:
        return ", ".join(gateway_names)
    gateway = (payload.gateway or "").strip()
    return gateway or None


def resolve_customer_name(payload: ShopifyOrderWebhook) -> str:
    customer = payload.customer
    if customer is None:
        return "Guest"
    name = f"{customer.first_name or ''} {customer.last_name or ''}".strip()
    return name or "Guest"


def parse_total_price(raw: str | None) -> Decimal | None:
    if raw is None or not str(raw).strip():
        return None
    try:
        return Decimal(str(raw).strip())
    except InvalidOperation:
        logger.warning("Ignoring unparseable total_price %r", raw)
        return None


class ShopifyOrderWebhookService:
    def __init__(
        self, db: Session, orchestrator: VerificationOrchestrator | None = None
    ) -> None:
        self.db = db
        self.orchestrator = orchestrator or VerificationOrchestrator(db)

    def find_integration(self, shop_domain: str) -> Integration | None:
        stmt = select(Integration).where(
            Integration.platform_type == Platform.shopify.value,
            Integration.platform_store_url == normalize_store_domain(shop_domain),
        )
        return self.db.scalar(stmt)

    def record_if_new(
        self,
        event_id: str,
        topic: str | None,
        shop_domain: str,
        integration: Integration | None,
    ) -> WebhookEvent | None:
        """Store the delivery id; returns None when it was already recorded."""
        event = WebhookEvent(
            provider=WEBHOOK_PROVIDER,
            event_id=event_id,
            topic=topic,
            shop_domain=shop_domain,
            org_id=integration.org_id if integration else None,
            integration_id=integration.id if integration else None,
        )
        try:
            self.db.add(event)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return None
        return event

    def _forget_event(self, event: WebhookEvent) -> None:
        try:
            self.db.delete(event)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Failed to forget Shopify webhook %s", event.event_id)

    def map_order(
        self,
        payload: ShopifyOrderWebhook,
        integration: Integration,
        customer_phone: str,
        raw_payload: dict[str, Any],
    ) -> NormalizedOrder:
        order_number = payload.order_number if payload.order_number is not None else payload.name
        customer_email = payload.email or (
            payload.customer.email if payload.customer else None
        )
        currency = (payload.currency or "").strip().upper() or None
        return NormalizedOrder(
            org_id=integration.org_id,
            integration_id=integration.id,
            external_order_id=str(payload.id),
            order_number=str(order_number) if order_number is not None else None,
            customer_phone=customer_phone,
            customer_name=resolve_customer_name(payload),
            customer_email=customer_email,
            total_price=parse_total_price(payload.total_price),
            currency=currency,
            payment_method=resolve_payment_method(payload),
            raw_payload=raw_payload,
        )

    def handle_order_create(
        self,
        payload: dict[str, Any],
        shop_domain: str,
        webhook_id: str | None,
        topic: str | None = None,
    ) -> dict[str, Any]:
        order = ShopifyOrderWebhook.model_validate(payload)
        logger.info("Received Shopify order webhook from %s: %s", shop_domain, order.id)

        if not webhook_id:
            logger.warning(
                "Missing X-Shopify-Webhook-Id for order %s from %s", order.id, shop_domain
            )

        integration = self.find_integration(shop_domain)

        event = None
        if webhook_id:
            event = self.record_if_new(webhook_id, topic, shop_domain, integration)
            if event is None:
                logger.warning(
                    "Duplicate Shopify webhook %s ignored for shop %s",
                    webhook_id,
                    shop_domain,
                )
                return {"received": True, "duplicate": True}

        if integration is None:
            logger.warning(
                "Skipping order %s: no integration found for shop %s", order.id, shop_domain
            )
            return {"received": True}

        if is_billing_blocked(integration):
            logger.warning(
                "Skipping order %s: billing is not active for shop %s (status=%s)",
                order.id,
                shop_domain,
                integration.billing_status or "unknown",
                extra={"integration_id": integration.id},
            )
            return {"received": True}

        phone, country_code = resolve_phone_details(order)
        try:
            customer_phone = standardize_phone(phone, country_code)
        except InvalidPhoneNumberError as e:
            logger.warning(
                "Skipping order %s: no usable customer phone (%s)",
                order.id,
                e,
                extra={"integration_id": integration.id},
            )
            return {"received": True}

        try:
            normalized = self.map_order(order, integration, customer_phone, payload)
            outcome = self.orchestrator.handle_new_order(normalized, integration)
        except Exception:
            # Let the platform retry this delivery.
            if event is not None:
                self._forget_event(event)
            raise

        return {
            "received": True,
            "skipped": outcome.skipped,
            "reason": outcome.reason,
            "verification_id": str(outcome.verification_id)
            if outcome.verification_id
            else None,
        }
