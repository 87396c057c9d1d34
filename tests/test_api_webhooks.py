"""Tests for the webhook API endpoints."""

import asyncio
import threading
import uuid
from unittest.mock import MagicMock, patch

import httpx
import pytest
from sqlalchemy import select

from akeed.models import Order, Verification, VerificationStatus
from akeed.services.whatsapp_gateway import DispatchResult


def _shopify_order(order_id: int) -> dict:
    return {
        "id": order_id,
        "order_number": 1042,
        "total_price": "249.00",
        "currency": "SAR",
        "payment_gateway_names": ["Cash on Delivery (COD)"],
        "customer": {
            "first_name": "Sara",
            "last_name": "Ali",
            "default_address": {"phone": "0501234567", "country_code": "SA"},
        },
    }


def _whatsapp_event(value: dict) -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "WABA", "changes": [{"field": "messages", "value": value}]}],
    }


class TestShopifyOrderWebhook:
    def test_cod_order_is_dispatched(self, client, db_session, integration):
        order_id = uuid.uuid4().int % 10**15
        with patch("akeed.services.orchestrator.whatsapp_gateway") as mock_gateway:
            mock_gateway.template_name = "akeed_cod_verification"
            mock_gateway.language_code = "ar"
            mock_gateway.send_verification_message.return_value = DispatchResult(
                provider_message_id=f"wamid.{uuid.uuid4().hex}"
            )
            response = client.post(
                "/webhooks/shopify/orders-create",
                json=_shopify_order(order_id),
                headers={
                    "X-Shopify-Shop-Domain": integration.platform_store_url,
                    "X-Shopify-Webhook-Id": str(uuid.uuid4()),
                    "X-Shopify-Topic": "orders/create",
                },
            )

        assert response.status_code == 200
        body = response.json()
        assert body["received"] is True
        assert body["skipped"] is False
        order = db_session.scalar(select(Order).where(Order.external_order_id == str(order_id)))
        assert order is not None
        verification = db_session.get(Verification, uuid.UUID(body["verification_id"]))
        assert verification.status == VerificationStatus.sent

    def test_missing_shop_domain_header(self, client):
        response = client.post("/webhooks/shopify/orders-create", json=_shopify_order(1))

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "http_400"
        assert "request_id" in body

    def test_invalid_json(self, client):
        response = client.post(
            "/webhooks/shopify/orders-create",
            content=b"{not json",
            headers={"X-Shopify-Shop-Domain": "demo.myshopify.com"},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid JSON"

    def test_dispatch_failure_returns_error_envelope(self, client, integration):
        with patch("akeed.services.orchestrator.whatsapp_gateway") as mock_gateway:
            mock_gateway.template_name = "akeed_cod_verification"
            mock_gateway.language_code = "ar"
            mock_gateway.send_verification_message.side_effect = RuntimeError(
                "WhatsApp is not configured"
            )
            response = client.post(
                "/webhooks/shopify/orders-create",
                json=_shopify_order(uuid.uuid4().int % 10**15),
                headers={"X-Shopify-Shop-Domain": integration.platform_store_url},
            )

        assert response.status_code == 500
        assert response.json()["code"] == "internal_error"


class TestWhatsAppWebhook:
    def test_subscription_handshake(self, client):
        response = client.get(
            "/webhooks/whatsapp",
            params={
                "hub.mode": "subscribe",
                "hub.verify_token": "test-verify-token",
                "hub.challenge": "1158201444",
            },
        )
        assert response.status_code == 200
        assert response.text == "1158201444"

    def test_subscription_rejects_wrong_token(self, client):
        response = client.get(
            "/webhooks/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "1"},
        )
        assert response.status_code == 403

    def test_subscription_rejects_non_ascii_token(self, client):
        response = client.get(
            "/webhooks/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "تحقق", "hub.challenge": "1"},
        )
        assert response.status_code == 403
        assert response.json()["code"] == "http_403"

    def test_button_reply_confirms_verification(self, client, db_session, verification_factory):
        verification = verification_factory(status=VerificationStatus.delivered)
        event = _whatsapp_event(
            {
                "messages": [
                    {
                        "id": "wamid.reply",
                        "type": "button",
                        "button": {"payload": f"confirm_{verification.id}", "text": "تأكيد"},
                    }
                ]
            }
        )

        with patch("akeed.services.orchestrator.shopify_gateway") as mock_tagger:
            response = client.post("/webhooks/whatsapp", json=event)

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        db_session.refresh(verification)
        assert verification.status == VerificationStatus.confirmed
        assert mock_tagger.add_order_tag.call_args.args[2] == "Akeed: Confirmed"

    def test_interactive_reply_cancels_verification(
        self, client, db_session, verification_factory
    ):
        verification = verification_factory(status=VerificationStatus.read)
        event = _whatsapp_event(
            {
                "messages": [
                    {
                        "type": "interactive",
                        "interactive": {
                            "type": "button_reply",
                            "button_reply": {"id": f"cancel_{verification.id}", "title": "إلغاء"},
                        },
                    }
                ]
            }
        )

        with patch("akeed.services.orchestrator.shopify_gateway"):
            client.post("/webhooks/whatsapp", json=event)

        db_session.refresh(verification)
        assert verification.status == VerificationStatus.canceled

    def test_status_updates_are_applied_in_order(
        self, client, db_session, verification_factory
    ):
        verification = verification_factory(status=VerificationStatus.sent)
        event = _whatsapp_event(
            {
                "statuses": [
                    {"id": verification.provider_message_id, "status": "delivered"},
                    {"id": verification.provider_message_id, "status": "read"},
                ]
            }
        )

        response = client.post("/webhooks/whatsapp", json=event)

        assert response.status_code == 200
        db_session.refresh(verification)
        assert verification.status == VerificationStatus.read

    def test_irrelevant_payload_is_acknowledged(self, client):
        response = client.post("/webhooks/whatsapp", json={"object": "page", "entry": "oops"})
        assert response.status_code == 200


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_metrics_endpoint(client):
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "akeed_http_requests_total" in response.text


def test_readiness_reports_database_and_whatsapp(client):
    response = client.get("/health/ready")
    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "checks": {"database": "ok", "whatsapp": "configured"},
    }


@pytest.mark.asyncio
async def test_webhook_deliveries_are_handled_concurrently():
    from akeed.api.deps import get_db
    from akeed.main import app

    # Each handler waits for the other; this only passes when both run at once.
    both_in_flight = threading.Barrier(2, timeout=5)

    def handle_incoming(payload):
        both_in_flight.wait()
        return []

    def override_get_db():
        yield MagicMock(name="db")

    app.dependency_overrides[get_db] = override_get_db
    try:
        with patch("akeed.api.whatsapp.WhatsAppWebhookService") as service_cls:
            service_cls.return_value.handle_incoming.side_effect = handle_incoming
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
                responses = await asyncio.gather(
                    ac.post("/webhooks/whatsapp", json=_whatsapp_event({"statuses": []})),
                    ac.post("/webhooks/whatsapp", json=_whatsapp_event({"statuses": []})),
                )
    finally:
        app.dependency_overrides.clear()

    assert [r.status_code for r in responses] == [200, 200]
    assert service_cls.return_value.handle_incoming.call_count == 2
