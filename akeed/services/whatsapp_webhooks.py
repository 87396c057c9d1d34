"""WhatsApp Cloud API webhook handling."""

import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import Session

from akeed.schemas.whatsapp import WhatsAppMessage, WhatsAppWebhookPayload
from akeed.services.reconciler import ReconcileResult, StatusReconciler

logger = logging.getLogger(__name__)


def extract_reply_payload(message: WhatsAppMessage) -> str | None:
    """Button payload of a template quick reply or interactive button reply."""
    if message.type == "button" and message.button is not None:
        return message.button.payload
    if message.type == "interactive" and message.interactive is not None:
        reply = message.interactive.button_reply
        return reply.id if reply is not None else None
    return None


class WhatsAppWebhookService:
    def __init__(self, db: Session, reconciler: StatusReconciler | None = None) -> None:
        self.db = db
        self.reconciler = reconciler or StatusReconciler(db)

    def handle_incoming(self, payload: dict[str, Any]) -> list[ReconcileResult]:
        try:
            webhook = WhatsAppWebhookPayload.model_validate(payload)
        except ValidationError as e:
            logger.warning("Ignoring malformed WhatsApp webhook: %s", e.errors())
            return []

        results: list[ReconcileResult] = []
        for entry in webhook.entry:
            for change in entry.changes:
                value = change.value
                if value is None:
                    continue
                for message in value.messages:
                    button_payload = extract_reply_payload(message)
                    if button_payload is None:
                        logger.debug("Ignoring WhatsApp message %s (%s)", message.id, message.type)
                        continue
                    results.append(self.reconciler.process_reply_event(button_payload))
                for status in value.statuses:
                    results.append(
                        self.reconciler.process_delivery_status_event(status.id, status.status)
                    )
        return results
