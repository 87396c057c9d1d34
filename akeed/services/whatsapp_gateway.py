"""WhatsApp Cloud API integration."""

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

import httpx

from akeed.config import settings

logger = logging.getLogger(__name__)

GRAPH_API_BASE_URL = "https://graph.facebook.com"

CONFIRM_PAYLOAD_PREFIX = "confirm"
CANCEL_PAYLOAD_PREFIX = "cancel"


@dataclass(frozen=True)
class DispatchResult:
    provider_message_id: str | None


def reply_payload(action: str, verification_id: UUID | str) -> str:
    return f"{action}_{verification_id}"


class WhatsAppGateway:
    """Thin wrapper around the WhatsApp Cloud API messages endpoint."""

    def __init__(self) -> None:
        self._access_token = settings.wa_access_token
        self._phone_number_id = settings.wa_phone_number_id
        self._api_version = settings.wa_api_version

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }

    def _messages_url(self) -> str:
        return f"{GRAPH_API_BASE_URL}/{self._api_version}/{self._phone_number_id}/messages"

    def is_configured(self) -> bool:
        return bool(self._access_token and self._phone_number_id)

    @property
    def template_name(self) -> str:
        return settings.wa_template_name

    @property
    def language_code(self) -> str:
        return settings.wa_template_language

    def build_verification_payload(
        self,
        phone: str,
        order_reference: str,
        amount: str,
        verification_id: UUID | str,
    ) -> dict[str, Any]:
        buttons = [
            {
                "type": "button",
                "sub_type": "quick_reply",
                "index": index,
                "parameters": [
                    {"type": "payload", "payload": reply_payload(action, verification_id)}
                ],
            }
            for index, action in enumerate((CONFIRM_PAYLOAD_PREFIX, CANCEL_PAYLOAD_PREFIX))
        ]
        return {
            "messaging_product": "whatsapp",
            "to": phone,
            "type": "template",
            "template": {
                "name": self.template_name,
                "language": {"code": self.language_code},
                "components": [
                    {
                        "type": "body",
                        "parameters": [
                            {"type": "text", "text": order_reference},
                            {"type": "text", "text": amount},
                        ],
                    },
                    *buttons,
                ],
            },
        }

    def send_verification_message(
        self,
        phone: str,
        order_reference: str,
        amount: str,
        verification_id: UUID | str,
    ) -> DispatchResult:
        """Send the COD confirmation template with confirm/cancel quick replies."""
        if not self.is_configured():
            raise RuntimeError("WhatsApp is not configured")
        payload = self.build_verification_payload(
            phone, order_reference, amount, verification_id
        )
        with httpx.Client(timeout=30) as client:
            resp = client.post(
                self._messages_url(),
                json=payload,
                headers=self._headers(),
            )
        data = resp.json()
        if resp.status_code >= 400 or "error" in data:
            message = (data.get("error") or {}).get("message", "Failed to send message")
            logger.error(
                "WhatsApp send failed for verification %s: %s", verification_id, message
            )
            raise ValueError(message)

        messages = data.get("messages") or []
        message_id = messages[0].get("id") if messages else None
        logger.info(
            "Sent verification %s to WhatsApp as %s", verification_id, message_id
        )
        return DispatchResult(provider_message_id=message_id)


whatsapp_gateway = WhatsAppGateway()
