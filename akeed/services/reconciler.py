"""Reconciles WhatsApp replies and receipts into verification state."""

import logging
import uuid
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from akeed.metrics import VERIFICATION_TRANSITIONS
from akeed.models.verification import Verification, VerificationStatus
from akeed.services.orchestrator import VerificationOrchestrator
from akeed.services.verifications import VerificationService

logger = logging.getLogger(__name__)

REPLY_ACTIONS: dict[str, VerificationStatus] = {
    "confirm": VerificationStatus.confirmed,
    "yes": VerificationStatus.confirmed,
    "cancel": VerificationStatus.canceled,
    "no": VerificationStatus.canceled,
}

# A reply resolves a verification only after the message went out.
REPLYABLE_STATUSES = frozenset(
    {VerificationStatus.sent, VerificationStatus.delivered, VerificationStatus.read}
)

# Receipt status -> statuses it may advance from.
DELIVERY_TRANSITIONS: dict[VerificationStatus, set[VerificationStatus]] = {
    VerificationStatus.delivered: {VerificationStatus.sent},
    VerificationStatus.read: {VerificationStatus.sent, VerificationStatus.delivered},
}


@dataclass(frozen=True)
class ReconcileResult:
    applied: bool
    verification_id: UUID | None = None
    status: str | None = None
    reason: str | None = None


def parse_reply_payload(button_payload: str | None) -> tuple[VerificationStatus, UUID] | None:
    """Split ``<action>_<verification_id>`` into target status and id."""
    if not button_payload or "_" not in button_payload:
        return None
    action, _, raw_id = button_payload.strip().partition("_")
    target = REPLY_ACTIONS.get(action.lower())
    if target is None:
        return None
    try:
        return target, uuid.UUID(raw_id)
    except ValueError:
        return None


class StatusReconciler:
    def __init__(
        self, db: Session, orchestrator: VerificationOrchestrator | None = None
    ) -> None:
        self.db = db
        self.orchestrator = orchestrator or VerificationOrchestrator(db)
        self.verifications = VerificationService(db)

    def _apply(
        self, verification: Verification, status: VerificationStatus
    ) -> ReconcileResult:
        verification = self.verifications.update_status(verification, status)
        VERIFICATION_TRANSITIONS.labels(status=status.value).inc()
        self.orchestrator.finalize_verification(verification.id, status)
        return ReconcileResult(True, verification.id, status.value)

    def process_reply_event(self, button_payload: str | None) -> ReconcileResult:
        parsed = parse_reply_payload(button_payload)
        if parsed is None:
            logger.info("Ignoring unrecognized reply payload %r", button_payload)
            return ReconcileResult(False, reason="unrecognized_payload")
        target, verification_id = parsed

        verification = self.verifications.get(verification_id)
        if verification is None:
            logger.warning("Reply for unknown verification %s", verification_id)
            return ReconcileResult(False, verification_id, reason="unknown_verification")

        if verification.status == target:
            logger.info(
                "Duplicate %s reply for verification %s", target.value, verification_id
            )
            return ReconcileResult(
                False, verification_id, verification.status.value, "duplicate"
            )
        if verification.status not in REPLYABLE_STATUSES:
            logger.info(
                "Ignoring %s reply for verification %s in status %s",
                target.value,
                verification_id,
                verification.status.value,
            )
            return ReconcileResult(
                False, verification_id, verification.status.value, "not_replyable"
            )

        return self._apply(verification, target)

    def process_delivery_status_event(
        self, provider_message_id: str | None, status: str | None
    ) -> ReconcileResult:
        normalized = (status or "").strip().lower()
        if normalized == VerificationStatus.sent.value:
            return ReconcileResult(False, reason="sent_receipt")
        try:
            target = VerificationStatus(normalized)
        except ValueError:
            target = None
        allowed_from = DELIVERY_TRANSITIONS.get(target) if target else None
        if allowed_from is None:
            logger.info("Ignoring WhatsApp status %r for %s", status, provider_message_id)
            return ReconcileResult(False, reason="unhandled_status")

        if not provider_message_id:
            return ReconcileResult(False, reason="missing_message_id")
        verification = self.verifications.get_by_provider_message_id(provider_message_id)
        if verification is None:
            logger.info("No verification for WhatsApp message %s", provider_message_id)
            return ReconcileResult(False, reason="unknown_message")

        if verification.status not in allowed_from:
            logger.info(
                "Ignoring stale %s receipt for verification %s in status %s",
                normalized,
                verification.id,
                verification.status.value,
            )
            return ReconcileResult(
                False, verification.id, verification.status.value, "stale"
            )

        return self._apply(verification, target)
