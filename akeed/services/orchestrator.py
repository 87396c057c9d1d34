"""Verification orchestrator: order intake, quota, dispatch and finalization."""

import logging
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from akeed.metrics import VERIFICATION_OUTCOMES
from akeed.models.integration import Integration
from akeed.models.order import Order
from akeed.models.verification import Verification, VerificationStatus
from akeed.schemas.order import NormalizedOrder, OrderOutcome
from akeed.services.compensation import CompensationPipeline
from akeed.services.eligibility import EligibilityEvaluator, eligibility_evaluator
from akeed.services.orders import OrderService
from akeed.services.plans import included_limit_for, resolve_plan_id
from akeed.services.quota import QuotaLedger, QuotaReservation, current_period_start
from akeed.services.shopify_gateway import shopify_gateway
from akeed.services.verifications import VerificationService
from akeed.services.whatsapp_gateway import whatsapp_gateway

logger = logging.getLogger(__name__)

TAG_LABELS: dict[VerificationStatus, str] = {
    VerificationStatus.confirmed: "Akeed: Confirmed",
    VerificationStatus.canceled: "Akeed: Canceled",
}


def _is_verification_order_collision(error: IntegrityError) -> bool:
    """Return True when IntegrityError is a second verification for one order."""
    original = getattr(error, "orig", None)
    diag = getattr(original, "diag", None)
    if getattr(diag, "constraint_name", None) == "uq_verifications_order_id":
        return True

    message = str(original or error).lower()
    return "uq_verifications_order_id" in message or "verifications.order_id" in message


def format_amount(total_price: Decimal | None, currency: str | None) -> str:
    if total_price is None:
        return currency or ""
    amount = f"{Decimal(total_price):.2f}"
    return f"{amount} {currency}" if currency else amount


class VerificationOrchestrator:
    def __init__(
        self,
        db: Session,
        dispatcher: Any = None,
        tagger: Any = None,
        evaluator: EligibilityEvaluator | None = None,
        ledger: QuotaLedger | None = None,
    ) -> None:
        self.db = db
        self.dispatcher = dispatcher or whatsapp_gateway
        self.tagger = tagger or shopify_gateway
        self.evaluator = evaluator or eligibility_evaluator
        self.ledger = ledger or QuotaLedger(db)
        self.orders = OrderService(db)
        self.verifications = VerificationService(db)

    def _outcome(
        self, order: Order, verification: Verification, outcome: str
    ) -> OrderOutcome:
        VERIFICATION_OUTCOMES.labels(outcome=outcome).inc()
        return OrderOutcome(
            order_id=order.id,
            verification_id=verification.id,
            status=verification.status.value,
        )

    # ── Intake ───────────────────────────────────────────

    def handle_new_order(
        self, order: NormalizedOrder, integration: Integration
    ) -> OrderOutcome:
        """Run one inbound order through eligibility, quota and dispatch.

        Returns the persisted order and verification ids, or a skipped outcome
        for orders that do not need confirmation. Collaborator failures after a
        slot was reserved release the slot and fail the verification before
        the exception propagates.
        """
        log_context = {
            "integration_id": integration.id,
            "order_id": order.external_order_id,
        }
        eligibility = self.evaluator.evaluate(order, integration)
        if not eligibility.eligible:
            logger.info(
                "Skipping order %s: %s",
                order.external_order_id,
                eligibility.reason.value,
                extra=log_context,
            )
            VERIFICATION_OUTCOMES.labels(outcome="skipped").inc()
            return OrderOutcome(skipped=True, reason=eligibility.reason.value)

        record = self.orders.get_or_create(order)

        existing = self.verifications.get_by_order(record.id)
        if existing is not None:
            logger.info(
                "Order %s already has verification %s (%s)",
                record.external_order_id,
                existing.id,
                existing.status.value,
                extra=log_context,
            )
            return self._outcome(record, existing, "existing")

        plan_id = resolve_plan_id(integration.billing_plan_id)
        reservation = self.ledger.reserve(
            integration.id,
            current_period_start(),
            included_limit_for(plan_id),
            org_id=record.org_id,
        )
        if not reservation.allowed:
            return self._block_for_quota(record, plan_id, reservation)

        pipeline = CompensationPipeline(f"order {record.external_order_id}")
        pipeline.add_compensation(
            "release_slot", lambda: self.ledger.release_reservation(reservation)
        )

        try:
            verification = pipeline.run(
                "create_verification",
                lambda: self._create_verification(
                    record,
                    template_name=getattr(self.dispatcher, "template_name", None),
                    language_code=getattr(self.dispatcher, "language_code", None),
                ),
            )
        except IntegrityError as error:
            if not _is_verification_order_collision(error):
                raise
            winner = self.verifications.get_by_order(record.id)
            if winner is None:
                raise
            logger.info(
                "Verification for order %s created concurrently; using %s",
                record.external_order_id,
                winner.id,
                extra=log_context,
            )
            return self._outcome(record, winner, "existing")

        verification_id = verification.id
        failure_reason = "dispatch_failed"

        def mark_failed() -> None:
            self.verifications.mark_failed(verification_id, failure_reason)

        pipeline.add_compensation("mark_failed", mark_failed)

        try:
            result = pipeline.run(
                "dispatch",
                lambda: self.dispatcher.send_verification_message(
                    record.customer_phone,
                    record.order_number or record.external_order_id,
                    format_amount(record.total_price, record.currency),
                    str(verification_id),
                ),
            )
        except Exception:
            VERIFICATION_OUTCOMES.labels(outcome="dispatch_failed").inc()
            raise

        if not result.provider_message_id:
            failure_reason = "missing_message_id"
            logger.error(
                "WhatsApp accepted verification %s without a message id",
                verification_id,
                extra={**log_context, "verification_id": verification_id},
            )
            pipeline.unwind()
            self.db.refresh(verification)
            return self._outcome(record, verification, "missing_message_id")

        pipeline.complete()
        verification = self.verifications.mark_sent(
            verification, result.provider_message_id
        )
        return self._outcome(record, verification, "sent")

    def _create_verification(self, order: Order, **kwargs: Any) -> Verification:
        try:
            return self.verifications.create(
                org_id=order.org_id, order_id=order.id, **kwargs
            )
        except Exception:
            self.db.rollback()
            raise

    def _block_for_quota(
        self, order: Order, plan_id: str, reservation: QuotaReservation
    ) -> OrderOutcome:
        metadata = {
            "reason": "plan_limit_reached",
            "plan_id": plan_id,
            "included_limit": reservation.included_limit,
            "consumed_count": reservation.consumed_count,
            "period_start": reservation.period_start.isoformat(),
        }
        try:
            verification = self._create_verification(
                order, status=VerificationStatus.failed, metadata=metadata
            )
        except IntegrityError as error:
            if not _is_verification_order_collision(error):
                raise
            winner = self.verifications.get_by_order(order.id)
            if winner is None:
                raise
            return self._outcome(order, winner, "existing")

        logger.warning(
            "Plan limit reached for integration %s (%s: %d/%d); order %s not verified",
            reservation.integration_id,
            plan_id,
            reservation.consumed_count,
            reservation.included_limit,
            order.external_order_id,
            extra={"integration_id": reservation.integration_id, "order_id": order.id},
        )
        return self._outcome(order, verification, "quota_blocked")

    # ── Finalization ─────────────────────────────────────

    def finalize_verification(
        self, verification_id: UUID, terminal_status: VerificationStatus | str
    ) -> bool:
        """Report a confirmed or canceled verification back to the store.

        Tagging is best-effort; returns True only when the tag was applied.
        """
        label = TAG_LABELS.get(VerificationStatus(terminal_status))
        if label is None:
            return False

        verification = self.verifications.get(verification_id)
        if verification is None:
            logger.warning("Cannot finalize missing verification %s", verification_id)
            return False
        order = self.orders.get(verification.order_id)
        if order is None:
            logger.warning(
                "Verification %s points at missing order %s",
                verification_id,
                verification.order_id,
            )
            return False
        integration = self.db.get(Integration, order.integration_id)
        if integration is None:
            logger.warning(
                "Order %s points at missing integration %s",
                order.id,
                order.integration_id,
            )
            return False

        try:
            self.tagger.add_order_tag(integration, order.external_order_id, label)
        except Exception:
            logger.exception(
                "Failed to tag order %s with %r",
                order.external_order_id,
                label,
                extra={"verification_id": verification_id},
            )
            return False
        return True
