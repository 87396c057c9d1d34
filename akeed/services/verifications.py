import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from akeed.models.verification import Verification, VerificationStatus

logger = logging.getLogger(__name__)

# Timestamp column stamped when a verification enters the status.
STATUS_TIMESTAMPS: dict[VerificationStatus, str] = {
    VerificationStatus.confirmed: "confirmed_at",
    VerificationStatus.canceled: "canceled_at",
    VerificationStatus.expired: "expired_at",
}


class VerificationService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, verification_id: UUID) -> Verification | None:
        return self.db.get(Verification, verification_id)

    def get_by_order(self, order_id: UUID) -> Verification | None:
        stmt = select(Verification).where(Verification.order_id == order_id)
        return self.db.scalar(stmt)

    def get_by_provider_message_id(self, provider_message_id: str) -> Verification | None:
        stmt = select(Verification).where(
            Verification.provider_message_id == provider_message_id
        )
        return self.db.scalar(stmt)

    def create(
        self,
        *,
        org_id: UUID,
        order_id: UUID,
        status: VerificationStatus = VerificationStatus.pending,
        template_name: str | None = None,
        language_code: str | None = None,
        metadata: dict | None = None,
    ) -> Verification:
        verification = Verification(
            org_id=org_id,
            order_id=order_id,
            status=status,
            template_name=template_name,
            language_code=language_code,
            attempts=0,
            metadata_=metadata,
        )
        self.db.add(verification)
        self.db.commit()
        self.db.refresh(verification)
        return verification

    def update_status(
        self,
        verification: Verification,
        status: VerificationStatus,
        metadata: dict | None = None,
    ) -> Verification:
        verification.status = status
        timestamp_field = STATUS_TIMESTAMPS.get(status)
        if timestamp_field:
            setattr(verification, timestamp_field, datetime.now(UTC))
        if metadata:
            verification.metadata_ = {**(verification.metadata_ or {}), **metadata}
        self.db.commit()
        self.db.refresh(verification)
        logger.info("Verification %s -> %s", verification.id, status.value)
        return verification

    def mark_sent(self, verification: Verification, provider_message_id: str) -> Verification:
        verification.provider_message_id = provider_message_id
        verification.status = VerificationStatus.sent
        verification.attempts = (verification.attempts or 0) + 1
        verification.last_sent_at = datetime.now(UTC)
        self.db.commit()
        self.db.refresh(verification)
        logger.info(
            "Verification %s sent as message %s", verification.id, provider_message_id
        )
        return verification

    def mark_failed(self, verification_id: UUID, reason: str) -> Verification | None:
        """Fail a verification by id; usable as a compensation after a rollback."""
        verification = self.get(verification_id)
        if verification is None:
            logger.warning("Cannot fail missing verification %s", verification_id)
            return None
        return self.update_status(
            verification, VerificationStatus.failed, metadata={"reason": reason}
        )
