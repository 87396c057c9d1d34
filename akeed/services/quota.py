"""Monthly verification quota per integration.

Usage lives in one ``integration_monthly_usage`` row per (integration, month).
A reservation takes a slot with a guarded UPDATE inside a transaction that
holds the row lock, so concurrent reservations can never push
``consumed_count`` past the included limit.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from akeed.models.integration import IntegrationMonthlyUsage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaReservation:
    allowed: bool
    consumed_count: int
    included_limit: int
    integration_id: UUID
    period_start: date


def current_period_start(now: datetime | None = None) -> date:
    """First day of the current UTC month."""
    moment = now or datetime.now(UTC)
    if moment.tzinfo is not None:
        moment = moment.astimezone(UTC)
    return date(moment.year, moment.month, 1)


class QuotaLedger:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _insert_period_if_absent(
        self,
        integration_id: UUID,
        period_start: date,
        included_limit: int,
        org_id: UUID | None,
    ) -> None:
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise RuntimeError(f"Quota ledger does not support the {dialect} dialect")

        stmt = (
            insert(IntegrationMonthlyUsage)
            .values(
                integration_id=integration_id,
                org_id=org_id,
                period_start=period_start,
                included_limit=included_limit,
                consumed_count=0,
                blocked_count=0,
            )
            .on_conflict_do_nothing(index_elements=["integration_id", "period_start"])
        )
        self.db.execute(stmt)

    def get_usage(
        self, integration_id: UUID, period_start: date
    ) -> IntegrationMonthlyUsage | None:
        stmt = select(IntegrationMonthlyUsage).where(
            IntegrationMonthlyUsage.integration_id == integration_id,
            IntegrationMonthlyUsage.period_start == period_start,
        )
        return self.db.scalar(stmt)

    def reserve(
        self,
        integration_id: UUID,
        period_start: date,
        included_limit: int,
        org_id: UUID | None = None,
    ) -> QuotaReservation:
        """Take one verification slot for the period if the limit allows it.

        The stored limit is overwritten with ``included_limit`` so plan changes
        take effect immediately. A denied reservation increments
        ``blocked_count`` instead.
        """
        usage_key = (
            IntegrationMonthlyUsage.integration_id == integration_id,
            IntegrationMonthlyUsage.period_start == period_start,
        )
        try:
            self._insert_period_if_absent(
                integration_id, period_start, included_limit, org_id
            )
            usage = self.db.scalar(
                select(IntegrationMonthlyUsage).where(*usage_key).with_for_update()
            )
            if usage is None:
                raise RuntimeError(
                    f"Usage row missing for integration {integration_id} "
                    f"period {period_start}"
                )

            result = self.db.execute(
                update(IntegrationMonthlyUsage)
                .where(
                    *usage_key,
                    IntegrationMonthlyUsage.consumed_count < included_limit,
                )
                .values(
                    consumed_count=IntegrationMonthlyUsage.consumed_count + 1,
                    included_limit=included_limit,
                )
                .execution_options(synchronize_session=False)
            )
            allowed = result.rowcount == 1

            if not allowed:
                self.db.execute(
                    update(IntegrationMonthlyUsage)
                    .where(*usage_key)
                    .values(
                        blocked_count=IntegrationMonthlyUsage.blocked_count + 1,
                        included_limit=included_limit,
                    )
                    .execution_options(synchronize_session=False)
                )

            self.db.commit()
            self.db.refresh(usage)
        except Exception:
            self.db.rollback()
            raise

        if not allowed:
            logger.info(
                "Quota exhausted for integration %s period %s (%d/%d)",
                integration_id,
                period_start,
                usage.consumed_count,
                usage.included_limit,
            )

        return QuotaReservation(
            allowed=allowed,
            consumed_count=usage.consumed_count,
            included_limit=usage.included_limit,
            integration_id=integration_id,
            period_start=period_start,
        )

    def release(self, integration_id: UUID, period_start: date) -> None:
        """Give back one slot; the counter never drops below zero."""
        try:
            self.db.execute(
                update(IntegrationMonthlyUsage)
                .where(
                    IntegrationMonthlyUsage.integration_id == integration_id,
                    IntegrationMonthlyUsage.period_start == period_start,
                    IntegrationMonthlyUsage.consumed_count > 0,
                )
                .values(consumed_count=IntegrationMonthlyUsage.consumed_count - 1)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(
            "Released quota slot for integration %s period %s",
            integration_id,
            period_start,
        )

    def release_reservation(self, reservation: QuotaReservation) -> None:
        if not reservation.allowed:
            return
        self.release(reservation.integration_id, reservation.period_start)
