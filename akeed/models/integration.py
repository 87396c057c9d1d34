import uuid
from datetime import date

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from akeed.db import Base, TimestampMixin


class Integration(TimestampMixin, Base):
    """A merchant's connected storefront plus its billing state.

    Owned by the install and billing flows; the verification core only reads
    the platform, plan and activity fields.
    """

    __tablename__ = "integrations"
    __table_args__ = (
        UniqueConstraint(
            "platform_type",
            "platform_store_url",
            name="uq_integrations_platform_store",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    org_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )
    platform_type: Mapped[str] = mapped_column(String(40), nullable=False)
    platform_store_url: Mapped[str] = mapped_column(String(255), nullable=False)
    access_token: Mapped[str | None] = mapped_column(Text)
    billing_plan_id: Mapped[str | None] = mapped_column(String(40))
    billing_status: Mapped[str | None] = mapped_column(String(40))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    orders = relationship("Order", back_populates="integration")
    usage_periods = relationship(
        "IntegrationMonthlyUsage", back_populates="integration"
    )


class IntegrationMonthlyUsage(TimestampMixin, Base):
    """Verification usage of one integration in one calendar month (UTC)."""

    __tablename__ = "integration_monthly_usage"
    __table_args__ = (
        UniqueConstraint(
            "integration_id",
            "period_start",
            name="uq_integration_monthly_usage_period",
        ),
        CheckConstraint(
            "consumed_count >= 0",
            name="ck_integration_monthly_usage_consumed_nonneg",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    org_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), index=True)
    integration_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("integrations.id"), nullable=False
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    included_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    consumed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    blocked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    integration = relationship("Integration", back_populates="usage_periods")
