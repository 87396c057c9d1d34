from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# ── Normalized order ─────────────────────────────────────


class NormalizedOrder(BaseModel):
    """Platform-neutral order handed to the verification core by an adapter."""

    model_config = ConfigDict(populate_by_name=True)
    org_id: UUID
    integration_id: UUID
    external_order_id: str = Field(min_length=1, max_length=255)
    order_number: str | None = Field(default=None, max_length=80)
    customer_phone: str = Field(min_length=1, max_length=20)
    customer_name: str | None = None
    customer_email: str | None = None
    total_price: Decimal | None = None
    currency: str | None = Field(default=None, max_length=3)
    payment_method: str | None = None
    raw_payload: dict | None = None


# ── Outcome ──────────────────────────────────────────────


class OrderOutcome(BaseModel):
    skipped: bool = False
    reason: str | None = None
    order_id: UUID | None = None
    verification_id: UUID | None = None
    status: str | None = None
