import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from akeed.models.order import Order
from akeed.schemas.order import NormalizedOrder

logger = logging.getLogger(__name__)


class OrderService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, order_id: UUID) -> Order | None:
        return self.db.get(Order, order_id)

    def get_by_external_id(
        self, integration_id: UUID, external_order_id: str
    ) -> Order | None:
        stmt = select(Order).where(
            Order.integration_id == integration_id,
            Order.external_order_id == external_order_id,
        )
        return self.db.scalar(stmt)

    def create(self, order: NormalizedOrder) -> Order:
        record = Order(
            org_id=order.org_id,
            integration_id=order.integration_id,
            external_order_id=order.external_order_id,
            order_number=order.order_number,
            customer_phone=order.customer_phone,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            total_price=order.total_price,
            currency=order.currency,
            payment_method=order.payment_method,
            raw_payload=order.raw_payload,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        logger.info(
            "Stored order %s for integration %s",
            order.external_order_id,
            order.integration_id,
        )
        return record

    def get_or_create(self, order: NormalizedOrder) -> Order:
        """Idempotent upsert keyed by (integration_id, external_order_id)."""
        existing = self.get_by_external_id(order.integration_id, order.external_order_id)
        if existing is not None:
            return existing
        try:
            return self.create(order)
        except IntegrityError:
            self.db.rollback()
            winner = self.get_by_external_id(
                order.integration_id, order.external_order_id
            )
            if winner is None:
                raise
            logger.info(
                "Order %s was stored concurrently; using existing row",
                order.external_order_id,
            )
            return winner
