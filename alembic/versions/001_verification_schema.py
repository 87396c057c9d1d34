"""verification schema

Revision ID: 001_verification
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "001_verification"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Integrations
    op.create_table(
        "integrations",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("org_id", sa.UUID(), nullable=False),
        sa.Column("platform_type", sa.String(length=40), nullable=False),
        sa.Column("platform_store_url", sa.String(length=255), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("billing_plan_id", sa.String(length=40), nullable=True),
        sa.Column("billing_status", sa.String(length=40), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "platform_type", "platform_store_url", name="uq_integrations_platform_store"
        ),
    )
    op.create_index("ix_integrations_org_id", "integrations", ["org_id"])

    # Monthly usage
    op.create_table(
        "integration_monthly_usage",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("org_id", sa.UUID(), nullable=True),
        sa.Column("integration_id", sa.UUID(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("included_limit", sa.Integer(), nullable=False),
        sa.Column("consumed_count", sa.Integer(), nullable=False),
        sa.Column("blocked_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["integration_id"], ["integrations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "integration_id", "period_start", name="uq_integration_monthly_usage_period"
        ),
        sa.CheckConstraint(
            "consumed_count >= 0", name="ck_integration_monthly_usage_consumed_nonneg"
        ),
    )
    op.create_index(
        "ix_integration_monthly_usage_org_id", "integration_monthly_usage", ["org_id"]
    )

    # Orders
    op.create_table(
        "orders",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("org_id", sa.UUID(), nullable=False),
        sa.Column("integration_id", sa.UUID(), nullable=False),
        sa.Column("external_order_id", sa.String(length=255), nullable=False),
        sa.Column("order_number", sa.String(length=80), nullable=True),
        sa.Column("customer_phone", sa.String(length=20), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("payment_method", sa.String(length=255), nullable=True),
        sa.Column("raw_payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["integration_id"], ["integrations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "integration_id", "external_order_id", name="uq_orders_integration_external_id"
        ),
    )
    op.create_index("ix_orders_org_id", "orders", ["org_id"])
    op.create_index("ix_orders_integration_id", "orders", ["integration_id"])

    # Verifications
    op.create_table(
        "verifications",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("org_id", sa.UUID(), nullable=False),
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "pending",
                "sent",
                "delivered",
                "read",
                "confirmed",
                "canceled",
                "expired",
                "failed",
                name="verificationstatus",
            ),
            nullable=False,
        ),
        sa.Column("provider_message_id", sa.String(length=255), nullable=True),
        sa.Column("template_name", sa.String(length=120), nullable=True),
        sa.Column("language_code", sa.String(length=10), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("last_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id", name="uq_verifications_order_id"),
    )
    op.create_index("ix_verifications_org_id", "verifications", ["org_id"])
    op.create_index("ix_verifications_status", "verifications", ["status"])
    op.create_index(
        "ix_verifications_provider_message_id", "verifications", ["provider_message_id"]
    )

    # Webhook events
    op.create_table(
        "webhook_events",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("provider", sa.String(length=40), nullable=False),
        sa.Column("event_id", sa.String(length=255), nullable=False),
        sa.Column("topic", sa.String(length=120), nullable=True),
        sa.Column("shop_domain", sa.String(length=255), nullable=True),
        sa.Column("org_id", sa.UUID(), nullable=True),
        sa.Column("integration_id", sa.UUID(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider", "event_id", name="uq_webhook_events_provider_event"),
    )


def downgrade() -> None:
    op.drop_table("webhook_events")

    op.drop_index("ix_verifications_provider_message_id", table_name="verifications")
    op.drop_index("ix_verifications_status", table_name="verifications")
    op.drop_index("ix_verifications_org_id", table_name="verifications")
    op.drop_table("verifications")

    op.drop_index("ix_orders_integration_id", table_name="orders")
    op.drop_index("ix_orders_org_id", table_name="orders")
    op.drop_table("orders")

    op.drop_index(
        "ix_integration_monthly_usage_org_id", table_name="integration_monthly_usage"
    )
    op.drop_table("integration_monthly_usage")

    op.drop_index("ix_integrations_org_id", table_name="integrations")
    op.drop_table("integrations")

    sa.Enum(name="verificationstatus").drop(op.get_bind(), checkfirst=True)
