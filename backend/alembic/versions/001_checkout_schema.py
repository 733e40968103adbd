# backend/alembic/versions/001_checkout_schema.py
"""Check-out schema - users, bookings, earnings stats, experiments, webhook ledger

Revision ID: 001_checkout_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates every table the check-out workflow and the Stripe webhook receiver
touch. The webhook ledger's (source, event_id) unique constraint is what
makes duplicate deliveries no-ops across workers.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_checkout_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json_type() -> sa.types.TypeEngine:
    return postgresql.JSONB(astext_type=sa.Text()).with_variant(sa.JSON(), "sqlite")


def upgrade() -> None:
    """Create check-out and webhook tables."""
    print("Creating check-out schema...")

    op.create_table(
        "users",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="customer"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("professional_id", sa.String(26), nullable=False),
        sa.Column("customer_id", sa.String(26), nullable=False),
        sa.Column("service_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="confirmed"),
        # Schedule
        sa.Column("scheduled_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checked_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_duration_minutes", sa.Integer(), nullable=True),
        # Money in minor units
        sa.Column("amount_authorized", sa.Integer(), nullable=False),
        sa.Column("time_extension_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("amount_captured", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="COP"),
        # Location
        sa.Column("address", _json_type(), nullable=True),
        sa.Column("check_out_latitude", sa.Float(), nullable=True),
        sa.Column("check_out_longitude", sa.Float(), nullable=True),
        # Payment
        sa.Column("payment_reference", sa.String(255), nullable=True, comment="Stripe payment intent"),
        sa.Column("payment_status", sa.String(50), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("rebook_nudge_variant", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["professional_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('pending_payment', 'confirmed', 'in_progress', 'completed', "
            "'cancelled', 'payment_failed')",
            name="ck_bookings_status",
        ),
        sa.CheckConstraint("amount_authorized >= 0", name="check_amount_authorized_non_negative"),
        sa.CheckConstraint("time_extension_amount >= 0", name="check_extension_non_negative"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_professional_id", "bookings", ["professional_id"])
    op.create_index("ix_bookings_customer_id", "bookings", ["customer_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_payment_reference", "bookings", ["payment_reference"])

    op.create_table(
        "professional_stats",
        sa.Column("professional_id", sa.String(26), nullable=False),
        sa.Column("total_bookings_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_earnings_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("earnings_last_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["professional_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("professional_id"),
        sa.CheckConstraint("total_bookings_completed >= 0", name="check_completed_non_negative"),
        sa.CheckConstraint("total_earnings_cents >= 0", name="check_earnings_non_negative"),
    )

    op.create_table(
        "rebook_nudge_experiments",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("booking_id", sa.String(26), nullable=False),
        sa.Column("customer_id", sa.String(26), nullable=False),
        sa.Column("variant", sa.String(50), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["customer_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("booking_id"),
    )
    op.create_index(
        "ix_rebook_nudge_experiments_customer_id", "rebook_nudge_experiments", ["customer_id"]
    )

    op.create_table(
        "push_subscriptions",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("user_id", sa.String(26), nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=False),
        sa.Column("p256dh_key", sa.String(255), nullable=False),
        sa.Column("auth_key", sa.String(255), nullable=False),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "endpoint", name="uq_push_subscriptions_user_endpoint"),
    )
    op.create_index("ix_push_subscriptions_user_id", "push_subscriptions", ["user_id"])

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("event_id", sa.String(255), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("payload", _json_type(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="processed"),
        sa.Column("processing_error", sa.Text(), nullable=True),
        sa.Column("related_entity_type", sa.String(50), nullable=True),
        sa.Column("related_entity_id", sa.String(26), nullable=True),
        sa.Column(
            "received_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source", "event_id", name="uq_webhook_events_source_event_id"),
    )
    op.create_index("ix_webhook_events_event_type", "webhook_events", ["event_type"])
    op.create_index("ix_webhook_events_received_at", "webhook_events", ["received_at"])
    op.create_index(
        "ix_webhook_events_related_entity",
        "webhook_events",
        ["related_entity_type", "related_entity_id"],
    )

    print("Check-out schema created")


def downgrade() -> None:
    """Drop check-out and webhook tables."""
    print("Dropping check-out schema...")

    op.drop_index("ix_webhook_events_related_entity", table_name="webhook_events")
    op.drop_index("ix_webhook_events_received_at", table_name="webhook_events")
    op.drop_index("ix_webhook_events_event_type", table_name="webhook_events")
    op.drop_table("webhook_events")

    op.drop_index("ix_push_subscriptions_user_id", table_name="push_subscriptions")
    op.drop_table("push_subscriptions")

    op.drop_index("ix_rebook_nudge_experiments_customer_id", table_name="rebook_nudge_experiments")
    op.drop_table("rebook_nudge_experiments")

    op.drop_table("professional_stats")

    for index_name in (
        "ix_bookings_payment_reference",
        "ix_bookings_status",
        "ix_bookings_customer_id",
        "ix_bookings_professional_id",
        "ix_bookings_id",
    ):
        op.drop_index(index_name, table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_users_role", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_id", table_name="users")
    op.drop_table("users")
