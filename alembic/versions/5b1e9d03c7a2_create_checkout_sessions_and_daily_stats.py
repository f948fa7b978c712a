"""create checkout_sessions and daily stats

Revision ID: 5b1e9d03c7a2
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "5b1e9d03c7a2"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "checkout_sessions",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("items", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("subtotal_cents", sa.BigInteger(), nullable=False),
        sa.Column("shipping_cents", sa.BigInteger(), nullable=False),
        sa.Column("total_cents", sa.BigInteger(), nullable=False),
        sa.Column("customer", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("raw_cart_id", sa.Text(), nullable=True),
        sa.Column("payment_status", sa.String(length=32), nullable=True),
        sa.Column("reconciliation_status", sa.String(length=32), nullable=False),
        sa.Column("payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_account_label", sa.String(length=255), nullable=True),
        sa.Column("stripe_customer_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_payment_method_id", sa.String(length=255), nullable=True),
        sa.Column("network_transaction_id", sa.String(length=255), nullable=True),
        sa.Column("webhook_processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("shopify_order_id", sa.String(length=64), nullable=True),
        sa.Column("shopify_order_number", sa.String(length=64), nullable=True),
        sa.Column("order_created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("order_error", sa.Text(), nullable=True),
        sa.Column("upsell_status", sa.String(length=32), nullable=True),
        sa.Column("upsell_error", sa.Text(), nullable=True),
        sa.Column("upsell_payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("upsell_amount_cents", sa.BigInteger(), nullable=True),
        sa.Column("upsell_order_id", sa.String(length=64), nullable=True),
        sa.Column("upsell_order_number", sa.String(length=64), nullable=True),
        sa.Column("upsell_created_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_checkout_sessions_payment_intent_id"),
        "checkout_sessions",
        ["payment_intent_id"],
        unique=False,
    )

    op.create_table(
        "daily_stats",
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("total_cents", sa.BigInteger(), nullable=False),
        sa.Column("total_transactions", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("date"),
    )

    op.create_table(
        "daily_account_stats",
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("account_label", sa.String(length=255), nullable=False),
        sa.Column("total_cents", sa.BigInteger(), nullable=False),
        sa.Column("transaction_count", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("date", "account_label"),
    )


def downgrade() -> None:
    op.drop_table("daily_account_stats")
    op.drop_table("daily_stats")
    op.drop_index(
        op.f("ix_checkout_sessions_payment_intent_id"),
        table_name="checkout_sessions",
    )
    op.drop_table("checkout_sessions")
