from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import BigInteger, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONType, TimestampMixin


class ReconciliationStatus(str, Enum):
    PENDING = "pending"
    ORDER_CREATED = "order_created"
    PAID_NO_SHOPIFY_ORDER = "paid_no_shopify_order"


class UpsellStatus(str, Enum):
    PAID = "paid"
    PAID_NO_SHOPIFY_ORDER = "paid_no_shopify_order"
    CARD_DECLINED = "card_declined"


class CheckoutSession(TimestampMixin, Base):
    """One cart handed over to the custom checkout, keyed by its session id."""

    __tablename__ = "checkout_sessions"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    subtotal_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    shipping_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    total_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    customer: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    raw_cart_id: Mapped[str | None] = mapped_column(Text, nullable=True)

    payment_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    reconciliation_status: Mapped[str] = mapped_column(
        String(32),
        default=ReconciliationStatus.PENDING.value,
    )
    payment_intent_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    stripe_account_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_payment_method_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    network_transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    webhook_processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    shopify_order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    shopify_order_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    order_created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    order_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    upsell_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    upsell_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    upsell_payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    upsell_amount_cents: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    upsell_order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    upsell_order_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    upsell_created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<CheckoutSession {self.id} {self.reconciliation_status}>"
