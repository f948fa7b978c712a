from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.checkout_session import CheckoutSession


class CheckoutSessionRepository:
    """Document-style access to checkout sessions.

    Writes are partial: only the columns passed to ``update`` are touched, so
    concurrent writers working on different fields never clobber each other.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, session_id: str) -> CheckoutSession | None:
        result = await self.session.execute(
            select(CheckoutSession)
            .where(CheckoutSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, session_id: str, **fields: Any) -> CheckoutSession:
        record = CheckoutSession(id=session_id, **fields)
        self.session.add(record)
        await self.session.flush()
        return record

    async def update(self, session_id: str, **fields: Any) -> bool:
        if not fields:
            return False
        result = await self.session.execute(
            update(CheckoutSession)
            .where(CheckoutSession.id == session_id)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def set_order_if_absent(
        self,
        session_id: str,
        **fields: Any,
    ) -> bool:
        """Write order fields only while no order id is stored yet.

        Returns False when another delivery already recorded an order.
        """
        result = await self.session.execute(
            update(CheckoutSession)
            .where(
                CheckoutSession.id == session_id,
                CheckoutSession.shopify_order_id.is_(None),
            )
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def claim_upsell_payment(
        self,
        session_id: str,
        payment_intent_id: str,
        **fields: Any,
    ) -> bool:
        """Record an upsell payment intent unless it is already recorded.

        Returns False when an earlier request claimed the same intent, so
        only one request submits the upsell order for a given charge.
        """
        result = await self.session.execute(
            update(CheckoutSession)
            .where(
                CheckoutSession.id == session_id,
                or_(
                    CheckoutSession.upsell_payment_intent_id.is_(None),
                    CheckoutSession.upsell_payment_intent_id != payment_intent_id,
                ),
            )
            .values(upsell_payment_intent_id=payment_intent_id, **fields)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
