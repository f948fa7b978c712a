"""
Promotes a paid checkout session into a Shopify order.

Runs once per verified ``payment_intent.succeeded`` delivery:

    NEW -> LINKED -> ORDER_SUBMITTED | ORDER_FAILED_PAID
    NEW -> ALREADY_PROCESSED

A stored Shopify order id is the idempotency marker. It is checked before
submission and written back with a conditional update, so a delivery that
loses a race with a concurrent one does not record statistics twice.

Once the payment is captured nothing here is reported to Stripe as a failure:
order-creation problems are persisted on the session and alerted on instead.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from app.core.background import BackgroundDispatcher, background_dispatcher
from app.core.config import StripeAccountConfig
from app.core.exceptions import ExternalServiceError
from app.core.unit_of_work import UnitOfWork
from app.models.checkout_session import CheckoutSession, ReconciliationStatus
from app.schemas.checkout import CustomerInfo
from app.schemas.stripe import PaymentIntentPayload
from app.schemas.webhook import WebhookAck
from app.services.account_registry import AccountRegistry
from app.services.order_builder import (
    OrderBuildError,
    TransactionInfo,
    build_line_items,
    build_order_payload,
)
from app.services.shopify_service import ShopifyService
from app.services.signature_resolver import ResolvedEvent
from app.services.slack_service import SlackService, slack_service
from app.services.statistics_service import StatisticsService, today_utc
from app.services.stripe_gateway import StripeGateway, StripeGatewayError

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"


class ReconciliationOutcome(str, Enum):
    IGNORED = "ignored"
    NO_SESSION = "no_session"
    ALREADY_PROCESSED = "already_processed"
    ORDER_SUBMITTED = "order_submitted"
    ORDER_FAILED_PAID = "order_failed_paid"


@dataclass
class ReconciliationResult:
    outcome: ReconciliationOutcome
    session_id: str | None = None
    order_id: str | None = None
    order_number: str | None = None
    warning: str | None = None
    error: str | None = None

    def to_ack(self) -> WebhookAck:
        return WebhookAck(
            already_processed=True
            if self.outcome == ReconciliationOutcome.ALREADY_PROCESSED
            else None,
            order_id=self.order_id,
            order_number=self.order_number,
            warning=self.warning,
            error=self.error,
        )


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationService:
    def __init__(
        self,
        uow: UnitOfWork,
        registry: AccountRegistry,
        shopify: ShopifyService,
        statistics: StatisticsService,
        slack: SlackService = slack_service,
        dispatcher: BackgroundDispatcher = background_dispatcher,
    ):
        self.uow = uow
        self.registry = registry
        self.shopify = shopify
        self.statistics = statistics
        self.slack = slack
        self.dispatcher = dispatcher

    async def handle_event(self, resolved: ResolvedEvent) -> ReconciliationResult:
        event = resolved.event
        logger.info(f"[reconcile] event {event.id} type={event.type} account={resolved.account.label}")

        if event.type != PAYMENT_SUCCEEDED:
            logger.info(f"[reconcile] event {event.type} ignored")
            return ReconciliationResult(outcome=ReconciliationOutcome.IGNORED)

        intent = PaymentIntentPayload.model_validate(event.data.object)
        return await self.reconcile_payment(intent, resolved.account)

    async def reconcile_payment(
        self,
        intent: PaymentIntentPayload,
        account: StripeAccountConfig,
    ) -> ReconciliationResult:
        if intent.is_upsell:
            # The upsell flow creates its own order synchronously
            logger.info(f"[reconcile] upsell intent {intent.id} ignored")
            return ReconciliationResult(outcome=ReconciliationOutcome.IGNORED)

        session_id = intent.session_id
        if not session_id:
            logger.error(f"[reconcile] payment intent {intent.id} has no session id in metadata")
            return ReconciliationResult(
                outcome=ReconciliationOutcome.NO_SESSION,
                warning="no_session_id",
            )

        session = await self.uow.checkout_sessions.get(session_id)
        if session is None:
            logger.error(f"[reconcile] session {session_id} not found")
            return ReconciliationResult(
                outcome=ReconciliationOutcome.NO_SESSION,
                session_id=session_id,
                error="session_not_found",
            )

        if session.shopify_order_id:
            logger.info(
                f"[reconcile] session {session_id} already has order #{session.shopify_order_number}"
            )
            return ReconciliationResult(
                outcome=ReconciliationOutcome.ALREADY_PROCESSED,
                session_id=session_id,
                order_id=session.shopify_order_id,
                order_number=session.shopify_order_number,
            )

        gateway = self.registry.gateway_for(account)
        await self._link_payment(session, intent, account, gateway)
        return await self._submit_order(session, intent, account)

    async def _link_payment(
        self,
        session: CheckoutSession,
        intent: PaymentIntentPayload,
        account: StripeAccountConfig,
        gateway: StripeGateway,
    ) -> None:
        fields: dict = {
            "payment_status": "paid",
            "payment_intent_id": intent.id,
            "stripe_account_label": account.label,
            "webhook_processed_at": _now(),
        }
        if intent.customer:
            fields["stripe_customer_id"] = intent.customer
        if intent.payment_method:
            fields["stripe_payment_method_id"] = intent.payment_method

        if intent.customer and intent.payment_method:
            await self._attach_payment_method(gateway, intent.payment_method, intent.customer)

        if intent.payment_method and intent.latest_charge:
            try:
                network_tx_id = await gateway.retrieve_network_transaction_id(intent.latest_charge)
            except StripeGatewayError as e:
                logger.info(f"[reconcile] network_transaction_id unavailable: {e}")
            else:
                if network_tx_id:
                    fields["network_transaction_id"] = network_tx_id
                    logger.info(f"[reconcile] network_transaction_id stored for {session.id}")

        await self.uow.checkout_sessions.update(session.id, **fields)
        await self.uow.commit()

    async def _attach_payment_method(
        self,
        gateway: StripeGateway,
        payment_method_id: str,
        customer_id: str,
    ) -> None:
        try:
            await gateway.attach_payment_method(payment_method_id, customer_id)
        except StripeGatewayError as e:
            if not e.already_attached:
                logger.error(f"[reconcile] attach payment method failed: {e}")
                return

        try:
            await gateway.set_default_payment_method(customer_id, payment_method_id)
            logger.info(f"[reconcile] payment method set as default for {customer_id}")
        except StripeGatewayError as e:
            logger.error(f"[reconcile] set default payment method failed: {e}")

    def _build_payload(
        self,
        session: CheckoutSession,
        intent: PaymentIntentPayload,
        account: StripeAccountConfig,
        currency: str,
    ) -> dict:
        line_items = build_line_items(session.items or [], currency)
        return build_order_payload(
            line_items=line_items,
            customer=CustomerInfo.from_document(session.customer),
            transaction=TransactionInfo(
                payment_intent_id=intent.id,
                amount_cents=intent.amount,
                currency=currency,
                gateway=f"Stripe ({account.label})",
            ),
            note=(
                f"Checkout custom - Session: {session.id} - "
                f"Stripe Account: {account.label} - PI: {intent.id}"
            ),
            tags=["checkout-custom", "stripe-paid", account.label, "automated"],
        )

    async def _submit_order(
        self,
        session: CheckoutSession,
        intent: PaymentIntentPayload,
        account: StripeAccountConfig,
    ) -> ReconciliationResult:
        currency = (intent.currency or session.currency or "EUR").upper()
        try:
            payload = self._build_payload(session, intent, account, currency)
            order = await self.shopify.create_order(payload)
        except OrderBuildError as e:
            return await self._record_failure(
                session, intent, account, currency, str(e), step="build"
            )
        except ExternalServiceError as e:
            return await self._record_failure(
                session,
                intent,
                account,
                currency,
                e.message,
                step=e.details.get("step", "create_order"),
            )

        won = await self.uow.checkout_sessions.set_order_if_absent(
            session.id,
            shopify_order_id=order.order_id,
            shopify_order_number=order.order_number,
            order_created_at=_now(),
            order_error=None,
            reconciliation_status=ReconciliationStatus.ORDER_CREATED.value,
        )
        await self.uow.commit()

        if not won:
            logger.critical(
                f"[reconcile] session {session.id} got a concurrent order; "
                f"order #{order.order_number} is a duplicate"
            )
            self._alert(
                "Stripe webhook - Duplicate Shopify order",
                f"*Session:* `{session.id}`\n*Duplicate order:* `{order.order_id}` "
                f"(#{order.order_number})\n*PI:* `{intent.id}`",
            )
            return ReconciliationResult(
                outcome=ReconciliationOutcome.ALREADY_PROCESSED,
                session_id=session.id,
                order_id=order.order_id,
                order_number=order.order_number,
                warning="duplicate_order_created",
            )

        try:
            await self.statistics.record(today_utc(), account.label, intent.amount)
        except SQLAlchemyError as e:
            logger.exception(f"[reconcile] statistics update failed for {session.id}")
            self._alert(
                "Stripe webhook - Statistics update failed",
                f"*Session:* `{session.id}`\n*Amount:* `{intent.amount}`\n*Error:* {e}",
            )

        if session.raw_cart_id:
            self.dispatcher.dispatch(
                f"clear-cart:{session.id}",
                self.shopify.clear_cart(session.raw_cart_id),
            )

        logger.info(f"[reconcile] session {session.id} -> order #{order.order_number}")
        return ReconciliationResult(
            outcome=ReconciliationOutcome.ORDER_SUBMITTED,
            session_id=session.id,
            order_id=order.order_id,
            order_number=order.order_number,
        )

    async def _record_failure(
        self,
        session: CheckoutSession,
        intent: PaymentIntentPayload,
        account: StripeAccountConfig,
        currency: str,
        detail: str,
        step: str,
    ) -> ReconciliationResult:
        logger.error(
            f"[reconcile] order creation failed for {session.id} at step [{step}]: {detail}"
        )
        await self.uow.checkout_sessions.update(
            session.id,
            reconciliation_status=ReconciliationStatus.PAID_NO_SHOPIFY_ORDER.value,
            order_error=detail,
        )
        await self.uow.commit()

        self._alert(
            "Stripe webhook - Paid but no Shopify order",
            (
                f"*Step:* `{step}`\n"
                f"*Session:* `{session.id}`\n"
                f"*Account:* `{account.label}`\n"
                f"*PI:* `{intent.id}` ({intent.amount} {currency})\n"
                f"*Error:* {detail}"
            ),
        )
        return ReconciliationResult(
            outcome=ReconciliationOutcome.ORDER_FAILED_PAID,
            session_id=session.id,
            error="order_creation_failed",
        )

    def _alert(self, title: str, alert: str) -> None:
        self.dispatcher.dispatch(
            f"slack:{title}",
            self.slack.send_critical_alert(title=title, alert=alert, platform="Stripe"),
        )
