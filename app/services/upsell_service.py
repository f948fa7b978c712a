"""
One-click post-purchase upsell.

Charges the card saved during checkout again, off-session, then records a
second Shopify order for the upsell product. Reuses the customer and payment
method linked on the session by the webhook reconciliation.
"""

import logging
from datetime import datetime, timezone

from app.core.background import BackgroundDispatcher, background_dispatcher
from app.core.config import StripeAccountConfig, settings
from app.core.exceptions import (
    AccountConfigurationError,
    ExternalServiceError,
    InvalidUpsellRequestError,
    NoCustomerLinkedError,
    SessionNotFoundError,
    UpsellChargeError,
)
from app.core.unit_of_work import UnitOfWork
from app.models.checkout_session import CheckoutSession, UpsellStatus
from app.schemas.checkout import CustomerInfo
from app.schemas.upsell import UpsellOutcome, UpsellResult
from app.services.account_registry import AccountRegistry
from app.services.order_builder import (
    TransactionInfo,
    build_order_payload,
    parse_variant_id,
)
from app.services.shopify_service import ShopifyService
from app.services.slack_service import SlackService, slack_service
from app.services.stripe_gateway import (
    PaymentAuthenticationRequired,
    PaymentDeclined,
    PaymentIntentResult,
    StripeGateway,
    StripeGatewayError,
)

logger = logging.getLogger(__name__)


class UpsellService:
    def __init__(
        self,
        uow: UnitOfWork,
        registry: AccountRegistry,
        shopify: ShopifyService,
        slack: SlackService = slack_service,
        dispatcher: BackgroundDispatcher = background_dispatcher,
    ):
        self.uow = uow
        self.registry = registry
        self.shopify = shopify
        self.slack = slack
        self.dispatcher = dispatcher

    def _validate(self, variant_ref, quantity: int, amount_cents: int) -> int:
        if not isinstance(amount_cents, int) or amount_cents < settings.UPSELL_MIN_AMOUNT_CENTS:
            raise InvalidUpsellRequestError(
                f"Invalid upsell amount (minimum {settings.UPSELL_MIN_AMOUNT_CENTS} minor units)"
            )
        if quantity < 1:
            raise InvalidUpsellRequestError("Quantity must be at least 1")

        variant_id = parse_variant_id(variant_ref)
        if variant_id is None:
            raise InvalidUpsellRequestError(
                "Invalid variantId", details={"variant_id": str(variant_ref)}
            )
        return variant_id

    def _charge_account(self, session: CheckoutSession) -> StripeAccountConfig:
        # The saved card lives on the account that captured the first payment
        account = self.registry.get(session.stripe_account_label)
        if account is None or not account.secret_key:
            account = self.registry.active_for_charges()
        if account is None:
            raise AccountConfigurationError("No Stripe account available for upsell charges")
        return account

    async def _resolve_customer(
        self,
        session: CheckoutSession,
        gateway: StripeGateway,
    ) -> str:
        customer_id = session.stripe_customer_id
        if customer_id:
            return customer_id

        logger.info(
            f"[upsell] looking up customer from payment method {session.stripe_payment_method_id}"
        )
        try:
            customer_id = await gateway.retrieve_payment_method_customer(
                session.stripe_payment_method_id
            )
        except StripeGatewayError as e:
            logger.error(f"[upsell] payment method lookup failed: {e}")
            customer_id = None

        if not customer_id:
            raise NoCustomerLinkedError(
                "No customer attached to the saved payment method",
                details={"session_id": session.id},
            )

        await self.uow.checkout_sessions.update(session.id, stripe_customer_id=customer_id)
        await self.uow.commit()
        return customer_id

    async def charge_upsell(
        self,
        session_id: str,
        variant_ref,
        quantity: int,
        amount_cents: int,
    ) -> UpsellResult:
        variant_id = self._validate(variant_ref, quantity, amount_cents)

        session = await self.uow.checkout_sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        if not session.stripe_payment_method_id:
            raise NoCustomerLinkedError(
                "No saved payment method for upsell",
                details={"session_id": session_id},
            )

        account = self._charge_account(session)
        gateway = self.registry.gateway_for(account)
        customer_id = await self._resolve_customer(session, gateway)
        currency = (session.currency or "EUR").lower()

        if not session.network_transaction_id:
            logger.info(f"[upsell] no network_transaction_id for {session_id}, charging without MIT hint")

        try:
            intent = await gateway.create_off_session_payment_intent(
                amount_cents=amount_cents,
                currency=currency,
                customer_id=customer_id,
                payment_method_id=session.stripe_payment_method_id,
                description=f"Upsell - Session {session_id} - Variant {variant_id}",
                metadata={
                    "session_id": session_id,
                    "upsell": "true",
                    "upsell_variant_id": str(variant_id),
                    "upsell_quantity": str(quantity),
                },
                network_transaction_id=session.network_transaction_id,
                idempotency_key=f"upsell-{session_id}-{variant_id}-{quantity}-{amount_cents}",
            )
        except PaymentAuthenticationRequired as e:
            logger.info(f"[upsell] 3DS required for {session_id}")
            return UpsellResult(
                outcome=UpsellOutcome.REQUIRES_ACTION,
                success=False,
                payment_intent_id=e.payment_intent_id,
                client_secret=e.client_secret,
                message="The bank requires a new authentication (3DS) for the upsell.",
            )
        except PaymentDeclined as e:
            logger.info(f"[upsell] card declined for {session_id}: {e.reason}")
            await self.uow.checkout_sessions.update(
                session_id,
                upsell_status=UpsellStatus.CARD_DECLINED.value,
                upsell_error=e.reason,
            )
            await self.uow.commit()
            return UpsellResult(
                outcome=UpsellOutcome.DECLINED,
                success=False,
                decline_code=e.reason,
                message=str(e),
            )
        except StripeGatewayError as e:
            logger.error(f"[upsell] payment intent creation failed for {session_id}: {e}")
            raise UpsellChargeError(
                "Stripe upsell payment failed",
                details={"code": e.code, "error": str(e)},
            )

        if intent.status == "requires_action":
            return UpsellResult(
                outcome=UpsellOutcome.REQUIRES_ACTION,
                success=False,
                payment_intent_id=intent.id,
                client_secret=intent.client_secret,
                message="The bank requires a new authentication (3DS) for the upsell.",
            )
        if intent.status != "succeeded":
            raise UpsellChargeError(
                f"Upsell payment not completed (status: {intent.status})",
                details={"payment_intent_id": intent.id, "status": intent.status},
            )

        return await self._create_upsell_order(
            session,
            account,
            intent,
            variant_id,
            quantity,
            amount_cents,
            currency=(intent.currency or currency).upper(),
        )

    async def _create_upsell_order(
        self,
        session: CheckoutSession,
        account: StripeAccountConfig,
        intent: PaymentIntentResult,
        variant_id: int,
        quantity: int,
        amount_cents: int,
        currency: str,
    ) -> UpsellResult:
        # A repeated request gets the same intent back from Stripe
        claimed = await self.uow.checkout_sessions.claim_upsell_payment(
            session.id,
            intent.id,
            upsell_amount_cents=amount_cents,
            upsell_created_at=datetime.now(timezone.utc),
            upsell_error=None,
            upsell_order_id=None,
            upsell_order_number=None,
        )
        await self.uow.commit()
        if not claimed:
            return await self._existing_upsell_result(session.id, intent)

        try:
            payload = build_order_payload(
                line_items=[{"variant_id": variant_id, "quantity": quantity}],
                customer=CustomerInfo.from_document(session.customer),
                transaction=TransactionInfo(
                    payment_intent_id=intent.id,
                    amount_cents=intent.amount,
                    currency=currency,
                    gateway=f"Stripe Upsell ({account.label})",
                ),
                note=f"Upsell order - Session: {session.id} - Payment Intent: {intent.id}",
                tags=["checkout-custom-upsell", "stripe-upsell", account.label, "automated"],
                default_last="Upsell",
            )
            order = await self.shopify.create_order(payload)
        except ExternalServiceError as e:
            logger.error(f"[upsell] Shopify order failed for {session.id}: {e.message}")
            await self.uow.checkout_sessions.update(
                session.id,
                upsell_status=UpsellStatus.PAID_NO_SHOPIFY_ORDER.value,
                upsell_error=e.message,
            )
            await self.uow.commit()
            self.dispatcher.dispatch(
                f"slack:upsell:{session.id}",
                self.slack.send_critical_alert(
                    title="Upsell - Paid but no Shopify order",
                    alert=(
                        f"*Session:* `{session.id}`\n*PI:* `{intent.id}`\n"
                        f"*Amount:* {intent.amount} {currency}\n*Error:* {e.message}"
                    ),
                    platform="Stripe",
                ),
            )
            return UpsellResult(
                outcome=UpsellOutcome.PAID_NO_SHOPIFY_ORDER,
                success=True,
                payment_intent_id=intent.id,
                warning="upsell_paid_but_no_shopify_order",
                message="Upsell payment succeeded but the Shopify order could not be created.",
            )

        await self.uow.checkout_sessions.update(
            session.id,
            upsell_status=UpsellStatus.PAID.value,
            upsell_error=None,
            upsell_order_id=order.order_id,
            upsell_order_number=order.order_number,
        )
        await self.uow.commit()

        logger.info(f"[upsell] session {session.id} -> order #{order.order_number}")
        return UpsellResult(
            outcome=UpsellOutcome.SUCCEEDED,
            success=True,
            payment_intent_id=intent.id,
            order_id=order.order_id,
            order_number=order.order_number,
        )

    async def _existing_upsell_result(
        self,
        session_id: str,
        intent: PaymentIntentResult,
    ) -> UpsellResult:
        """Answer a repeated request for an intent whose order is already handled."""
        session = await self.uow.checkout_sessions.get(session_id)
        logger.info(f"[upsell] payment {intent.id} already recorded for {session_id}")

        if session is not None and session.upsell_order_id:
            return UpsellResult(
                outcome=UpsellOutcome.SUCCEEDED,
                success=True,
                payment_intent_id=intent.id,
                order_id=session.upsell_order_id,
                order_number=session.upsell_order_number,
            )

        return UpsellResult(
            outcome=UpsellOutcome.PAID_NO_SHOPIFY_ORDER,
            success=True,
            payment_intent_id=intent.id,
            warning="upsell_already_submitted",
            message="Upsell payment already recorded; its order is handled by the first request.",
        )
