"""
Account-scoped access to the Stripe API.

Every call passes the account's secret key explicitly, so several accounts
can be served concurrently without touching the SDK's global ``api_key``.
The SDK is synchronous; calls are pushed to the threadpool.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import stripe
from fastapi.concurrency import run_in_threadpool

from app.core.config import StripeAccountConfig

logger = logging.getLogger(__name__)

# Card error codes treated as a plain decline rather than a processor failure
DECLINE_CODES = {
    "card_declined",
    "generic_decline",
    "do_not_honor",
    "insufficient_funds",
    "expired_card",
    "incorrect_cvc",
    "invalid_cvc",
    "card_velocity_exceeded",
    "withdrawal_count_limit_exceeded",
    "lost_card",
    "stolen_card",
    "pickup_card",
}

ALREADY_ATTACHED_MARKER = "already been attached"


class StripeGatewayError(Exception):
    def __init__(self, message: str, code: str | None = None):
        self.code = code
        super().__init__(message)

    @property
    def already_attached(self) -> bool:
        return ALREADY_ATTACHED_MARKER in str(self)


class PaymentDeclined(StripeGatewayError):
    def __init__(self, message: str, code: str | None, decline_code: str | None):
        self.decline_code = decline_code
        super().__init__(message, code=code)

    @property
    def reason(self) -> str:
        return self.decline_code or self.code or "card_declined"


class PaymentAuthenticationRequired(StripeGatewayError):
    def __init__(self, message: str, payment_intent_id: str | None, client_secret: str | None):
        self.payment_intent_id = payment_intent_id
        self.client_secret = client_secret
        super().__init__(message, code="authentication_required")


@dataclass
class PaymentIntentResult:
    id: str
    status: str
    amount: int
    currency: str
    client_secret: str | None = None


def _dig(obj: Any, *path: str) -> Any:
    for key in path:
        if obj is None:
            return None
        if isinstance(obj, dict):
            obj = obj.get(key)
        else:
            obj = getattr(obj, key, None)
    return obj


def _object_id(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return _dig(value, "id")


class StripeGateway:
    def __init__(self, account: StripeAccountConfig):
        self.account = account
        self.label = account.label
        self._api_key = account.secret_key

    async def _call(self, fn, *args, **kwargs):
        try:
            return await run_in_threadpool(fn, *args, api_key=self._api_key, **kwargs)
        except stripe.StripeError as e:
            logger.warning(f"[stripe:{self.label}] {fn.__qualname__} failed: {e}")
            raise StripeGatewayError(str(e), code=getattr(e, "code", None)) from e

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> None:
        await self._call(
            stripe.PaymentMethod.attach,
            payment_method_id,
            customer=customer_id,
        )

    async def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        await self._call(
            stripe.Customer.modify,
            customer_id,
            invoice_settings={"default_payment_method": payment_method_id},
        )

    async def retrieve_network_transaction_id(self, charge_id: str) -> str | None:
        charge = await self._call(stripe.Charge.retrieve, charge_id)
        return _dig(charge, "payment_method_details", "card", "network_transaction_id")

    async def retrieve_payment_method_customer(self, payment_method_id: str) -> str | None:
        payment_method = await self._call(stripe.PaymentMethod.retrieve, payment_method_id)
        return _object_id(_dig(payment_method, "customer"))

    async def create_off_session_payment_intent(
        self,
        *,
        amount_cents: int,
        currency: str,
        customer_id: str,
        payment_method_id: str,
        description: str,
        metadata: dict[str, str],
        network_transaction_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> PaymentIntentResult:
        params: dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency.lower(),
            "customer": customer_id,
            "payment_method": payment_method_id,
            "off_session": True,
            "confirm": True,
            "description": description,
            "metadata": metadata,
        }
        if network_transaction_id:
            params["payment_method_options"] = {
                "card": {
                    "mit_exemption": {"network_transaction_id": network_transaction_id},
                }
            }
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        try:
            intent = await run_in_threadpool(
                stripe.PaymentIntent.create,
                api_key=self._api_key,
                **params,
            )
        except stripe.CardError as e:
            error = e.error
            if e.code == "authentication_required":
                intent = _dig(error, "payment_intent")
                raise PaymentAuthenticationRequired(
                    str(e),
                    payment_intent_id=_object_id(intent),
                    client_secret=_dig(intent, "client_secret"),
                ) from e

            decline_code = _dig(error, "decline_code")
            if e.code in DECLINE_CODES or decline_code in DECLINE_CODES:
                raise PaymentDeclined(
                    e.user_message or str(e),
                    code=e.code,
                    decline_code=decline_code,
                ) from e
            raise StripeGatewayError(str(e), code=e.code) from e
        except stripe.StripeError as e:
            logger.error(f"[stripe:{self.label}] PaymentIntent.create failed: {e}")
            raise StripeGatewayError(str(e), code=getattr(e, "code", None)) from e

        return PaymentIntentResult(
            id=intent.id,
            status=intent.status,
            amount=intent.amount,
            currency=intent.currency,
            client_secret=_dig(intent, "client_secret"),
        )
