# tests/test_stripe_gateway.py
# Account-scoped Stripe calls and error mapping

from types import SimpleNamespace

import pytest
import stripe

from app.services.stripe_gateway import (
    PaymentAuthenticationRequired,
    PaymentDeclined,
    StripeGateway,
    StripeGatewayError,
)


def _card_error(message, code, decline_code=None, payment_intent=None):
    error = {"type": "card_error", "code": code, "message": message}
    if decline_code:
        error["decline_code"] = decline_code
    if payment_intent:
        error["payment_intent"] = payment_intent
    return stripe.CardError(message, param=None, code=code, json_body={"error": error})


def _intent(**overrides):
    values = dict(
        id="pi_upsell_1",
        status="succeeded",
        amount=1500,
        currency="eur",
        client_secret="pi_upsell_1_secret",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def gateway(accounts):
    return StripeGateway(accounts[0])


@pytest.fixture
def intent_calls(monkeypatch):
    """Records PaymentIntent.create kwargs; set ``result`` to an exception to raise it."""
    state = SimpleNamespace(calls=[], result=_intent())

    def create(**kwargs):
        state.calls.append(kwargs)
        if isinstance(state.result, Exception):
            raise state.result
        return state.result

    monkeypatch.setattr(stripe.PaymentIntent, "create", create)
    return state


async def _charge(gateway, **overrides):
    options = dict(
        amount_cents=1500,
        currency="EUR",
        customer_id="cus_test_1",
        payment_method_id="pm_test_1",
        description="Upsell - Session cs_test_1 - Variant 42",
        metadata={"session_id": "cs_test_1", "upsell": "true"},
    )
    options.update(overrides)
    return await gateway.create_off_session_payment_intent(**options)


class TestOffSessionPaymentIntent:
    """PaymentIntent.create parameters and result"""

    async def test_params_with_network_transaction_id(self, gateway, intent_calls):
        """The MIT exemption carries the stored network transaction id"""
        result = await _charge(
            gateway, network_transaction_id="ntx_123", idempotency_key="upsell-cs_test_1-42"
        )

        params = intent_calls.calls[0]
        assert params["api_key"] == "sk_test_account_a"
        assert params["amount"] == 1500
        assert params["currency"] == "eur"
        assert params["customer"] == "cus_test_1"
        assert params["payment_method"] == "pm_test_1"
        assert params["off_session"] is True
        assert params["confirm"] is True
        assert params["idempotency_key"] == "upsell-cs_test_1-42"
        assert params["payment_method_options"] == {
            "card": {"mit_exemption": {"network_transaction_id": "ntx_123"}}
        }
        assert result.id == "pi_upsell_1"
        assert result.status == "succeeded"
        assert result.client_secret == "pi_upsell_1_secret"

    async def test_params_without_network_transaction_id(self, gateway, intent_calls):
        """No stored id means no MIT exemption block and no idempotency key"""
        await _charge(gateway)

        params = intent_calls.calls[0]
        assert "payment_method_options" not in params
        assert "idempotency_key" not in params


class TestCardErrorMapping:
    """Card errors become declines or authentication requests"""

    async def test_decline_code_is_the_reason(self, gateway, intent_calls):
        """insufficient_funds is reported instead of the generic card_declined"""
        intent_calls.result = _card_error(
            "Your card has insufficient funds.", "card_declined", decline_code="insufficient_funds"
        )

        with pytest.raises(PaymentDeclined) as exc_info:
            await _charge(gateway)

        assert exc_info.value.code == "card_declined"
        assert exc_info.value.decline_code == "insufficient_funds"
        assert exc_info.value.reason == "insufficient_funds"
        assert str(exc_info.value) == "Your card has insufficient funds."

    async def test_decline_without_decline_code(self, gateway, intent_calls):
        """The error code is used when Stripe sends no decline code"""
        intent_calls.result = _card_error("Your card has expired.", "expired_card")

        with pytest.raises(PaymentDeclined) as exc_info:
            await _charge(gateway)

        assert exc_info.value.reason == "expired_card"

    async def test_authentication_required(self, gateway, intent_calls):
        """3DS requests keep the intent id and client secret"""
        intent_calls.result = _card_error(
            "This payment requires authentication.",
            "authentication_required",
            payment_intent={"id": "pi_3ds", "client_secret": "pi_3ds_secret_abc"},
        )

        with pytest.raises(PaymentAuthenticationRequired) as exc_info:
            await _charge(gateway)

        assert exc_info.value.payment_intent_id == "pi_3ds"
        assert exc_info.value.client_secret == "pi_3ds_secret_abc"
        assert exc_info.value.code == "authentication_required"

    async def test_other_card_errors(self, gateway, intent_calls):
        """Card errors outside the decline family stay processor errors"""
        intent_calls.result = _card_error("Processing error.", "processing_error")

        with pytest.raises(StripeGatewayError) as exc_info:
            await _charge(gateway)

        assert not isinstance(exc_info.value, PaymentDeclined)
        assert exc_info.value.code == "processing_error"

    async def test_api_errors(self, gateway, intent_calls):
        """Non-card Stripe errors become StripeGatewayError"""
        intent_calls.result = stripe.APIConnectionError("Network down")

        with pytest.raises(StripeGatewayError) as exc_info:
            await _charge(gateway)

        assert not isinstance(exc_info.value, PaymentDeclined)


class TestAccountCalls:
    """Calls routed through the shared error mapping"""

    async def test_attach_uses_account_key(self, gateway, monkeypatch):
        """PaymentMethod.attach gets the customer and the account's secret key"""
        calls = []

        def attach(payment_method_id, **kwargs):
            calls.append((payment_method_id, kwargs))

        monkeypatch.setattr(stripe.PaymentMethod, "attach", attach)

        await gateway.attach_payment_method("pm_test_1", "cus_test_1")

        assert calls == [("pm_test_1", {"customer": "cus_test_1", "api_key": "sk_test_account_a"})]

    async def test_already_attached(self, gateway, monkeypatch):
        """An already-attached card is recognisable from the mapped error"""

        def attach(payment_method_id, **kwargs):
            raise stripe.InvalidRequestError(
                "The payment method you provided has already been attached to a customer.",
                param="payment_method",
                code="payment_method_unexpected_state",
            )

        monkeypatch.setattr(stripe.PaymentMethod, "attach", attach)

        with pytest.raises(StripeGatewayError) as exc_info:
            await gateway.attach_payment_method("pm_test_1", "cus_test_1")

        assert exc_info.value.already_attached is True
        assert exc_info.value.code == "payment_method_unexpected_state"

    async def test_other_attach_errors(self, gateway, monkeypatch):
        """Other attach failures are not mistaken for an attached card"""

        def attach(payment_method_id, **kwargs):
            raise stripe.InvalidRequestError(
                "No such PaymentMethod: 'pm_test_1'", param="id", code="resource_missing"
            )

        monkeypatch.setattr(stripe.PaymentMethod, "attach", attach)

        with pytest.raises(StripeGatewayError) as exc_info:
            await gateway.attach_payment_method("pm_test_1", "cus_test_1")

        assert exc_info.value.already_attached is False
        assert exc_info.value.code == "resource_missing"

    async def test_network_transaction_id(self, gateway, monkeypatch):
        """The id is read from the charge's card details"""
        seen = []

        def retrieve(charge_id, **kwargs):
            seen.append((charge_id, kwargs["api_key"]))
            return {"payment_method_details": {"card": {"network_transaction_id": "ntx_123"}}}

        monkeypatch.setattr(stripe.Charge, "retrieve", retrieve)

        assert await gateway.retrieve_network_transaction_id("ch_test_1") == "ntx_123"
        assert seen == [("ch_test_1", "sk_test_account_a")]

    async def test_network_transaction_id_missing(self, gateway, monkeypatch):
        """Charges without card details give None"""
        monkeypatch.setattr(stripe.Charge, "retrieve", lambda charge_id, **kwargs: {})

        assert await gateway.retrieve_network_transaction_id("ch_test_1") is None

    async def test_charge_lookup_error(self, gateway, monkeypatch):
        """Stripe errors from the lookup are mapped"""

        def retrieve(charge_id, **kwargs):
            raise stripe.InvalidRequestError("No such charge", param="id", code="resource_missing")

        monkeypatch.setattr(stripe.Charge, "retrieve", retrieve)

        with pytest.raises(StripeGatewayError) as exc_info:
            await gateway.retrieve_network_transaction_id("ch_missing")

        assert exc_info.value.code == "resource_missing"

    async def test_payment_method_customer(self, gateway, monkeypatch):
        """Expanded and plain customer references both give the id"""
        monkeypatch.setattr(
            stripe.PaymentMethod,
            "retrieve",
            lambda payment_method_id, **kwargs: {"customer": {"id": "cus_expanded"}},
        )

        assert await gateway.retrieve_payment_method_customer("pm_test_1") == "cus_expanded"
