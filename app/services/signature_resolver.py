"""
Multi-account Stripe webhook verification.

Stripe does not say which account sent an event, so the body is checked
against each configured signing secret in configuration order until one
validates. The first match wins; a second match is assumed impossible.
"""

import json
import logging
from dataclasses import dataclass

import stripe
from pydantic import ValidationError

from app.core.config import StripeAccountConfig, settings
from app.core.exceptions import AccountConfigurationError, WebhookSignatureError
from app.schemas.stripe import StripeEvent

logger = logging.getLogger(__name__)


@dataclass
class ResolvedEvent:
    event: StripeEvent
    account: StripeAccountConfig


def verify_signature(payload: str, signature: str, secret: str, tolerance: int) -> bool:
    try:
        stripe.WebhookSignature.verify_header(payload, signature, secret, tolerance)
    except stripe.SignatureVerificationError:
        return False
    return True


def resolve(
    raw_body: bytes,
    signature: str | None,
    candidates: list[StripeAccountConfig],
    tolerance: int | None = None,
) -> ResolvedEvent:
    if not signature:
        raise WebhookSignatureError("Missing Stripe-Signature header")

    usable = [a for a in candidates if a.secret_key and a.webhook_secret]
    if not usable:
        logger.error("[stripe-webhook] no Stripe account with a webhook secret configured")
        raise AccountConfigurationError("No Stripe account configured for webhooks")

    try:
        payload = raw_body.decode("utf-8")
    except UnicodeDecodeError:
        raise WebhookSignatureError("Webhook body is not valid UTF-8")

    tolerance = settings.STRIPE_WEBHOOK_TOLERANCE if tolerance is None else tolerance

    matched: StripeAccountConfig | None = None
    for account in usable:
        if verify_signature(payload, signature, account.webhook_secret, tolerance):
            matched = account
            break

    if matched is None:
        logger.error(
            f"[stripe-webhook] signature rejected by all {len(usable)} candidate accounts"
        )
        raise WebhookSignatureError()

    logger.info(f"[stripe-webhook] signature valid for account: {matched.label}")

    try:
        event = StripeEvent.model_validate(json.loads(payload))
    except (ValueError, ValidationError) as e:
        raise WebhookSignatureError(
            "Verified webhook body is not a Stripe event",
            details={"error": str(e)},
        )

    return ResolvedEvent(event=event, account=matched)
