"""
Shopify Admin order payload construction.

Pure helpers, no I/O. Money stays in integer minor units until it is
rendered as the decimal string Shopify expects.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable

from app.core.config import settings
from app.schemas.checkout import CartItem, CustomerInfo

logger = logging.getLogger(__name__)


COUNTRY_DIAL_PREFIXES: dict[str, str] = {
    "IT": "+39",
    "FR": "+33",
    "DE": "+49",
    "ES": "+34",
    "AT": "+43",
    "BE": "+32",
    "NL": "+31",
    "CH": "+41",
    "PT": "+351",
    "UK": "+44",
    "GB": "+44",
    "US": "+1",
    "CA": "+1",
}

# Countries whose national format carries a trunk "0" dropped in E.164
TRUNK_ZERO_COUNTRIES = {"IT", "FR", "ES", "DE", "AT", "BE", "NL", "PT"}

MIN_PHONE_DIGITS = 8

ZERO_DECIMAL_CURRENCIES = {
    "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
    "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
}

_PHONE_SEPARATORS_RE = re.compile(r"[\s\-().]")
_NON_DIGIT_RE = re.compile(r"\D")


class OrderBuildError(ValueError):
    """Raised when a session cannot yield a submittable order."""


@dataclass
class TransactionInfo:
    """The captured Stripe payment the order is recorded against."""

    payment_intent_id: str
    amount_cents: int
    currency: str
    gateway: str


def normalize_phone(phone: str | None, country_code: str | None) -> str | None:
    """Return an E.164-like number, or None when the input is unusable."""
    if not phone:
        return None

    cleaned = _PHONE_SEPARATORS_RE.sub("", phone)
    if cleaned.startswith("+"):
        return cleaned

    country = (country_code or "").upper()
    prefix = COUNTRY_DIAL_PREFIXES.get(country)
    if not prefix:
        return None

    if country in TRUNK_ZERO_COUNTRIES and cleaned.startswith("0"):
        cleaned = cleaned[1:]

    # Number typed with the country code but without "+"
    dial_digits = prefix[1:]
    if cleaned.startswith(dial_digits):
        cleaned = cleaned[len(dial_digits):]

    if len(cleaned) < MIN_PHONE_DIGITS or not (cleaned.isascii() and cleaned.isdigit()):
        return None

    normalized = prefix + cleaned
    logger.debug(f"[order_builder] phone {phone} -> {normalized} ({country})")
    return normalized


def split_full_name(
    full_name: str | None,
    default_first: str,
    default_last: str,
) -> tuple[str, str]:
    parts = (full_name or "").split()
    if not parts:
        return default_first, default_last
    first = parts[0]
    last = " ".join(parts[1:]) or default_last
    return first, last


def parse_variant_id(raw: Any) -> int | None:
    """Accept numeric ids, numeric strings and Shopify GIDs."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None

    value = str(raw).strip()
    if "gid://" in value:
        value = value.rsplit("/", 1)[-1]
    digits = _NON_DIGIT_RE.sub("", value)
    if not digits:
        return None
    variant_id = int(digits)
    return variant_id if variant_id > 0 else None


def format_minor_units(amount_cents: int, currency: str) -> str:
    """Render integer minor units as a decimal string without float math."""
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return str(amount_cents)
    sign = "-" if amount_cents < 0 else ""
    whole, fraction = divmod(abs(amount_cents), 100)
    return f"{sign}{whole}.{fraction:02d}"


def build_line_items(
    items: Iterable[dict[str, Any] | CartItem],
    currency: str,
) -> list[dict[str, Any]]:
    """Map cart lines to Shopify line items, skipping unresolvable variants."""
    line_items: list[dict[str, Any]] = []
    for index, raw in enumerate(items):
        item = raw if isinstance(raw, CartItem) else CartItem.model_validate(raw)
        variant_id = parse_variant_id(item.variant_id or item.id)
        if variant_id is None:
            logger.warning(
                f"[order_builder] dropping line {index}: unresolvable variant "
                f"{item.variant_id or item.id!r}"
            )
            continue

        quantity = item.quantity if item.quantity and item.quantity > 0 else 1
        # Shopify prices line items per unit
        unit_cents = item.price_cents
        if unit_cents is None and item.line_price_cents is not None:
            unit_cents = item.line_price_cents // quantity

        line_item: dict[str, Any] = {"variant_id": variant_id, "quantity": quantity}
        if unit_cents is not None:
            line_item["price"] = format_minor_units(unit_cents, currency)
        line_items.append(line_item)
    return line_items


def _customer_blocks(
    customer: CustomerInfo,
    default_first: str,
    default_last: str,
) -> tuple[str, dict[str, Any], dict[str, Any]]:
    country = (customer.country_code or settings.DEFAULT_COUNTRY_CODE).upper()
    phone = normalize_phone(customer.phone, country)
    first_name, last_name = split_full_name(customer.full_name, default_first, default_last)
    email = customer.email or settings.ORDER_FALLBACK_EMAIL

    customer_data: dict[str, Any] = {
        "email": email,
        "first_name": first_name,
        "last_name": last_name,
    }
    address: dict[str, Any] = {
        "first_name": first_name,
        "last_name": last_name,
        "address1": customer.address1 or "N/A",
        "address2": customer.address2 or "",
        "city": customer.city or "N/A",
        "province": customer.province or "",
        "zip": customer.postal_code or "00000",
        "country_code": country,
    }
    if phone:
        customer_data["phone"] = phone
        address["phone"] = phone
    return email, customer_data, address


def build_order_payload(
    *,
    line_items: list[dict[str, Any]],
    customer: CustomerInfo,
    transaction: TransactionInfo,
    note: str,
    tags: list[str],
    default_first: str = "Checkout",
    default_last: str = "Customer",
) -> dict[str, Any]:
    if not line_items:
        raise OrderBuildError("No valid line items for order")

    email, customer_data, address = _customer_blocks(customer, default_first, default_last)
    currency = transaction.currency.upper()

    return {
        "order": {
            "email": email,
            "fulfillment_status": "unfulfilled",
            "financial_status": "paid",
            "send_receipt": True,
            "send_fulfillment_receipt": False,
            "line_items": line_items,
            "customer": customer_data,
            "shipping_address": address,
            "billing_address": dict(address),
            "shipping_lines": [
                {
                    "title": settings.SHIPPING_LINE_TITLE,
                    "price": format_minor_units(0, currency),
                    "code": "FREE",
                }
            ],
            "transactions": [
                {
                    "kind": "sale",
                    "status": "success",
                    "amount": format_minor_units(transaction.amount_cents, currency),
                    "currency": currency,
                    "gateway": transaction.gateway,
                    "authorization": transaction.payment_intent_id,
                }
            ],
            "note": note,
            "tags": ",".join(tags),
        }
    }
