"""
Shapes of the cart and customer documents written by the cart intake flow.

Stored keys are camelCase; Python attributes are snake_case.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class CartItem(_CamelModel):
    id: int | str | None = None
    variant_id: int | str | None = None
    title: str | None = None
    quantity: int = 1
    price_cents: int | None = None
    line_price_cents: int | None = None


class CustomerInfo(_CamelModel):
    full_name: str | None = None
    email: str | None = None
    phone: str | None = None
    country_code: str | None = None
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    province: str | None = None
    postal_code: str | None = None

    @classmethod
    def from_document(cls, data: dict[str, Any] | None) -> "CustomerInfo":
        return cls.model_validate(data or {})
