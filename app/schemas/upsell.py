from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class UpsellRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str = Field(min_length=1)
    variant_id: int | str
    quantity: int = 1
    upsell_amount_cents: int


class UpsellOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    PAID_NO_SHOPIFY_ORDER = "paid_no_shopify_order"
    REQUIRES_ACTION = "requires_action"
    DECLINED = "declined"


class UpsellResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    outcome: UpsellOutcome
    success: bool
    payment_intent_id: str | None = None
    order_id: str | None = None
    order_number: str | None = None
    # requires_action only
    client_secret: str | None = None
    decline_code: str | None = None
    warning: str | None = None
    message: str | None = None

    @property
    def http_status(self) -> int:
        if self.outcome in (UpsellOutcome.REQUIRES_ACTION, UpsellOutcome.DECLINED):
            return 402
        return 200

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
