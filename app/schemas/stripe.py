"""
Pydantic views over the parts of Stripe webhook payloads this service reads.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _expandable_id(value: Any) -> Any:
    # Stripe sends either an id or an expanded object for related resources
    if isinstance(value, dict):
        return value.get("id")
    return value


class PaymentIntentPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    amount: int
    currency: str = "eur"
    status: str | None = None
    customer: str | None = None
    payment_method: str | None = None
    latest_charge: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("customer", "payment_method", "latest_charge", mode="before")
    @classmethod
    def collapse_expanded(cls, v: Any) -> Any:
        return _expandable_id(v)

    @field_validator("metadata", mode="before")
    @classmethod
    def default_metadata(cls, v: Any) -> Any:
        return v or {}

    @property
    def session_id(self) -> str | None:
        return self.metadata.get("sessionId") or self.metadata.get("session_id") or None

    @property
    def is_upsell(self) -> bool:
        return self.metadata.get("upsell") == "true"


class StripeEventData(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    object: dict[str, Any] = Field(default_factory=dict)


class StripeEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    livemode: bool = False
    data: StripeEventData = Field(default_factory=StripeEventData)
