from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WebhookAck(BaseModel):
    """Body returned to Stripe for every delivery that passed verification."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    received: bool = True
    already_processed: bool | None = None
    order_id: str | None = None
    order_number: str | None = None
    warning: str | None = None
    error: str | None = None

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
