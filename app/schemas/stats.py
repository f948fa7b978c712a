from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AccountStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_cents: int = 0
    transaction_count: int = 0


class DailyStatsSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    date: str
    total_cents: int = 0
    total_transactions: int = 0
    accounts: dict[str, AccountStats] = Field(default_factory=dict)
