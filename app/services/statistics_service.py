import logging
from datetime import date as date_cls, datetime, timezone

from app.core.unit_of_work import UnitOfWorkFactory
from app.schemas.stats import AccountStats, DailyStatsSummary

logger = logging.getLogger(__name__)


def today_utc() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class StatisticsService:
    """Per-day revenue and transaction counters, split by Stripe account."""

    def __init__(self, uow_factory: UnitOfWorkFactory):
        self.uow_factory = uow_factory

    async def record(self, date: str | date_cls, account_label: str, amount_cents: int) -> None:
        if isinstance(date, date_cls):
            date = date.isoformat()
        if not isinstance(amount_cents, int):
            raise TypeError("amount_cents must be an integer number of minor units")

        async with self.uow_factory() as uow:
            await uow.daily_stats.increment(date, account_label, amount_cents)
            await uow.commit()

        logger.info(
            f"[stats] {date} +{amount_cents} for {account_label}"
        )

    async def get(self, date: str) -> DailyStatsSummary | None:
        async with self.uow_factory() as uow:
            day = await uow.daily_stats.get_day(date)
            if day is None:
                return None
            accounts = await uow.daily_stats.get_accounts(date)

        return DailyStatsSummary(
            date=day.date,
            total_cents=day.total_cents,
            total_transactions=day.total_transactions,
            accounts={
                row.account_label: AccountStats(
                    total_cents=row.total_cents,
                    transaction_count=row.transaction_count,
                )
                for row in accounts
            },
        )
