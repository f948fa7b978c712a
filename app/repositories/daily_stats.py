from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.daily_stats import DailyAccountStats, DailyStats


class DailyStatsRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    def _insert(self, model):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise NotImplementedError(f"Atomic upsert not supported on {dialect}")

    async def increment(self, date: str, account_label: str, amount_cents: int) -> None:
        """Add one transaction to the day and account counters.

        Each statement seeds the row on first use and otherwise increments it
        in place, so no value read beforehand feeds into the new totals.
        """
        day = self._insert(DailyStats).values(
            date=date,
            total_cents=amount_cents,
            total_transactions=1,
        )
        day = day.on_conflict_do_update(
            index_elements=[DailyStats.date],
            set_={
                "total_cents": DailyStats.total_cents + day.excluded.total_cents,
                "total_transactions": DailyStats.total_transactions + 1,
            },
        )
        await self.session.execute(day)

        account = self._insert(DailyAccountStats).values(
            date=date,
            account_label=account_label,
            total_cents=amount_cents,
            transaction_count=1,
        )
        account = account.on_conflict_do_update(
            index_elements=[DailyAccountStats.date, DailyAccountStats.account_label],
            set_={
                "total_cents": DailyAccountStats.total_cents + account.excluded.total_cents,
                "transaction_count": DailyAccountStats.transaction_count + 1,
            },
        )
        await self.session.execute(account)

    async def get_day(self, date: str) -> DailyStats | None:
        result = await self.session.execute(
            select(DailyStats)
            .where(DailyStats.date == date)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_accounts(self, date: str) -> list[DailyAccountStats]:
        result = await self.session.execute(
            select(DailyAccountStats)
            .where(DailyAccountStats.date == date)
            .order_by(DailyAccountStats.account_label)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
