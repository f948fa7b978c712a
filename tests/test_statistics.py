# tests/test_statistics.py
# Daily aggregate counters

import asyncio
from datetime import date

import pytest


class TestStatisticsService:
    """Per-day and per-account totals"""

    async def test_first_record_creates_day(self, statistics):
        """The first payment of a day seeds both counters"""
        await statistics.record("2026-10-19", "Account A", 2230)

        summary = await statistics.get("2026-10-19")

        assert summary.total_cents == 2230
        assert summary.total_transactions == 1
        assert summary.accounts["Account A"].total_cents == 2230
        assert summary.accounts["Account A"].transaction_count == 1

    async def test_records_accumulate_per_account(self, statistics):
        """Totals add up across accounts and stay split per account"""
        await statistics.record("2026-10-19", "Account A", 1000)
        await statistics.record("2026-10-19", "Account B", 2500)
        await statistics.record(date(2026, 10, 19), "Account A", 500)

        summary = await statistics.get("2026-10-19")

        assert summary.total_cents == 4000
        assert summary.total_transactions == 3
        assert summary.accounts["Account A"].total_cents == 1500
        assert summary.accounts["Account A"].transaction_count == 2
        assert summary.accounts["Account B"].total_cents == 2500

    async def test_days_are_independent(self, statistics):
        """Each date has its own document"""
        await statistics.record("2026-10-18", "Account A", 100)
        await statistics.record("2026-10-19", "Account A", 200)

        assert (await statistics.get("2026-10-18")).total_cents == 100
        assert (await statistics.get("2026-10-19")).total_cents == 200

    async def test_unknown_day(self, statistics):
        """A day without payments has no document"""
        assert await statistics.get("2020-01-01") is None

    async def test_amount_must_be_integer(self, statistics):
        """Fractional amounts are refused"""
        with pytest.raises(TypeError):
            await statistics.record("2026-10-19", "Account A", 22.30)

    async def test_concurrent_records_are_not_lost(self, statistics):
        """Concurrent updates for the same day all land"""
        amounts = [100 * (i + 1) for i in range(20)]

        await asyncio.gather(
            *(
                statistics.record("2026-10-19", "Account A" if i % 2 else "Account B", amount)
                for i, amount in enumerate(amounts)
            )
        )

        summary = await statistics.get("2026-10-19")
        assert summary.total_cents == sum(amounts)
        assert summary.total_transactions == len(amounts)
        assert (
            summary.accounts["Account A"].transaction_count
            + summary.accounts["Account B"].transaction_count
            == len(amounts)
        )


class TestDailyStatsRepository:
    """Upsert behaviour of the repository itself"""

    async def test_increment_does_not_overwrite(self, uow):
        """A second increment adds to the stored row"""
        await uow.daily_stats.increment("2026-10-19", "Account A", 2230)
        await uow.daily_stats.increment("2026-10-19", "Account A", 2230)
        await uow.commit()

        day = await uow.daily_stats.get_day("2026-10-19")
        accounts = await uow.daily_stats.get_accounts("2026-10-19")

        assert day.total_cents == 4460
        assert day.total_transactions == 2
        assert [a.account_label for a in accounts] == ["Account A"]
        assert accounts[0].transaction_count == 2
