from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class DailyStats(TimestampMixin, Base):
    __tablename__ = "daily_stats"

    date: Mapped[str] = mapped_column(String(10), primary_key=True)
    total_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_transactions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<DailyStats {self.date} {self.total_cents}/{self.total_transactions}>"


class DailyAccountStats(TimestampMixin, Base):
    """Per Stripe account slice of a DailyStats row."""

    __tablename__ = "daily_account_stats"

    date: Mapped[str] = mapped_column(String(10), primary_key=True)
    account_label: Mapped[str] = mapped_column(String(255), primary_key=True)
    total_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    transaction_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
