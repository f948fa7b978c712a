from app.models.base import Base, TimestampMixin
from app.models.checkout_session import (
    CheckoutSession,
    ReconciliationStatus,
    UpsellStatus,
)
from app.models.daily_stats import DailyAccountStats, DailyStats

__all__ = [
    "Base",
    "TimestampMixin",
    "CheckoutSession",
    "ReconciliationStatus",
    "UpsellStatus",
    "DailyStats",
    "DailyAccountStats",
]
