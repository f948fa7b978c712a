from app.repositories.checkout_session import CheckoutSessionRepository
from app.repositories.daily_stats import DailyStatsRepository

__all__ = ["CheckoutSessionRepository", "DailyStatsRepository"]
