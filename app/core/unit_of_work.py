from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.repositories.checkout_session import CheckoutSessionRepository
from app.repositories.daily_stats import DailyStatsRepository


class UnitOfWork:
    """Groups repository access over one AsyncSession.

    Nothing is persisted until ``commit`` is called.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.checkout_sessions = CheckoutSessionRepository(session)
        self.daily_stats = DailyStatsRepository(session)

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    async def close(self) -> None:
        await self.session.close()


class UnitOfWorkFactory:
    """Opens a fresh UnitOfWork per transaction.

    Statistics updates run in their own short transaction, separate from the
    request's session writes.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    def __call__(self) -> "_UnitOfWorkContext":
        return _UnitOfWorkContext(self.session_maker)


class _UnitOfWorkContext:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker
        self.uow: UnitOfWork | None = None

    async def __aenter__(self) -> UnitOfWork:
        self.uow = UnitOfWork(self.session_maker())
        return self.uow

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            await self.uow.rollback()
        await self.uow.close()
