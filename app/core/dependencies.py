from collections.abc import AsyncGenerator

from fastapi import Depends

from app.core.database import async_session_maker
from app.core.unit_of_work import UnitOfWork, UnitOfWorkFactory
from app.services.account_registry import AccountRegistry, get_account_registry
from app.services.reconciliation_service import ReconciliationService
from app.services.shopify_service import ShopifyService, get_shopify_service
from app.services.statistics_service import StatisticsService
from app.services.upsell_service import UpsellService


async def get_unit_of_work() -> AsyncGenerator[UnitOfWork, None]:
    async with async_session_maker() as session:
        uow = UnitOfWork(session)
        try:
            yield uow
        except Exception:
            await uow.rollback()
            raise


def get_uow_factory() -> UnitOfWorkFactory:
    return UnitOfWorkFactory(async_session_maker)


def get_statistics_service(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
) -> StatisticsService:
    return StatisticsService(uow_factory)


def get_reconciliation_service(
    uow: UnitOfWork = Depends(get_unit_of_work),
    registry: AccountRegistry = Depends(get_account_registry),
    shopify: ShopifyService = Depends(get_shopify_service),
    statistics: StatisticsService = Depends(get_statistics_service),
) -> ReconciliationService:
    return ReconciliationService(uow, registry, shopify, statistics)


def get_upsell_service(
    uow: UnitOfWork = Depends(get_unit_of_work),
    registry: AccountRegistry = Depends(get_account_registry),
    shopify: ShopifyService = Depends(get_shopify_service),
) -> UpsellService:
    return UpsellService(uow, registry, shopify)
