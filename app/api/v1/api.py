from fastapi import APIRouter

from app.api.v1.endpoints import stats, upsell, webhooks

api_router = APIRouter()

api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(upsell.router, prefix="/upsell", tags=["upsell"])
api_router.include_router(stats.router, prefix="/stats", tags=["stats"])
