from datetime import date as date_cls

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.dependencies import get_statistics_service
from app.schemas.stats import DailyStatsSummary
from app.services.statistics_service import StatisticsService

router = APIRouter()


@router.get(
    "/daily/{date}",
    response_model=DailyStatsSummary,
    response_model_by_alias=True,
)
async def get_daily_stats(
    date: date_cls,
    service: StatisticsService = Depends(get_statistics_service),
):
    summary = await service.get(date.isoformat())
    if summary is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No statistics recorded for {date.isoformat()}",
        )
    return summary
