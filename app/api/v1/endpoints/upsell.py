import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.dependencies import get_upsell_service
from app.schemas.upsell import UpsellRequest
from app.services.upsell_service import UpsellService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("")
async def charge_upsell(
    payload: UpsellRequest,
    service: UpsellService = Depends(get_upsell_service),
):
    logger.info(
        "Upsell request: session_id=%s, variant_id=%s, amount=%s",
        payload.session_id,
        payload.variant_id,
        payload.upsell_amount_cents,
    )
    result = await service.charge_upsell(
        session_id=payload.session_id,
        variant_ref=payload.variant_id,
        quantity=payload.quantity,
        amount_cents=payload.upsell_amount_cents,
    )
    return JSONResponse(status_code=result.http_status, content=result.to_response())
