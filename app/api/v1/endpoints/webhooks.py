import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.core.dependencies import get_reconciliation_service
from app.services.account_registry import AccountRegistry, get_account_registry
from app.services.reconciliation_service import ReconciliationService
from app.services.signature_resolver import resolve

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe")
async def handle_stripe_webhook(
    request: Request,
    registry: AccountRegistry = Depends(get_account_registry),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    # Signature is computed over the exact bytes Stripe sent
    raw_body = await request.body()
    signature = request.headers.get("stripe-signature")

    resolved = resolve(raw_body, signature, registry.verification_candidates())
    result = await service.handle_event(resolved)

    logger.info(
        "Stripe webhook handled: event_id=%s, outcome=%s, session_id=%s",
        resolved.event.id,
        result.outcome.value,
        result.session_id,
    )
    return JSONResponse(status_code=status.HTTP_200_OK, content=result.to_ack().to_response())
