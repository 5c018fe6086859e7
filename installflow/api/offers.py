"""Public, token-gated offer endpoints used by the client's link."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from installflow.db.engine import get_db
from installflow.dependencies import get_offer_manager
from installflow.schemas import OfferResponse
from installflow.services.offers import OfferManager, OfferOutcome, RejectionDetails
from installflow.services.ws_manager import ws_manager

router = APIRouter(prefix="/offers", tags=["offers"])

_OUTCOME_STATUS = {
    OfferOutcome.ACCEPTED: 200,
    OfferOutcome.REJECTED: 200,
    OfferOutcome.EXPIRED: 410,
    OfferOutcome.ALREADY_RESPONDED: 409,
    OfferOutcome.CONFLICT: 409,
}


@router.get("/{token}")
async def get_offer(
    token: str,
    db: AsyncSession = Depends(get_db),
    manager: OfferManager = Depends(get_offer_manager),
):
    return await manager.lookup_offer(db, token)


@router.post("/{token}/respond")
async def respond(
    token: str,
    body: OfferResponse,
    db: AsyncSession = Depends(get_db),
    manager: OfferManager = Depends(get_offer_manager),
):
    rejection = RejectionDetails(
        reason=body.rejection_reason,
        block_this_date=body.block_this_date,
        blocked_ranges=[(r.start_date, r.end_date) for r in body.block_date_ranges],
    )
    result = await manager.respond_to_offer(db, token, body.response, rejection)
    if result.outcome in (OfferOutcome.ACCEPTED, OfferOutcome.REJECTED):
        await ws_manager.publish_invalidation("orders", "job_offers", "blocked_dates")
    return JSONResponse(status_code=_OUTCOME_STATUS[result.outcome], content=result.to_dict())
