"""Scheduling API: capacity checks, pipeline buckets, engineer recommendations."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from installflow.config import Settings
from installflow.db.engine import get_db
from installflow.dependencies import get_clock, get_offer_manager, get_settings_dep
from installflow.schemas import CapacityCheckRequest, RecommendationRead
from installflow.services import capacity, pipeline
from installflow.services.capacity import VirtualJob
from installflow.services.offers import OfferManager
from installflow.services.ws_manager import ws_manager

router = APIRouter(prefix="/api/scheduling", tags=["scheduling"])


@router.post("/capacity-check")
async def capacity_check(
    body: CapacityCheckRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    clock=Depends(get_clock),
):
    result = await capacity.preflight(
        db, body.order_id, body.engineer_id, body.offered_date,
        [VirtualJob(v.id, v.estimated_duration_hours) for v in body.virtual_orders],
        settings=settings.scheduling,
        now=clock(),
    )
    return result.to_dict()


@router.get("/buckets")
async def buckets(db: AsyncSession = Depends(get_db), clock=Depends(get_clock)):
    return await pipeline.bucket_counts(db, clock().date())


@router.get("/recommendations/{order_id}", response_model=list[RecommendationRead])
async def recommendations(
    order_id: str,
    start_date: date | None = None,
    limit: int | None = None,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    clock=Depends(get_clock),
):
    return await capacity.recommend_engineers(
        db, order_id, settings=settings.scheduling, now=clock(),
        start_date=start_date, limit=limit,
    )


@router.post("/offers/expire")
async def expire_offers(
    db: AsyncSession = Depends(get_db),
    manager: OfferManager = Depends(get_offer_manager),
):
    expired = await manager.expire_stale_offers(db)
    if expired:
        await ws_manager.publish_invalidation("orders", "job_offers")
    return {"expired": len(expired), "offer_ids": expired}
