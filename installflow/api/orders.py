"""Order API: create, move through the pipeline, book, send offers."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from installflow.config import Settings
from installflow.db import crud
from installflow.db.engine import get_db
from installflow.dependencies import get_clock, get_offer_manager, get_settings_dep
from installflow.errors import NotificationDeliveryError
from installflow.schemas import (
    ActivityRead, BookingRequest, OfferCreate, OfferRead, OrderCreate, OrderRead, StatusChange,
)
from installflow.services import pipeline
from installflow.services.offers import OfferManager
from installflow.services.ws_manager import ws_manager

router = APIRouter(prefix="/api/orders", tags=["orders"])


async def _get_order_or_404(db: AsyncSession, order_id: str):
    order = await crud.get_order(db, order_id)
    if not order:
        raise HTTPException(404, "Order not found")
    return order


@router.post("", response_model=OrderRead, status_code=201)
async def create_order(body: OrderCreate, db: AsyncSession = Depends(get_db)):
    if not await crud.get_client(db, body.client_id):
        raise HTTPException(404, "Client not found")
    order = await crud.create_order(
        db, body.order_number, body.client_id, body.estimated_duration_hours, body.job_type,
    )
    await ws_manager.publish_invalidation("orders")
    return order


@router.get("", response_model=list[OrderRead])
async def list_orders(status: str | None = None, db: AsyncSession = Depends(get_db)):
    if status:
        pipeline.parse_status(status)
    return await crud.list_orders(db, status)


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(order_id: str, db: AsyncSession = Depends(get_db)):
    return await _get_order_or_404(db, order_id)


@router.post("/{order_id}/status")
async def change_status(
    order_id: str,
    body: StatusChange,
    db: AsyncSession = Depends(get_db),
    clock=Depends(get_clock),
):
    """Kanban move. 409 when the move is illegal or the order changed underneath."""
    result = await pipeline.transition_order(
        db, order_id, body.status,
        engineer_id=body.engineer_id,
        scheduled_date=body.scheduled_date,
        time_window=body.time_window,
        expected_status=body.expected_status,
        now=clock(),
    )
    if not result.ok:
        return JSONResponse(status_code=409, content=result.to_dict())
    await ws_manager.publish_invalidation("orders", "job_offers")
    return result.to_dict()


@router.post("/{order_id}/book")
async def book_order(
    order_id: str,
    body: BookingRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    clock=Depends(get_clock),
):
    result = await pipeline.book_order(
        db, order_id, body.engineer_id, body.install_date,
        settings=settings.scheduling,
        time_window=body.time_window,
        enforce_capacity=not body.force,
        now=clock(),
    )
    if not result.ok:
        return JSONResponse(status_code=409, content=result.to_dict())
    await ws_manager.publish_invalidation("orders")
    return result.to_dict()


@router.get("/{order_id}/activity", response_model=list[ActivityRead])
async def list_activity(order_id: str, db: AsyncSession = Depends(get_db)):
    await _get_order_or_404(db, order_id)
    return await crud.list_activity(db, order_id)


@router.get("/{order_id}/offers", response_model=list[OfferRead])
async def list_offers(order_id: str, db: AsyncSession = Depends(get_db)):
    await _get_order_or_404(db, order_id)
    return await crud.list_offers_for_order(db, order_id)


@router.post("/{order_id}/offers", response_model=OfferRead, status_code=201)
async def send_offer(
    order_id: str,
    body: OfferCreate,
    db: AsyncSession = Depends(get_db),
    manager: OfferManager = Depends(get_offer_manager),
):
    try:
        offer = await manager.send_offer(
            db, order_id, body.engineer_id, body.offered_date, body.time_window,
            body.delivery_channel,
            custom_message=body.custom_message,
            replace_existing=body.replace_existing,
        )
    except NotificationDeliveryError:
        await ws_manager.publish_invalidation("orders", "job_offers")
        raise
    await ws_manager.publish_invalidation("orders", "job_offers")
    return offer
