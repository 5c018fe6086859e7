from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from installflow.config import Settings
from installflow.db.engine import get_db
from installflow.dependencies import get_clock, get_settings_dep
from installflow.schemas import FlagIssue, MarkDelivered, MarkDispatched
from installflow.services import dispatch
from installflow.services.dispatch import DispatchFilters
from installflow.services.ws_manager import ws_manager

router = APIRouter(prefix="/api/dispatch", tags=["dispatch"])


def _record(record) -> dict:
    return {
        "id": record.id,
        "order_id": record.order_id,
        "status": record.status,
        "tracking_number": record.tracking_number,
        "notes": record.notes,
        "dispatched_at": record.dispatched_at.isoformat() if record.dispatched_at else None,
        "delivered_at": record.delivered_at.isoformat() if record.delivered_at else None,
    }


@router.get("")
async def dispatch_board(
    date_from: date | None = None,
    date_to: date | None = None,
    engineer_id: str | None = None,
    dispatch_status: str | None = None,
    job_type: str | None = None,
    offset: int = 0,
    limit: int | None = None,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    clock=Depends(get_clock),
):
    filters = DispatchFilters(date_from, date_to, engineer_id, dispatch_status, job_type)
    return await dispatch.dispatch_board(
        db, filters, settings=settings.dispatch, now=clock(), offset=offset, limit=limit,
    )


@router.post("/{order_id}/dispatched")
async def mark_dispatched(order_id: str, body: MarkDispatched, db: AsyncSession = Depends(get_db)):
    record = await dispatch.mark_dispatched(
        db, order_id,
        courier=body.courier,
        tracking_number=body.tracking_number,
        sent_from=body.sent_from,
        notes=body.notes,
        dispatched_at=body.dispatched_at,
    )
    await ws_manager.publish_invalidation("charger_dispatches")
    return _record(record)


@router.post("/{order_id}/delivered")
async def mark_delivered(order_id: str, body: MarkDelivered, db: AsyncSession = Depends(get_db)):
    record = await dispatch.mark_delivered(db, order_id, body.delivered_at)
    await ws_manager.publish_invalidation("charger_dispatches")
    return _record(record)


@router.post("/{order_id}/issue")
async def flag_issue(order_id: str, body: FlagIssue, db: AsyncSession = Depends(get_db)):
    record = await dispatch.flag_issue(db, order_id, body.notes)
    await ws_manager.publish_invalidation("charger_dispatches")
    return _record(record)
