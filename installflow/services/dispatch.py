"""Charger dispatch board: shipment status and urgency per booked order.

Status and urgency are derived on read from the order's job type, install
date and its dispatch record, if any. Service calls need no charger.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from installflow.config import DispatchConfig
from installflow.db import crud
from installflow.errors import InvalidInputError, NotFoundError
from installflow.services.clock import utcnow
from installflow.services.validation import require_id

logger = logging.getLogger(__name__)

DISPATCH_STATUSES = ("not_required", "pending_dispatch", "dispatched", "delivered", "issue")
URGENCY_LEVELS = ("urgent", "warning", "success", "normal")


@dataclass
class DispatchFilters:
    date_from: date | None = None
    date_to: date | None = None
    engineer_id: str | None = None
    dispatch_status: str | None = None
    job_type: str | None = None


def derive_dispatch_status(job_type: str, record_status: str | None) -> str:
    if job_type == "service_call":
        return "not_required"
    return record_status or "pending_dispatch"


def hours_until(install_date: date, now: datetime) -> float:
    start = datetime.combine(install_date, time.min, tzinfo=timezone.utc)
    return (start - now).total_seconds() / 3600


def derive_urgency(dispatch_status: str, install_date: date, now: datetime, settings: DispatchConfig) -> str:
    """urgent/warning while a charger is still pending close to install day."""
    hours = hours_until(install_date, now)
    if dispatch_status == "pending_dispatch":
        if hours <= settings.urgent_hours:
            return "urgent"
        if math.ceil(hours / 24) <= settings.warning_days:
            return "warning"
    if dispatch_status in ("dispatched", "delivered"):
        return "success"
    return "normal"


def _row(order, record, now: datetime, settings: DispatchConfig) -> dict:
    status = derive_dispatch_status(order.job_type, record.status if record else None)
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "scheduled_install_date": order.scheduled_install_date.isoformat(),
        "status_enhanced": order.status_enhanced,
        "job_type": order.job_type,
        "client": {
            "id": order.client.id,
            "full_name": order.client.full_name,
            "phone": order.client.phone,
        } if order.client else None,
        "engineer": {
            "id": order.engineer.id,
            "name": order.engineer.name,
            "region": order.engineer.region,
        } if order.engineer else None,
        "dispatch_status": status,
        "urgency_level": derive_urgency(status, order.scheduled_install_date, now, settings),
        "days_until_install": math.ceil(hours_until(order.scheduled_install_date, now) / 24),
        "dispatch_record": {
            "id": record.id,
            "status": record.status,
            "tracking_number": record.tracking_number,
            "notes": record.notes,
            "dispatched_at": record.dispatched_at.isoformat() if record.dispatched_at else None,
            "delivered_at": record.delivered_at.isoformat() if record.delivered_at else None,
        } if record else None,
    }


async def dispatch_board(
    db: AsyncSession,
    filters: DispatchFilters | None = None,
    *,
    settings: DispatchConfig,
    now: datetime | None = None,
    offset: int = 0,
    limit: int | None = None,
) -> dict:
    """Rows for orders with an install date, plus stats over every matching order.

    Stats ignore the dispatch_status and job_type filters so the tiles stay
    stable while the table is narrowed.
    """
    filters = filters or DispatchFilters()
    if filters.dispatch_status and filters.dispatch_status not in DISPATCH_STATUSES:
        raise InvalidInputError(f"Unknown dispatch status: {filters.dispatch_status}", field="dispatch_status")
    if filters.engineer_id:
        require_id(filters.engineer_id, "engineer_id")
    now = now or utcnow()

    orders = await crud.list_orders_with_install_dates(
        db, filters.date_from, filters.date_to, filters.engineer_id,
    )
    records = await crud.list_dispatches_for_orders(db, [o.id for o in orders])
    rows = [_row(o, records.get(o.id), now, settings) for o in orders]

    stats = {"pending_dispatch": 0, "dispatched": 0, "urgent": 0, "issues": 0}
    for row in rows:
        if row["dispatch_status"] == "pending_dispatch":
            stats["pending_dispatch"] += 1
        elif row["dispatch_status"] == "dispatched":
            stats["dispatched"] += 1
        elif row["dispatch_status"] == "issue":
            stats["issues"] += 1
        if row["urgency_level"] == "urgent":
            stats["urgent"] += 1

    if filters.dispatch_status:
        rows = [r for r in rows if r["dispatch_status"] == filters.dispatch_status]
    if filters.job_type:
        rows = [r for r in rows if r["job_type"] == filters.job_type]

    total = len(rows)
    page = rows[offset: offset + limit] if limit else rows[offset:]
    return {"orders": page, "total": total, "stats": stats}


async def _dispatchable_order(db: AsyncSession, order_id: str):
    require_id(order_id, "order_id")
    order = await crud.get_order(db, order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    if order.job_type == "service_call":
        raise InvalidInputError("Service calls do not need a charger dispatch", order_id=order_id)
    return order


async def mark_dispatched(
    db: AsyncSession,
    order_id: str,
    *,
    courier: str,
    tracking_number: str = "",
    sent_from: str = "warehouse",
    notes: str = "",
    dispatched_at: datetime | None = None,
):
    if not courier or not courier.strip():
        raise InvalidInputError("Courier name is required", field="courier")
    await _dispatchable_order(db, order_id)
    dispatched_at = dispatched_at or utcnow()
    record = await crud.upsert_dispatch(
        db, order_id,
        status="dispatched",
        dispatched_at=dispatched_at,
        tracking_number=tracking_number,
        notes=f"Courier: {courier.strip()}\nSent from: {sent_from}\n{notes}".strip(),
    )
    logger.info("Charger for order %s dispatched via %s", order_id, courier)
    return record


async def mark_delivered(db: AsyncSession, order_id: str, delivered_at: datetime | None = None):
    await _dispatchable_order(db, order_id)
    existing = await crud.get_dispatch_for_order(db, order_id)
    if existing is None or existing.status not in ("dispatched", "issue"):
        raise InvalidInputError("Charger has not been dispatched for this order", order_id=order_id)
    record = await crud.upsert_dispatch(db, order_id, status="delivered", delivered_at=delivered_at or utcnow())
    logger.info("Charger for order %s delivered", order_id)
    return record


async def flag_issue(db: AsyncSession, order_id: str, notes: str):
    if not notes or not notes.strip():
        raise InvalidInputError("Describe the issue", field="notes")
    await _dispatchable_order(db, order_id)
    existing = await crud.get_dispatch_for_order(db, order_id)
    combined = f"{existing.notes}\nIssue: {notes.strip()}".strip() if existing else f"Issue: {notes.strip()}"
    record = await crud.upsert_dispatch(db, order_id, status="issue", notes=combined)
    logger.warning("Charger dispatch issue on order %s: %s", order_id, notes.strip())
    return record
