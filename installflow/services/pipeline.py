"""Order scheduling pipeline: statuses, legal transitions and field rules.

Entering ``needs_scheduling`` clears both the engineer and the install
date. Entering ``date_rejected`` or ``offer_expired`` clears the date only.
``date_accepted`` and ``scheduled`` require both. Side-exits (on hold,
cancelled) leave the fields alone and can re-enter ``needs_scheduling``.

Status writes are compare-and-swap on the status column, so two admins
dragging the same card cannot silently overwrite each other.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from installflow.config import SchedulingConfig
from installflow.db import crud
from installflow.errors import CapacityUnavailableError, InvalidInputError, NotFoundError
from installflow.services import capacity
from installflow.services.capacity import CapacityResult
from installflow.services.clock import utcnow
from installflow.services.validation import require_date, require_id

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    NEEDS_SCHEDULING = "needs_scheduling"
    DATE_OFFERED = "date_offered"
    DATE_ACCEPTED = "date_accepted"
    DATE_REJECTED = "date_rejected"
    OFFER_EXPIRED = "offer_expired"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ON_HOLD = "on_hold_parts_docs"
    CANCELLED = "cancelled"


S = OrderStatus

SIDE_EXITS = frozenset({S.ON_HOLD, S.CANCELLED})

_FORWARD: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.NEEDS_SCHEDULING: frozenset({S.DATE_OFFERED, S.SCHEDULED}),
    S.DATE_OFFERED: frozenset({S.DATE_OFFERED, S.DATE_ACCEPTED, S.DATE_REJECTED, S.OFFER_EXPIRED, S.NEEDS_SCHEDULING}),
    S.DATE_ACCEPTED: frozenset({S.SCHEDULED, S.NEEDS_SCHEDULING}),
    S.DATE_REJECTED: frozenset({S.DATE_OFFERED, S.SCHEDULED, S.NEEDS_SCHEDULING}),
    S.OFFER_EXPIRED: frozenset({S.DATE_OFFERED, S.SCHEDULED, S.NEEDS_SCHEDULING}),
    S.SCHEDULED: frozenset({S.IN_PROGRESS, S.NEEDS_SCHEDULING}),
    S.IN_PROGRESS: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.ON_HOLD: frozenset({S.NEEDS_SCHEDULING, S.CANCELLED}),
    S.CANCELLED: frozenset({S.NEEDS_SCHEDULING}),
}

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    status: targets | SIDE_EXITS if status not in SIDE_EXITS and status != S.COMPLETED else targets
    for status, targets in _FORWARD.items()
}

# Sources that resolve the pending offer themselves. Any other move out of
# date_offered withdraws it.
_OFFER_SOURCES = frozenset({"offer", "offer_response", "expiry_sweep"})


@dataclass
class TransitionResult:
    ok: bool
    order_id: str
    from_status: str
    to_status: str
    reason: str = ""
    capacity: CapacityResult | None = None

    def to_dict(self) -> dict:
        data = {
            "ok": self.ok,
            "order_id": self.order_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "reason": self.reason,
        }
        if self.capacity is not None:
            data["capacity"] = self.capacity.to_dict()
        return data


class _TransitionAborted(Exception):
    def __init__(self, result: TransitionResult):
        super().__init__(result.reason)
        self.result = result


def parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidInputError(f"Unknown order status: {value}", field="status", value=value)


def can_transition(current: str | OrderStatus, target: str | OrderStatus) -> bool:
    return OrderStatus(target) in TRANSITIONS[OrderStatus(current)]


def plan_transition(
    order,
    target: OrderStatus,
    *,
    engineer_id: str | None = None,
    scheduled_date: date | None = None,
    time_window: str | None = None,
) -> tuple[dict, str | None]:
    """Column values for moving order to target, or an error message."""
    values: dict = {"status_enhanced": target.value}

    if target == S.NEEDS_SCHEDULING:
        values.update(engineer_id=None, scheduled_install_date=None, time_window=None)
    elif target in (S.DATE_REJECTED, S.OFFER_EXPIRED):
        values["scheduled_install_date"] = None
    elif target in (S.DATE_ACCEPTED, S.SCHEDULED, S.IN_PROGRESS, S.COMPLETED):
        eng = engineer_id or order.engineer_id
        day = scheduled_date or order.scheduled_install_date
        if not eng or not day:
            return values, f"{target.value} requires an engineer and an install date"
        values.update(engineer_id=eng, scheduled_install_date=day)
        if time_window is not None:
            values["time_window"] = time_window
    return values, None


async def withdraw_pending_offers(db: AsyncSession, order_id: str, now: datetime, reason: str) -> int:
    """Expire any pending offers for an order. Flushes, no commit."""
    withdrawn = 0
    for offer in await crud.list_pending_offers_for_order(db, order_id):
        if await crud.compare_and_set_offer(db, offer.id, "pending", {"status": "expired", "expired_at": now}):
            withdrawn += 1
            await crud.add_activity(
                db, order_id, "offer_withdrawn",
                f"Pending offer for {offer.offered_date.isoformat()} withdrawn: {reason}",
                {"offer_id": offer.id, "engineer_id": offer.engineer_id},
            )
    return withdrawn


async def transition_order(
    db: AsyncSession,
    order_id: str,
    target: str | OrderStatus,
    *,
    engineer_id: str | None = None,
    scheduled_date: date | str | None = None,
    time_window: str | None = None,
    expected_status: str | None = None,
    source: str = "manual",
    now: datetime | None = None,
    commit: bool = True,
) -> TransitionResult:
    """Move an order to target if legal and nobody changed it meanwhile.

    source records what drove the move (manual, offer_response, booking,
    expiry_sweep) in the activity log.
    """
    require_id(order_id, "order_id")
    target = parse_status(target) if isinstance(target, str) else target
    if engineer_id is not None:
        require_id(engineer_id, "engineer_id")
    if scheduled_date is not None:
        scheduled_date = require_date(scheduled_date, "scheduled_date")
    now = now or utcnow()

    order = await crud.get_order(db, order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    current = order.status_enhanced

    def fail(reason: str) -> TransitionResult:
        return TransitionResult(False, order_id, current, target.value, reason)

    if expected_status is not None and expected_status != current:
        return fail(f"Order is {current}, expected {expected_status}")
    if not can_transition(current, target):
        return fail(f"Illegal transition {current} -> {target.value}")

    values, error = plan_transition(
        order, target, engineer_id=engineer_id,
        scheduled_date=scheduled_date, time_window=time_window,
    )
    if error:
        return fail(error)

    if not await crud.compare_and_set_order(db, order_id, current, values):
        return fail("Order status changed concurrently")

    if current == S.DATE_OFFERED.value and source not in _OFFER_SOURCES:
        await withdraw_pending_offers(db, order_id, now, f"order moved to {target.value}")

    await crud.add_activity(
        db, order_id, "status_changed",
        f"Status changed from {current} to {target.value}",
        {"from": current, "to": target.value, "source": source, **{
            k: (v.isoformat() if isinstance(v, date) else v)
            for k, v in values.items() if k != "status_enhanced"
        }},
    )
    if commit:
        await db.commit()
        await db.refresh(order)
    logger.info("Order %s: %s -> %s (%s)", order_id, current, target.value, source)
    return TransitionResult(True, order_id, current, target.value)


async def book_order(
    db: AsyncSession,
    order_id: str,
    engineer_id: str,
    install_date: date | str,
    *,
    settings: SchedulingConfig,
    time_window: str | None = None,
    enforce_capacity: bool = True,
    now: datetime | None = None,
) -> TransitionResult:
    """Admin booking confirmation: assign engineer and date, move to scheduled."""
    require_id(order_id, "order_id")
    require_id(engineer_id, "engineer_id")
    day = require_date(install_date, "install_date")
    now = now or utcnow()

    order = await crud.get_order(db, order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    if await crud.get_engineer(db, engineer_id) is None:
        raise NotFoundError("Engineer", engineer_id)

    async def move() -> TransitionResult:
        return await transition_order(
            db, order_id, S.SCHEDULED,
            engineer_id=engineer_id, scheduled_date=day, time_window=time_window,
            source="booking", now=now, commit=not enforce_capacity,
        )

    if not enforce_capacity:
        return await move()

    current = order.status_enhanced
    if not can_transition(current, S.SCHEDULED):
        return TransitionResult(False, order_id, current, S.SCHEDULED.value, f"Illegal transition {current} -> scheduled")

    async def check() -> CapacityResult:
        return await capacity.preflight(db, order_id, engineer_id, day, settings=settings, now=now)

    async def apply() -> TransitionResult:
        result = await move()
        if not result.ok:
            raise _TransitionAborted(result)
        return result

    try:
        return await capacity.reserve_and_apply(
            db, engineer_id, day, check, apply, retries=settings.reservation_retries,
        )
    except CapacityUnavailableError as exc:
        return TransitionResult(False, order_id, current, S.SCHEDULED.value, exc.message, capacity=exc.result)
    except _TransitionAborted as exc:
        await db.rollback()
        return exc.result


async def bucket_counts(db: AsyncSession, today: date) -> dict[str, int]:
    """Kanban column counts keyed by status, plus ready_to_book and scheduled_today."""
    by_status = await crud.count_orders_by_status(db)
    counts = {status.value: by_status.get(status.value, 0) for status in OrderStatus}
    counts["ready_to_book"] = counts[S.DATE_ACCEPTED.value]
    counts["scheduled_today"] = await crud.count_scheduled_on(db, today)
    return counts
