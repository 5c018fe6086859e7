"""Engineer daily capacity: working-hour allowance and job-count cap.

A job fits an engineer-day when the minutes already committed (booked
orders plus soft holds from pending offers), the new job, and any virtual
jobs of a batch preview stay within the working window plus a small
leniency, and the job count stays within the daily cap. Both limits are
evaluated independently; the first one exceeded is reported.

Negative answers are ordinary results. Only malformed input and missing
records raise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, Iterable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from installflow.config import SchedulingConfig
from installflow.db import crud
from installflow.errors import CapacityUnavailableError, InvalidInputError, NotFoundError, OfferConflictError
from installflow.services import availability
from installflow.services.clock import utcnow
from installflow.services.validation import require_date, require_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CapacityReason(str, Enum):
    FITS = "capacity_available"
    DATE_BLOCKED = "date_blocked"
    ENGINEER_UNAVAILABLE = "engineer_unavailable"
    ENGINEER_TIME_OFF = "engineer_time_off"
    EXCEEDS_WORKING_HOURS = "exceeds_working_hours"
    EXCEEDS_JOB_LIMIT = "exceeds_job_limit"


@dataclass
class VirtualJob:
    """A job not yet persisted, included when previewing a batch assignment."""
    id: str = ""
    estimated_duration_hours: float | None = None


@dataclass
class CapacityResult:
    can_fit: bool
    reason: CapacityReason
    message: str
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "canFit": self.can_fit,
            "reason": self.reason.value,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class Recommendation:
    engineer_id: str
    engineer_name: str
    available_date: date
    committed_jobs: int
    remaining_minutes: int


def job_minutes(hours: float | None, settings: SchedulingConfig) -> int:
    """Duration in minutes; unknown durations use the configured default."""
    if hours is None:
        hours = settings.default_job_duration_hours
    return int(round(hours * 60))


def format_duration(minutes: int) -> str:
    return f"{minutes // 60}h {minutes % 60}m"


def _fail(reason: CapacityReason, message: str, **details) -> CapacityResult:
    return CapacityResult(can_fit=False, reason=reason, message=message, details=details)


async def can_fit(
    db: AsyncSession,
    engineer_id: str,
    candidate_date: date | str,
    new_job_minutes: int,
    virtual_jobs: Iterable[VirtualJob] = (),
    *,
    settings: SchedulingConfig,
    client_id: str | None = None,
    exclude_order_id: str | None = None,
    now: datetime | None = None,
) -> CapacityResult:
    """Decide whether a job of new_job_minutes fits the engineer on candidate_date."""
    require_id(engineer_id, "engineer_id")
    if client_id is not None:
        require_id(client_id, "client_id")
    if exclude_order_id is not None:
        require_id(exclude_order_id, "order_id")
    day = require_date(candidate_date, "offered_date")
    if new_job_minutes is None or new_job_minutes < 0:
        raise InvalidInputError("Job duration must be zero or more minutes", field="new_job_minutes")
    virtual_jobs = list(virtual_jobs)
    for vjob in virtual_jobs:
        if vjob.estimated_duration_hours is not None and vjob.estimated_duration_hours < 0:
            raise InvalidInputError("Virtual job duration must be zero or more hours", field="virtual_orders")
    now = now or utcnow()

    engineer = await crud.get_engineer(db, engineer_id)
    if engineer is None:
        raise NotFoundError("Engineer", engineer_id)
    if not engineer.is_active:
        return _fail(CapacityReason.ENGINEER_UNAVAILABLE, "Engineer is inactive")

    if client_id is not None:
        if await availability.is_date_blocked(db, client_id, day):
            block_reason = await availability.client_block_reason(db, client_id, day)
            return _fail(CapacityReason.DATE_BLOCKED, f"Date blocked: {block_reason}")

    window = await availability.get_working_window(db, engineer_id, day)
    if window is None:
        return _fail(CapacityReason.ENGINEER_UNAVAILABLE, "Engineer not available on this day of the week")

    if await availability.is_engineer_blocked(db, engineer_id, day):
        return _fail(CapacityReason.ENGINEER_TIME_OFF, "Engineer has time off on this date")

    confirmed, holds = await crud.get_committed_durations(
        db, engineer_id, day, now, exclude_order_id=exclude_order_id,
    )
    confirmed_minutes = sum(job_minutes(h, settings) for h in confirmed)
    hold_minutes = sum(job_minutes(h, settings) for h in holds)
    current_minutes = confirmed_minutes + hold_minutes
    current_jobs = len(confirmed) + len(holds)

    virtual_minutes = sum(job_minutes(v.estimated_duration_hours, settings) for v in virtual_jobs)
    total_minutes = current_minutes + new_job_minutes + virtual_minutes

    work_day_minutes = window.minutes
    max_allowed = work_day_minutes + settings.day_lenience_minutes

    if total_minutes > max_allowed:
        overage = total_minutes - max_allowed
        return _fail(
            CapacityReason.EXCEEDS_WORKING_HOURS,
            f"Would exceed working hours by {format_duration(overage)}",
            current_minutes=current_minutes,
            soft_hold_minutes=hold_minutes,
            virtual_minutes=virtual_minutes,
            job_minutes=new_job_minutes,
            total_minutes=total_minutes,
            work_day_minutes=work_day_minutes,
            max_allowed_minutes=max_allowed,
            overage_minutes=overage,
            over_work_day_minutes=total_minutes - work_day_minutes,
        )

    max_jobs = engineer.max_jobs_per_day if engineer.max_jobs_per_day is not None else settings.max_jobs_per_day
    total_jobs = current_jobs + 1 + len(virtual_jobs)
    if total_jobs > max_jobs:
        return _fail(
            CapacityReason.EXCEEDS_JOB_LIMIT,
            f"Would exceed daily job limit ({total_jobs}/{max_jobs} jobs)",
            current_jobs=current_jobs,
            virtual_jobs=len(virtual_jobs),
            total_jobs=total_jobs,
            max_jobs=max_jobs,
        )

    return CapacityResult(
        can_fit=True,
        reason=CapacityReason.FITS,
        message="Capacity available",
        details={
            "current_minutes": current_minutes,
            "soft_hold_minutes": hold_minutes,
            "virtual_minutes": virtual_minutes,
            "job_minutes": new_job_minutes,
            "total_minutes": total_minutes,
            "work_day_minutes": work_day_minutes,
            "remaining_minutes": max_allowed - total_minutes,
            "current_jobs": current_jobs,
            "virtual_jobs": len(virtual_jobs),
            "total_jobs": total_jobs,
            "max_jobs": max_jobs,
            "remaining_jobs": max_jobs - total_jobs,
        },
    )


async def preflight(
    db: AsyncSession,
    order_id: str,
    engineer_id: str,
    offered_date: date | str,
    virtual_orders: Iterable[VirtualJob] = (),
    *,
    settings: SchedulingConfig,
    now: datetime | None = None,
) -> CapacityResult:
    """Capacity check for placing an existing order with an engineer on a date."""
    require_id(order_id, "order_id")
    require_id(engineer_id, "engineer_id")
    day = require_date(offered_date, "offered_date")

    order = await crud.get_order(db, order_id)
    if order is None:
        raise NotFoundError("Order", order_id)

    return await can_fit(
        db, engineer_id, day,
        job_minutes(order.estimated_duration_hours, settings),
        virtual_orders,
        settings=settings,
        client_id=order.client_id,
        exclude_order_id=order.id,
        now=now,
    )


async def reserve_and_apply(
    db: AsyncSession,
    engineer_id: str,
    day: date,
    check: Callable[[], Awaitable[CapacityResult]],
    apply: Callable[[], Awaitable[T]],
    *,
    retries: int = 3,
) -> T:
    """Evaluate capacity and stage writes under the engineer-day version counter.

    The staged writes commit only if no other writer reserved the same
    engineer-day since our read; otherwise everything rolls back and the
    check runs again against fresh state. Rollback expires loaded rows, so
    check and apply must only close over plain values, not ORM objects.
    """
    for attempt in range(1, retries + 1):
        version = await crud.ensure_ledger(db, engineer_id, day)
        result = await check()
        if not result.can_fit:
            raise CapacityUnavailableError(result)
        value = await apply()
        if await crud.bump_ledger(db, engineer_id, day, version):
            await db.commit()
            return value
        await db.rollback()
        logger.info(
            "Reservation conflict for engineer %s on %s (attempt %d/%d)",
            engineer_id, day, attempt, retries,
        )
    raise OfferConflictError(
        "Engineer capacity changed concurrently, please retry",
        engineer_id=engineer_id, day=day.isoformat(),
    )


async def find_next_available_date(
    db: AsyncSession,
    engineer_id: str,
    order,
    start: date,
    *,
    settings: SchedulingConfig,
    now: datetime | None = None,
) -> tuple[date, CapacityResult] | None:
    """Earliest day from start within the search horizon where the order fits."""
    minutes = job_minutes(order.estimated_duration_hours, settings)
    for offset in range(settings.recommendation_search_horizon_days):
        day = start + timedelta(days=offset)
        if day.weekday() >= 5 and not settings.allow_weekend_bookings:
            continue
        result = await can_fit(
            db, engineer_id, day, minutes,
            settings=settings,
            client_id=order.client_id,
            exclude_order_id=order.id,
            now=now,
        )
        if result.can_fit:
            return day, result
    return None


async def recommend_engineers(
    db: AsyncSession,
    order_id: str,
    *,
    settings: SchedulingConfig,
    now: datetime | None = None,
    start_date: date | None = None,
    limit: int | None = None,
) -> list[Recommendation]:
    """Rank active engineers by their earliest fitting date, then by workload."""
    require_id(order_id, "order_id")
    order = await crud.get_order(db, order_id)
    if order is None:
        raise NotFoundError("Order", order_id)

    now = now or utcnow()
    earliest = (now + timedelta(hours=settings.minimum_advance_hours)).date()
    start = max(start_date, earliest) if start_date else earliest

    recommendations = []
    for engineer in await crud.list_engineers(db, active_only=True):
        found = await find_next_available_date(
            db, engineer.id, order, start, settings=settings, now=now,
        )
        if found is None:
            logger.debug("No fitting date for engineer %s within horizon", engineer.name)
            continue
        day, result = found
        recommendations.append(Recommendation(
            engineer_id=engineer.id,
            engineer_name=engineer.name,
            available_date=day,
            committed_jobs=result.details["current_jobs"],
            remaining_minutes=result.details["remaining_minutes"],
        ))

    recommendations.sort(key=lambda r: (r.available_date, r.committed_jobs, r.engineer_name))
    return recommendations[: limit or settings.top_recommendations_count]
