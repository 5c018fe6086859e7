"""CRUD and aggregate queries for the scheduling data store.

Plain entity creators commit, like any admin form would. Writes that are
part of a larger scheduling step (offers, status moves, ledger bumps,
activity rows) only flush; the calling service commits once so the step
lands atomically.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from installflow.models import (
    Client, Engineer, EngineerWorkingHours, Order, JobOffer, BlockedDate,
    OrderActivity, EngineerDayLedger, ChargerDispatch,
)

# Statuses whose engineer/date fields represent a firm commitment of the day.
COMMITTED_STATUSES = ("date_accepted", "scheduled", "in_progress", "completed")


# ── Client ────────────────────────────────────────────────

async def create_client(db: AsyncSession, full_name: str, email: str = "", phone: str = "") -> Client:
    client = Client(full_name=full_name, email=email, phone=phone)
    db.add(client)
    await db.commit()
    await db.refresh(client)
    return client


async def get_client(db: AsyncSession, client_id: str) -> Client | None:
    return await db.get(Client, client_id)


async def list_clients(db: AsyncSession) -> list[Client]:
    result = await db.execute(select(Client).order_by(Client.full_name))
    return list(result.scalars().all())


# ── Engineer ──────────────────────────────────────────────

async def create_engineer(
    db: AsyncSession, name: str, email: str = "", phone: str = "",
    region: str = "", max_jobs_per_day: int | None = None,
) -> Engineer:
    eng = Engineer(
        name=name, email=email, phone=phone, region=region,
        max_jobs_per_day=max_jobs_per_day,
    )
    db.add(eng)
    await db.commit()
    await db.refresh(eng, ["working_hours"])
    return eng


async def get_engineer(db: AsyncSession, engineer_id: str) -> Engineer | None:
    return await db.get(Engineer, engineer_id)


async def list_engineers(db: AsyncSession, active_only: bool = True) -> list[Engineer]:
    query = select(Engineer).order_by(Engineer.name)
    if active_only:
        query = query.where(Engineer.is_active == True)
    result = await db.execute(query)
    return list(result.scalars().all())


async def update_engineer(db: AsyncSession, engineer: Engineer, **kwargs) -> Engineer:
    for k, v in kwargs.items():
        setattr(engineer, k, v)
    await db.commit()
    await db.refresh(engineer, ["working_hours"])
    return engineer


async def set_working_hours(
    db: AsyncSession, engineer: Engineer, entries: list[dict],
) -> Engineer:
    """Replace the engineer's weekly schedule.

    Each entry: day_of_week, start_time, end_time, is_available.
    """
    await db.execute(
        delete(EngineerWorkingHours).where(EngineerWorkingHours.engineer_id == engineer.id)
    )
    await db.flush()
    for entry in entries:
        db.add(EngineerWorkingHours(
            engineer_id=engineer.id,
            day_of_week=entry["day_of_week"],
            start_time=entry["start_time"],
            end_time=entry["end_time"],
            is_available=entry.get("is_available", True),
        ))
    await db.commit()
    await db.refresh(engineer, ["working_hours"])
    return engineer


async def get_working_hours(db: AsyncSession, engineer_id: str) -> list[EngineerWorkingHours]:
    result = await db.execute(
        select(EngineerWorkingHours)
        .where(EngineerWorkingHours.engineer_id == engineer_id)
        .order_by(EngineerWorkingHours.day_of_week)
    )
    return list(result.scalars().all())


# ── Order ─────────────────────────────────────────────────

async def create_order(
    db: AsyncSession, order_number: str, client_id: str,
    estimated_duration_hours: float | None = None, job_type: str = "installation",
) -> Order:
    order = Order(
        order_number=order_number, client_id=client_id,
        estimated_duration_hours=estimated_duration_hours, job_type=job_type,
    )
    db.add(order)
    await db.commit()
    await db.refresh(order)
    return order


async def get_order(db: AsyncSession, order_id: str) -> Order | None:
    return await db.get(Order, order_id)


async def list_orders(db: AsyncSession, status: str | None = None) -> list[Order]:
    query = select(Order).order_by(Order.created_at)
    if status:
        query = query.where(Order.status_enhanced == status)
    result = await db.execute(query)
    return list(result.scalars().all())


async def compare_and_set_order(
    db: AsyncSession, order_id: str, expected_status: str, values: dict,
) -> bool:
    """Write values only if the order still has expected_status. Flushes, no commit."""
    values = {**values, "updated_at": datetime.now(timezone.utc)}
    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status_enhanced == expected_status)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


async def count_orders_by_status(db: AsyncSession) -> dict[str, int]:
    result = await db.execute(
        select(Order.status_enhanced, func.count(Order.id)).group_by(Order.status_enhanced)
    )
    return {status: count for status, count in result.all()}


async def count_scheduled_on(db: AsyncSession, day: date) -> int:
    result = await db.execute(
        select(func.count(Order.id)).where(
            Order.status_enhanced == "scheduled",
            Order.scheduled_install_date == day,
        )
    )
    return result.scalar_one()


async def list_orders_with_install_dates(
    db: AsyncSession,
    date_from: date | None = None,
    date_to: date | None = None,
    engineer_id: str | None = None,
) -> list[Order]:
    query = (
        select(Order)
        .where(Order.scheduled_install_date.is_not(None))
        .order_by(Order.scheduled_install_date)
    )
    if date_from:
        query = query.where(Order.scheduled_install_date >= date_from)
    if date_to:
        query = query.where(Order.scheduled_install_date <= date_to)
    if engineer_id:
        query = query.where(Order.engineer_id == engineer_id)
    result = await db.execute(query)
    return list(result.scalars().all())


# ── JobOffer ──────────────────────────────────────────────

async def add_job_offer(
    db: AsyncSession, order_id: str, engineer_id: str, offered_date: date,
    time_window: str | None, expires_at: datetime, client_token: str,
    delivery_channel: str, delivery_details: dict | None = None,
) -> JobOffer:
    """Stage a new pending offer. Flushes, no commit."""
    offer = JobOffer(
        order_id=order_id, engineer_id=engineer_id, offered_date=offered_date,
        time_window=time_window, expires_at=expires_at, client_token=client_token,
        delivery_channel=delivery_channel, delivery_details=delivery_details or {},
    )
    db.add(offer)
    await db.flush()
    return offer


async def get_offer(db: AsyncSession, offer_id: str) -> JobOffer | None:
    return await db.get(JobOffer, offer_id)


async def get_offer_by_token(db: AsyncSession, token: str) -> JobOffer | None:
    result = await db.execute(select(JobOffer).where(JobOffer.client_token == token))
    return result.scalars().first()


async def list_offers_for_order(db: AsyncSession, order_id: str) -> list[JobOffer]:
    result = await db.execute(
        select(JobOffer).where(JobOffer.order_id == order_id).order_by(JobOffer.created_at)
    )
    return list(result.scalars().all())


async def list_pending_offers_for_order(db: AsyncSession, order_id: str) -> list[JobOffer]:
    result = await db.execute(
        select(JobOffer).where(JobOffer.order_id == order_id, JobOffer.status == "pending")
    )
    return list(result.scalars().all())


async def get_stale_pending_offers(db: AsyncSession, now: datetime) -> list[JobOffer]:
    """Pending offers whose expiry instant is strictly before now."""
    result = await db.execute(
        select(JobOffer).where(JobOffer.status == "pending", JobOffer.expires_at < now)
    )
    return list(result.scalars().all())


async def compare_and_set_offer(
    db: AsyncSession, offer_id: str, expected_status: str, values: dict,
) -> bool:
    """Resolve an offer only if nobody else resolved it first. Flushes, no commit."""
    result = await db.execute(
        update(JobOffer)
        .where(JobOffer.id == offer_id, JobOffer.status == expected_status)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


# ── Engineer-day commitments ─────────────────────────────

async def get_committed_durations(
    db: AsyncSession, engineer_id: str, day: date, now: datetime,
    exclude_order_id: str | None = None,
) -> tuple[list[float | None], list[float | None]]:
    """Durations (hours, None = unknown) committed for an engineer-day.

    Returns (confirmed, soft_holds): confirmed orders holding the day, and
    pending unexpired offers for the same engineer and date.
    """
    confirmed_q = select(Order.estimated_duration_hours).where(
        Order.engineer_id == engineer_id,
        Order.scheduled_install_date == day,
        Order.status_enhanced.in_(COMMITTED_STATUSES),
    )
    holds_q = (
        select(Order.estimated_duration_hours)
        .join(JobOffer, JobOffer.order_id == Order.id)
        .where(
            JobOffer.engineer_id == engineer_id,
            JobOffer.offered_date == day,
            JobOffer.status == "pending",
            JobOffer.expires_at >= now,
        )
    )
    if exclude_order_id:
        confirmed_q = confirmed_q.where(Order.id != exclude_order_id)
        holds_q = holds_q.where(JobOffer.order_id != exclude_order_id)

    confirmed = list((await db.execute(confirmed_q)).scalars().all())
    holds = list((await db.execute(holds_q)).scalars().all())
    return confirmed, holds


async def ensure_ledger(db: AsyncSession, engineer_id: str, day: date) -> int:
    """Return the current reservation version for an engineer-day, creating it at 0.

    Commits the counter row on creation; call before staging other writes.
    """
    query = select(EngineerDayLedger.version).where(
        EngineerDayLedger.engineer_id == engineer_id,
        EngineerDayLedger.day == day,
    )
    version = (await db.execute(query)).scalar_one_or_none()
    if version is not None:
        return version

    db.add(EngineerDayLedger(engineer_id=engineer_id, day=day, version=0))
    try:
        await db.commit()
    except IntegrityError:
        # Another writer created it between our read and insert
        await db.rollback()
    return (await db.execute(query)).scalar_one()


async def bump_ledger(db: AsyncSession, engineer_id: str, day: date, seen_version: int) -> bool:
    """Compare-and-swap the engineer-day version. Flushes, no commit."""
    result = await db.execute(
        update(EngineerDayLedger)
        .where(
            EngineerDayLedger.engineer_id == engineer_id,
            EngineerDayLedger.day == day,
            EngineerDayLedger.version == seen_version,
        )
        .values(version=seen_version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# ── BlockedDate ───────────────────────────────────────────

async def create_blocked_date(
    db: AsyncSession, scope: str, start_date: date, end_date: date,
    reason: str = "", client_id: str | None = None, engineer_id: str | None = None,
    commit: bool = True,
) -> BlockedDate:
    block = BlockedDate(
        scope=scope, client_id=client_id, engineer_id=engineer_id,
        start_date=start_date, end_date=end_date, reason=reason,
    )
    db.add(block)
    if commit:
        await db.commit()
        await db.refresh(block)
    else:
        await db.flush()
    return block


async def get_blocked_date(db: AsyncSession, block_id: str) -> BlockedDate | None:
    return await db.get(BlockedDate, block_id)


async def delete_blocked_date(db: AsyncSession, block: BlockedDate) -> None:
    await db.delete(block)
    await db.commit()


async def list_blocked_dates(
    db: AsyncSession, client_id: str | None = None, engineer_id: str | None = None,
) -> list[BlockedDate]:
    query = select(BlockedDate).order_by(BlockedDate.start_date)
    if client_id:
        query = query.where(BlockedDate.scope == "client", BlockedDate.client_id == client_id)
    if engineer_id:
        query = query.where(BlockedDate.scope == "engineer", BlockedDate.engineer_id == engineer_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def find_blocks_covering(
    db: AsyncSession, day: date, client_id: str | None = None, engineer_id: str | None = None,
) -> list[BlockedDate]:
    """Blocks whose [start_date, end_date] range contains day."""
    conditions = []
    if client_id:
        conditions.append((BlockedDate.scope == "client") & (BlockedDate.client_id == client_id))
    if engineer_id:
        conditions.append((BlockedDate.scope == "engineer") & (BlockedDate.engineer_id == engineer_id))
    if not conditions:
        return []
    result = await db.execute(
        select(BlockedDate).where(
            or_(*conditions),
            BlockedDate.start_date <= day,
            BlockedDate.end_date >= day,
        )
    )
    return list(result.scalars().all())


# ── OrderActivity ─────────────────────────────────────────

async def add_activity(
    db: AsyncSession, order_id: str, activity_type: str,
    description: str = "", details: dict | None = None,
) -> OrderActivity:
    """Stage an audit entry. Flushes, no commit."""
    entry = OrderActivity(
        order_id=order_id, activity_type=activity_type,
        description=description, details=details or {},
    )
    db.add(entry)
    await db.flush()
    return entry


async def list_activity(db: AsyncSession, order_id: str) -> list[OrderActivity]:
    result = await db.execute(
        select(OrderActivity)
        .where(OrderActivity.order_id == order_id)
        .order_by(OrderActivity.created_at)
    )
    return list(result.scalars().all())


# ── ChargerDispatch ───────────────────────────────────────

async def get_dispatch_for_order(db: AsyncSession, order_id: str) -> ChargerDispatch | None:
    result = await db.execute(select(ChargerDispatch).where(ChargerDispatch.order_id == order_id))
    return result.scalars().first()


async def upsert_dispatch(db: AsyncSession, order_id: str, **kwargs) -> ChargerDispatch:
    record = await get_dispatch_for_order(db, order_id)
    if record is None:
        record = ChargerDispatch(order_id=order_id)
        db.add(record)
    for k, v in kwargs.items():
        setattr(record, k, v)
    await db.commit()
    await db.refresh(record)
    return record


async def list_dispatches_for_orders(db: AsyncSession, order_ids: list[str]) -> dict[str, ChargerDispatch]:
    if not order_ids:
        return {}
    result = await db.execute(select(ChargerDispatch).where(ChargerDispatch.order_id.in_(order_ids)))
    return {d.order_id: d for d in result.scalars().all()}
