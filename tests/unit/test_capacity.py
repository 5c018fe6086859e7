from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select, update
from ulid import ULID

from installflow.db import crud
from installflow.errors import CapacityUnavailableError, InvalidInputError, NotFoundError, OfferConflictError
from installflow.models import EngineerDayLedger
from installflow.services import capacity
from installflow.services.capacity import CapacityReason, VirtualJob
from tests.factories import (
    MONDAY, NOW, SATURDAY, TUESDAY, book, make_client, make_engineer, make_order,
)


async def _fit(db, settings, engineer_id, minutes, day=MONDAY, **kwargs):
    return await capacity.can_fit(db, engineer_id, day, minutes, settings=settings.scheduling, now=NOW, **kwargs)


async def _with_two_booked_jobs(db):
    eng = await make_engineer(db)
    client = await make_client(db)
    for _ in range(2):
        await book(db, await make_order(db, client, hours=3.0), eng, MONDAY)
    return eng, client


async def test_over_lenient_day_reports_overage(db, settings):
    eng, _ = await _with_two_booked_jobs(db)

    result = await _fit(db, settings, eng.id, 200)

    assert result.can_fit is False
    assert result.reason == CapacityReason.EXCEEDS_WORKING_HOURS
    assert result.message == "Would exceed working hours by 0h 5m"
    assert result.details["current_minutes"] == 360
    assert result.details["total_minutes"] == 560
    assert result.details["max_allowed_minutes"] == 555


async def test_lenience_boundary_is_inclusive(db, settings):
    eng, _ = await _with_two_booked_jobs(db)

    at_limit = await _fit(db, settings, eng.id, 195)
    over = await _fit(db, settings, eng.id, 196)

    assert at_limit.can_fit is True
    assert at_limit.details["remaining_minutes"] == 0
    assert over.can_fit is False
    assert over.message == "Would exceed working hours by 0h 1m"


async def test_job_count_boundary_with_virtual_jobs(db, settings):
    eng = await make_engineer(db)
    client = await make_client(db)
    for _ in range(2):
        await book(db, await make_order(db, client, hours=1.0), eng, MONDAY)

    third = await _fit(db, settings, eng.id, 60)
    fourth = await _fit(db, settings, eng.id, 60, virtual_jobs=[VirtualJob("v1", 1.0)])

    assert third.can_fit is True
    assert third.details["remaining_jobs"] == 0
    assert fourth.can_fit is False
    assert fourth.reason == CapacityReason.EXCEEDS_JOB_LIMIT
    assert fourth.message == "Would exceed daily job limit (4/3 jobs)"


async def test_engineer_job_limit_overrides_default(db, settings):
    eng = await make_engineer(db, max_jobs_per_day=1)
    client = await make_client(db)
    await book(db, await make_order(db, client, hours=1.0), eng, MONDAY)

    result = await _fit(db, settings, eng.id, 30)

    assert result.reason == CapacityReason.EXCEEDS_JOB_LIMIT
    assert result.details["max_jobs"] == 1


async def test_adding_minutes_never_turns_a_no_into_a_yes(db, settings):
    eng, _ = await _with_two_booked_jobs(db)

    answers = [(await _fit(db, settings, eng.id, m)).can_fit for m in range(0, 400, 15)]

    first_no = answers.index(False)
    assert all(a is False for a in answers[first_no:])


async def test_unknown_duration_uses_default(db, settings):
    eng = await make_engineer(db)
    client = await make_client(db)
    await book(db, await make_order(db, client, hours=None), eng, MONDAY)

    result = await _fit(db, settings, eng.id, 0)

    assert result.details["current_minutes"] == 180


async def test_zero_duration_job_still_counts_as_a_job(db, settings):
    eng = await make_engineer(db)
    client = await make_client(db)
    await book(db, await make_order(db, client, hours=0.0), eng, MONDAY)

    result = await _fit(db, settings, eng.id, 60)

    assert result.details["current_minutes"] == 0
    assert result.details["current_jobs"] == 1


async def test_pending_offer_holds_capacity_until_expiry(db, settings):
    eng = await make_engineer(db)
    client = await make_client(db)
    held = await make_order(db, client, hours=3.0)
    await crud.add_job_offer(db, held.id, eng.id, MONDAY, None, NOW + timedelta(hours=1), "tok-live", "email")
    stale = await make_order(db, client, hours=2.0)
    await crud.add_job_offer(db, stale.id, eng.id, MONDAY, None, NOW - timedelta(hours=1), "tok-stale", "email")
    await db.commit()

    result = await _fit(db, settings, eng.id, 60)

    assert result.details["soft_hold_minutes"] == 180
    assert result.details["current_jobs"] == 1


async def test_cancelled_orders_do_not_hold_the_day(db, settings):
    eng = await make_engineer(db)
    client = await make_client(db)
    order = await make_order(db, client)
    await book(db, order, eng, MONDAY)
    await crud.compare_and_set_order(db, order.id, "scheduled", {"status_enhanced": "cancelled"})
    await db.commit()

    result = await _fit(db, settings, eng.id, 60)

    assert result.details["current_jobs"] == 0


async def test_client_blocked_date(db, settings):
    eng = await make_engineer(db)
    client = await make_client(db)
    await crud.create_blocked_date(db, "client", MONDAY, TUESDAY, "Client unavailable: away", client_id=client.id)

    result = await _fit(db, settings, eng.id, 60, client_id=client.id)

    assert result.can_fit is False
    assert result.reason == CapacityReason.DATE_BLOCKED
    assert result.message == "Date blocked: Client unavailable: away"


async def test_engineer_not_working_that_weekday(db, settings):
    eng = await make_engineer(db)

    result = await _fit(db, settings, eng.id, 60, day=SATURDAY)

    assert result.reason == CapacityReason.ENGINEER_UNAVAILABLE
    assert result.message == "Engineer not available on this day of the week"


async def test_engineer_time_off(db, settings):
    eng = await make_engineer(db)
    await crud.create_blocked_date(db, "engineer", MONDAY, MONDAY, "Holiday", engineer_id=eng.id)

    assert (await _fit(db, settings, eng.id, 60)).reason == CapacityReason.ENGINEER_TIME_OFF
    assert (await _fit(db, settings, eng.id, 60, day=TUESDAY)).can_fit is True


async def test_inactive_engineer(db, settings):
    eng = await make_engineer(db)
    await crud.update_engineer(db, eng, is_active=False)

    result = await _fit(db, settings, eng.id, 60)

    assert result.reason == CapacityReason.ENGINEER_UNAVAILABLE


async def test_malformed_input_raises(db, settings):
    eng = await make_engineer(db)
    with pytest.raises(InvalidInputError):
        await _fit(db, settings, "not-an-id", 60)
    with pytest.raises(InvalidInputError):
        await _fit(db, settings, eng.id, -1)
    with pytest.raises(InvalidInputError):
        await capacity.can_fit(db, eng.id, "next monday", 60, settings=settings.scheduling, now=NOW)


async def test_unknown_engineer_raises_not_found(db, settings):
    with pytest.raises(NotFoundError):
        await _fit(db, settings, str(ULID()), 60)


async def test_preflight_does_not_count_the_order_itself(db, settings):
    eng = await make_engineer(db)
    client = await make_client(db)
    order = await make_order(db, client, hours=3.0)
    await book(db, order, eng, MONDAY)

    result = await capacity.preflight(db, order.id, eng.id, MONDAY, settings=settings.scheduling, now=NOW)

    assert result.details["current_minutes"] == 0
    assert result.details["job_minutes"] == 180


async def test_reservation_retries_after_concurrent_writer(db, settings):
    eng_id = (await make_engineer(db)).id
    attempts = []

    async def check():
        return await capacity.can_fit(db, eng_id, MONDAY, 60, settings=settings.scheduling, now=NOW)

    async def apply():
        attempts.append(len(attempts) + 1)
        if len(attempts) == 1:
            await db.execute(
                update(EngineerDayLedger)
                .where(EngineerDayLedger.engineer_id == eng_id, EngineerDayLedger.day == MONDAY)
                .values(version=EngineerDayLedger.version + 1)
            )
        return "reserved"

    assert await capacity.reserve_and_apply(db, eng_id, MONDAY, check, apply) == "reserved"
    assert attempts == [1, 2]
    version = (await db.execute(
        select(EngineerDayLedger.version).where(EngineerDayLedger.engineer_id == eng_id)
    )).scalar_one()
    assert version == 1


async def test_reservation_gives_up_after_retries(db, settings):
    eng_id = (await make_engineer(db)).id

    async def check():
        return await capacity.can_fit(db, eng_id, MONDAY, 60, settings=settings.scheduling, now=NOW)

    async def apply():
        await db.execute(
            update(EngineerDayLedger)
            .where(EngineerDayLedger.engineer_id == eng_id)
            .values(version=EngineerDayLedger.version + 1)
        )

    with pytest.raises(OfferConflictError):
        await capacity.reserve_and_apply(db, eng_id, MONDAY, check, apply, retries=2)


async def test_reservation_refuses_when_full(db, settings):
    eng, _ = await _with_two_booked_jobs(db)
    eng_id = eng.id
    applied = []

    async def check():
        return await capacity.can_fit(db, eng_id, MONDAY, 240, settings=settings.scheduling, now=NOW)

    async def apply():
        applied.append(True)

    with pytest.raises(CapacityUnavailableError) as exc:
        await capacity.reserve_and_apply(db, eng_id, MONDAY, check, apply)
    assert exc.value.result.reason == CapacityReason.EXCEEDS_WORKING_HOURS
    assert applied == []


async def test_recommendations_rank_by_earliest_fitting_date(db, settings):
    busy = await make_engineer(db, "Alice Busy")
    free = await make_engineer(db, "Bob Free")
    retired = await make_engineer(db, "Carl Gone")
    await crud.update_engineer(db, retired, is_active=False)
    client = await make_client(db)
    # NOW + 48h lands on Wednesday 4 March
    wednesday = NOW.date() + timedelta(days=2)
    for _ in range(3):
        await book(db, await make_order(db, client, hours=2.0), busy, wednesday)
    order = await make_order(db, client)

    recs = await capacity.recommend_engineers(db, order.id, settings=settings.scheduling, now=NOW)

    assert [r.engineer_name for r in recs] == ["Bob Free", "Alice Busy"]
    assert recs[0].available_date == wednesday
    assert recs[1].available_date == wednesday + timedelta(days=1)


async def test_next_available_date_skips_weekends(db, settings):
    eng = await make_engineer(db)
    client = await make_client(db)
    order = await make_order(db, client)
    friday = MONDAY + timedelta(days=4)
    await crud.create_blocked_date(db, "engineer", friday, friday, "Training", engineer_id=eng.id)

    day, result = await capacity.find_next_available_date(
        db, eng.id, order, friday, settings=settings.scheduling, now=NOW,
    )

    assert day == MONDAY + timedelta(days=7)
    assert result.can_fit is True
