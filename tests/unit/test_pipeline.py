from __future__ import annotations

from datetime import timedelta

import pytest

from installflow.db import crud
from installflow.errors import InvalidInputError
from installflow.services import capacity, pipeline
from installflow.services.capacity import CapacityReason
from installflow.services.pipeline import OrderStatus, TRANSITIONS, can_transition
from tests.factories import MONDAY, NOW, book, make_client, make_engineer, make_order


def test_every_status_has_a_transition_row():
    assert set(TRANSITIONS) == set(OrderStatus)


def test_completed_is_terminal():
    assert TRANSITIONS[OrderStatus.COMPLETED] == frozenset()


@pytest.mark.parametrize("current,target,allowed", [
    ("needs_scheduling", "date_offered", True),
    ("needs_scheduling", "scheduled", True),
    ("needs_scheduling", "completed", False),
    ("date_offered", "date_accepted", True),
    ("date_accepted", "scheduled", True),
    ("scheduled", "in_progress", True),
    ("in_progress", "completed", True),
    ("in_progress", "needs_scheduling", False),
    ("scheduled", "on_hold_parts_docs", True),
    ("on_hold_parts_docs", "needs_scheduling", True),
    ("cancelled", "scheduled", False),
    ("completed", "cancelled", False),
])
def test_can_transition(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_plan_rejects_booking_without_engineer():
    class Bare:
        engineer_id = None
        scheduled_install_date = None

    _, error = pipeline.plan_transition(Bare(), OrderStatus.SCHEDULED)
    assert error == "scheduled requires an engineer and an install date"


async def _scheduled_order(db):
    eng = await make_engineer(db)
    client = await make_client(db)
    order = await make_order(db, client)
    await book(db, order, eng, MONDAY)
    return order, eng


async def test_booking_sets_engineer_and_date(db):
    order, eng = await _scheduled_order(db)

    fresh = await crud.get_order(db, order.id)
    assert fresh.status_enhanced == "scheduled"
    assert fresh.engineer_id == eng.id
    assert fresh.scheduled_install_date == MONDAY


async def test_back_to_needs_scheduling_clears_engineer_and_date(db):
    order, _ = await _scheduled_order(db)

    result = await pipeline.transition_order(db, order.id, "needs_scheduling", now=NOW)

    assert result.ok
    fresh = await crud.get_order(db, order.id)
    assert fresh.engineer_id is None
    assert fresh.scheduled_install_date is None
    assert fresh.time_window is None


async def test_side_exit_keeps_fields(db):
    order, eng = await _scheduled_order(db)

    await pipeline.transition_order(db, order.id, "on_hold_parts_docs", now=NOW)

    fresh = await crud.get_order(db, order.id)
    assert fresh.status_enhanced == "on_hold_parts_docs"
    assert fresh.engineer_id == eng.id
    assert fresh.scheduled_install_date == MONDAY


async def test_illegal_transition_is_a_result_not_an_error(db):
    client = await make_client(db)
    order = await make_order(db, client)

    result = await pipeline.transition_order(db, order.id, "completed", now=NOW)

    assert result.ok is False
    assert result.reason == "Illegal transition needs_scheduling -> completed"
    assert (await crud.get_order(db, order.id)).status_enhanced == "needs_scheduling"


async def test_stale_expected_status_is_refused(db):
    order, _ = await _scheduled_order(db)

    result = await pipeline.transition_order(
        db, order.id, "in_progress", expected_status="needs_scheduling", now=NOW,
    )

    assert result.ok is False
    assert result.reason == "Order is scheduled, expected needs_scheduling"


async def test_compare_and_set_loses_to_an_earlier_write(db):
    order, _ = await _scheduled_order(db)
    assert await crud.compare_and_set_order(db, order.id, "scheduled", {"status_enhanced": "in_progress"})

    assert not await crud.compare_and_set_order(db, order.id, "scheduled", {"status_enhanced": "cancelled"})
    await db.commit()
    assert (await crud.get_order(db, order.id)).status_enhanced == "in_progress"


async def test_unknown_status_raises(db):
    client = await make_client(db)
    order = await make_order(db, client)
    with pytest.raises(InvalidInputError):
        await pipeline.transition_order(db, order.id, "shipped", now=NOW)


async def test_transition_writes_activity(db):
    order, eng = await _scheduled_order(db)

    entries = await crud.list_activity(db, order.id)

    assert entries[-1].activity_type == "status_changed"
    assert entries[-1].details["to"] == "scheduled"
    assert entries[-1].details["scheduled_install_date"] == MONDAY.isoformat()
    assert entries[-1].details["source"] == "booking"


async def test_leaving_date_offered_withdraws_pending_offer(db):
    eng = await make_engineer(db)
    client = await make_client(db)
    order = await make_order(db, client)
    offer = await crud.add_job_offer(db, order.id, eng.id, MONDAY, None, NOW + timedelta(hours=24), "tok", "email")
    await crud.compare_and_set_order(db, order.id, "needs_scheduling", {"status_enhanced": "date_offered"})
    await db.commit()

    result = await pipeline.transition_order(db, order.id, "needs_scheduling", now=NOW)

    assert result.ok
    await db.refresh(offer)
    assert offer.status == "expired"
    assert offer.expired_at is not None


async def test_capacity_checked_booking_refuses_a_full_day(db, settings):
    eng = await make_engineer(db)
    client = await make_client(db)
    for _ in range(3):
        await book(db, await make_order(db, client, hours=1.0), eng, MONDAY)
    order = await make_order(db, client, hours=1.0)

    result = await pipeline.book_order(
        db, order.id, eng.id, MONDAY, settings=settings.scheduling, now=NOW,
    )

    assert result.ok is False
    assert result.capacity.reason == CapacityReason.EXCEEDS_JOB_LIMIT
    assert (await crud.get_order(db, order.id)).status_enhanced == "needs_scheduling"


async def test_capacity_checked_booking_succeeds(db, settings):
    eng = await make_engineer(db)
    client = await make_client(db)
    order = await make_order(db, client)

    result = await pipeline.book_order(
        db, order.id, eng.id, MONDAY, settings=settings.scheduling, time_window="AM", now=NOW,
    )

    assert result.ok
    fresh = await crud.get_order(db, order.id)
    assert fresh.status_enhanced == "scheduled"
    assert fresh.time_window == "AM"


async def test_bucket_counts(db):
    order, _ = await _scheduled_order(db)
    client = await make_client(db, "Second Client")
    await make_order(db, client)

    counts = await pipeline.bucket_counts(db, MONDAY)

    assert counts["scheduled"] == 1
    assert counts["needs_scheduling"] == 1
    assert counts["scheduled_today"] == 1
    assert counts["completed"] == 0
    assert counts["ready_to_book"] == 0


async def _offered_order(db):
    eng = await make_engineer(db)
    client = await make_client(db)
    order = await make_order(db, client, hours=3.0)
    offer = await crud.add_job_offer(db, order.id, eng.id, MONDAY, None, NOW + timedelta(hours=24), "tok", "email")
    await crud.compare_and_set_order(db, order.id, "needs_scheduling", {"status_enhanced": "date_offered"})
    await db.commit()
    other = await make_order(db, client, hours=1.0)
    return order, offer, eng, other


async def test_manual_accept_withdraws_offer_and_counts_the_order_once(db, settings):
    order, offer, eng, other = await _offered_order(db)

    result = await pipeline.transition_order(
        db, order.id, "date_accepted", engineer_id=eng.id, scheduled_date=MONDAY, now=NOW,
    )

    assert result.ok
    await db.refresh(offer)
    assert offer.status == "expired"
    check = await capacity.preflight(db, other.id, eng.id, MONDAY, settings=settings.scheduling, now=NOW)
    assert check.details["current_jobs"] == 1
    assert check.details["soft_hold_minutes"] == 0


async def test_manual_reject_releases_the_held_day(db, settings):
    order, offer, eng, other = await _offered_order(db)

    result = await pipeline.transition_order(db, order.id, "date_rejected", now=NOW)

    assert result.ok
    await db.refresh(offer)
    assert offer.status == "expired"
    check = await capacity.preflight(db, other.id, eng.id, MONDAY, settings=settings.scheduling, now=NOW)
    assert check.details["current_jobs"] == 0
    types = [a.activity_type for a in await crud.list_activity(db, order.id)]
    assert "offer_withdrawn" in types
