from datetime import date, time

import pytest
from pydantic import ValidationError

from installflow.schemas import (
    DateRange,
    EngineerCreate,
    OfferCreate,
    OfferResponse,
    OrderCreate,
    TimeOffCreate,
    WorkingHoursEntry,
    WSMessage,
)


def test_order_create_defaults():
    order = OrderCreate(order_number="ORD-1", client_id="01HZZZZZZZZZZZZZZZZZZZZZZZ")
    assert order.job_type == "installation"
    assert order.estimated_duration_hours is None


def test_order_create_rejects_unknown_job_type():
    with pytest.raises(ValidationError):
        OrderCreate(order_number="ORD-1", client_id="x", job_type="repaint")


def test_working_hours_end_must_follow_start():
    with pytest.raises(ValidationError):
        WorkingHoursEntry(day_of_week=0, start_time=time(17, 0), end_time=time(8, 0))


def test_working_hours_day_range():
    with pytest.raises(ValidationError):
        WorkingHoursEntry(day_of_week=7, start_time=time(8, 0), end_time=time(17, 0))


def test_unavailable_day_may_have_empty_window():
    entry = WorkingHoursEntry(day_of_week=6, start_time=time(0, 0), end_time=time(0, 0), is_available=False)
    assert entry.is_available is False


def test_engineer_create_with_hours():
    eng = EngineerCreate(
        name="Sam",
        working_hours=[{"day_of_week": 0, "start_time": "08:00", "end_time": "17:00"}],
    )
    assert eng.working_hours[0].start_time == time(8, 0)


def test_offer_create_channel_is_checked():
    offer = OfferCreate(engineer_id="e", offered_date="2026-03-09")
    assert offer.delivery_channel == "email"
    assert offer.offered_date == date(2026, 3, 9)
    with pytest.raises(ValidationError):
        OfferCreate(engineer_id="e", offered_date="2026-03-09", delivery_channel="fax")


def test_offer_response_with_ranges():
    resp = OfferResponse(
        response="reject",
        rejection_reason="Away",
        block_date_ranges=[{"start_date": "2026-03-10", "end_date": "2026-03-12"}],
    )
    assert resp.block_date_ranges[0] == DateRange(start_date=date(2026, 3, 10), end_date=date(2026, 3, 12))


def test_inverted_ranges_are_invalid():
    with pytest.raises(ValidationError):
        DateRange(start_date="2026-03-12", end_date="2026-03-10")
    with pytest.raises(ValidationError):
        TimeOffCreate(start_date="2026-03-12", end_date="2026-03-10")


def test_ws_message_construction():
    msg = WSMessage(event="invalidate", table="orders")
    assert msg.model_dump() == {"event": "invalidate", "table": "orders"}
