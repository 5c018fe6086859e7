from datetime import time

from installflow.db import crud
from installflow.services import availability
from tests.factories import MONDAY, SATURDAY, TUESDAY, make_client, make_engineer


async def test_working_window_follows_the_weekday(db):
    eng = await make_engineer(db)

    window = await availability.get_working_window(db, eng.id, MONDAY)

    assert (window.start_minute, window.end_minute) == (480, 1020)
    assert window.minutes == 540
    assert await availability.get_working_window(db, eng.id, SATURDAY) is None


async def test_unavailable_day_has_no_window(db):
    eng = await make_engineer(db, hours=[
        {"day_of_week": 0, "start_time": time(8, 0), "end_time": time(17, 0), "is_available": False},
        {"day_of_week": 1, "start_time": time(12, 0), "end_time": time(12, 0)},
    ])

    assert await availability.get_working_window(db, eng.id, MONDAY) is None
    assert await availability.get_working_window(db, eng.id, TUESDAY) is None


async def test_single_date_block(db):
    client = await make_client(db)
    await crud.create_blocked_date(db, "client", MONDAY, MONDAY, "Dentist", client_id=client.id)

    assert await availability.is_date_blocked(db, client.id, MONDAY)
    assert not await availability.is_date_blocked(db, client.id, TUESDAY)
    assert await availability.client_block_reason(db, client.id, MONDAY) == "Dentist"


async def test_range_block_covers_both_ends(db):
    client = await make_client(db)
    await crud.create_blocked_date(db, "client", MONDAY, SATURDAY, client_id=client.id)

    assert await availability.is_date_blocked(db, client.id, MONDAY)
    assert await availability.is_date_blocked(db, client.id, SATURDAY)
    assert not await availability.is_date_blocked(db, client.id, MONDAY.replace(day=8))
    assert await availability.client_block_reason(db, client.id, TUESDAY) == "Client unavailable"


async def test_engineer_time_off_is_not_a_client_block(db):
    eng = await make_engineer(db)
    client = await make_client(db)
    await crud.create_blocked_date(db, "engineer", MONDAY, MONDAY, "Holiday", engineer_id=eng.id)

    assert await availability.is_engineer_blocked(db, eng.id, MONDAY)
    assert not await availability.is_date_blocked(db, client.id, MONDAY)
