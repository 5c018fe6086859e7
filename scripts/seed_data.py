"""Seed the database with demo engineers, clients and orders."""

import asyncio
from datetime import time

from installflow.db.engine import async_session_factory, create_all
from installflow.db import crud


WEEKDAY_HOURS = [
    {"day_of_week": d, "start_time": time(8, 0), "end_time": time(17, 0), "is_available": True}
    for d in range(5)
]


async def seed():
    await create_all()

    async with async_session_factory() as db:
        existing = await crud.list_engineers(db, active_only=False)
        if any(e.name == "Sam Carter" for e in existing):
            print("Demo data already exists, skipping seed.")
            return

        for name, region in (("Sam Carter", "North"), ("Priya Shah", "South")):
            eng = await crud.create_engineer(db, name, f"{name.split()[0].lower()}@example.com", region=region)
            await crud.set_working_hours(db, eng, WEEKDAY_HOURS)
            print(f"Created engineer: {eng.name} (id: {eng.id})")

        client = await crud.create_client(db, "Alex Morgan", "alex@example.com", "+447700900123")
        print(f"Created client: {client.full_name} (id: {client.id})")

        for number, hours, job_type in (
            ("ORD-1001", 3.0, "installation"),
            ("ORD-1002", None, "installation"),
            ("ORD-1003", 1.5, "service_call"),
        ):
            order = await crud.create_order(db, number, client.id, hours, job_type)
            print(f"Created order: {order.order_number} (id: {order.id})")

    print("\nSeed complete. Start the server with: uvicorn installflow.main:app --reload")


if __name__ == "__main__":
    asyncio.run(seed())
