"""Engineer working-hour windows and calendar blocks. Pure reads."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from installflow.db import crud


@dataclass(frozen=True)
class WorkingWindow:
    start_minute: int
    end_minute: int

    @property
    def minutes(self) -> int:
        return self.end_minute - self.start_minute


def _to_minute(value: time) -> int:
    return value.hour * 60 + value.minute


def working_window_for(hours: Iterable, day: date) -> WorkingWindow | None:
    """Window for the weekday of `day`, or None when the engineer is off."""
    weekday = day.weekday()
    for entry in hours:
        if entry.day_of_week != weekday:
            continue
        if not entry.is_available:
            return None
        window = WorkingWindow(_to_minute(entry.start_time), _to_minute(entry.end_time))
        return window if window.minutes > 0 else None
    return None


async def get_working_window(db: AsyncSession, engineer_id: str, day: date) -> WorkingWindow | None:
    hours = await crud.get_working_hours(db, engineer_id)
    return working_window_for(hours, day)


async def is_date_blocked(db: AsyncSession, client_id: str, day: date) -> bool:
    return bool(await crud.find_blocks_covering(db, day, client_id=client_id))


async def is_engineer_blocked(db: AsyncSession, engineer_id: str, day: date) -> bool:
    return bool(await crud.find_blocks_covering(db, day, engineer_id=engineer_id))


async def client_block_reason(db: AsyncSession, client_id: str, day: date) -> str | None:
    """Reason text of the first client block covering day, or None."""
    blocks = await crud.find_blocks_covering(db, day, client_id=client_id)
    if not blocks:
        return None
    return blocks[0].reason or "Client unavailable"
