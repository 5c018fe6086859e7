from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from installflow.db import crud
from installflow.db.engine import get_db
from installflow.schemas import (
    BlockedDateRead, EngineerCreate, EngineerRead, EngineerUpdate, TimeOffCreate, WorkingHoursEntry,
)
from installflow.services.ws_manager import ws_manager

router = APIRouter(prefix="/api/engineers", tags=["engineers"])


async def _get_engineer_or_404(db: AsyncSession, engineer_id: str):
    eng = await crud.get_engineer(db, engineer_id)
    if not eng:
        raise HTTPException(404, "Engineer not found")
    return eng


@router.post("", response_model=EngineerRead, status_code=201)
async def create_engineer(body: EngineerCreate, db: AsyncSession = Depends(get_db)):
    eng = await crud.create_engineer(
        db, body.name, body.email, body.phone, body.region, body.max_jobs_per_day,
    )
    if body.working_hours:
        eng = await crud.set_working_hours(db, eng, [e.model_dump() for e in body.working_hours])
    return eng


@router.get("", response_model=list[EngineerRead])
async def list_engineers(active_only: bool = True, db: AsyncSession = Depends(get_db)):
    return await crud.list_engineers(db, active_only=active_only)


@router.get("/{engineer_id}", response_model=EngineerRead)
async def get_engineer(engineer_id: str, db: AsyncSession = Depends(get_db)):
    return await _get_engineer_or_404(db, engineer_id)


@router.patch("/{engineer_id}", response_model=EngineerRead)
async def update_engineer(engineer_id: str, body: EngineerUpdate, db: AsyncSession = Depends(get_db)):
    eng = await _get_engineer_or_404(db, engineer_id)
    updates = body.model_dump(exclude_unset=True)
    if updates:
        eng = await crud.update_engineer(db, eng, **updates)
    return eng


@router.put("/{engineer_id}/working-hours", response_model=EngineerRead)
async def set_working_hours(
    engineer_id: str, body: list[WorkingHoursEntry], db: AsyncSession = Depends(get_db),
):
    eng = await _get_engineer_or_404(db, engineer_id)
    days = [e.day_of_week for e in body]
    if len(days) != len(set(days)):
        raise HTTPException(400, "Each day_of_week may appear only once")
    return await crud.set_working_hours(db, eng, [e.model_dump() for e in body])


@router.get("/{engineer_id}/time-off", response_model=list[BlockedDateRead])
async def list_time_off(engineer_id: str, db: AsyncSession = Depends(get_db)):
    await _get_engineer_or_404(db, engineer_id)
    return await crud.list_blocked_dates(db, engineer_id=engineer_id)


@router.post("/{engineer_id}/time-off", response_model=BlockedDateRead, status_code=201)
async def add_time_off(engineer_id: str, body: TimeOffCreate, db: AsyncSession = Depends(get_db)):
    await _get_engineer_or_404(db, engineer_id)
    block = await crud.create_blocked_date(
        db, "engineer", body.start_date, body.end_date or body.start_date,
        reason=body.reason, engineer_id=engineer_id,
    )
    await ws_manager.publish_invalidation("blocked_dates")
    return block


@router.delete("/{engineer_id}/time-off/{block_id}", status_code=204)
async def delete_time_off(engineer_id: str, block_id: str, db: AsyncSession = Depends(get_db)):
    block = await crud.get_blocked_date(db, block_id)
    if not block or block.scope != "engineer" or block.engineer_id != engineer_id:
        raise HTTPException(404, "Time off not found")
    await crud.delete_blocked_date(db, block)
    await ws_manager.publish_invalidation("blocked_dates")
