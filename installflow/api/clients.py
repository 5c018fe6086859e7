from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from installflow.db import crud
from installflow.db.engine import get_db
from installflow.schemas import BlockedDateRead, ClientCreate, ClientRead
from installflow.services.ws_manager import ws_manager

router = APIRouter(prefix="/api/clients", tags=["clients"])


@router.post("", response_model=ClientRead, status_code=201)
async def create_client(body: ClientCreate, db: AsyncSession = Depends(get_db)):
    return await crud.create_client(db, body.full_name, body.email, body.phone)


@router.get("", response_model=list[ClientRead])
async def list_clients(db: AsyncSession = Depends(get_db)):
    return await crud.list_clients(db)


@router.get("/{client_id}", response_model=ClientRead)
async def get_client(client_id: str, db: AsyncSession = Depends(get_db)):
    client = await crud.get_client(db, client_id)
    if not client:
        raise HTTPException(404, "Client not found")
    return client


@router.get("/{client_id}/blocked-dates", response_model=list[BlockedDateRead])
async def list_client_blocked_dates(client_id: str, db: AsyncSession = Depends(get_db)):
    if not await crud.get_client(db, client_id):
        raise HTTPException(404, "Client not found")
    return await crud.list_blocked_dates(db, client_id=client_id)


@router.delete("/{client_id}/blocked-dates/{block_id}", status_code=204)
async def delete_client_blocked_date(client_id: str, block_id: str, db: AsyncSession = Depends(get_db)):
    block = await crud.get_blocked_date(db, block_id)
    if not block or block.scope != "client" or block.client_id != client_id:
        raise HTTPException(404, "Blocked date not found")
    await crud.delete_blocked_date(db, block)
    await ws_manager.publish_invalidation("blocked_dates")
