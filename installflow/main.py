"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from installflow.api.router import api_router
from installflow.db.engine import async_session_factory, create_all
from installflow.dependencies import get_settings_dep
from installflow.errors import SchedulingError
from installflow.services.notifications import build_router
from installflow.services.offers import OfferManager
from installflow.services.ws_manager import ws_manager

logger = logging.getLogger(__name__)


async def _offer_expiry_sweeper(interval: int):
    """Background task: expire pending offers whose deadline has passed."""
    settings = get_settings_dep()
    manager = OfferManager(settings, build_router(settings.notifications))
    while True:
        try:
            async with async_session_factory() as db:
                expired = await manager.expire_stale_offers(db)
            if expired:
                await ws_manager.publish_invalidation("orders", "job_offers")
        except Exception:
            logger.exception("Offer expiry sweep failed")
        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_all()

    settings = get_settings_dep()
    sweeper = asyncio.create_task(_offer_expiry_sweeper(settings.offers.expiry_sweep_interval_seconds))
    yield
    sweeper.cancel()


app = FastAPI(
    title="InstallFlow",
    description="Installation scheduling: engineer capacity, client date offers, pipeline and charger dispatch.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder({"detail": exc.message, **exc.details}),
    )


app.include_router(api_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
