"""Central router that includes all sub-routers."""

from fastapi import APIRouter

from installflow.api.clients import router as clients_router
from installflow.api.engineers import router as engineers_router
from installflow.api.orders import router as orders_router
from installflow.api.scheduling import router as scheduling_router
from installflow.api.offers import router as offers_router
from installflow.api.dispatch import router as dispatch_router
from installflow.api.websocket import router as websocket_router

api_router = APIRouter()
api_router.include_router(clients_router)
api_router.include_router(engineers_router)
api_router.include_router(orders_router)
api_router.include_router(scheduling_router)
api_router.include_router(offers_router)
api_router.include_router(dispatch_router)
api_router.include_router(websocket_router)
