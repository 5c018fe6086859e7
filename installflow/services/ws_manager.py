"""Websocket fan-out of table invalidations.

Clients subscribe per table and refetch when told the table changed; row
data never goes over the socket.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from installflow.schemas import WSMessage

logger = logging.getLogger(__name__)

TABLES = ("orders", "job_offers", "charger_dispatches", "blocked_dates")


class ConnectionManager:
    def __init__(self):
        self._subscriptions: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, table: str, websocket: WebSocket):
        await websocket.accept()
        self._subscriptions[table].add(websocket)

    def disconnect(self, table: str, websocket: WebSocket):
        self._subscriptions[table].discard(websocket)

    def subscribers(self, table: str) -> int:
        return len(self._subscriptions.get(table, ()))

    async def publish_invalidation(self, *tables: str):
        for table in tables:
            watchers = self._subscriptions.get(table)
            if not watchers:
                continue
            payload = WSMessage(event="invalidate", table=table).model_dump()
            for ws in list(watchers):
                if ws.client_state != WebSocketState.CONNECTED:
                    watchers.discard(ws)
                    continue
                try:
                    await ws.send_json(payload)
                except (RuntimeError, OSError):
                    logger.debug("Dropping dead websocket on %s", table)
                    watchers.discard(ws)


ws_manager = ConnectionManager()
