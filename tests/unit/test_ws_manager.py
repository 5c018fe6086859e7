from fastapi.websockets import WebSocketState

from installflow.services.ws_manager import ConnectionManager


class FakeSocket:
    def __init__(self, fail=False):
        self.client_state = WebSocketState.CONNECTING
        self.fail = fail
        self.received = []

    async def accept(self):
        self.client_state = WebSocketState.CONNECTED

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.received.append(data)


async def test_invalidation_reaches_only_that_table():
    manager = ConnectionManager()
    orders, offers = FakeSocket(), FakeSocket()
    await manager.connect("orders", orders)
    await manager.connect("job_offers", offers)

    await manager.publish_invalidation("orders")

    assert orders.received == [{"event": "invalidate", "table": "orders"}]
    assert offers.received == []


async def test_dead_sockets_are_dropped():
    manager = ConnectionManager()
    alive, dead = FakeSocket(), FakeSocket(fail=True)
    await manager.connect("orders", alive)
    await manager.connect("orders", dead)

    await manager.publish_invalidation("orders", "blocked_dates")

    assert manager.subscribers("orders") == 1
    assert manager.subscribers("blocked_dates") == 0


async def test_disconnect():
    manager = ConnectionManager()
    ws = FakeSocket()
    await manager.connect("orders", ws)

    manager.disconnect("orders", ws)

    assert manager.subscribers("orders") == 0
