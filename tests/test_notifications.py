"""
Tests for the WebSocket notification hub
"""

from unittest.mock import AsyncMock, MagicMock

import pytest


def make_socket(fail: bool = False):
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock(side_effect=RuntimeError("closed") if fail else None)
    return websocket


@pytest.mark.asyncio
async def test_connect_accepts(hub):
    websocket = make_socket()
    await hub.connect(websocket)

    websocket.accept.assert_awaited_once()
    assert hub.connection_count == 1


@pytest.mark.asyncio
async def test_broadcast_envelope(hub):
    websocket = make_socket()
    await hub.connect(websocket)

    delivered = await hub.broadcast("payment_confirmed", {"paymentId": "0x1"})

    assert delivered == 1
    websocket.send_json.assert_awaited_once_with(
        {"type": "payment_confirmed", "data": {"paymentId": "0x1"}}
    )


@pytest.mark.asyncio
async def test_failing_socket_is_dropped(hub):
    healthy = make_socket()
    broken = make_socket(fail=True)
    await hub.connect(healthy)
    await hub.connect(broken)

    delivered = await hub.notify_payment_confirmed({"paymentId": "0x1"})

    assert delivered == 1
    assert hub.connection_count == 1
    healthy.send_json.assert_awaited_once()

    await hub.broadcast("payment_confirmed", {"paymentId": "0x2"})
    assert broken.send_json.await_count == 1


@pytest.mark.asyncio
async def test_broadcast_without_clients(hub):
    assert await hub.broadcast("payment_confirmed", {}) == 0


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(hub):
    websocket = make_socket()
    await hub.connect(websocket)

    hub.disconnect(websocket)
    hub.disconnect(websocket)
    assert hub.connection_count == 0


@pytest.mark.asyncio
async def test_close_all(hub):
    await hub.connect(make_socket())
    await hub.connect(make_socket())
    hub.close_all()
    assert hub.connection_count == 0
