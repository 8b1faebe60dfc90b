"""Tests for the tableUpdated fan-out and the client cache contract."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from masapos.broadcast import (
    EVICT_SESSION,
    REFETCH_REGION,
    ConnectionManager,
    NullNotifier,
    TableUpdated,
    WebSocketNotifier,
    apply_table_update,
    publish_session,
)
from masapos.db.models import SessionStatus, TableSession


def _client():
    ws = MagicMock()
    ws.accept = AsyncMock()
    ws.send_json = AsyncMock()
    return ws


def _event(status="open", session_id=7, total=12.5):
    return TableUpdated(session_id=session_id, status=SessionStatus(status), total=total)


def test_message_shape():
    assert _event().to_message() == {
        "event": "tableUpdated",
        "sessionId": 7,
        "status": "open",
        "total": 12.5,
    }


def test_event_from_session():
    ts = TableSession(id=3, status="paid", total_cents=4550)
    event = TableUpdated.from_session(ts)
    assert event.session_id == 3
    assert event.status is SessionStatus.PAID
    assert event.total == 45.5


@pytest.mark.asyncio
async def test_broadcast_reaches_every_client():
    manager = ConnectionManager(send_timeout=1)
    clients = [_client(), _client()]
    for ws in clients:
        await manager.connect(ws)

    delivered = await manager.broadcast(_event().to_message())
    assert delivered == 2
    for ws in clients:
        ws.accept.assert_awaited_once()
        ws.send_json.assert_awaited_once_with(_event().to_message())


@pytest.mark.asyncio
async def test_broadcast_drops_dead_and_slow_clients():
    manager = ConnectionManager(send_timeout=0.05)
    healthy = _client()
    dead = _client()
    dead.send_json.side_effect = RuntimeError("connection closed")
    slow = _client()

    async def never_finishes(message):
        await asyncio.sleep(10)

    slow.send_json.side_effect = never_finishes
    for ws in (healthy, dead, slow):
        await manager.connect(ws)

    delivered = await manager.broadcast({"event": "tableUpdated"})
    assert delivered == 1
    assert manager.active_connections == [healthy]


@pytest.mark.asyncio
async def test_broadcast_without_clients():
    assert await ConnectionManager().broadcast({"event": "tableUpdated"}) == 0


@pytest.mark.asyncio
async def test_disconnect_unknown_client_is_noop():
    manager = ConnectionManager()
    manager.disconnect(_client())
    assert manager.active_connections == []


@pytest.mark.asyncio
async def test_websocket_notifier_schedules_broadcast():
    manager = ConnectionManager(send_timeout=1)
    ws = _client()
    await manager.connect(ws)
    notifier = WebSocketNotifier(manager)

    notifier.publish(_event("canceled"))
    # Publishing does not block on delivery
    ws.send_json.assert_not_awaited()
    await asyncio.gather(*list(notifier._tasks))
    ws.send_json.assert_awaited_once()
    assert ws.send_json.await_args.args[0]["status"] == "canceled"


def test_websocket_notifier_without_loop_drops_event():
    manager = ConnectionManager()
    WebSocketNotifier(manager).publish(_event())


def test_publish_session_uses_notifier():
    recorded = []

    class Recorder(NullNotifier):
        def publish(self, event):
            recorded.append(event)

    ts = TableSession(id=11, status="closed", total_cents=0)
    event = publish_session(Recorder(), ts)
    assert recorded == [event]
    assert event.status is SessionStatus.CLOSED


@pytest.mark.parametrize("status", ["paid", "canceled", "closed"])
def test_terminal_event_evicts_cached_session(status):
    cache = {7: {"id": 7}, 8: {"id": 8}}
    assert apply_table_update(cache, _event(status, session_id=7)) == EVICT_SESSION
    assert cache == {8: {"id": 8}}


def test_open_event_requests_region_refetch():
    cache = {7: {"id": 7}}
    assert apply_table_update(cache, _event("open", session_id=7)) == REFETCH_REGION
    assert cache == {7: {"id": 7}}
