"""
Broadcast notifier: fans ``tableUpdated`` events out to every connected client.

Lifecycle and upsert functions receive a ``Notifier`` explicitly. The app wires
a ``WebSocketNotifier`` over the process ``ConnectionManager``; scripts and
tests pass a ``NullNotifier`` or their own recording implementation.

Delivery is fire-and-forget and at-most-once: no replay, no acknowledgement,
and a client that does not accept a message within the send timeout is dropped.

``apply_table_update`` is the reference handler for subscribers: it is what a
client does with each event it receives, kept here next to the event type.
"""

import asyncio
import logging
import os
from typing import Any, Dict, List

from fastapi import WebSocket
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from masapos.db.models import SessionStatus, TableSession
from masapos.utils.money import from_cents

logger = logging.getLogger(__name__)

TABLE_UPDATED = "tableUpdated"
DEFAULT_SEND_TIMEOUT = float(os.getenv("BROADCAST_SEND_TIMEOUT", "2"))


class TableUpdated(BaseModel):
    """Payload of the single event topic: a session's status or total changed."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event: str = TABLE_UPDATED
    session_id: int
    status: SessionStatus
    total: float

    @classmethod
    def from_session(cls, table_session: TableSession) -> "TableUpdated":
        return cls(
            session_id=table_session.id,
            status=SessionStatus(table_session.status),
            total=from_cents(table_session.total_cents),
        )

    def to_message(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Notifier:
    """Publish interface passed to every state-changing operation."""

    def publish(self, event: TableUpdated) -> None:
        raise NotImplementedError


class NullNotifier(Notifier):
    """Drops every event."""

    def publish(self, event: TableUpdated) -> None:
        return None


class ConnectionManager:
    """Tracks connected WebSocket clients; every client receives every event."""

    def __init__(self, send_timeout: float = DEFAULT_SEND_TIMEOUT):
        self.active_connections: List[WebSocket] = []
        self.send_timeout = send_timeout

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info("[ws] client connected (%d clients)", len(self.active_connections))

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        logger.info("[ws] client disconnected (%d clients left)", len(self.active_connections))

    async def _send(self, websocket: WebSocket, message: Dict[str, Any]) -> bool:
        try:
            await asyncio.wait_for(websocket.send_json(message), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("[ws] slow client dropped after %.1fs", self.send_timeout)
        except Exception as e:
            logger.debug("[ws] dropping dead connection: %s", e)
        return False

    async def broadcast(self, message: Dict[str, Any]) -> int:
        """Send *message* to all clients concurrently, remove the ones that failed.

        Returns the number of clients that received it.
        """
        conns = list(self.active_connections)
        if not conns:
            return 0
        results = await asyncio.gather(*(self._send(ws, message) for ws in conns))
        for ws, ok in zip(conns, results):
            if not ok and ws in self.active_connections:
                self.active_connections.remove(ws)
        return sum(1 for ok in results if ok)


class WebSocketNotifier(Notifier):
    """Schedules a broadcast on the running event loop without awaiting it."""

    def __init__(self, manager: ConnectionManager):
        self.manager = manager
        self._tasks: set = set()

    def publish(self, event: TableUpdated) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[broadcast] no running loop, event for session %s dropped", event.session_id)
            return
        task = loop.create_task(self.manager.broadcast(event.to_message()))
        # Keep a reference until done so the task is not garbage collected mid-flight
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


# ---------- Client-side contract ----------

REFETCH_REGION = "refetch_region"
EVICT_SESSION = "evict_session"


def apply_table_update(cached_sessions: Dict[int, Any], event: TableUpdated) -> str:
    """
    Apply a ``tableUpdated`` event to a client's cache of sessions keyed by id.

    Returns the action the client has to take: ``open`` means a new or changed
    session may belong to the region on screen, so the region snapshot must be
    re-read; terminal statuses evict the cached session.
    """
    if not SessionStatus(event.status).is_terminal:
        return REFETCH_REGION
    cached_sessions.pop(event.session_id, None)
    return EVICT_SESSION


def publish_session(notifier: Notifier, table_session: TableSession) -> TableUpdated:
    """Build the event for *table_session* and publish it."""
    event = TableUpdated.from_session(table_session)
    notifier.publish(event)
    logger.debug("[broadcast] %s session=%s status=%s total=%s",
                 TABLE_UPDATED, event.session_id, event.status.value, event.total)
    return event
