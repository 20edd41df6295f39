"""
Outbound event port and the WebSocket broadcast hub behind it.

Services publish events only after their transaction has committed.
Delivery is fire-and-forget: no per-user targeting, no replay for clients
that connect later.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple

from fastapi import WebSocket

logger = logging.getLogger(__name__)

PROTOCOL_CREATED = "protocol_created"
STATUS_UPDATED = "status_updated"


class EventSink(Protocol):
    def publish(self, event: str, payload: Dict[str, Any]) -> None:
        ...


class RecordingSink:
    """Keeps published events in memory."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def publish(self, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((event, payload))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]


class BroadcastHub:
    """Fans events out to every connected WebSocket client."""

    def __init__(self):
        self.connections: Set[WebSocket] = set()
        self._pending: Set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def connect(self, ws: WebSocket):
        await ws.accept()
        self._loop = asyncio.get_running_loop()
        self.connections.add(ws)
        logger.info("Client connected for real-time updates (%d open)", len(self.connections))

    def disconnect(self, ws: WebSocket):
        self.connections.discard(ws)
        logger.info("Client disconnected (%d open)", len(self.connections))

    async def broadcast(self, message: Dict[str, Any]):
        dead = []
        for ws in list(self.connections):
            try:
                await ws.send_json(message)
            except Exception:
                logger.info("Dropping unreachable client", exc_info=True)
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)

    def publish(self, event: str, payload: Dict[str, Any]) -> None:
        """
        Schedule a broadcast on the server's event loop.

        Sync handlers run in a worker thread, so the coroutine is handed to
        the loop the clients connected on. With no clients there is
        nothing to deliver and the event is only logged.
        """
        message = {"event": event, "data": payload}
        if not self.connections:
            logger.debug("No clients connected; %s not broadcast", event)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            if self._loop is None or self._loop.is_closed():
                logger.debug("No event loop; %s not broadcast", event)
                return
            asyncio.run_coroutine_threadsafe(self.broadcast(message), self._loop)
            return

        task = loop.create_task(self.broadcast(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


hub = BroadcastHub()
