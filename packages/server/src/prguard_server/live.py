"""Live analysis events for dashboard websocket clients.

The orchestrator publishes from worker threads; each listener queue belongs
to the event loop that registered it, so messages are handed over with
call_soon_threadsafe.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Any

from prguard_core.collaborators import LiveUpdates

logger = logging.getLogger(__name__)

QUEUE_SIZE = 32


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Broadcaster(LiveUpdates):
    """Fans analysis events out to every connected websocket queue."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[tuple[asyncio.Queue, asyncio.AbstractEventLoop]] = []

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def add_listener(self, queue: asyncio.Queue) -> None:
        """Register a queue owned by the running event loop."""
        loop = asyncio.get_running_loop()
        with self._lock:
            self._listeners.append((queue, loop))

    def remove_listener(self, queue: asyncio.Queue) -> None:
        with self._lock:
            self._listeners = [(q, loop) for q, loop in self._listeners if q is not queue]

    def publish(self, msg: dict[str, Any], critical: bool = True) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for queue, loop in listeners:
            try:
                loop.call_soon_threadsafe(self._send_to_queue, queue, msg, critical)
            except RuntimeError:
                # loop already closed, the websocket handler will unregister
                logger.debug("Dropping message for a listener whose loop is closed")

    @staticmethod
    def _send_to_queue(queue: asyncio.Queue, msg: dict[str, Any], critical: bool) -> bool:
        """Put msg on queue.

        A full queue is drained for analysis events, since only the latest
        state matters to a dashboard; notifications are dropped instead.
        """
        if queue.maxsize and queue.qsize() >= queue.maxsize:
            if not critical:
                logger.debug("WebSocket queue full, dropping %s message", msg.get("type"))
                return False
            drained = 0
            while not queue.empty():
                try:
                    queue.get_nowait()
                    drained += 1
                except asyncio.QueueEmpty:
                    break
            logger.debug("Drained %d stale messages from WebSocket queue", drained)
        try:
            queue.put_nowait(msg)
            return True
        except asyncio.QueueFull:
            logger.warning("WebSocket queue full even after drain, client may be disconnected")
            return False

    def analysis_started(self, data: dict[str, Any]) -> None:
        self.publish({"type": "analysis:started", "data": data, "timestamp": _now()})

    def analysis_updated(self, data: dict[str, Any]) -> None:
        self.publish({"type": "analysis:updated", "data": data, "timestamp": _now()})

    def notification(self, kind: str, title: str, message: str, data: dict[str, Any] | None = None) -> None:
        msg = {
            "type": "notification",
            "data": {"kind": kind, "title": title, "message": message, "data": data or {}},
            "timestamp": _now(),
        }
        self.publish(msg, critical=False)
