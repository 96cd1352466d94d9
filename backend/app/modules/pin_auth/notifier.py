"""In-process fan-out of PIN session events.

Listeners (WebSocket connections) subscribe to a session id and get an
asyncio.Queue; ``publish`` drops the event into every queue for that
session. Delivery is best-effort and only reaches listeners in this
process. Polling ``/pin/status`` stays correct without it.
"""

import asyncio
from collections import defaultdict
from typing import Any, Dict, Set

from app.core.logging_config import logger


class PinSessionNotifier:
    """Per-session broadcast channel"""

    def __init__(self, max_queue_size: int = 10):
        self._subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)
        self.max_queue_size = max_queue_size

    def subscribe(self, session_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers[session_id].add(queue)
        return queue

    def unsubscribe(self, session_id: str, queue: asyncio.Queue) -> None:
        listeners = self._subscribers.get(session_id)
        if not listeners:
            return
        listeners.discard(queue)
        if not listeners:
            del self._subscribers[session_id]

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, ()))

    def publish(self, session_id: str, event: Dict[str, Any]) -> int:
        """Queue ``event`` for every listener of the session; returns how many got it"""
        delivered = 0
        for queue in list(self._subscribers.get(session_id, ())):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"[PinNotifier] Dropping event for slow listener on {session_id}")
        return delivered


# Singleton instance
pin_notifier = PinSessionNotifier()
