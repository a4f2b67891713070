"""
Notifier: in-process pub/sub for live session listeners.

Each WebSocket connection subscribes a bounded asyncio.Queue to a session;
publishers never block on slow listeners (a full queue drops the event).
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

CONVERSATION_UPDATE = "conversation-update"
TEMPLATE_GENERATED = "template-generated"
STATUS_CHANGED = "status-changed"

_QUEUE_SIZE = 100


class Notifier:

    def __init__(self) -> None:
        self._listeners: defaultdict[str, set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, session_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=_QUEUE_SIZE)
        self._listeners[session_id].add(queue)
        return queue

    def unsubscribe(self, session_id: str, queue: asyncio.Queue) -> None:
        listeners = self._listeners.get(session_id)
        if not listeners:
            return
        listeners.discard(queue)
        if not listeners:
            del self._listeners[session_id]

    def listener_count(self, session_id: str) -> int:
        return len(self._listeners.get(session_id, ()))

    def _publish(self, session_id: str, event: str, data: Any) -> None:
        message = {
            "event": event,
            "sessionId": session_id,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        for queue in list(self._listeners.get(session_id, ())):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning("Dropped %s event for a slow listener on session=%s.", event, session_id)

    async def broadcast_turn(self, session_id: str, payload: dict[str, Any]) -> None:
        self._publish(session_id, CONVERSATION_UPDATE, payload)

    async def notify_draft_generated(self, session_id: str, draft: dict[str, Any]) -> None:
        self._publish(session_id, TEMPLATE_GENERATED, draft)

    async def notify_status_changed(self, session_id: str, status: str) -> None:
        self._publish(session_id, STATUS_CHANGED, {"status": status})
