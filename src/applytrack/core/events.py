from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator
from typing import Any

logger = logging.getLogger(__name__)

SUBSCRIBER_QUEUE_SIZE = 100


class ApplicationEventBus:
    """Per-user fan-out of application change notices.

    A notice carries the event type, the application id and the user's data
    version after the change, so listeners can refetch with ``min_version``.
    Slow listeners lose their oldest notices rather than blocking publishers.
    """

    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE) -> None:
        self.queue_size = queue_size
        self._listeners: dict[int, list[asyncio.Queue[dict[str, Any]]]] = defaultdict(list)

    async def publish(self, user_id: int, event: dict[str, Any]) -> None:
        for queue in list(self._listeners.get(user_id, [])):
            if queue.full():
                dropped = queue.get_nowait()
                logger.debug("Dropped %s notice for slow listener user_id=%s", dropped.get("type"), user_id)
            queue.put_nowait(event)

    def subscriber_count(self, user_id: int) -> int:
        return len(self._listeners.get(user_id, []))

    async def subscribe(self, user_id: int) -> AsyncIterator[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self.queue_size)
        self._listeners[user_id].append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            listeners = self._listeners.get(user_id, [])
            if queue in listeners:
                listeners.remove(queue)
            if not listeners:
                self._listeners.pop(user_id, None)


_EVENT_BUS: ApplicationEventBus | None = None


def get_event_bus() -> ApplicationEventBus:
    global _EVENT_BUS
    if _EVENT_BUS is None:
        _EVENT_BUS = ApplicationEventBus()
    return _EVENT_BUS
