"""In-process publish/subscribe for observer push channels."""

import asyncio
from typing import Dict, Any, Set
from loguru import logger


class EventBus:
    """Fans events out to subscriber queues. Slow subscribers drop events."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: Set[asyncio.Queue] = set()

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    def publish(self, event_type: str, data: Any) -> int:
        """Publish to every subscriber, returning how many received it."""
        event: Dict[str, Any] = {'type': event_type, 'data': data}
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"Dropping {event_type} event for a slow subscriber")
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
