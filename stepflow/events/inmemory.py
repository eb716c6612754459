"""In-memory broadcaster for tests and single-process runs."""

from __future__ import annotations

import asyncio
from collections import Counter, deque
from typing import AsyncIterator, Deque, Dict, Optional, Tuple

from ..contracts import LifecycleEvent
from .base import EventBroadcaster

DEFAULT_HISTORY = 1000


class InMemoryBroadcaster(EventBroadcaster):
    """Keeps the most recent events and buffers them for active subscribers.

    Events published to a topic nobody is subscribed to are only kept in the
    bounded ``published`` history.
    """

    def __init__(self, history: int = DEFAULT_HISTORY) -> None:
        self.published: Deque[Tuple[str, LifecycleEvent]] = deque(maxlen=history)
        self._queues: Dict[str, Deque[LifecycleEvent]] = {}
        self._subscribers: Counter[str] = Counter()
        self._lock = asyncio.Lock()

    async def publish(self, topic: str, event: LifecycleEvent) -> None:
        async with self._lock:
            self.published.append((topic, event))
            queue = self._queues.get(topic)
            if queue is not None:
                queue.append(event)

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[LifecycleEvent]:
        async with self._lock:
            self._queues.setdefault(topic, deque())
            self._subscribers[topic] += 1

        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan else None
        try:
            while deadline is None or loop.time() < deadline:
                async with self._lock:
                    queue = self._queues[topic]
                    event = queue.popleft() if queue else None

                if event is not None:
                    yield event
                    continue

                await asyncio.sleep(0.1)
        finally:
            async with self._lock:
                self._subscribers[topic] -= 1
                if self._subscribers[topic] <= 0:
                    del self._subscribers[topic]
                    del self._queues[topic]

    def events(
        self, name: Optional[str] = None, topic: Optional[str] = None
    ) -> list[LifecycleEvent]:
        """Recently published events filtered by event name and/or topic."""
        return [
            event
            for t, event in self.published
            if (name is None or event.event == name) and (topic is None or t == topic)
        ]
