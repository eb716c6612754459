"""Base broadcaster interface for stepflow lifecycle events."""

from __future__ import annotations

import abc
from typing import AsyncIterator, Optional

from ..contracts import LifecycleEvent


def execution_topic(execution_id: str) -> str:
    return f"execution:{execution_id}"


def workflow_topic(workflow_id: str) -> str:
    return f"workflow:{workflow_id}"


class EventBroadcaster(metaclass=abc.ABCMeta):
    """Abstract publisher of lifecycle events to scoped topics."""

    async def connect(self) -> None:
        """Open connection to broker (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to broker (no-op by default)."""
        pass

    @abc.abstractmethod
    async def publish(self, topic: str, event: LifecycleEvent) -> None:
        """Send an event to a topic."""
        raise NotImplementedError

    @abc.abstractmethod
    def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[LifecycleEvent]:
        """Yield events published to ``topic``.

        Args:
            topic: The topic to subscribe to
            lifespan: Maximum time in seconds to keep listening. If None, runs indefinitely.
        """
        raise NotImplementedError

    async def broadcast(self, event: LifecycleEvent) -> None:
        """Publish ``event`` to its execution topic and its workflow topic."""
        await self.publish(execution_topic(event.execution_id), event)
        await self.publish(workflow_topic(event.workflow_id), event)
