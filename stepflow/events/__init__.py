"""Event broadcaster factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import StepflowConfig, load_config
from .base import EventBroadcaster, execution_topic, workflow_topic
from .inmemory import InMemoryBroadcaster


def get_broadcaster(
    backend: Optional[str] = None, config: Optional[StepflowConfig] = None
) -> EventBroadcaster:
    """Factory function to get the configured broadcaster."""

    config = config or load_config()
    backend = (backend or os.getenv("STEPFLOW_EVENTS") or config.events.backend).lower()

    if backend == "inmemory":
        return InMemoryBroadcaster()
    elif backend == "redis":
        from .redis import RedisBroadcaster

        redis_conf = config.events.redis
        return RedisBroadcaster(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            channel_prefix=redis_conf.channel_prefix,
        )
    else:
        raise ValueError(f"Unsupported event backend: {backend}")


__all__ = [
    "EventBroadcaster",
    "InMemoryBroadcaster",
    "execution_topic",
    "get_broadcaster",
    "workflow_topic",
]
