"""Redis pub/sub broadcaster for cross-process subscribers."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

import redis.asyncio as redis

from ..contracts import LifecycleEvent
from .base import EventBroadcaster

logger = logging.getLogger(__name__)


class RedisBroadcaster(EventBroadcaster):
    """Publishes events as JSON on ``<prefix>:<topic>`` channels.

    The client is created lazily on first publish or subscribe.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        channel_prefix: str = "stepflow",
    ) -> None:
        self.host, self.port, self.db = host, port, db
        self.password = password
        self.channel_prefix = channel_prefix
        self._redis: Optional[redis.Redis] = None

    def _channel(self, topic: str) -> str:
        return f"{self.channel_prefix}:{topic}"

    async def _client(self) -> redis.Redis:
        if self._redis is None:
            await self.connect()
        return self._redis

    async def connect(self) -> None:
        client = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await client.ping()
        self._redis = client
        logger.info(f"Connected to Redis at {self.host}:{self.port}/{self.db}")

    async def disconnect(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, topic: str, event: LifecycleEvent) -> None:
        client = await self._client()
        await client.publish(self._channel(topic), event.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[LifecycleEvent]:
        client = await self._client()
        channel = self._channel(topic)
        pubsub = client.pubsub()
        await pubsub.subscribe(channel)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan else None
        try:
            while deadline is None or loop.time() < deadline:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if message is None:
                    continue
                try:
                    event = LifecycleEvent.from_json(message["data"])
                except ValueError as exc:
                    logger.warning(f"Dropping malformed event on {channel}: {exc}")
                    continue
                yield event
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
