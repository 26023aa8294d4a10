"""Notification publishers.

RedisNotificationPublisher fans events out over pub/sub on the channel
`notifications:{group_id}`; the chat front-end subscribes per group.
InMemoryNotificationPublisher keeps events on an asyncio.Queue for
single-process development and tests.
"""

import asyncio
import json
import logging

import redis.asyncio as aioredis

from src.sc_notify.domain.events import NotificationEvent

logger = logging.getLogger(__name__)


def channel_for(group_id: str) -> str:
    return f"notifications:{group_id}"


class RedisNotificationPublisher:
    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def publish(self, event: NotificationEvent) -> None:
        payload = json.dumps(event.to_payload(), default=str)
        receivers = await self._redis.publish(channel_for(event.group_id), payload)
        logger.debug("Published %s to %d subscriber(s)", event.event_type, receivers)


class InMemoryNotificationPublisher:
    def __init__(self) -> None:
        self.queue: asyncio.Queue[NotificationEvent] = asyncio.Queue()

    async def publish(self, event: NotificationEvent) -> None:
        await self.queue.put(event)

    def drain(self) -> list[NotificationEvent]:
        """Pop every queued event without waiting."""
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events
