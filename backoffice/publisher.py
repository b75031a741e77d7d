"""
Back-office: event publisher

Fire-and-forget publishing over Redis Pub/Sub. Each message is a JSON
envelope ``{"event_type", "at", "data"}`` on a named channel.

Pub/Sub does not buffer: subscribers that are down when a message is sent
never see it. Consumers that need every inventory delta must reconcile
against the orders themselves.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .errors import PublishError
from .events import Event

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    async def publish(self, channel: str, event: Event) -> None: ...


def envelope(event: Event) -> str:
    return json.dumps(
        {
            "event_type": event.event_type,
            "at": datetime.now(timezone.utc).isoformat(),
            "data": event.model_dump(mode="json", exclude={"event_type"}),
        },
        default=str,
    )


class RedisEventPublisher:
    def __init__(self, redis: aioredis.Redis) -> None:
        self.redis = redis

    async def publish(self, channel: str, event: Event) -> None:
        try:
            receivers = await self.redis.publish(channel, envelope(event))
        except (RedisError, OSError) as e:
            raise PublishError(str(e), channel, event.event_type) from e
        logger.debug("Published %s to %s (%d receivers)", event.event_type, channel, receivers)
