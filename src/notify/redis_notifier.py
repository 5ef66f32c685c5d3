# src/notify/redis_notifier.py — v1
"""Redis pub/sub notifier (NOTIFIER_BACKEND=redis).

Requires 'redis' package: pip install redis.
Each event is published as JSON on ``{channel_prefix}{batch_id}``.
"""

from __future__ import annotations

import json
import logging

from a11ybatch.notify.base_notifier import BaseProgressNotifier
from a11ybatch.notify.events import BatchEvent, event_to_dict

logger = logging.getLogger(__name__)


class RedisNotifier(BaseProgressNotifier):
    def __init__(self, redis_url: str, channel_prefix: str = "a11ybatch:batch:") -> None:
        try:
            import redis
        except ImportError as e:
            raise ImportError("redis package required: pip install redis") from e

        self._client = redis.Redis.from_url(redis_url, decode_responses=True)
        self._channel_prefix = channel_prefix

    def channel_for(self, batch_id: str) -> str:
        return f"{self._channel_prefix}{batch_id}"

    async def publish(self, batch_id: str, event: BatchEvent) -> None:
        receivers = self._client.publish(
            self.channel_for(batch_id), json.dumps(event_to_dict(event)),
        )
        logger.debug("Published %s to %d subscribers", event.type, receivers)

    async def aclose(self) -> None:
        self._client.close()
