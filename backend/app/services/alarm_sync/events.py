"""Publishes sync outcomes to Redis for the SMS dispatcher and dashboard."""
from __future__ import annotations

import json
import logging

from redis.asyncio import Redis

from services.alarm_sync.config import (
    REDIS_CHANNEL_SYNC,
    REDIS_SYNC_STATUS_KEY,
    SYNC_STATUS_TTL,
)

logger = logging.getLogger("sms.alarm_sync.events")


class SyncEventPublisher:

    def __init__(self, redis: Redis | None):
        self.redis = redis

    async def publish(self, source: str, result: dict, status: dict) -> None:
        """Publish a sync result and cache the status snapshot.

        Never raises: a Redis outage must not fail a sync that already
        committed.
        """
        if self.redis is None:
            return
        payload = {"type": "alarm_points_sync", "source": source, **result}
        try:
            await self.redis.publish(REDIS_CHANNEL_SYNC, json.dumps(payload, default=str))
            await self.redis.setex(
                REDIS_SYNC_STATUS_KEY, SYNC_STATUS_TTL,
                json.dumps(status, default=str),
            )
        except Exception as exc:
            logger.warning("Sync event publish failed (%s): %s", source, exc)
