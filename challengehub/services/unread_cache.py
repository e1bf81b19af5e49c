"""Redis cache for per-user unread notification counts.

Counts are written on read-miss with a TTL. The fan-out engine deletes a
user's key once a write to their inbox has committed. Redis errors degrade
to a cache miss.
"""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from challengehub.logging_config import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "challengehub:unread"


def _key(user_id: UUID) -> str:
    return f"{KEY_PREFIX}:{user_id}"


class UnreadCountCache:
    def __init__(self, redis: aioredis.Redis, ttl_seconds: int = 300) -> None:
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    async def get(self, user_id: UUID) -> int | None:
        try:
            value = await self.redis.get(_key(user_id))
        except RedisError as exc:
            logger.warning("unread_cache_get_failed", user_id=str(user_id), error=str(exc))
            return None
        return int(value) if value is not None else None

    async def set(self, user_id: UUID, count: int) -> None:
        try:
            await self.redis.setex(_key(user_id), self.ttl_seconds, count)
        except RedisError as exc:
            logger.warning("unread_cache_set_failed", user_id=str(user_id), error=str(exc))

    async def invalidate(self, user_ids: Iterable[UUID]) -> None:
        keys = [_key(uid) for uid in user_ids]
        if not keys:
            return
        try:
            await self.redis.delete(*keys)
        except RedisError as exc:
            logger.warning("unread_cache_invalidate_failed", count=len(keys), error=str(exc))


__all__ = ["UnreadCountCache"]
