"""Unit tests for the Redis unread-count cache."""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from challengehub.services.unread_cache import KEY_PREFIX, UnreadCountCache


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.setex = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=1)
    return client


class TestUnreadCountCache:
    @pytest.mark.asyncio
    async def test_miss_returns_none(self, redis_client):
        cache = UnreadCountCache(redis_client)

        assert await cache.get(uuid4()) is None

    @pytest.mark.asyncio
    async def test_hit_parses_int(self, redis_client):
        user_id = uuid4()
        redis_client.get.return_value = "7"
        cache = UnreadCountCache(redis_client)

        assert await cache.get(user_id) == 7
        redis_client.get.assert_awaited_once_with(f"{KEY_PREFIX}:{user_id}")

    @pytest.mark.asyncio
    async def test_set_uses_ttl(self, redis_client):
        user_id = uuid4()
        cache = UnreadCountCache(redis_client, ttl_seconds=42)

        await cache.set(user_id, 3)

        redis_client.setex.assert_awaited_once_with(f"{KEY_PREFIX}:{user_id}", 42, 3)

    @pytest.mark.asyncio
    async def test_invalidate_deletes_all_keys(self, redis_client):
        a, b = uuid4(), uuid4()
        cache = UnreadCountCache(redis_client)

        await cache.invalidate([a, b])

        redis_client.delete.assert_awaited_once_with(f"{KEY_PREFIX}:{a}", f"{KEY_PREFIX}:{b}")

    @pytest.mark.asyncio
    async def test_invalidate_nothing_skips_redis(self, redis_client):
        cache = UnreadCountCache(redis_client)

        await cache.invalidate([])

        redis_client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redis_errors_degrade_to_miss(self, redis_client):
        redis_client.get.side_effect = RedisConnectionError("down")
        redis_client.setex.side_effect = RedisConnectionError("down")
        redis_client.delete.side_effect = RedisConnectionError("down")
        cache = UnreadCountCache(redis_client)

        assert await cache.get(uuid4()) is None
        await cache.set(uuid4(), 1)
        await cache.invalidate([uuid4()])


class TestUnreadCountThroughEngine:
    @pytest.mark.asyncio
    async def test_cached_count_refreshed_after_new_notification(
        self, fanout, unread_cache, user_ids
    ):
        user = user_ids[0]
        assert await fanout.get_unread_count(user) == 0
        assert await unread_cache.get(user) == 0

        await fanout.notify_user(user, "SUBMISSION_REJECTED", {"challenge_title": "T"}, entity_id=uuid4())
        await fanout.after_commit()

        assert await unread_cache.get(user) is None
        assert await fanout.get_unread_count(user) == 1
