"""
Tests for Redis client setup and limiter backend selection
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.utils import redis_client
from shared.utils.redis_client import init_redis_client, parse_sentinel_hosts
from app.main import create_rate_limiter
from app.utils.rate_limiter import MemoryRateLimitStore, RedisRateLimitStore


class TestSentinelHosts:
    def test_parse(self):
        assert parse_sentinel_hosts("sentinel-a:26380, sentinel-b,") == [
            ("sentinel-a", 26380),
            ("sentinel-b", 26379),
        ]


class TestInitRedisClient:
    @pytest.mark.asyncio
    async def test_unreachable_redis_closes_client(self):
        client = MagicMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
        client.aclose = AsyncMock()

        with patch.object(redis_client, "create_redis_client", return_value=client):
            with pytest.raises(RedisConnectionError):
                await init_redis_client("redis://nowhere:6379/0")

        client.aclose.assert_awaited_once()
        assert redis_client._redis_client is None


class TestCreateRateLimiter:
    @pytest.mark.asyncio
    async def test_memory_backend(self, test_settings):
        limiter = await create_rate_limiter(test_settings)
        assert isinstance(limiter.store, MemoryRateLimitStore)

    @pytest.mark.asyncio
    async def test_redis_backend(self, test_settings):
        fake_redis = MagicMock()
        fake_redis.register_script.return_value = AsyncMock()
        app_settings = test_settings.model_copy(update={"rate_limit_backend": "redis"})

        with patch("app.main.init_redis_client", AsyncMock(return_value=fake_redis)):
            limiter = await create_rate_limiter(app_settings)

        assert isinstance(limiter.store, RedisRateLimitStore)

    @pytest.mark.asyncio
    async def test_falls_back_to_memory_when_redis_down(self, test_settings):
        app_settings = test_settings.model_copy(update={"rate_limit_backend": "redis"})

        with patch("app.main.init_redis_client", AsyncMock(side_effect=RedisConnectionError("refused"))):
            limiter = await create_rate_limiter(app_settings)

        assert isinstance(limiter.store, MemoryRateLimitStore)

    @pytest.mark.asyncio
    async def test_disabled(self, test_settings):
        app_settings = test_settings.model_copy(update={"rate_limit_enabled": False})
        assert await create_rate_limiter(app_settings) is None
