import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from feedrelay.errors import CacheUnavailable
from feedrelay.infra.cache import CacheClient


class BrokenRedis:
    async def ping(self):
        raise RedisConnectionError("connection refused")

    async def set(self, *args, **kwargs):
        raise RedisConnectionError("connection refused")

    async def exists(self, *keys):
        raise RedisConnectionError("connection refused")

    async def aclose(self):
        pass


class MemoryRedis:
    def __init__(self):
        self.data = {}

    async def ping(self):
        return True

    async def set(self, key, value, ex=None):
        self.data[key] = (value, ex)

    async def exists(self, *keys):
        return sum(1 for key in keys if key in self.data)

    async def aclose(self):
        pass


@pytest.mark.asyncio
async def test_connect_without_url_returns_none():
    assert await CacheClient.connect("") is None


@pytest.mark.asyncio
async def test_set_and_exists():
    redis = MemoryRedis()
    client = CacheClient(redis)
    assert await client.ping()
    assert not await client.exists("k")
    await client.set("k", "1", 60)
    assert await client.exists("k")
    assert redis.data["k"] == ("1", 60)


@pytest.mark.asyncio
async def test_failures_raise_cache_unavailable():
    client = CacheClient(BrokenRedis())
    assert not await client.ping()
    with pytest.raises(CacheUnavailable):
        await client.exists("k")
    with pytest.raises(CacheUnavailable):
        await client.set("k", "1", 60)
