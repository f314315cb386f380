"""Tests for the AuthContext cache implementations and invalidation."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError

from schoolcore import AuthCacheInvalidator, CachePort, MemoryCache, NullCache, RedisCache
from schoolcore.cache import auth_cache_key
from schoolcore.store import Collections, MemoryStore


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestMemoryCache:
    """Tests for the process-local cache."""

    @pytest.mark.asyncio
    async def test_get_set_delete(self) -> None:
        """Basic round trip and eviction."""
        cache = MemoryCache()
        assert await cache.get("k") is None
        assert await cache.set("k", "v", ttl=60) is True
        assert await cache.get("k") == "v"
        assert await cache.delete("k") is True
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_entries_expire(self) -> None:
        """Entries disappear once their TTL has elapsed."""
        clock = FakeClock()
        cache = MemoryCache(clock=clock)
        await cache.set("k", "v", ttl=300)

        clock.now += 299
        assert await cache.get("k") == "v"
        clock.now += 1
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_delete_missing_key(self) -> None:
        """Deleting an absent key still succeeds."""
        assert await MemoryCache().delete("missing") is True

    @pytest.mark.asyncio
    async def test_set_sweeps_expired_entries(self) -> None:
        """Expired entries of other keys are dropped without being read."""
        clock = FakeClock()
        cache = MemoryCache(clock=clock, sweep_interval=60)
        for i in range(3):
            await cache.set(f"gone-{i}", "v", ttl=30)
        await cache.set("kept", "v", ttl=300)
        assert len(cache) == 4

        clock.now += 61
        await cache.set("fresh", "v", ttl=300)
        assert len(cache) == 2
        assert await cache.get("kept") == "v"

    @pytest.mark.asyncio
    async def test_sweep_is_rate_limited(self) -> None:
        """Between sweeps, expired entries only go when read."""
        clock = FakeClock()
        cache = MemoryCache(clock=clock, sweep_interval=60)
        await cache.set("short", "v", ttl=1)

        clock.now += 2
        await cache.set("other", "v", ttl=300)
        assert len(cache) == 2
        assert await cache.get("short") is None
        assert len(cache) == 1

    def test_implements_port(self) -> None:
        """All implementations satisfy CachePort."""
        assert isinstance(MemoryCache(), CachePort)
        assert isinstance(NullCache(), CachePort)
        assert isinstance(RedisCache(AsyncMock()), CachePort)


class TestNullCache:
    """Tests for the no-op cache."""

    @pytest.mark.asyncio
    async def test_always_misses(self) -> None:
        """Writes are dropped and reads miss."""
        cache = NullCache()
        assert await cache.set("k", "v", ttl=60) is False
        assert await cache.get("k") is None
        assert await cache.delete("k") is True


class TestRedisCache:
    """Tests for the redis cache wrapper."""

    @pytest.mark.asyncio
    async def test_passes_through(self) -> None:
        """Calls map onto the redis client with the TTL as ``ex``."""
        client = AsyncMock()
        client.get.return_value = "v"
        cache = RedisCache(client)

        assert await cache.set("k", "v", ttl=300) is True
        client.set.assert_awaited_once_with("k", "v", ex=300)
        assert await cache.get("k") == "v"
        assert await cache.delete("k") is True
        client.delete.assert_awaited_once_with("k")

    @pytest.mark.asyncio
    async def test_outage_is_absorbed(self) -> None:
        """Connection errors become misses and failed writes."""
        client = AsyncMock()
        client.get.side_effect = RedisConnectionError("down")
        client.set.side_effect = RedisConnectionError("down")
        client.delete.side_effect = RedisConnectionError("down")
        cache = RedisCache(client)

        assert await cache.get("k") is None
        assert await cache.set("k", "v", ttl=60) is False
        assert await cache.delete("k") is False

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        """close() closes the client."""
        client = AsyncMock()
        await RedisCache(client).close()
        client.aclose.assert_awaited_once()

    def test_from_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """from_url builds a decoding client for the given URL."""
        calls = []

        def fake_from_url(url, **kwargs):
            calls.append((url, kwargs))
            return AsyncMock()

        monkeypatch.setattr(aioredis, "from_url", fake_from_url)
        RedisCache.from_url("redis://cache:6379/1")
        assert calls == [("redis://cache:6379/1", {"decode_responses": True})]


class TestAuthCacheInvalidator:
    """Tests for cache eviction on membership and role changes."""

    @pytest.mark.asyncio
    async def test_invalidate_user(self) -> None:
        """The user's auth:{auth_id} entry is evicted."""
        store = MemoryStore()
        cache = MemoryCache()
        user = await store.insert(Collections.USERS, {"auth_id": "a1", "display_name": "A"})
        await cache.set(auth_cache_key("a1"), "{}", ttl=300)

        await AuthCacheInvalidator(store, cache).invalidate_user(user["_id"])
        assert await cache.get(auth_cache_key("a1")) is None

    @pytest.mark.asyncio
    async def test_unknown_user_is_ignored(self) -> None:
        """Invalidating a missing user is a no-op."""
        store = MemoryStore()
        cache = MemoryCache()
        await cache.set(auth_cache_key("a1"), "{}", ttl=300)

        await AuthCacheInvalidator(store, cache).invalidate_user("0" * 32)
        assert await cache.get(auth_cache_key("a1")) == "{}"

    @pytest.mark.asyncio
    async def test_invalidate_role(self) -> None:
        """Every holder of the role is evicted; other users keep their entry."""
        store = MemoryStore()
        cache = MemoryCache()
        for auth_id, role_id in (("a1", "r1"), ("a2", "r1"), ("a3", "r2")):
            user = await store.insert(Collections.USERS, {"auth_id": auth_id})
            await store.insert(Collections.MEMBERSHIPS, {"user_id": user["_id"], "school_id": "s", "role_id": role_id})
            await cache.set(auth_cache_key(auth_id), "{}", ttl=300)

        await AuthCacheInvalidator(store, cache).invalidate_role("r1")

        assert await cache.get(auth_cache_key("a1")) is None
        assert await cache.get(auth_cache_key("a2")) is None
        assert await cache.get(auth_cache_key("a3")) == "{}"

    @pytest.mark.asyncio
    async def test_failed_delete_does_not_raise(self) -> None:
        """A cache outage during invalidation is logged, not raised."""
        store = MemoryStore()
        client = AsyncMock()
        client.delete.side_effect = RedisConnectionError("down")
        user = await store.insert(Collections.USERS, {"auth_id": "a1"})

        await AuthCacheInvalidator(store, RedisCache(client)).invalidate_users([user["_id"], user["_id"]])
        client.delete.assert_awaited_once_with(auth_cache_key("a1"))
