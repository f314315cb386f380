"""AuthContext cache.

Provides:
- ``CachePort``: the cache interface the resolver depends on
- ``MemoryCache`` / ``RedisCache`` / ``NullCache``: implementations
- ``AuthCacheInvalidator``: evicts cached contexts after membership or
  role permission changes

Every ``CachePort`` implementation absorbs its own backend failures: ``get``
returns ``None`` and ``set``/``delete`` return ``False``. Callers treat
those as "absent" and fall back to the store, so a cache outage makes the
service slower, never unavailable.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional, Protocol, runtime_checkable

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .store import Collections, DocumentStore

logger = logging.getLogger(__name__)

# Cached value marking an explicitly emptied entry.
TOMBSTONE = "null"


def auth_cache_key(auth_id: str) -> str:
    return f"auth:{auth_id}"


@runtime_checkable
class CachePort(Protocol):
    """String key/value cache with TTL. Methods never raise."""

    async def get(self, key: str) -> Optional[str]:
        """Cached value, or ``None`` when absent, expired or unreachable."""
        ...

    async def set(self, key: str, value: str, ttl: int) -> bool:
        """Store ``value`` for ``ttl`` seconds; ``False`` if the write failed."""
        ...

    async def delete(self, key: str) -> bool:
        """Evict ``key``; ``False`` if the cache could not be reached."""
        ...


class NullCache:
    """Cache that stores nothing. Every lookup is a miss."""

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str, ttl: int) -> bool:
        return False

    async def delete(self, key: str) -> bool:
        return True


class MemoryCache:
    """Process-local TTL cache.

    Expired entries are dropped when read, and swept from the whole cache
    on ``set`` at most once per ``sweep_interval`` seconds, so contexts of
    users who never come back do not accumulate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: float = 60.0) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval
        self._entries: dict[str, tuple[str, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _sweep(self, now: float) -> None:
        for key in [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]:
            del self._entries[key]
        self._next_sweep = now + self._sweep_interval

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl: int) -> bool:
        now = self._clock()
        if now >= self._next_sweep:
            self._sweep(now)
        self._entries[key] = (value, now + ttl)
        return True

    async def delete(self, key: str) -> bool:
        self._entries.pop(key, None)
        return True

    def clear(self) -> None:
        self._entries.clear()


class RedisCache:
    """``CachePort`` over ``redis.asyncio``."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(aioredis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except (RedisError, OSError) as e:
            logger.warning("Redis cache read failed for %s: %s", key, e)
            return None

    async def set(self, key: str, value: str, ttl: int) -> bool:
        try:
            await self._redis.set(key, value, ex=ttl)
            return True
        except (RedisError, OSError) as e:
            logger.warning("Redis cache write failed for %s: %s", key, e)
            return False

    async def delete(self, key: str) -> bool:
        try:
            await self._redis.delete(key)
            return True
        except (RedisError, OSError) as e:
            logger.warning("Redis cache delete failed for %s: %s", key, e)
            return False

    async def close(self) -> None:
        await self._redis.aclose()


class AuthCacheInvalidator:
    """Evicts cached AuthContexts.

    Writers that change a user's memberships or a role's permission set call
    this before reporting success, so the next request of every affected
    user recomputes its context from the store.
    """

    def __init__(self, store: DocumentStore, cache: CachePort) -> None:
        self._store = store
        self._cache = cache

    async def invalidate_user(self, user_id: str) -> None:
        user = await self._store.find_one(Collections.USERS, {"_id": user_id})
        if user is None or not user.get("auth_id"):
            return
        if not await self._cache.delete(auth_cache_key(user["auth_id"])):
            logger.warning("Failed to invalidate auth cache for user %s", user_id)

    async def invalidate_users(self, user_ids: Iterable[str]) -> None:
        for user_id in dict.fromkeys(user_ids):
            await self.invalidate_user(user_id)

    async def invalidate_role(self, role_id: str) -> None:
        """Invalidate every user currently holding ``role_id``."""
        memberships = await self._store.find(Collections.MEMBERSHIPS, {"role_id": role_id})
        await self.invalidate_users(m["user_id"] for m in memberships)


__all__ = [
    "TOMBSTONE",
    "AuthCacheInvalidator",
    "CachePort",
    "MemoryCache",
    "NullCache",
    "RedisCache",
    "auth_cache_key",
]
