"""Bootstrap container.

``SchoolCore`` wires the store, cache, permission registry, auth adapter,
validators and every manager from one ``SchoolCoreConfig``. A transport
layer creates one instance per process, awaits ``startup()`` once and then
calls ``authenticate()`` per request before handing the context to a
manager.

Example::

    core = SchoolCore(load_config_from_env())
    await core.startup()

    auth = await core.authenticate(bearer_token)
    if not auth.ok:
        return to_response(auth)
    return to_response(await core.classrooms.get_classrooms(auth.value))
"""

from __future__ import annotations

import logging
from typing import Optional

from .cache import AuthCacheInvalidator, CachePort, MemoryCache, RedisCache
from .config import SchoolCoreConfig, StoreBackend
from .context import AuthContext, AuthContextResolver
from .exceptions import ConfigurationError, Result
from .identity import AuthAdapter, get_auth_adapter
from .managers import (
    AuthManager,
    ClassroomManager,
    MembershipManager,
    ResourceManager,
    RoleManager,
    SchoolManager,
    StudentManager,
    UserManager,
)
from .permissions import PermissionRegistry
from .store import DocumentStore, MemoryStore
from .validators import Validators

logger = logging.getLogger(__name__)


def build_store(config: SchoolCoreConfig) -> DocumentStore:
    if config.store_backend is StoreBackend.MEMORY:
        return MemoryStore(max_attempts=config.transaction_max_attempts)
    if config.store_backend is StoreBackend.REDIS:
        if not config.redis_url:
            raise ConfigurationError("STORE_BACKEND=redis requires REDIS_URL")
        from .store.redis import RedisStore

        return RedisStore.from_url(
            config.redis_url,
            namespace=config.store_namespace,
            max_attempts=config.transaction_max_attempts,
        )
    raise ConfigurationError(f"Unsupported store backend: {config.store_backend}")


def build_cache(config: SchoolCoreConfig) -> CachePort:
    """Redis cache when ``REDIS_URL`` is set, otherwise a process-local one."""
    if config.redis_url:
        return RedisCache.from_url(config.redis_url)
    return MemoryCache()


class SchoolCore:
    """Every collaborator of the service, constructed once per process."""

    def __init__(
        self,
        config: SchoolCoreConfig,
        *,
        store: Optional[DocumentStore] = None,
        cache: Optional[CachePort] = None,
        adapter: Optional[AuthAdapter] = None,
    ) -> None:
        self.config = config
        self.store = store if store is not None else build_store(config)
        self.cache = cache if cache is not None else build_cache(config)
        self.adapter = adapter if adapter is not None else get_auth_adapter(config, self.store)

        self.validators = Validators()
        self.registry = PermissionRegistry(self.store)
        self.invalidator = AuthCacheInvalidator(self.store, self.cache)

        self.users = UserManager(self.store)
        self.memberships = MembershipManager(self.store, self.invalidator)
        self.roles = RoleManager(self.store, self.registry, self.validators, self.invalidator)
        self.auth = AuthManager(config, self.adapter, self.users, self.memberships, self.roles, self.validators)
        self.schools = SchoolManager(self.store, self.roles, self.memberships, self.validators)
        self.classrooms = ClassroomManager(
            self.store, self.validators, default_capacity=config.default_classroom_capacity
        )
        self.students = StudentManager(self.store, self.validators)
        self.resources = ResourceManager(self.store, self.validators)

        self.resolver = AuthContextResolver(
            self.adapter,
            self.users,
            self.memberships,
            self.cache,
            ttl_seconds=config.auth.cache_ttl_seconds,
        )

    async def startup(self) -> None:
        """Seed permissions, system roles and the super-admin (all idempotent)."""
        await self.registry.seed()
        await self.roles.seed()
        await self.auth.seed_super_admin()
        logger.info("schoolcore started (store=%s)", self.config.store_backend.value)

    async def authenticate(self, token: Optional[str]) -> Result[AuthContext]:
        return await self.resolver.resolve(token)

    async def close(self) -> None:
        await self.store.close()
        close_cache = getattr(self.cache, "close", None)
        if close_cache is not None:
            await close_cache()


__all__ = ["SchoolCore", "build_cache", "build_store"]
