"""Shared fixtures: a fully wired SchoolCore on the in-memory backends."""

from __future__ import annotations

import pytest
import pytest_asyncio
from helpers import SUPERADMIN_EMAIL, SUPERADMIN_PASSWORD, TOKEN_SECRET, login

from schoolcore import AuthConfig, AuthContext, MemoryCache, SchoolCore, SchoolCoreConfig
from schoolcore.store import MemoryStore


@pytest.fixture
def config() -> SchoolCoreConfig:
    return SchoolCoreConfig(
        auth=AuthConfig(
            token_secret=TOKEN_SECRET,
            bcrypt_rounds=4,
            superadmin_email=SUPERADMIN_EMAIL,
            superadmin_password=SUPERADMIN_PASSWORD,
        )
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore(max_attempts=5)


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache()


@pytest_asyncio.fixture
async def core(config: SchoolCoreConfig, store: MemoryStore, cache: MemoryCache):
    core = SchoolCore(config, store=store, cache=cache)
    await core.startup()
    yield core
    await core.close()


@pytest_asyncio.fixture
async def superadmin(core: SchoolCore) -> AuthContext:
    return await login(core, SUPERADMIN_EMAIL, SUPERADMIN_PASSWORD)
