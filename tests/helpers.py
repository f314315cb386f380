"""Shared test helpers for driving a SchoolCore instance."""

from __future__ import annotations

from typing import Optional

from schoolcore import AuthContext, SchoolCore

SUPERADMIN_EMAIL = "root@school.test"
SUPERADMIN_PASSWORD = "root-password-1"
TOKEN_SECRET = "test-secret-do-not-use"


async def login(core: SchoolCore, email: str, password: str) -> AuthContext:
    """Log in and resolve the token into a context."""
    result = await core.auth.login(email, password)
    assert result.ok, result
    resolved = await core.authenticate(result.value["token"])
    assert resolved.ok, resolved
    return resolved.value


async def refresh(core: SchoolCore, token: str) -> AuthContext:
    """Resolve ``token`` again (cache or store)."""
    resolved = await core.authenticate(token)
    assert resolved.ok, resolved
    return resolved.value


async def register_user(
    core: SchoolCore,
    creator: AuthContext,
    email: str,
    password: str = "password-123",
    display_name: Optional[str] = None,
) -> tuple[str, str]:
    """Register an account; returns ``(user_id, token)``."""
    result = await core.auth.register(creator, email, password, display_name or email.split("@")[0])
    assert result.ok, result
    return result.value["user"]["_id"], result.value["token"]


async def create_school(core: SchoolCore, creator: AuthContext, name: str = "Springfield Elementary") -> str:
    result = await core.schools.create_school(creator, name)
    assert result.ok, result
    return result.value["school"]["_id"]


async def create_classroom(core: SchoolCore, auth: AuthContext, school_id: str, name: str, capacity: int = 30) -> str:
    result = await core.classrooms.create_classroom(auth, name, school_id=school_id, capacity=capacity)
    assert result.ok, result
    return result.value["_id"]


async def create_role(core: SchoolCore, auth: AuthContext, school_id: str, name: str, permissions: list[str]) -> str:
    result = await core.roles.create_role(auth, school_id, name, permissions)
    assert result.ok, result
    return result.value["_id"]
