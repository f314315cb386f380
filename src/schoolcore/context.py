"""AuthContext and its per-request resolver.

An ``AuthContext`` is the resolved, cacheable snapshot of who is calling
and what they may do: the user profile plus every membership joined with
its role permissions and school name. Managers receive it as their first
argument and never re-derive it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field, ValidationError

from .cache import TOMBSTONE, CachePort, auth_cache_key
from .exceptions import ErrorKind, Failure, Ok, Result, returns_result
from .permissions.constants import Permissions

if TYPE_CHECKING:
    from .identity import AuthAdapter
    from .managers.memberships import MembershipManager
    from .managers.users import UserManager

logger = logging.getLogger(__name__)


class MembershipView(BaseModel):
    """A membership joined with its role and school."""

    id: str
    school_id: Optional[str] = None
    school_name: Optional[str] = None
    role_id: Optional[str] = None
    role_name: Optional[str] = None
    permissions: list[str] = Field(default_factory=list)
    is_global: bool = False


class AuthContext(BaseModel):
    """Identity and grants of the caller for one request."""

    user_id: str
    auth_id: str
    display_name: str = ""
    memberships: list[MembershipView] = Field(default_factory=list)
    is_super: bool = False

    @classmethod
    def build(cls, *, user_id: str, auth_id: str, display_name: str, memberships: list[MembershipView]) -> "AuthContext":
        """Assemble a context; ``is_super`` iff a global membership holds ``*:*``."""
        is_super = any(m.is_global and Permissions.ALL in m.permissions for m in memberships)
        return cls(
            user_id=user_id,
            auth_id=auth_id,
            display_name=display_name,
            memberships=memberships,
            is_super=is_super,
        )

    @property
    def school_memberships(self) -> list[MembershipView]:
        return [m for m in self.memberships if m.school_id is not None]

    def membership_for(self, school_id: str) -> Optional[MembershipView]:
        return next((m for m in self.school_memberships if m.school_id == str(school_id)), None)

    def sole_school_id(self) -> Optional[str]:
        """The caller's school when they belong to exactly one."""
        schools = self.school_memberships
        return schools[0].school_id if len(schools) == 1 else None


class AuthContextResolver:
    """Turns a bearer token into an ``AuthContext``.

    Flow:
    1. verify the token via the auth adapter (``None`` → unauthenticated)
    2. cache lookup by ``auth:{auth_id}``; a fresh entry is used as-is
       without touching the store
    3. on miss: load profile and memberships, compute ``is_super``, write
       back with a fixed TTL (best-effort)
    """

    def __init__(
        self,
        adapter: "AuthAdapter",
        users: "UserManager",
        memberships: "MembershipManager",
        cache: CachePort,
        ttl_seconds: int = 300,
    ) -> None:
        self._adapter = adapter
        self._users = users
        self._memberships = memberships
        self._cache = cache
        self._ttl = ttl_seconds

    @returns_result
    async def resolve(self, token: Optional[str]) -> Result[AuthContext]:
        if not token:
            return Failure(ErrorKind.UNAUTHORIZED, "token required")

        verified = self._adapter.verify_token(token)
        if verified is None:
            return Failure(ErrorKind.UNAUTHORIZED, "invalid token")
        auth_id = verified["auth_id"]
        cache_key = auth_cache_key(auth_id)

        cached = await self._cache.get(cache_key)
        if cached is not None and cached != TOMBSTONE:
            try:
                return Ok(AuthContext.model_validate_json(cached))
            except ValidationError:
                logger.warning("Discarding unreadable auth cache entry for %s", auth_id)

        user = await self._users.get_by_auth_id(auth_id)
        if user is None:
            return Failure(ErrorKind.UNAUTHORIZED, "user not found")

        memberships = await self._memberships.get_memberships(user["_id"])
        context = AuthContext.build(
            user_id=user["_id"],
            auth_id=auth_id,
            display_name=user.get("display_name", ""),
            memberships=memberships,
        )

        if not await self._cache.set(cache_key, context.model_dump_json(), self._ttl):
            logger.debug("Auth cache write skipped for %s", auth_id)

        return Ok(context)


__all__ = ["AuthContext", "AuthContextResolver", "MembershipView"]
