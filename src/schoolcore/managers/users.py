"""User profiles.

A profile holds the display name and the opaque ``auth_id`` of its identity;
credentials live with the auth adapter.
"""

from __future__ import annotations

from typing import Optional

from ..context import AuthContext
from ..exceptions import Ok, Result, returns_result
from ..store import Collections, Doc, DocumentStore
from .base import not_found


class UserManager:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def create_profile(self, auth_id: str, display_name: str) -> Doc:
        """Insert a profile. Raises ``DuplicateKeyError`` if ``auth_id`` has one."""
        return await self._store.insert(Collections.USERS, {"auth_id": auth_id, "display_name": display_name})

    async def get_by_auth_id(self, auth_id: str) -> Optional[Doc]:
        return await self._store.find_one(Collections.USERS, {"auth_id": auth_id})

    async def get_by_id(self, user_id: str) -> Optional[Doc]:
        return await self._store.find_one(Collections.USERS, {"_id": user_id})

    @returns_result
    async def get_profile(self, auth: AuthContext) -> Result[Doc]:
        """The caller's profile with the memberships of their context."""
        user = await self.get_by_id(auth.user_id)
        if user is None:
            return not_found("user")
        return Ok({**user, "memberships": [m.model_dump() for m in auth.memberships]})

    async def delete_by_auth_id(self, auth_id: str) -> bool:
        return await self._store.delete_one(Collections.USERS, {"auth_id": auth_id})


__all__ = ["UserManager"]
