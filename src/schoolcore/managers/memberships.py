"""School memberships.

A membership binds a user to one role in one school, or globally when
``school_id`` is ``None``. ``(user_id, school_id)`` is unique, so a user has
at most one role per school and at most one global membership. Every write
evicts the member's cached AuthContext before it reports success.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from ..cache import AuthCacheInvalidator
from ..context import MembershipView
from ..exceptions import DuplicateKeyError, ErrorKind, Failure, Ok, Result, returns_result
from ..store import Collections, Doc, DocumentStore, Transaction
from .base import not_found, role_scope, school_scope


def _by_id(docs: list[Doc]) -> dict[str, Doc]:
    return {d["_id"]: d for d in docs}


class MembershipManager:
    def __init__(self, store: DocumentStore, invalidator: AuthCacheInvalidator) -> None:
        self._store = store
        self._invalidator = invalidator

    async def invalidate(self, user_id: str) -> None:
        await self._invalidator.invalidate_user(user_id)

    async def invalidate_many(self, user_ids: Iterable[str]) -> None:
        await self._invalidator.invalidate_users(user_ids)

    @returns_result
    async def create(self, user_id: str, school_id: str, role_id: str) -> Result[Doc]:
        """Add ``user_id`` to ``school_id`` with ``role_id``.

        Commits only if the role still exists in the school; guarded by the
        school's and the role's transaction scopes against concurrent deletion.
        """
        existing = await self._store.find_one(Collections.MEMBERSHIPS, {"user_id": user_id, "school_id": school_id})
        if existing is not None:
            return Failure(ErrorKind.DUPLICATE, "user is already a member of this school")

        doc = {"user_id": user_id, "school_id": school_id, "role_id": role_id}

        async def attempt(tx: Transaction) -> Result[Doc]:
            # the role is deleted together with its school, so this covers both
            if await tx.find_one(Collections.ROLES, {"_id": role_id, "school_id": school_id}) is None:
                return not_found("role")
            return Ok(tx.insert(Collections.MEMBERSHIPS, doc))

        try:
            result = await self._store.run_in_transaction(
                None, attempt, guards=[school_scope(school_id), role_scope(role_id)]
            )
        except DuplicateKeyError:
            return Failure(ErrorKind.DUPLICATE, "user is already a member of this school")
        if result.ok:
            await self._invalidator.invalidate_user(user_id)
        return result

    @returns_result
    async def create_global(self, user_id: str, role_id: str) -> Result[Doc]:
        """Idempotent: returns the user's existing global membership if any."""
        existing = await self._store.find_one(Collections.MEMBERSHIPS, {"user_id": user_id, "school_id": None})
        if existing is not None:
            return Ok(existing)

        try:
            membership = await self._store.insert(
                Collections.MEMBERSHIPS,
                {"user_id": user_id, "school_id": None, "role_id": role_id},
            )
        except DuplicateKeyError:
            membership = await self._store.find_one(
                Collections.MEMBERSHIPS, {"user_id": user_id, "school_id": None}
            )
            if membership is None:
                raise

        await self._invalidator.invalidate_user(user_id)
        return Ok(membership)

    @returns_result
    async def remove(self, user_id: str, school_id: Optional[str]) -> Result[dict[str, str]]:
        if not await self._store.delete_one(Collections.MEMBERSHIPS, {"user_id": user_id, "school_id": school_id}):
            return not_found("membership")
        await self._invalidator.invalidate_user(user_id)
        return Ok({"message": "membership removed"})

    async def get_memberships(self, user_id: str) -> list[MembershipView]:
        """All memberships of a user joined with role and school.

        This is the structure embedded in every AuthContext.
        """
        memberships = await self._store.find(Collections.MEMBERSHIPS, {"user_id": user_id})
        if not memberships:
            return []

        roles = _by_id(
            await self._store.find(Collections.ROLES, {"_id": {"$in": [m["role_id"] for m in memberships]}})
        )
        school_ids = [m["school_id"] for m in memberships if m.get("school_id") is not None]
        schools = _by_id(await self._store.find(Collections.SCHOOLS, {"_id": {"$in": school_ids}})) if school_ids else {}

        views = []
        for m in memberships:
            role = roles.get(m["role_id"])
            school = schools.get(m["school_id"]) if m.get("school_id") is not None else None
            views.append(
                MembershipView(
                    id=m["_id"],
                    school_id=m.get("school_id"),
                    school_name=school["name"] if school else None,
                    role_id=m["role_id"],
                    role_name=role["name"] if role else None,
                    permissions=list(role.get("permissions", [])) if role else [],
                    is_global=m.get("school_id") is None,
                )
            )
        return views

    async def get_school_members(self, school_id: str) -> list[dict[str, Any]]:
        memberships = await self._store.find(
            Collections.MEMBERSHIPS, {"school_id": school_id}, sort=[("created_at", 1)]
        )
        if not memberships:
            return []

        users = _by_id(
            await self._store.find(Collections.USERS, {"_id": {"$in": [m["user_id"] for m in memberships]}})
        )
        roles = _by_id(
            await self._store.find(Collections.ROLES, {"_id": {"$in": [m["role_id"] for m in memberships]}})
        )

        members = []
        for m in memberships:
            user = users.get(m["user_id"])
            role = roles.get(m["role_id"])
            members.append(
                {
                    "_id": m["_id"],
                    "user_id": m["user_id"],
                    "display_name": user["display_name"] if user else None,
                    "role_id": m["role_id"],
                    "role_name": role["name"] if role else None,
                    "permissions": list(role.get("permissions", [])) if role else [],
                }
            )
        return members


__all__ = ["MembershipManager"]
