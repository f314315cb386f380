"""Roles: named bundles of permission keys.

System roles (the global ``superadmin`` and each school's ``owner``) are
created by the platform and can be neither modified nor deleted. Every
other role belongs to one school and is managed by holders of
``school:manage_roles`` there.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from ..cache import AuthCacheInvalidator
from ..context import AuthContext
from ..exceptions import DuplicateKeyError, ErrorKind, Failure, Ok, Result, returns_result
from ..logging import get_request_logger
from ..permissions import Permissions, PermissionRegistry, SystemRoles, has_permission
from ..store import Collections, Doc, DocumentStore, Transaction
from ..validators import Validators
from .base import UNSET, check_id, check_ids, not_found, permission_denied, provided, role_scope, write_under_school

GLOBAL_SEED: tuple[dict[str, Any], ...] = (
    {
        "name": SystemRoles.SUPERADMIN,
        "description": "Full system access",
        "permissions": [Permissions.ALL],
        "school_id": None,
        "is_system": True,
    },
)

_DUPLICATE_NAME = "role name already exists in this school"


class RoleManager:
    def __init__(
        self,
        store: DocumentStore,
        registry: PermissionRegistry,
        validators: Validators,
        invalidator: AuthCacheInvalidator,
    ) -> None:
        self._store = store
        self._registry = registry
        self._validators = validators.role
        self._invalidator = invalidator

    async def seed(self) -> None:
        """Idempotently upsert the global system roles."""
        for role in GLOBAL_SEED:
            await self._store.upsert(Collections.ROLES, {"name": role["name"], "school_id": None}, role)

    async def get_system_role(self, name: str) -> Optional[Doc]:
        return await self._store.find_one(Collections.ROLES, {"name": name, "school_id": None, "is_system": True})

    async def create_owner_role_for_school(self, school_id: str, tx: Optional[Transaction] = None) -> Doc:
        """The school's ``owner`` role (``*:*``); queued on ``tx`` when given."""
        doc = {
            "name": SystemRoles.OWNER,
            "description": "School owner, full access",
            "permissions": [Permissions.ALL],
            "school_id": school_id,
            "is_system": True,
        }
        if tx is not None:
            return tx.insert(Collections.ROLES, doc)
        return await self._store.insert(Collections.ROLES, doc)

    def _invalid_grant(self, permissions: Iterable[str]) -> Optional[Failure]:
        for key in permissions:
            error = self._registry.validate_grant(key)
            if error is not None:
                return Failure(ErrorKind.VALIDATION, error)
        return None

    @returns_result
    async def create_role(
        self,
        auth: AuthContext,
        school_id: str,
        name: str,
        permissions: list[str],
        description: str = "",
    ) -> Result[Doc]:
        error = check_id("school_id", school_id) or self._validators.create_role(
            {"name": name, "description": description, "permissions": permissions}
        )
        if error:
            return error

        if not has_permission(auth, school_id, Permissions.SCHOOL_MANAGE_ROLES):
            return permission_denied()

        if await self._store.find_one(Collections.SCHOOLS, {"_id": school_id}) is None:
            return not_found("school")

        error = self._invalid_grant(permissions)
        if error:
            return error

        name = name.strip()
        if await self._store.find_one(Collections.ROLES, {"school_id": school_id, "name": name}):
            return Failure(ErrorKind.DUPLICATE, _DUPLICATE_NAME)

        doc = {
            "name": name,
            "description": description,
            "permissions": list(dict.fromkeys(permissions)),
            "school_id": school_id,
            "is_system": False,
        }
        try:
            return await write_under_school(self._store, school_id, lambda tx: tx.insert(Collections.ROLES, doc))
        except DuplicateKeyError:
            return Failure(ErrorKind.DUPLICATE, _DUPLICATE_NAME)

    @returns_result
    async def get_roles(self, auth: AuthContext, school_id: str) -> Result[list[Doc]]:
        error = check_id("school_id", school_id)
        if error:
            return error
        if not auth.is_super and auth.membership_for(school_id) is None:
            return Failure(ErrorKind.PERMISSION_DENIED, "not a member of this school")
        return Ok(await self._store.find(Collections.ROLES, {"school_id": school_id}, sort=[("name", 1)]))

    @returns_result
    async def update_role(
        self,
        auth: AuthContext,
        role_id: str,
        name: Any = UNSET,
        permissions: Any = UNSET,
        description: Any = UNSET,
    ) -> Result[Doc]:
        changes = provided(name=name, permissions=permissions, description=description)
        error = check_id("role_id", role_id) or self._validators.update_role(changes)
        if error:
            return error

        role = await self._store.find_one(Collections.ROLES, {"_id": role_id})
        if role is None:
            return not_found("role")
        if role["is_system"]:
            return Failure(ErrorKind.PERMISSION_DENIED, "cannot modify system role")
        if not has_permission(auth, role["school_id"], Permissions.SCHOOL_MANAGE_ROLES):
            return permission_denied()

        if "permissions" in changes:
            error = self._invalid_grant(changes["permissions"])
            if error:
                return error
            changes["permissions"] = list(dict.fromkeys(changes["permissions"]))

        if "name" in changes:
            changes["name"] = changes["name"].strip()
            duplicate = await self._store.find_one(
                Collections.ROLES,
                {"school_id": role["school_id"], "name": changes["name"], "_id": {"$ne": role_id}},
            )
            if duplicate:
                return Failure(ErrorKind.DUPLICATE, _DUPLICATE_NAME)

        if not changes:
            return Ok(role)

        try:
            updated = await self._store.update_one(Collections.ROLES, {"_id": role_id}, changes)
        except DuplicateKeyError:
            return Failure(ErrorKind.DUPLICATE, _DUPLICATE_NAME)
        if updated is None:
            return not_found("role")

        if "permissions" in changes:
            await self._invalidator.invalidate_role(role_id)
        return Ok(updated)

    @returns_result
    async def delete_role(self, auth: AuthContext, role_id: str) -> Result[dict[str, str]]:
        error = check_ids(role_id=role_id)
        if error:
            return error

        role = await self._store.find_one(Collections.ROLES, {"_id": role_id})
        if role is None:
            return not_found("role")
        if role["is_system"]:
            return Failure(ErrorKind.PERMISSION_DENIED, "cannot delete system role")
        if not has_permission(auth, role["school_id"], Permissions.SCHOOL_MANAGE_ROLES):
            return permission_denied()

        held = await self._store.find_one(
            Collections.MEMBERSHIPS,
            {"user_id": auth.user_id, "school_id": role["school_id"], "role_id": role_id},
        )
        if held is not None:
            return Failure(ErrorKind.VALIDATION, "cannot delete a role you are currently assigned to")

        async with self._store.transaction(role_scope(role_id)) as tx:
            tx.delete(Collections.MEMBERSHIPS, {"role_id": role_id})
            tx.delete(Collections.ROLES, {"_id": role_id})
        # results hold the memberships removed at commit time
        holders = [m["user_id"] for m in tx.results[0]]

        await self._invalidator.invalidate_users(holders)
        get_request_logger(__name__, auth_id=auth.auth_id, user_id=auth.user_id).info(
            "Role %s deleted, %d memberships removed", role_id, len(holders)
        )
        return Ok({"message": "role deleted"})


__all__ = ["GLOBAL_SEED", "RoleManager"]
