"""Schools, and membership administration within a school."""

from __future__ import annotations

from typing import Any

from ..context import AuthContext
from ..exceptions import ErrorKind, Failure, Ok, Result, returns_result
from ..logging import get_request_logger
from ..permissions import Permissions, SystemRoles, has_global_permission, has_permission
from ..store import Collections, Doc, DocumentStore, new_id
from ..validators import Validators
from .base import UNSET, check_ids, not_found, permission_denied, provided, school_scope
from .memberships import MembershipManager
from .roles import RoleManager


class SchoolManager:
    def __init__(
        self,
        store: DocumentStore,
        roles: RoleManager,
        memberships: MembershipManager,
        validators: Validators,
    ) -> None:
        self._store = store
        self._roles = roles
        self._memberships = memberships
        self._validators = validators.school

    @returns_result
    async def create_school(self, auth: AuthContext, name: str, address: str = "", phone: str = "") -> Result[dict[str, Any]]:
        """Create a school, its ``owner`` role and the creator's owner membership.

        The three documents are committed together.
        """
        fields = {"name": name, "address": address, "phone": phone}
        error = self._validators.create_school(fields)
        if error:
            return error

        if not has_global_permission(auth, Permissions.SCHOOL_CREATE):
            return permission_denied()

        school_id = new_id()
        async with self._store.transaction(school_scope(school_id)) as tx:
            school = tx.insert(
                Collections.SCHOOLS,
                {"_id": school_id, "name": name.strip(), "address": address.strip(), "phone": phone.strip()},
            )
            owner = await self._roles.create_owner_role_for_school(school_id, tx=tx)
            tx.insert(Collections.MEMBERSHIPS, {"user_id": auth.user_id, "school_id": school_id, "role_id": owner["_id"]})

        await self._memberships.invalidate(auth.user_id)
        get_request_logger(__name__, auth_id=auth.auth_id, user_id=auth.user_id).info("School %s created", school_id)
        return Ok({"school": school, "membership": {"role_id": owner["_id"], "role_name": SystemRoles.OWNER}})

    @returns_result
    async def get_school(self, auth: AuthContext, school_id: str) -> Result[Doc]:
        error = check_ids(school_id=school_id)
        if error:
            return error
        if not has_permission(auth, school_id, Permissions.SCHOOL_READ):
            return permission_denied()

        school = await self._store.find_one(Collections.SCHOOLS, {"_id": school_id})
        if school is None:
            return not_found("school")
        return Ok(school)

    @returns_result
    async def get_schools(self, auth: AuthContext) -> Result[list[Doc]]:
        """Every school for super-admins, otherwise the caller's schools."""
        if auth.is_super:
            return Ok(await self._store.find(Collections.SCHOOLS, sort=[("name", 1)]))
        school_ids = [m.school_id for m in auth.school_memberships]
        if not school_ids:
            return Ok([])
        return Ok(await self._store.find(Collections.SCHOOLS, {"_id": {"$in": school_ids}}, sort=[("name", 1)]))

    @returns_result
    async def update_school(
        self,
        auth: AuthContext,
        school_id: str,
        name: Any = UNSET,
        address: Any = UNSET,
        phone: Any = UNSET,
    ) -> Result[Doc]:
        changes = provided(name=name, address=address, phone=phone)
        error = check_ids(school_id=school_id) or self._validators.update_school(changes)
        if error:
            return error
        if not has_permission(auth, school_id, Permissions.SCHOOL_UPDATE):
            return permission_denied()

        school = await self._store.find_one(Collections.SCHOOLS, {"_id": school_id})
        if school is None:
            return not_found("school")
        if not changes:
            return Ok(school)

        updated = await self._store.update_one(
            Collections.SCHOOLS, {"_id": school_id}, {k: v.strip() for k, v in changes.items()}
        )
        if updated is None:
            return not_found("school")
        return Ok(updated)

    @returns_result
    async def delete_school(self, auth: AuthContext, school_id: str) -> Result[dict[str, str]]:
        """Delete a school and everything that references it.

        Students, resources, classrooms, memberships and roles (the owner
        role included) go in the same commit as the school record.
        """
        error = check_ids(school_id=school_id)
        if error:
            return error
        if not has_permission(auth, school_id, Permissions.SCHOOL_DELETE):
            return permission_denied()

        if await self._store.find_one(Collections.SCHOOLS, {"_id": school_id}) is None:
            return not_found("school")

        async with self._store.transaction(school_scope(school_id)) as tx:
            for collection in (
                Collections.STUDENTS,
                Collections.RESOURCES,
                Collections.CLASSROOMS,
                Collections.MEMBERSHIPS,
                Collections.ROLES,
            ):
                tx.delete(collection, {"school_id": school_id})
            tx.delete(Collections.SCHOOLS, {"_id": school_id})

        removed_memberships = tx.results[3]
        await self._memberships.invalidate_many(m["user_id"] for m in removed_memberships)
        get_request_logger(__name__, auth_id=auth.auth_id, user_id=auth.user_id).info(
            "School %s deleted: %d students, %d resources, %d classrooms, %d memberships, %d roles",
            school_id,
            *(len(r) for r in tx.results[:5]),
        )
        return Ok({"message": "school and associated records deleted"})

    @returns_result
    async def add_member(self, auth: AuthContext, school_id: str, user_id: str, role_id: str) -> Result[dict[str, Any]]:
        error = check_ids(school_id=school_id, user_id=user_id, role_id=role_id)
        if error:
            return error
        if not has_permission(auth, school_id, Permissions.SCHOOL_MANAGE_MEMBERS):
            return permission_denied()

        role = await self._store.find_one(Collections.ROLES, {"_id": role_id})
        if role is None:
            return not_found("role")
        if role["school_id"] != school_id:
            return Failure(ErrorKind.VALIDATION, "role does not belong to this school")
        if await self._store.find_one(Collections.USERS, {"_id": user_id}) is None:
            return not_found("user")

        result = await self._memberships.create(user_id, school_id, role_id)
        if not result.ok:
            return result
        return Ok({"message": "member added", "membership": result.value})

    @returns_result
    async def remove_member(self, auth: AuthContext, school_id: str, user_id: str) -> Result[dict[str, str]]:
        error = check_ids(school_id=school_id, user_id=user_id)
        if error:
            return error
        if not has_permission(auth, school_id, Permissions.SCHOOL_MANAGE_MEMBERS):
            return permission_denied()
        if user_id == auth.user_id:
            return Failure(ErrorKind.VALIDATION, "cannot remove yourself from school")
        return await self._memberships.remove(user_id, school_id)

    @returns_result
    async def get_members(self, auth: AuthContext, school_id: str) -> Result[list[dict[str, Any]]]:
        error = check_ids(school_id=school_id)
        if error:
            return error
        if not has_permission(auth, school_id, Permissions.SCHOOL_READ):
            return permission_denied()
        return Ok(await self._memberships.get_school_members(school_id))


__all__ = ["SchoolManager"]
