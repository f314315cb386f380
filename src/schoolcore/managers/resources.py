"""School resources (equipment, books, rooms), optionally tied to a classroom."""

from __future__ import annotations

from typing import Any, Callable, Optional

from ..context import AuthContext
from ..exceptions import DuplicateKeyError, ErrorKind, Failure, Ok, Result, returns_result
from ..permissions import Permissions, has_permission
from ..store import Collections, Doc, DocumentStore, Transaction
from ..validators import Validators
from .base import (
    UNSET,
    check_id,
    check_ids,
    classroom_scope,
    not_found,
    permission_denied,
    provided,
    resolve_school_id,
    school_scope,
    write_under_school,
)

_DUPLICATE_NAME = "resource name already exists in this location"

# query values selecting resources that are not tied to any classroom
_SCHOOL_LEVEL = ("null", "")


class ResourceManager:
    def __init__(self, store: DocumentStore, validators: Validators) -> None:
        self._store = store
        self._validators = validators.resource

    async def _write_in_classroom(
        self, classroom_id: str, school_id: str, write: Callable[[Transaction], Any]
    ) -> Result[Any]:
        """Run ``write`` while ``classroom_id`` exists and belongs to ``school_id``.

        Shares the classroom's transaction scope with classroom deletion and
        guards the school's scope, so a resource is never attached to a
        classroom or school deleted concurrently.
        """

        async def attempt(tx: Transaction) -> Result[Any]:
            classroom = await tx.find_one(Collections.CLASSROOMS, {"_id": classroom_id})
            if classroom is None:
                return not_found("classroom")
            if classroom["school_id"] != school_id:
                return Failure(ErrorKind.VALIDATION, "classroom does not belong to this school")
            return Ok(write(tx))

        return await self._store.run_in_transaction(
            classroom_scope(classroom_id), attempt, guards=[school_scope(school_id)]
        )

    async def _name_taken(self, school_id: str, classroom_id: Optional[str], name: str, exclude_id: Optional[str] = None) -> bool:
        filter: dict[str, Any] = {"school_id": school_id, "classroom_id": classroom_id, "name": name}
        if exclude_id is not None:
            filter["_id"] = {"$ne": exclude_id}
        return await self._store.find_one(Collections.RESOURCES, filter) is not None

    @returns_result
    async def create_resource(
        self,
        auth: AuthContext,
        name: str,
        school_id: Optional[str] = None,
        classroom_id: Optional[str] = None,
        is_active: bool = True,
        quantity: int = 1,
        description: str = "",
        extra_data: Optional[dict[str, Any]] = None,
    ) -> Result[Doc]:
        fields = {
            "name": name,
            "is_active": is_active,
            "quantity": quantity,
            "description": description,
            "extra_data": extra_data or {},
        }
        error = self._validators.create_resource(fields)
        if error:
            return error
        school_id = resolve_school_id(auth, school_id)
        error = check_ids(school_id=school_id) or (check_id("classroom_id", classroom_id) if classroom_id else None)
        if error:
            return error

        if not has_permission(auth, school_id, Permissions.RESOURCE_CREATE):
            return permission_denied()
        if await self._store.find_one(Collections.SCHOOLS, {"_id": school_id}) is None:
            return not_found("school")

        classroom_id = classroom_id or None
        doc = {**fields, "name": name.strip(), "school_id": school_id, "classroom_id": classroom_id}
        if await self._name_taken(school_id, classroom_id, doc["name"]):
            return Failure(ErrorKind.DUPLICATE, _DUPLICATE_NAME)

        try:
            if classroom_id is None:
                return await write_under_school(self._store, school_id, lambda tx: tx.insert(Collections.RESOURCES, doc))
            return await self._write_in_classroom(classroom_id, school_id, lambda tx: tx.insert(Collections.RESOURCES, doc))
        except DuplicateKeyError:
            return Failure(ErrorKind.DUPLICATE, _DUPLICATE_NAME)

    @returns_result
    async def get_resource(self, auth: AuthContext, resource_id: str) -> Result[Doc]:
        error = check_ids(resource_id=resource_id)
        if error:
            return error
        resource = await self._store.find_one(Collections.RESOURCES, {"_id": resource_id})
        if resource is None:
            return not_found("resource")
        if not has_permission(auth, resource["school_id"], Permissions.RESOURCE_READ):
            return permission_denied()
        return Ok(resource)

    @returns_result
    async def get_resources(
        self,
        auth: AuthContext,
        school_id: Optional[str] = None,
        classroom_id: Optional[str] = None,
    ) -> Result[list[Doc]]:
        """A school's resources.

        ``classroom_id`` narrows to one classroom; ``"null"`` or ``""`` selects
        the resources not tied to any classroom.
        """
        school_id = resolve_school_id(auth, school_id)
        error = check_ids(school_id=school_id)
        if error:
            return error
        if not has_permission(auth, school_id, Permissions.RESOURCE_READ):
            return permission_denied()

        filter: dict[str, Any] = {"school_id": school_id}
        if classroom_id in _SCHOOL_LEVEL:
            filter["classroom_id"] = None
        elif classroom_id is not None:
            error = check_id("classroom_id", classroom_id)
            if error:
                return error
            filter["classroom_id"] = classroom_id
        return Ok(await self._store.find(Collections.RESOURCES, filter, sort=[("name", 1)]))

    @returns_result
    async def update_resource(
        self,
        auth: AuthContext,
        resource_id: str,
        name: Any = UNSET,
        classroom_id: Any = UNSET,
        is_active: Any = UNSET,
        quantity: Any = UNSET,
        description: Any = UNSET,
        extra_data: Any = UNSET,
    ) -> Result[Doc]:
        """Update a resource. ``classroom_id=None`` (or ``""``) detaches it from its classroom."""
        changes = provided(
            name=name, is_active=is_active, quantity=quantity, description=description, extra_data=extra_data
        )
        error = check_ids(resource_id=resource_id) or self._validators.update_resource(changes)
        if error:
            return error
        if classroom_id:
            error = check_id("classroom_id", classroom_id)
            if error:
                return error

        resource = await self._store.find_one(Collections.RESOURCES, {"_id": resource_id})
        if resource is None:
            return not_found("resource")
        if not has_permission(auth, resource["school_id"], Permissions.RESOURCE_UPDATE):
            return permission_denied()

        if "name" in changes:
            changes["name"] = changes["name"].strip()
        if classroom_id is not UNSET:
            changes["classroom_id"] = classroom_id or None
        if not changes:
            return Ok(resource)

        target = {**resource, **changes}
        if await self._name_taken(resource["school_id"], target["classroom_id"], target["name"], exclude_id=resource_id):
            return Failure(ErrorKind.DUPLICATE, _DUPLICATE_NAME)

        def write(tx: Transaction) -> None:
            tx.update(Collections.RESOURCES, {"_id": resource_id}, changes)

        try:
            if changes.get("classroom_id"):
                result = await self._write_in_classroom(changes["classroom_id"], resource["school_id"], write)
                if not result.ok:
                    return result
            else:
                await self._store.update_one(Collections.RESOURCES, {"_id": resource_id}, changes)
        except DuplicateKeyError:
            return Failure(ErrorKind.DUPLICATE, _DUPLICATE_NAME)

        updated = await self._store.find_one(Collections.RESOURCES, {"_id": resource_id})
        if updated is None:
            return not_found("resource")
        return Ok(updated)

    @returns_result
    async def delete_resource(self, auth: AuthContext, resource_id: str) -> Result[dict[str, str]]:
        error = check_ids(resource_id=resource_id)
        if error:
            return error
        resource = await self._store.find_one(Collections.RESOURCES, {"_id": resource_id})
        if resource is None:
            return not_found("resource")
        if not has_permission(auth, resource["school_id"], Permissions.RESOURCE_DELETE):
            return permission_denied()

        await self._store.delete_one(Collections.RESOURCES, {"_id": resource_id})
        return Ok({"message": "resource deleted"})


__all__ = ["ResourceManager"]
