"""Classrooms.

Occupancy-sensitive writes (capacity changes, deletion, enrollment) run in a
transaction scoped to the classroom, so they serialize against each other
without any in-process lock.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..context import AuthContext
from ..exceptions import DuplicateKeyError, ErrorKind, Failure, Ok, Result, returns_result
from ..permissions import Permissions, has_permission
from ..store import Collections, Doc, DocumentStore, Transaction
from ..validators import Validators
from .base import (
    UNSET,
    check_ids,
    classroom_scope,
    not_found,
    permission_denied,
    provided,
    resolve_school_id,
    write_under_school,
)

logger = logging.getLogger(__name__)

_DUPLICATE_NAME = "classroom name already exists in this school"


class ClassroomManager:
    def __init__(self, store: DocumentStore, validators: Validators, *, default_capacity: int = 30) -> None:
        self._store = store
        self._validators = validators.classroom
        self._default_capacity = default_capacity

    @returns_result
    async def create_classroom(
        self,
        auth: AuthContext,
        name: str,
        school_id: Optional[str] = None,
        capacity: Optional[int] = None,
    ) -> Result[Doc]:
        """Create a classroom.

        ``school_id`` may be omitted when the caller belongs to exactly one
        school.
        """
        error = self._validators.create_classroom({"name": name, "capacity": capacity})
        if error:
            return error
        school_id = resolve_school_id(auth, school_id)
        error = check_ids(school_id=school_id)
        if error:
            return error

        if not has_permission(auth, school_id, Permissions.CLASSROOM_CREATE):
            return permission_denied()
        if await self._store.find_one(Collections.SCHOOLS, {"_id": school_id}) is None:
            return not_found("school")

        name = name.strip()
        if await self._store.find_one(Collections.CLASSROOMS, {"school_id": school_id, "name": name}):
            return Failure(ErrorKind.DUPLICATE, _DUPLICATE_NAME)

        doc = {"name": name, "school_id": school_id, "capacity": capacity or self._default_capacity}
        try:
            return await write_under_school(self._store, school_id, lambda tx: tx.insert(Collections.CLASSROOMS, doc))
        except DuplicateKeyError:
            return Failure(ErrorKind.DUPLICATE, _DUPLICATE_NAME)

    @returns_result
    async def get_classroom(self, auth: AuthContext, classroom_id: str) -> Result[Doc]:
        error = check_ids(classroom_id=classroom_id)
        if error:
            return error
        classroom = await self._store.find_one(Collections.CLASSROOMS, {"_id": classroom_id})
        if classroom is None:
            return not_found("classroom")
        if not has_permission(auth, classroom["school_id"], Permissions.CLASSROOM_READ):
            return permission_denied()
        classroom["enrolled"] = await self._store.count(Collections.STUDENTS, {"classroom_id": classroom_id})
        return Ok(classroom)

    @returns_result
    async def get_classrooms(self, auth: AuthContext, school_id: Optional[str] = None) -> Result[list[Doc]]:
        school_id = resolve_school_id(auth, school_id)
        error = check_ids(school_id=school_id)
        if error:
            return error
        if not has_permission(auth, school_id, Permissions.CLASSROOM_READ):
            return permission_denied()
        return Ok(await self._store.find(Collections.CLASSROOMS, {"school_id": school_id}, sort=[("name", 1)]))

    @returns_result
    async def update_classroom(
        self,
        auth: AuthContext,
        classroom_id: str,
        name: Any = UNSET,
        capacity: Any = UNSET,
    ) -> Result[Doc]:
        """Rename or resize a classroom.

        Capacity may not drop below the number of students currently
        enrolled.
        """
        changes = provided(name=name, capacity=capacity)
        error = check_ids(classroom_id=classroom_id) or self._validators.update_classroom(changes)
        if error:
            return error

        classroom = await self._store.find_one(Collections.CLASSROOMS, {"_id": classroom_id})
        if classroom is None:
            return not_found("classroom")
        if not has_permission(auth, classroom["school_id"], Permissions.CLASSROOM_UPDATE):
            return permission_denied()

        if "name" in changes:
            changes["name"] = changes["name"].strip()
            duplicate = await self._store.find_one(
                Collections.CLASSROOMS,
                {"school_id": classroom["school_id"], "name": changes["name"], "_id": {"$ne": classroom_id}},
            )
            if duplicate:
                return Failure(ErrorKind.DUPLICATE, _DUPLICATE_NAME)
        if not changes:
            return Ok(classroom)

        async def apply(tx: Transaction) -> Optional[Failure]:
            if "capacity" in changes:
                enrolled = await tx.count(Collections.STUDENTS, {"classroom_id": classroom_id})
                if changes["capacity"] < enrolled:
                    return Failure(
                        ErrorKind.VALIDATION,
                        f"capacity cannot be lower than current enrollment ({enrolled})",
                    )
            tx.update(Collections.CLASSROOMS, {"_id": classroom_id}, changes)
            return None

        try:
            error = await self._store.run_in_transaction(classroom_scope(classroom_id), apply)
        except DuplicateKeyError:
            return Failure(ErrorKind.DUPLICATE, _DUPLICATE_NAME)
        if error:
            return error

        updated = await self._store.find_one(Collections.CLASSROOMS, {"_id": classroom_id})
        if updated is None:
            return not_found("classroom")
        return Ok(updated)

    @returns_result
    async def delete_classroom(self, auth: AuthContext, classroom_id: str) -> Result[dict[str, str]]:
        """Delete a classroom, unassigning its students and deleting its resources."""
        error = check_ids(classroom_id=classroom_id)
        if error:
            return error
        classroom = await self._store.find_one(Collections.CLASSROOMS, {"_id": classroom_id})
        if classroom is None:
            return not_found("classroom")
        if not has_permission(auth, classroom["school_id"], Permissions.CLASSROOM_DELETE):
            return permission_denied()

        async def apply(tx: Transaction) -> None:
            tx.update(Collections.STUDENTS, {"classroom_id": classroom_id}, {"classroom_id": None})
            tx.delete(Collections.RESOURCES, {"classroom_id": classroom_id})
            tx.delete(Collections.CLASSROOMS, {"_id": classroom_id})

        await self._store.run_in_transaction(classroom_scope(classroom_id), apply)
        logger.info("Classroom %s deleted", classroom_id)
        return Ok({"message": "classroom deleted, students unassigned"})


__all__ = ["ClassroomManager"]
