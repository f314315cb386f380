"""Students.

Enrolling a student into a classroom (on create, update or transfer) counts
the classroom's occupants and writes the student in one transaction scoped
to that classroom. Two concurrent enrollments into the last seat cannot
both commit: the loser re-runs, sees the classroom full and reports
``CAPACITY_FULL``. If the retry budget runs out the enrollment is refused
with ``CAPACITY_FULL`` as well, never retried indefinitely.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from ..context import AuthContext
from ..exceptions import DuplicateKeyError, ErrorKind, Failure, Ok, Result, TransactionConflict, returns_result
from ..logging import get_request_logger
from ..pagination import paginate, parse_pagination
from ..permissions import Permissions, has_global_permission, has_permission
from ..store import Collections, Doc, DocumentStore, Transaction, utcnow_iso
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

logger = logging.getLogger(__name__)

_DUPLICATE_EMAIL = "student email already exists"
_FULL = "classroom is at full capacity"


def _normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class StudentManager:
    def __init__(self, store: DocumentStore, validators: Validators) -> None:
        self._store = store
        self._validators = validators.student

    async def _email_taken(self, email: str, exclude_id: Optional[str] = None) -> bool:
        if not email:
            return False
        filter: dict[str, Any] = {"email": email}
        if exclude_id is not None:
            filter["_id"] = {"$ne": exclude_id}
        return await self._store.find_one(Collections.STUDENTS, filter) is not None

    async def _take_seat(
        self,
        classroom_id: str,
        school_id: str,
        write: Callable[[Transaction], Any],
        *,
        missing: str = "classroom",
        foreign: str = "classroom does not belong to this school",
    ) -> Result[Any]:
        """Run ``write`` only if ``classroom_id`` has a free seat.

        Checks existence, school ownership and occupancy inside a
        transaction scoped to the classroom. The school's scope is guarded
        too, so a seat is never taken in a school deleted meanwhile.
        """

        async def attempt(tx: Transaction) -> Result[Any]:
            classroom = await tx.find_one(Collections.CLASSROOMS, {"_id": classroom_id})
            if classroom is None:
                return not_found(missing)
            if classroom["school_id"] != school_id:
                return Failure(ErrorKind.VALIDATION, foreign)
            enrolled = await tx.count(Collections.STUDENTS, {"classroom_id": classroom_id})
            if enrolled >= classroom["capacity"]:
                return Failure(ErrorKind.CAPACITY_FULL, _FULL)
            return Ok(write(tx))

        try:
            return await self._store.run_in_transaction(
                classroom_scope(classroom_id), attempt, guards=[school_scope(school_id)]
            )
        except TransactionConflict as e:
            logger.warning("Enrollment into classroom %s gave up after %d conflicts", classroom_id, e.attempts)
            return Failure(ErrorKind.CAPACITY_FULL, _FULL)

    async def _attach_classrooms(self, students: list[Doc]) -> list[Doc]:
        ids = list({s["classroom_id"] for s in students if s.get("classroom_id")})
        classrooms = {}
        if ids:
            classrooms = {c["_id"]: c for c in await self._store.find(Collections.CLASSROOMS, {"_id": {"$in": ids}})}
        for student in students:
            classroom = classrooms.get(student.get("classroom_id"))
            student["classroom"] = {"_id": classroom["_id"], "name": classroom["name"]} if classroom else None
        return students

    @returns_result
    async def create_student(
        self,
        auth: AuthContext,
        name: str,
        email: str = "",
        school_id: Optional[str] = None,
        classroom_id: Optional[str] = None,
    ) -> Result[Doc]:
        error = self._validators.create_student({"name": name, "email": email or ""})
        if error:
            return error
        school_id = resolve_school_id(auth, school_id)
        error = check_ids(school_id=school_id) or (check_id("classroom_id", classroom_id) if classroom_id else None)
        if error:
            return error

        if not has_permission(auth, school_id, Permissions.STUDENT_CREATE):
            return permission_denied()
        if await self._store.find_one(Collections.SCHOOLS, {"_id": school_id}) is None:
            return not_found("school")

        email = _normalize_email(email)
        if await self._email_taken(email):
            return Failure(ErrorKind.DUPLICATE, _DUPLICATE_EMAIL)

        doc = {
            "name": name.strip(),
            "email": email,
            "school_id": school_id,
            "classroom_id": classroom_id or None,
            "enrolled_at": utcnow_iso(),
        }
        try:
            if not classroom_id:
                return await write_under_school(self._store, school_id, lambda tx: tx.insert(Collections.STUDENTS, doc))
            return await self._take_seat(classroom_id, school_id, lambda tx: tx.insert(Collections.STUDENTS, doc))
        except DuplicateKeyError:
            return Failure(ErrorKind.DUPLICATE, _DUPLICATE_EMAIL)

    @returns_result
    async def get_student(self, auth: AuthContext, student_id: str) -> Result[Doc]:
        error = check_ids(student_id=student_id)
        if error:
            return error
        student = await self._store.find_one(Collections.STUDENTS, {"_id": student_id})
        if student is None:
            return not_found("student")
        if not has_permission(auth, student["school_id"], Permissions.STUDENT_READ):
            return permission_denied()
        (student,) = await self._attach_classrooms([student])
        return Ok(student)

    @returns_result
    async def get_students(
        self,
        auth: AuthContext,
        school_id: Optional[str] = None,
        classroom_id: Optional[str] = None,
        page: Any = None,
        limit: Any = None,
    ) -> Result[dict[str, Any]]:
        """A page of a school's students, optionally limited to one classroom."""
        school_id = resolve_school_id(auth, school_id)
        error = check_ids(school_id=school_id) or (check_id("classroom_id", classroom_id) if classroom_id else None)
        if error:
            return error
        if not has_permission(auth, school_id, Permissions.STUDENT_READ):
            return permission_denied()

        filter: dict[str, Any] = {"school_id": school_id}
        if classroom_id:
            filter["classroom_id"] = classroom_id

        result = await paginate(
            self._store,
            Collections.STUDENTS,
            filter,
            parse_pagination({"page": page, "limit": limit}),
            sort=[("name", 1)],
        )
        result["data"] = await self._attach_classrooms(result["data"])
        return Ok(result)

    @returns_result
    async def update_student(
        self,
        auth: AuthContext,
        student_id: str,
        name: Any = UNSET,
        email: Any = UNSET,
        classroom_id: Any = UNSET,
    ) -> Result[Doc]:
        """Update a student.

        ``classroom_id=None`` (or ``""``) unassigns the student. Moving into a
        different classroom takes a seat there; re-saving the current
        classroom does not re-check capacity.
        """
        changes = provided(name=name, email=email)
        error = check_ids(student_id=student_id) or self._validators.update_student(changes)
        if error:
            return error
        if classroom_id:
            error = check_id("classroom_id", classroom_id)
            if error:
                return error

        student = await self._store.find_one(Collections.STUDENTS, {"_id": student_id})
        if student is None:
            return not_found("student")
        if not has_permission(auth, student["school_id"], Permissions.STUDENT_UPDATE):
            return permission_denied()

        if "name" in changes:
            changes["name"] = changes["name"].strip()
        if "email" in changes:
            changes["email"] = _normalize_email(changes["email"])
            if await self._email_taken(changes["email"], exclude_id=student_id):
                return Failure(ErrorKind.DUPLICATE, _DUPLICATE_EMAIL)

        moving = False
        if classroom_id is not UNSET:
            target = classroom_id or None
            if target != student.get("classroom_id"):
                changes["classroom_id"] = target
                moving = target is not None

        try:
            if moving:
                result = await self._take_seat(
                    changes["classroom_id"],
                    student["school_id"],
                    lambda tx: tx.update(Collections.STUDENTS, {"_id": student_id}, changes),
                )
                if not result.ok:
                    return result
            elif changes:
                await self._store.update_one(Collections.STUDENTS, {"_id": student_id}, changes)
        except DuplicateKeyError:
            return Failure(ErrorKind.DUPLICATE, _DUPLICATE_EMAIL)

        updated = await self._store.find_one(Collections.STUDENTS, {"_id": student_id})
        if updated is None:
            return not_found("student")
        return Ok(updated)

    @returns_result
    async def transfer_student(
        self,
        auth: AuthContext,
        student_id: str,
        new_school_id: str,
        new_classroom_id: Optional[str] = None,
    ) -> Result[Doc]:
        """Move a student to another school, optionally into one of its classrooms.

        Needs ``student:transfer`` globally. School and classroom change in
        the same write.
        """
        error = check_ids(student_id=student_id, new_school_id=new_school_id) or (
            check_id("new_classroom_id", new_classroom_id) if new_classroom_id else None
        )
        if error:
            return error
        if not has_global_permission(auth, Permissions.STUDENT_TRANSFER):
            return permission_denied()

        student = await self._store.find_one(Collections.STUDENTS, {"_id": student_id})
        if student is None:
            return not_found("student")
        if student["school_id"] == new_school_id:
            return Failure(ErrorKind.VALIDATION, "cannot transfer to the same school")
        if await self._store.find_one(Collections.SCHOOLS, {"_id": new_school_id}) is None:
            return not_found("target school")

        changes = {"school_id": new_school_id, "classroom_id": new_classroom_id or None}
        if new_classroom_id:
            result = await self._take_seat(
                new_classroom_id,
                new_school_id,
                lambda tx: tx.update(Collections.STUDENTS, {"_id": student_id}, changes),
                missing="target classroom",
                foreign="classroom does not belong to target school",
            )
        else:
            result = await write_under_school(
                self._store,
                new_school_id,
                lambda tx: tx.update(Collections.STUDENTS, {"_id": student_id}, changes),
                missing="target school",
            )
        if not result.ok:
            return result

        updated = await self._store.find_one(Collections.STUDENTS, {"_id": student_id})
        if updated is None:
            return not_found("student")
        get_request_logger(__name__, auth_id=auth.auth_id, user_id=auth.user_id).info(
            "Student %s transferred to school %s", student_id, new_school_id
        )
        return Ok(updated)

    @returns_result
    async def delete_student(self, auth: AuthContext, student_id: str) -> Result[dict[str, str]]:
        error = check_ids(student_id=student_id)
        if error:
            return error
        student = await self._store.find_one(Collections.STUDENTS, {"_id": student_id})
        if student is None:
            return not_found("student")
        if not has_permission(auth, student["school_id"], Permissions.STUDENT_DELETE):
            return permission_denied()

        await self._store.delete_one(Collections.STUDENTS, {"_id": student_id})
        return Ok({"message": "student deleted"})


__all__ = ["StudentManager"]
