"""Collection names and unique indexes.

Unique indexes are the store-level guard for every uniqueness invariant:
two racing writers may both pass an application-level "does it exist?"
check, but only the first commit survives; the second raises
``DuplicateKeyError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


class Collections:
    PERMISSIONS = "permissions"
    ROLES = "roles"
    MEMBERSHIPS = "memberships"
    IDENTITIES = "identities"
    USERS = "users"
    SCHOOLS = "schools"
    CLASSROOMS = "classrooms"
    STUDENTS = "students"
    RESOURCES = "resources"


@dataclass(frozen=True)
class UniqueIndex:
    """Unique constraint over one or more document fields.

    Attributes:
        name: Index name, reported in ``DuplicateKeyError``.
        fields: Indexed fields; ``None`` is a regular, comparable value.
        skip_empty: Partial index: documents with an empty-string or
            missing value in any indexed field are not indexed.
    """

    name: str
    fields: tuple[str, ...]
    skip_empty: bool = False

    def key_for(self, doc: dict[str, Any]) -> Optional[tuple[Any, ...]]:
        values = tuple(doc.get(f) for f in self.fields)
        if self.skip_empty and any(v is None or v == "" for v in values):
            return None
        return values


UNIQUE_INDEXES: dict[str, tuple[UniqueIndex, ...]] = {
    Collections.PERMISSIONS: (UniqueIndex("key", ("key",)),),
    Collections.ROLES: (UniqueIndex("school_name", ("school_id", "name")),),
    Collections.MEMBERSHIPS: (UniqueIndex("user_school", ("user_id", "school_id")),),
    Collections.IDENTITIES: (
        UniqueIndex("auth_id", ("auth_id",)),
        UniqueIndex("email", ("email",)),
    ),
    Collections.USERS: (UniqueIndex("auth_id", ("auth_id",)),),
    Collections.CLASSROOMS: (UniqueIndex("school_name", ("school_id", "name")),),
    Collections.STUDENTS: (UniqueIndex("email", ("email",), skip_empty=True),),
    Collections.RESOURCES: (UniqueIndex("school_classroom_name", ("school_id", "classroom_id", "name")),),
}


__all__ = ["Collections", "UniqueIndex", "UNIQUE_INDEXES"]
