"""Permission constants and the seeded permission catalog.

Provides:
- ``Permissions``: permission string constants (``resource:action`` format).
- ``PermissionSpec`` / ``PERMISSION_CATALOG``: the records seeded into the
  permission registry, with description and UI category.
- ``SystemRoles``: names of the platform-created roles.
"""

from __future__ import annotations

from dataclasses import dataclass

WILDCARD = "*"


class Permissions:
    """Canonical permission constants.

    Format: ``{resource}:{action}``

    Two modes of use:

    1. **Static constants**::

        has_permission(ctx, school_id, Permissions.CLASSROOM_CREATE)

    2. **Dynamic builder**::

        Permissions.key("student", "transfer")  → "student:transfer"
    """

    ALL = "*:*"  # Wildcard: any resource and action

    # ── Schools ─────────────────────────────────────────
    SCHOOL_CREATE = "school:create"
    SCHOOL_READ = "school:read"
    SCHOOL_UPDATE = "school:update"
    SCHOOL_DELETE = "school:delete"
    SCHOOL_MANAGE_ROLES = "school:manage_roles"
    SCHOOL_MANAGE_MEMBERS = "school:manage_members"

    # ── Users ───────────────────────────────────────────
    USER_CREATE = "user:create"
    USER_READ = "user:read"
    USER_UPDATE = "user:update"
    USER_DELETE = "user:delete"

    # ── Classrooms ──────────────────────────────────────
    CLASSROOM_CREATE = "classroom:create"
    CLASSROOM_READ = "classroom:read"
    CLASSROOM_UPDATE = "classroom:update"
    CLASSROOM_DELETE = "classroom:delete"

    # ── Students ────────────────────────────────────────
    STUDENT_CREATE = "student:create"
    STUDENT_READ = "student:read"
    STUDENT_UPDATE = "student:update"
    STUDENT_DELETE = "student:delete"
    STUDENT_TRANSFER = "student:transfer"

    # ── Resources (equipment, books, ...) ───────────────
    RESOURCE_CREATE = "resource:create"
    RESOURCE_READ = "resource:read"
    RESOURCE_UPDATE = "resource:update"
    RESOURCE_DELETE = "resource:delete"

    @staticmethod
    def key(resource: str, action: str) -> str:
        return f"{resource}:{action}"

    @staticmethod
    def all_of(resource: str) -> str:
        """Resource wildcard: ``Permissions.all_of("student")`` → ``"student:*"``."""
        return f"{resource}:{WILDCARD}"


@dataclass(frozen=True)
class PermissionSpec:
    key: str
    description: str
    category: str

    @property
    def resource(self) -> str:
        return self.key.split(":", 1)[0]

    @property
    def action(self) -> str:
        return self.key.split(":", 1)[1]

    def to_doc(self) -> dict[str, str]:
        return {
            "key": self.key,
            "resource": self.resource,
            "action": self.action,
            "description": self.description,
            "category": self.category,
        }


PERMISSION_CATALOG: tuple[PermissionSpec, ...] = (
    PermissionSpec(Permissions.SCHOOL_CREATE, "Create new schools", "Schools"),
    PermissionSpec(Permissions.SCHOOL_READ, "View school details", "Schools"),
    PermissionSpec(Permissions.SCHOOL_UPDATE, "Update school information", "Schools"),
    PermissionSpec(Permissions.SCHOOL_DELETE, "Delete schools", "Schools"),
    PermissionSpec(Permissions.SCHOOL_MANAGE_ROLES, "Create/edit/delete roles for a school", "Schools"),
    PermissionSpec(Permissions.SCHOOL_MANAGE_MEMBERS, "Invite/remove users, assign roles", "Schools"),
    PermissionSpec(Permissions.USER_CREATE, "Create user accounts", "Users"),
    PermissionSpec(Permissions.USER_READ, "View user profiles", "Users"),
    PermissionSpec(Permissions.USER_UPDATE, "Update user information", "Users"),
    PermissionSpec(Permissions.USER_DELETE, "Delete user accounts", "Users"),
    PermissionSpec(Permissions.CLASSROOM_CREATE, "Create classrooms", "Classrooms"),
    PermissionSpec(Permissions.CLASSROOM_READ, "View classrooms", "Classrooms"),
    PermissionSpec(Permissions.CLASSROOM_UPDATE, "Update classrooms", "Classrooms"),
    PermissionSpec(Permissions.CLASSROOM_DELETE, "Delete classrooms", "Classrooms"),
    PermissionSpec(Permissions.STUDENT_CREATE, "Enroll students", "Students"),
    PermissionSpec(Permissions.STUDENT_READ, "View student profiles", "Students"),
    PermissionSpec(Permissions.STUDENT_UPDATE, "Update student information", "Students"),
    PermissionSpec(Permissions.STUDENT_DELETE, "Remove students", "Students"),
    PermissionSpec(Permissions.STUDENT_TRANSFER, "Transfer students between schools", "Students"),
    PermissionSpec(Permissions.RESOURCE_CREATE, "Register school resources", "Resources"),
    PermissionSpec(Permissions.RESOURCE_READ, "View school resources", "Resources"),
    PermissionSpec(Permissions.RESOURCE_UPDATE, "Update school resources", "Resources"),
    PermissionSpec(Permissions.RESOURCE_DELETE, "Delete school resources", "Resources"),
)


class SystemRoles:
    """Immutable roles created by the platform."""

    SUPERADMIN = "superadmin"  # global, schoolId = null
    OWNER = "owner"  # one per school, granted to the school's creator

    ALL = frozenset({SUPERADMIN, OWNER})


__all__ = [
    "PERMISSION_CATALOG",
    "PermissionSpec",
    "Permissions",
    "SystemRoles",
    "WILDCARD",
]
