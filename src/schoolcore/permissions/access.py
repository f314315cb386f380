"""Authorization engine.

Runtime checks that decide whether a permission set, or a resolved
``AuthContext``, grants a required permission key.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Optional

from ..exceptions import InvalidPermissionKey
from .keys import PermissionKey

if TYPE_CHECKING:
    from ..context import AuthContext

logger = logging.getLogger(__name__)


def _parse_granted(permissions: Iterable[str]) -> list[PermissionKey]:
    parsed = []
    for raw in permissions:
        try:
            parsed.append(PermissionKey.parse(raw))
        except InvalidPermissionKey:
            logger.debug("Ignoring malformed granted permission %r", raw)
    return parsed


def can(permissions: Optional[Iterable[str]], required: str) -> bool:
    """Check if a permission set grants ``required``.

    Checks in order:
    1. empty or missing set → denied
    2. ``*:*`` (superuser wildcard)
    3. exact ``required``
    4. ``{resource}:*`` for the resource of ``required``

    Example::

        can(["school:read"], "school:read")    # True
        can(["student:*"], "student:update")   # True
        can(["student:*"], "school:update")    # False
        can([], "school:read")                 # False
    """
    if not permissions:
        return False
    try:
        wanted = PermissionKey.parse(required)
    except InvalidPermissionKey:
        return False
    return any(granted.grants(wanted) for granted in _parse_granted(permissions))


def _same_id(left: object, right: object) -> bool:
    return left is not None and right is not None and str(left) == str(right)


def has_permission(context: "AuthContext", school_id: object, required: str) -> bool:
    """Check ``required`` within one school.

    Super-admins pass. Otherwise only the membership for ``school_id`` is
    consulted; memberships in other schools and global memberships never
    grant a school-scoped check.
    """
    if context.is_super:
        return True
    if school_id is None:
        return False
    membership = next(
        (m for m in context.memberships if m.school_id is not None and _same_id(m.school_id, school_id)),
        None,
    )
    if membership is None:
        return False
    return can(membership.permissions, required)


def has_global_permission(context: "AuthContext", required: str) -> bool:
    """Check ``required`` for operations without a natural school scope.

    True for super-admins, otherwise if ANY membership (school-scoped or
    global) grants it.
    """
    if context.is_super:
        return True
    return any(can(m.permissions, required) for m in context.memberships)


__all__ = ["can", "has_global_permission", "has_permission"]
