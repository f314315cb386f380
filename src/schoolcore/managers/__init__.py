"""Domain managers.

Every public coroutine takes the caller's ``AuthContext`` first (where the
operation is authenticated) and returns ``Ok`` or ``Failure``; nothing is
raised across this boundary.
"""

from .auth import AuthManager
from .base import UNSET
from .classrooms import ClassroomManager
from .memberships import MembershipManager
from .resources import ResourceManager
from .roles import RoleManager
from .schools import SchoolManager
from .students import StudentManager
from .users import UserManager

__all__ = [
    "UNSET",
    "AuthManager",
    "ClassroomManager",
    "MembershipManager",
    "ResourceManager",
    "RoleManager",
    "SchoolManager",
    "StudentManager",
    "UserManager",
]
