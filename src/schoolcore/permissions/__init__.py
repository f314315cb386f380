"""Permission registry and authorization engine.

Defines:
- Permissions: permission string constants (resource:action format)
- PERMISSION_CATALOG: the seeded catalog with descriptions and categories
- PermissionKey: parsed key with structural wildcard matching
- PermissionRegistry: injected registry with an explicit seed()/reload() lifecycle
- can() / has_permission() / has_global_permission(): the authorization checks
"""

from .access import can, has_global_permission, has_permission
from .constants import PERMISSION_CATALOG, WILDCARD, Permissions, PermissionSpec, SystemRoles
from .keys import ANY, PermissionKey, Wildcard
from .registry import PermissionRegistry

__all__ = [
    "ANY",
    "PERMISSION_CATALOG",
    "PermissionKey",
    "PermissionRegistry",
    "PermissionSpec",
    "Permissions",
    "SystemRoles",
    "WILDCARD",
    "Wildcard",
    "can",
    "has_global_permission",
    "has_permission",
]
