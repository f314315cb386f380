"""Login, account registration and super-admin bootstrap."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..config import SchoolCoreConfig
from ..context import AuthContext
from ..exceptions import ErrorKind, Failure, Ok, Result, returns_result
from ..identity import AuthAdapter
from ..permissions import Permissions, SystemRoles, has_global_permission
from ..validators import Validators
from .memberships import MembershipManager
from .roles import RoleManager
from .users import UserManager

logger = logging.getLogger(__name__)

SUPERADMIN_DISPLAY_NAME = "Super Admin"


class AuthManager:
    def __init__(
        self,
        config: SchoolCoreConfig,
        adapter: AuthAdapter,
        users: UserManager,
        memberships: MembershipManager,
        roles: RoleManager,
        validators: Validators,
    ) -> None:
        self._config = config
        self._adapter = adapter
        self._users = users
        self._memberships = memberships
        self._roles = roles
        self._validators = validators.auth

    def verify_token(self, token: str) -> Optional[dict[str, str]]:
        return self._adapter.verify_token(token)

    @returns_result
    async def login(self, email: str, password: str) -> Result[dict[str, Any]]:
        """Exchange credentials for a token plus the user's memberships."""
        error = self._validators.login({"email": email, "password": password})
        if error:
            return error

        result = await self._adapter.login(email, password)
        if not result.ok:
            return result
        identity = result.value

        user = await self._users.get_by_auth_id(identity["auth_id"])
        if user is None:
            return Failure(ErrorKind.UNAUTHORIZED, "user not found")
        memberships = await self._memberships.get_memberships(user["_id"])

        return Ok(
            {
                "user": {"_id": user["_id"], "display_name": user["display_name"]},
                "memberships": [m.model_dump() for m in memberships],
                "token": identity["token"],
            }
        )

    @returns_result
    async def register(self, auth: AuthContext, email: str, password: str, display_name: str) -> Result[dict[str, Any]]:
        """Create an account on behalf of a caller holding ``user:create``.

        The identity is removed again if its profile cannot be created.
        """
        error = self._validators.register({"email": email, "password": password, "display_name": display_name})
        if error:
            return error
        if not has_global_permission(auth, Permissions.USER_CREATE):
            return Failure(ErrorKind.PERMISSION_DENIED, "permission denied")

        result = await self._adapter.register(email, password)
        if not result.ok:
            return result
        auth_id = result.value["auth_id"]

        try:
            user = await self._users.create_profile(auth_id, display_name.strip())
        except Exception:
            logger.exception("Profile creation failed, rolling back identity %s", auth_id)
            await self._adapter.delete_user(auth_id)
            return Failure(ErrorKind.INTERNAL, "failed to create user profile")

        return Ok(
            {
                "user": {"_id": user["_id"], "display_name": user["display_name"]},
                "token": result.value["token"],
            }
        )

    async def seed_super_admin(self) -> Optional[str]:
        """Create the configured super-admin account if it does not exist yet.

        Idempotent: an existing identity is reused and any missing profile or
        global membership is filled in. Returns the super-admin's user id, or
        ``None`` when no credentials are configured.
        """
        email = self._config.auth.superadmin_email
        password = self._config.auth.superadmin_password
        if not email or not password:
            logger.info("No super-admin credentials configured, skipping seed")
            return None

        registered = await self._adapter.register(email, password)
        if registered.ok:
            auth_id = registered.value["auth_id"]
        elif registered.kind is ErrorKind.DUPLICATE:
            existing = await self._adapter.login(email, password)
            if not existing.ok:
                logger.warning("Super-admin identity %s exists with different credentials", email)
                return None
            auth_id = existing.value["auth_id"]
        else:
            logger.error("Super-admin registration failed: %s", registered.message)
            return None

        user = await self._users.get_by_auth_id(auth_id)
        if user is None:
            user = await self._users.create_profile(auth_id, SUPERADMIN_DISPLAY_NAME)

        role = await self._roles.get_system_role(SystemRoles.SUPERADMIN)
        if role is None:
            logger.warning("Global %s role missing; seed roles before the super-admin", SystemRoles.SUPERADMIN)
            return user["_id"]

        result = await self._memberships.create_global(user["_id"], role["_id"])
        if not result.ok:
            logger.error("Super-admin membership failed: %s", result.message)
        else:
            logger.info("Super-admin ready: %s", email)
        return user["_id"]


__all__ = ["AuthManager"]
