"""Permission registry.

The registry is an explicitly constructed instance: the process creates one,
calls ``seed()`` (or ``reload()``) at startup, and injects it into the
managers that validate role definitions. The in-memory key set is
read-mostly after startup; re-seeding is an administrative operation.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..exceptions import InvalidPermissionKey
from ..store import Collections, Doc, DocumentStore
from .constants import PERMISSION_CATALOG, PermissionSpec
from .keys import ANY, PermissionKey

logger = logging.getLogger(__name__)


class PermissionRegistry:
    """Canonical set of grantable permission keys."""

    def __init__(self, store: DocumentStore, catalog: Iterable[PermissionSpec] = PERMISSION_CATALOG) -> None:
        self._store = store
        self._catalog = tuple(catalog)
        self._keys: frozenset[str] = frozenset()
        self._resources: frozenset[str] = frozenset()

    async def seed(self) -> None:
        """Idempotently upsert the catalog (by ``key``) and reload the key set."""
        for spec in self._catalog:
            await self._store.upsert(Collections.PERMISSIONS, {"key": spec.key}, spec.to_doc())
        await self.reload()

    async def reload(self) -> None:
        docs = await self._store.find(Collections.PERMISSIONS)
        self._keys = frozenset(d["key"] for d in docs)
        self._resources = frozenset(d["key"].split(":", 1)[0] for d in docs)
        logger.info("Permission registry loaded %d keys", len(self._keys))

    @property
    def keys(self) -> frozenset[str]:
        return self._keys

    @property
    def known_resources(self) -> frozenset[str]:
        return self._resources

    def is_valid_key(self, key: str) -> bool:
        return key in self._keys

    def validate_grant(self, raw: str) -> Optional[str]:
        """Check a key for use in a role definition.

        Returns an error message, or ``None`` if the key may be granted.

        - ``*:*`` is always grantable.
        - ``resource:*`` requires ``resource`` to be a registered resource,
          so a typo such as ``studnet:*`` is rejected instead of silently
          granting nothing.
        - ``*:action`` is rejected: resource wildcards only combine with
          an action wildcard.
        - concrete keys must be registered.
        """
        try:
            key = PermissionKey.parse(raw)
        except InvalidPermissionKey:
            return f"invalid permission key: {raw}"
        if key.is_global_wildcard:
            return None
        if key.resource is ANY:
            return f"invalid permission key: {raw} (resource wildcard requires '*:*')"
        if key.action is ANY:
            if key.resource not in self._resources:
                return f"invalid permission key: {raw} (unknown resource '{key.resource}')"
            return None
        if not self.is_valid_key(raw):
            return f"invalid permission key: {raw}"
        return None

    async def list_permissions(self) -> list[Doc]:
        return await self._store.find(Collections.PERMISSIONS, sort=[("category", 1), ("key", 1)])


__all__ = ["PermissionRegistry"]
