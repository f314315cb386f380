"""Permission key parsing.

A permission key is ``resource:action`` where either side may be the
wildcard ``*``. ``PermissionKey.parse`` is the only way a string becomes a
key; matching is a structural comparison of the parsed parts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Union

from ..exceptions import InvalidPermissionKey
from .constants import WILDCARD

_PART_RE = re.compile(r"^[^\s:*]+$")


class Wildcard(Enum):
    ANY = WILDCARD

    def __str__(self) -> str:
        return WILDCARD


ANY = Wildcard.ANY

Part = Union[str, Wildcard]


def _parse_part(raw: str, part: str) -> Part:
    if part == WILDCARD:
        return ANY
    if not _PART_RE.match(part):
        raise InvalidPermissionKey(f"invalid permission key: {raw}")
    return part


@dataclass(frozen=True)
class PermissionKey:
    """Parsed ``resource:action`` pair."""

    resource: Part
    action: Part

    @classmethod
    def parse(cls, raw: str) -> "PermissionKey":
        """Parse a raw key.

        Raises:
            InvalidPermissionKey: not exactly one colon, an empty side, or a
                side that is neither ``*`` nor a plain name
                (``stu*``, ``school: read``, ``a:b:c``).
        """
        if not isinstance(raw, str) or raw.count(":") != 1:
            raise InvalidPermissionKey(f"invalid permission key: {raw}")
        resource, action = raw.split(":")
        return cls(_parse_part(raw, resource), _parse_part(raw, action))

    @property
    def is_wildcard(self) -> bool:
        return self.resource is ANY or self.action is ANY

    @property
    def is_global_wildcard(self) -> bool:
        return self.resource is ANY and self.action is ANY

    def grants(self, required: "PermissionKey") -> bool:
        """True if holding ``self`` satisfies ``required``.

        ``*:*`` grants everything, ``resource:*`` grants every action on
        that resource, anything else grants only itself.
        """
        if self.is_global_wildcard:
            return True
        if self == required:
            return True
        return self.action is ANY and self.resource == required.resource

    def __str__(self) -> str:
        return f"{self.resource}:{self.action}"


__all__ = ["ANY", "PermissionKey", "Wildcard"]
