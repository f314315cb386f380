"""Helpers shared by the domain managers."""

from __future__ import annotations

from typing import Any, Callable, Optional

from ..context import AuthContext
from ..exceptions import ErrorKind, Failure, Ok, Result
from ..store import Collections, DocumentStore, Transaction, is_valid_id


class _Unset:
    """Marker for "argument not supplied" in partial updates."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def provided(**fields: Any) -> dict[str, Any]:
    """Only the fields the caller actually passed."""
    return {name: value for name, value in fields.items() if value is not UNSET}


def check_id(name: str, value: Any) -> Optional[Failure]:
    """``VALIDATION`` if ``value`` is missing, ``INVALID_ID`` if malformed."""
    if value is None or value == "":
        return Failure(ErrorKind.VALIDATION, f"{name} is required")
    if not is_valid_id(value):
        return Failure(ErrorKind.INVALID_ID, f"invalid {name}")
    return None


def check_ids(**ids: Any) -> Optional[Failure]:
    for name, value in ids.items():
        error = check_id(name, value)
        if error is not None:
            return error
    return None


def resolve_school_id(auth: AuthContext, school_id: Optional[str]) -> Optional[str]:
    """Explicit ``school_id``, else the caller's only school."""
    if school_id:
        return school_id
    return auth.sole_school_id()


def permission_denied() -> Failure:
    return Failure(ErrorKind.PERMISSION_DENIED, "permission denied")


def not_found(what: str) -> Failure:
    return Failure(ErrorKind.NOT_FOUND, f"{what} not found")


def classroom_scope(classroom_id: str) -> str:
    """Transaction scope serializing writes that depend on a classroom's occupancy."""
    return f"classroom:{classroom_id}"


def school_scope(school_id: str) -> str:
    """Bumped when a school is created or deleted; guarded by writes under it."""
    return f"school:{school_id}"


def role_scope(role_id: str) -> str:
    return f"role:{role_id}"


async def write_under_school(
    store: DocumentStore,
    school_id: str,
    write: Callable[[Transaction], Any],
    *,
    missing: str = "school",
) -> Result[Any]:
    """Run ``write`` only while ``school_id`` exists.

    The existence check and the write commit together, guarded by the
    school's scope: if ``delete_school`` commits in between, the attempt is
    re-run and finds the school gone.
    """

    async def attempt(tx: Transaction) -> Result[Any]:
        if await tx.find_one(Collections.SCHOOLS, {"_id": school_id}) is None:
            return not_found(missing)
        return Ok(write(tx))

    return await store.run_in_transaction(None, attempt, guards=[school_scope(school_id)])


__all__ = [
    "UNSET",
    "check_id",
    "check_ids",
    "classroom_scope",
    "not_found",
    "permission_denied",
    "provided",
    "resolve_school_id",
    "role_scope",
    "school_scope",
    "write_under_school",
]
