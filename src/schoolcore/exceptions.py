"""Unified exception hierarchy and result type for schoolcore.

This module provides:
- ``ErrorKind``: the closed set of failure kinds surfaced to callers
- ``Ok`` / ``Failure``: the single result shape of every manager operation
- Internal exception hierarchy with stable error codes
- ``returns_result`` decorator that turns exceptions into failures

Managers never raise across the API boundary. Exceptions are an internal
signalling mechanism between the store/adapters and the managers; the
decorator converts them into ``Failure`` values and hides unexpected
diagnostics behind a generic INTERNAL failure.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

__all__ = [
    "ErrorKind",
    "Ok",
    "Failure",
    "Result",
    "failure",
    "SchoolCoreError",
    "ConfigurationError",
    "InvalidPermissionKey",
    "StoreError",
    "DuplicateKeyError",
    "TransactionConflict",
    "returns_result",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure kinds. The value is the stable code clients branch on."""

    VALIDATION = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE = "DUPLICATE"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    UNAUTHORIZED = "UNAUTHORIZED"
    CAPACITY_FULL = "CAPACITY_FULL"
    INVALID_ID = "INVALID_ID"
    INTERNAL = "INTERNAL_ERROR"

    @property
    def code(self) -> str:
        return self.value


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result carrying the plain persisted representation."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """Typed failure: a kind plus a human-readable message."""

    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False

    @property
    def code(self) -> str:
        return self.kind.code


Result = Union[Ok[T], Failure]


def failure(kind: ErrorKind, message: str) -> Failure:
    return Failure(kind=kind, message=message)


# ---- Exception Hierarchy ----------------------------------------------------


class SchoolCoreError(Exception):
    """Base exception for schoolcore.

    Attributes:
        kind: Failure kind the error maps to at the manager boundary.
        message: Human-readable error description.
        details: Additional context as keyword arguments (logged, never returned).
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    message: str = "An internal error occurred"

    def __init__(self, message: str | None = None, kind: ErrorKind | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.kind = kind or self.kind
        self.details = kwargs
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.kind.code

    def to_failure(self) -> Failure:
        return Failure(kind=self.kind, message=self.message)


class ConfigurationError(SchoolCoreError):
    """Invalid or missing configuration."""


class InvalidPermissionKey(SchoolCoreError):
    """Permission key does not parse as ``resource:action``."""

    kind = ErrorKind.VALIDATION
    message = "invalid permission key"


class StoreError(SchoolCoreError):
    """Document store failure."""

    message = "store operation failed"


class DuplicateKeyError(StoreError):
    """A write violated a unique index."""

    kind = ErrorKind.DUPLICATE

    def __init__(self, collection: str, index: str, message: str | None = None) -> None:
        self.collection = collection
        self.index = index
        super().__init__(message or f"duplicate key for {collection}.{index}", collection=collection, index=index)


class TransactionConflict(StoreError):
    """A scoped transaction observed a concurrent commit on its scope."""

    def __init__(self, scope: str, attempts: int = 1) -> None:
        self.scope = scope
        self.attempts = attempts
        super().__init__(f"transaction conflict on {scope}", scope=scope, attempts=attempts)


# ---- Boundary decorator ------------------------------------------------------


def returns_result(method: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
    """Decorator for public manager coroutines.

    Known ``SchoolCoreError`` subclasses become the matching ``Failure``.
    Anything else is logged with its traceback and reported as a generic
    INTERNAL failure so store diagnostics never leak to callers.

    Usage:
        @returns_result
        async def create_school(self, auth, *, name):
            ...
    """

    @functools.wraps(method)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await method(*args, **kwargs)
        except SchoolCoreError as e:
            if e.kind is ErrorKind.INTERNAL:
                logger.error(
                    "%s failed: [%s] %s",
                    method.__qualname__,
                    e.code,
                    e.message,
                    extra={"error_details": e.details},
                )
                return Failure(kind=ErrorKind.INTERNAL, message="internal error")
            logger.info("%s rejected: [%s] %s", method.__qualname__, e.code, e.message)
            return e.to_failure()
        except Exception as e:
            logger.exception("%s unexpected error: %s", method.__qualname__, type(e).__name__)
            return Failure(kind=ErrorKind.INTERNAL, message="internal error")

    return wrapper
