"""Boundary response shape.

The transport layer (HTTP handler, RPC servicer, CLI) turns every manager
``Result`` into ``{ok, data, status, code, message}`` with ``to_response``.
``STATUS_BY_KIND`` is the only place failure kinds map to a status.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from .exceptions import ErrorKind, Failure, Result

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DUPLICATE: 409,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.CAPACITY_FULL: 422,
    ErrorKind.INVALID_ID: 400,
    ErrorKind.INTERNAL: 500,
}


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def to_response(result: Result[Any]) -> dict[str, Any]:
    if isinstance(result, Failure):
        return {
            "ok": False,
            "data": {},
            "status": STATUS_BY_KIND[result.kind],
            "code": result.code,
            "message": result.message,
        }
    return {"ok": True, "data": _plain(result.value), "status": 200, "code": None, "message": ""}


__all__ = ["STATUS_BY_KIND", "to_response"]
