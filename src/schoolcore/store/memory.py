"""In-process document store.

Every public call yields to the event loop once before touching state, so
concurrent requests interleave at store calls exactly as they would against
a networked store. ``_commit`` performs its version check and write-back
without suspending, which makes each commit atomic with respect to other
coroutines.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from ..exceptions import TransactionConflict
from .base import Doc, DocumentStore, Op, apply_ops


class MemoryStore(DocumentStore):
    """Dict-backed ``DocumentStore`` for tests and single-process deployments."""

    def __init__(self, *, max_attempts: int = 5) -> None:
        super().__init__(max_attempts=max_attempts)
        self._collections: dict[str, dict[str, Doc]] = {}
        self._versions: dict[str, int] = {}

    async def _load(self, collection: str) -> dict[str, Doc]:
        await asyncio.sleep(0)
        return self._collections.get(collection, {})

    async def _scope_version(self, scope: str) -> int:
        await asyncio.sleep(0)
        return self._versions.get(scope, 0)

    async def _commit(
        self,
        ops: list[Op],
        scope: Optional[str] = None,
        expected_version: Optional[int] = None,
        guards: Optional[dict[str, int]] = None,
    ) -> list[Any]:
        await asyncio.sleep(0)

        # No awaits past this point: check, apply and publish are one step.
        if scope is not None and self._versions.get(scope, 0) != expected_version:
            raise TransactionConflict(scope)
        for guard, version in (guards or {}).items():
            if self._versions.get(guard, 0) != version:
                raise TransactionConflict(guard)

        staged = {op.collection: dict(self._collections.get(op.collection, {})) for op in ops}
        applied = apply_ops(staged, ops)
        self._collections.update(staged)
        if scope is not None:
            self._versions[scope] = self._versions.get(scope, 0) + 1
        return applied.results


__all__ = ["MemoryStore"]
