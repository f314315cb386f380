"""Redis-backed document store.

Layout (``ns`` = configured namespace):

    {ns}:docs:{collection}   hash   id -> JSON document
    {ns}:tx:{scope}          string transaction scope version

Commits use optimistic ``WATCH``/``MULTI``/``EXEC``. The touched collection
hashes and the version keys of the scope and any guard scopes are watched,
the versions are checked, the batch is applied to the watched snapshot with
``apply_ops`` (which also enforces unique indexes) and the resulting hash
changes are written in one ``MULTI``. Queries read a whole collection hash
and filter client-side.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import WatchError

from ..exceptions import StoreError, TransactionConflict
from .base import Doc, DocumentStore, Op, apply_ops

logger = logging.getLogger(__name__)


class RedisStore(DocumentStore):
    """``DocumentStore`` on redis with optimistic transactions."""

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        namespace: str = "schoolcore",
        max_attempts: int = 5,
    ) -> None:
        super().__init__(max_attempts=max_attempts)
        self._redis = client
        self._namespace = namespace

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisStore":
        return cls(aioredis.from_url(url, decode_responses=True), **kwargs)

    def _docs_key(self, collection: str) -> str:
        return f"{self._namespace}:docs:{collection}"

    def _version_key(self, scope: str) -> str:
        return f"{self._namespace}:tx:{scope}"

    async def close(self) -> None:
        await self._redis.aclose()

    async def _load(self, collection: str) -> dict[str, Doc]:
        raw = await self._redis.hgetall(self._docs_key(collection))
        return {doc_id: json.loads(value) for doc_id, value in raw.items()}

    async def _scope_version(self, scope: str) -> int:
        return int(await self._redis.get(self._version_key(scope)) or 0)

    async def _commit(
        self,
        ops: list[Op],
        scope: Optional[str] = None,
        expected_version: Optional[int] = None,
        guards: Optional[dict[str, int]] = None,
    ) -> list[Any]:
        collections = sorted({op.collection for op in ops})
        expected = dict(guards or {})
        if scope is not None:
            expected[scope] = expected_version
        watched = [self._docs_key(c) for c in collections] + [self._version_key(s) for s in expected]

        for attempt in range(1, self.max_attempts + 1):
            async with self._redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(*watched)

                    for checked, version in expected.items():
                        if int(await pipe.get(self._version_key(checked)) or 0) != version:
                            raise TransactionConflict(checked)

                    staged: dict[str, dict[str, Doc]] = {}
                    for collection in collections:
                        raw = await pipe.hgetall(self._docs_key(collection))
                        staged[collection] = {doc_id: json.loads(value) for doc_id, value in raw.items()}

                    applied = apply_ops(staged, ops)

                    pipe.multi()
                    for collection in collections:
                        dirty = applied.dirty.get(collection) or set()
                        removed = applied.removed.get(collection) or set()
                        if dirty:
                            pipe.hset(
                                self._docs_key(collection),
                                mapping={doc_id: json.dumps(staged[collection][doc_id]) for doc_id in dirty},
                            )
                        if removed:
                            pipe.hdel(self._docs_key(collection), *removed)
                    if scope is not None:
                        pipe.incr(self._version_key(scope))
                    await pipe.execute()
                    return applied.results

                except WatchError:
                    # versions are re-checked on the next pass
                    logger.debug("Redis commit on %s raced (attempt %d/%d)", collections, attempt, self.max_attempts)

        raise StoreError(f"redis commit on {collections} kept racing", attempts=self.max_attempts)


__all__ = ["RedisStore"]
