"""Document store port.

Provides:
- ``DocumentStore``: abstract async document store (Mongo-like dicts with ``_id``)
- ``Transaction``: buffered, scope-versioned optimistic transaction
- write operations (``Insert``, ``Update``, ``Delete``) and ``apply_ops()``,
  the backend-independent commit logic shared by every backend
- id helpers (``new_id``, ``is_valid_id``)

Transactions are scoped to a key (for example ``classroom:<id>``). A
transaction remembers the scope version when it starts and buffers its
writes; commit atomically checks the version, applies the writes and bumps
the version. Two transactions on the same scope therefore cannot both
commit on top of the same observed state, which is what makes
"count occupants, then enroll" safe without in-process locks.

A transaction may also guard further scopes: it fails if one of them moved,
without bumping it. Creating a record under a school guards the school's
scope, so it cannot commit after the school was deleted, yet concurrent
creates do not conflict with each other.
"""

from __future__ import annotations

import copy
import logging
import re
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Sequence, TypeVar, Union
from uuid import uuid4

from ..exceptions import DuplicateKeyError, StoreError, TransactionConflict
from .indexes import UNIQUE_INDEXES

logger = logging.getLogger(__name__)

Doc = dict[str, Any]
Filter = dict[str, Any]
T = TypeVar("T")

_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def new_id() -> str:
    return uuid4().hex


def is_valid_id(value: Any) -> bool:
    """True if ``value`` is a well-formed document id."""
    return isinstance(value, str) and bool(_ID_RE.match(value))


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def matches(doc: Doc, filter: Optional[Filter]) -> bool:
    """Evaluate an equality filter with ``$ne`` / ``$in`` operators."""
    if not filter:
        return True
    for name, cond in filter.items():
        value = doc.get(name)
        if isinstance(cond, dict):
            for op, operand in cond.items():
                if op == "$ne":
                    if value == operand:
                        return False
                elif op == "$in":
                    if value not in operand:
                        return False
                else:
                    raise StoreError(f"unsupported filter operator: {op}")
        elif value != cond:
            return False
    return True


# ---- Write operations --------------------------------------------------------


@dataclass(frozen=True)
class Insert:
    collection: str
    doc: Doc


@dataclass(frozen=True)
class Update:
    """Set ``changes`` on every document matching ``filter`` at commit time."""

    collection: str
    filter: Filter
    changes: Doc


@dataclass(frozen=True)
class Delete:
    """Remove every document matching ``filter`` at commit time."""

    collection: str
    filter: Filter


Op = Union[Insert, Update, Delete]


@dataclass
class Applied:
    """Outcome of ``apply_ops``.

    ``results`` has one entry per op: the inserted document, or the list of
    updated / deleted documents.
    """

    results: list[Any] = field(default_factory=list)
    dirty: dict[str, set[str]] = field(default_factory=dict)
    removed: dict[str, set[str]] = field(default_factory=dict)


def prepare_insert(doc: Doc) -> Doc:
    prepared = copy.deepcopy(doc)
    prepared.setdefault("_id", new_id())
    now = utcnow_iso()
    prepared.setdefault("created_at", now)
    prepared.setdefault("updated_at", now)
    return prepared


def apply_ops(state: dict[str, dict[str, Doc]], ops: list[Op]) -> Applied:
    """Apply ``ops`` in order to ``state`` and enforce unique indexes.

    ``state`` maps collection -> {id: doc} and must be a private copy of the
    committed state for every touched collection; documents are replaced,
    never mutated in place. Raises ``DuplicateKeyError`` before the caller
    publishes anything.
    """
    applied = Applied()
    for op in ops:
        docs = state.setdefault(op.collection, {})
        dirty = applied.dirty.setdefault(op.collection, set())
        removed = applied.removed.setdefault(op.collection, set())

        if isinstance(op, Insert):
            doc = prepare_insert(op.doc)
            if doc["_id"] in docs:
                raise DuplicateKeyError(op.collection, "_id")
            docs[doc["_id"]] = doc
            dirty.add(doc["_id"])
            removed.discard(doc["_id"])
            applied.results.append(copy.deepcopy(doc))

        elif isinstance(op, Update):
            now = utcnow_iso()
            updated = []
            for doc_id, doc in list(docs.items()):
                if matches(doc, op.filter):
                    new_doc = {**doc, **copy.deepcopy(op.changes), "updated_at": now}
                    docs[doc_id] = new_doc
                    dirty.add(doc_id)
                    updated.append(copy.deepcopy(new_doc))
            applied.results.append(updated)

        elif isinstance(op, Delete):
            deleted = []
            for doc_id, doc in list(docs.items()):
                if matches(doc, op.filter):
                    del docs[doc_id]
                    dirty.discard(doc_id)
                    removed.add(doc_id)
                    deleted.append(doc)
            applied.results.append(deleted)

        else:
            raise StoreError(f"unknown store operation: {op!r}")

    _check_unique(state, applied.dirty)
    return applied


def _check_unique(state: dict[str, dict[str, Doc]], dirty: dict[str, set[str]]) -> None:
    for collection, ids in dirty.items():
        if not ids:
            continue
        docs = state.get(collection, {})
        for index in UNIQUE_INDEXES.get(collection, ()):
            counts: dict[tuple[Any, ...], int] = {}
            for doc in docs.values():
                key = index.key_for(doc)
                if key is not None:
                    counts[key] = counts.get(key, 0) + 1
            for doc_id in ids:
                key = index.key_for(docs[doc_id])
                if key is not None and counts[key] > 1:
                    raise DuplicateKeyError(collection, index.name)


def _sort_key(name: str) -> Callable[[Doc], tuple[bool, Any]]:
    def key(doc: Doc) -> tuple[bool, Any]:
        value = doc.get(name)
        return (value is None, value if value is not None else 0)

    return key


# ---- Transactions ------------------------------------------------------------


class Transaction:
    """Buffered writes against one transaction scope.

    Reads go to committed state. Writes are queued and only become visible
    when the enclosing ``DocumentStore.transaction()`` block commits. Queue
    writes on the success path only: a block that returns without queuing
    anything commits nothing.

    ``guards`` maps further scopes to the versions observed at start. The
    commit fails if any of them moved, but does not bump them.
    """

    def __init__(
        self,
        store: "DocumentStore",
        scope: Optional[str],
        version: Optional[int],
        guards: Optional[dict[str, int]] = None,
    ) -> None:
        self.store = store
        self.scope = scope
        self.version = version
        self.guards = guards or {}
        self.ops: list[Op] = []
        self.results: list[Any] = []

    async def find_one(self, collection: str, filter: Filter) -> Optional[Doc]:
        return await self.store.find_one(collection, filter)

    async def find(self, collection: str, filter: Optional[Filter] = None, **kwargs: Any) -> list[Doc]:
        return await self.store.find(collection, filter, **kwargs)

    async def count(self, collection: str, filter: Optional[Filter] = None) -> int:
        return await self.store.count(collection, filter)

    def insert(self, collection: str, doc: Doc) -> Doc:
        prepared = prepare_insert(doc)
        self.ops.append(Insert(collection, prepared))
        return copy.deepcopy(prepared)

    def update(self, collection: str, filter: Filter, changes: Doc) -> None:
        self.ops.append(Update(collection, dict(filter), dict(changes)))

    def delete(self, collection: str, filter: Filter) -> None:
        self.ops.append(Delete(collection, dict(filter)))


class DocumentStore(ABC):
    """Abstract async document store.

    Backends implement three primitives: ``_load`` (committed documents of a
    collection), ``_scope_version`` and ``_commit`` (atomic application of a
    batch of writes, optionally guarded by a scope version). Everything else
    is built on top of them here.
    """

    def __init__(self, *, max_attempts: int = 5) -> None:
        self.max_attempts = max_attempts

    @abstractmethod
    async def _load(self, collection: str) -> dict[str, Doc]:
        """Committed documents of ``collection`` keyed by id (treat as read-only)."""

    @abstractmethod
    async def _scope_version(self, scope: str) -> int:
        """Current version of a transaction scope (0 if never committed)."""

    @abstractmethod
    async def _commit(
        self,
        ops: list[Op],
        scope: Optional[str] = None,
        expected_version: Optional[int] = None,
        guards: Optional[dict[str, int]] = None,
    ) -> list[Any]:
        """Atomically apply ``ops`` and bump ``scope``.

        Raises:
            TransactionConflict: ``scope`` moved past ``expected_version``, or
                a ``guards`` scope moved past its recorded version.
            DuplicateKeyError: a unique index would be violated.
        """

    async def close(self) -> None:
        return None

    # ---- Reads -----------------------------------------------------------

    async def find(
        self,
        collection: str,
        filter: Optional[Filter] = None,
        *,
        sort: Optional[list[tuple[str, int]]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> list[Doc]:
        docs = [copy.deepcopy(d) for d in (await self._load(collection)).values() if matches(d, filter)]
        for name, direction in reversed(sort or []):
            docs.sort(key=_sort_key(name), reverse=direction < 0)
        if skip:
            docs = docs[skip:]
        if limit is not None:
            docs = docs[:limit]
        return docs

    async def find_one(self, collection: str, filter: Filter) -> Optional[Doc]:
        docs = await self._load(collection)
        doc_id = filter.get("_id")
        if isinstance(doc_id, str):
            doc = docs.get(doc_id)
            return copy.deepcopy(doc) if doc is not None and matches(doc, filter) else None
        for doc in docs.values():
            if matches(doc, filter):
                return copy.deepcopy(doc)
        return None

    async def count(self, collection: str, filter: Optional[Filter] = None) -> int:
        return sum(1 for d in (await self._load(collection)).values() if matches(d, filter))

    # ---- Writes ----------------------------------------------------------

    async def insert(self, collection: str, doc: Doc) -> Doc:
        results = await self._commit([Insert(collection, prepare_insert(doc))])
        return results[0]

    async def update_one(self, collection: str, filter: Filter, changes: Doc) -> Optional[Doc]:
        current = await self.find_one(collection, filter)
        if current is None:
            return None
        results = await self._commit([Update(collection, {"_id": current["_id"]}, changes)])
        updated = results[0]
        return updated[0] if updated else None

    async def update_many(self, collection: str, filter: Filter, changes: Doc) -> int:
        results = await self._commit([Update(collection, filter, changes)])
        return len(results[0])

    async def delete_one(self, collection: str, filter: Filter) -> bool:
        current = await self.find_one(collection, filter)
        if current is None:
            return False
        results = await self._commit([Delete(collection, {"_id": current["_id"]})])
        return bool(results[0])

    async def delete_many(self, collection: str, filter: Filter) -> int:
        results = await self._commit([Delete(collection, filter)])
        return len(results[0])

    async def upsert(self, collection: str, filter: Filter, doc: Doc) -> Doc:
        """Update the document matching ``filter`` or insert ``{**filter, **doc}``."""
        existing = await self.find_one(collection, filter)
        if existing is None:
            try:
                return await self.insert(collection, {**filter, **doc})
            except DuplicateKeyError:
                # lost an insert race; the winner's document is updated instead
                existing = await self.find_one(collection, filter)
                if existing is None:
                    raise
        updated = await self.update_one(collection, {"_id": existing["_id"]}, doc)
        if updated is None:
            raise StoreError(f"upsert target vanished in {collection}")
        return updated

    # ---- Transactions ----------------------------------------------------

    @asynccontextmanager
    async def transaction(self, scope: Optional[str], *, guards: Sequence[str] = ()) -> AsyncIterator[Transaction]:
        """Open a scoped transaction; commits when the block exits cleanly.

        ``scope`` is bumped by the commit and may be ``None`` when only
        ``guards`` matter. Each guard scope must be unchanged at commit.

        Raises:
            TransactionConflict: another transaction committed on ``scope``
                or on a guard scope after this one started.
        """
        version = await self._scope_version(scope) if scope is not None else None
        observed = {guard: await self._scope_version(guard) for guard in guards}
        tx = Transaction(self, scope, version, observed)
        yield tx
        if tx.ops:
            tx.results = await self._commit(tx.ops, scope=scope, expected_version=version, guards=observed)

    async def run_in_transaction(
        self,
        scope: Optional[str],
        fn: Callable[[Transaction], Awaitable[T]],
        *,
        guards: Sequence[str] = (),
        max_attempts: Optional[int] = None,
    ) -> T:
        """Run ``fn`` in a transaction on ``scope``, re-running it on conflict.

        Gives up after ``max_attempts`` conflicting commits.

        Raises:
            TransactionConflict: every attempt conflicted.
        """
        attempts = max_attempts or self.max_attempts
        label = scope or ",".join(guards)
        for attempt in range(1, attempts + 1):
            try:
                async with self.transaction(scope, guards=guards) as tx:
                    result = await fn(tx)
                return result
            except TransactionConflict:
                logger.info("Transaction on %s conflicted (attempt %d/%d)", label, attempt, attempts)
        raise TransactionConflict(label, attempts=attempts)


__all__ = [
    "Applied",
    "Delete",
    "Doc",
    "DocumentStore",
    "Filter",
    "Insert",
    "Op",
    "Transaction",
    "Update",
    "apply_ops",
    "is_valid_id",
    "matches",
    "new_id",
    "prepare_insert",
    "utcnow_iso",
]
