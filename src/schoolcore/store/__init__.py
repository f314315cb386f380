"""Document store port and backends."""

from .base import (
    Doc,
    DocumentStore,
    Filter,
    Transaction,
    is_valid_id,
    new_id,
    utcnow_iso,
)
from .indexes import UNIQUE_INDEXES, Collections, UniqueIndex
from .memory import MemoryStore

__all__ = [
    "Collections",
    "Doc",
    "DocumentStore",
    "Filter",
    "MemoryStore",
    "Transaction",
    "UNIQUE_INDEXES",
    "UniqueIndex",
    "is_valid_id",
    "new_id",
    "utcnow_iso",
]
