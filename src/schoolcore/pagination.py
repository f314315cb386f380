"""Page parameters and paginated store queries."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .store import Doc, DocumentStore, Filter

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


@dataclass(frozen=True)
class Page:
    page: int
    limit: int
    skip: int


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_pagination(query: Optional[Mapping[str, Any]] = None) -> Page:
    """Read ``page`` / ``limit`` from a query mapping.

    Missing or unparseable values fall back to page 1 and ``DEFAULT_LIMIT``.
    Given values are clamped: ``page`` to at least 1, ``limit`` to
    ``1..MAX_LIMIT`` (so ``limit=0`` means one item, not the default).
    """
    query = query or {}
    page = _to_int(query.get("page"))
    limit = _to_int(query.get("limit"))
    page = 1 if page is None else max(1, page)
    limit = DEFAULT_LIMIT if limit is None else min(max(1, limit), MAX_LIMIT)
    return Page(page=page, limit=limit, skip=(page - 1) * limit)


async def paginate(
    store: DocumentStore,
    collection: str,
    filter: Filter,
    page: Page,
    *,
    sort: Optional[list[tuple[str, int]]] = None,
) -> dict[str, Any]:
    data: list[Doc] = await store.find(collection, filter, sort=sort, skip=page.skip, limit=page.limit)
    total = await store.count(collection, filter)
    return {
        "data": data,
        "total": total,
        "page": page.page,
        "limit": page.limit,
        "pages": math.ceil(total / page.limit),
    }


__all__ = ["DEFAULT_LIMIT", "MAX_LIMIT", "Page", "paginate", "parse_pagination"]
