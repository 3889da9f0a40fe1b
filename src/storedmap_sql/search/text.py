"""Extension point for free-text queries.

The store does not execute free-text queries itself. When a filter carries
``text_query``, ``IndexStore`` hands the whole filter and window to the
registered ``TextSearch`` implementation instead of a SQL variant.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from storedmap_sql.db.connection import StorePool
    from storedmap_sql.models.query import QueryFilter


@runtime_checkable
class TextSearch(Protocol):
    """Free-text select/count for filters with a ``text_query``."""

    async def select(
        self,
        pool: StorePool,
        index_name: str,
        flt: QueryFilter,
        *,
        offset: int = 0,
        size: int | None = None,
    ) -> AsyncIterator[str]:
        """Return matching keys within the ``(offset, size)`` window."""
        ...

    async def count(self, pool: StorePool, index_name: str, flt: QueryFilter) -> int:
        """Count matching keys."""
        ...
