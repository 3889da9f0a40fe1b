"""Store facade: every operation against a named index on one open pool."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any

from storedmap_sql.config import StoreSettings
from storedmap_sql.db.connection import StorePool, create_pool
from storedmap_sql.errors import TextSearchUnavailableError
from storedmap_sql.models.lock import LockStatus
from storedmap_sql.models.query import QueryFilter
from storedmap_sql.search.text import TextSearch
from storedmap_sql.store import locks, query, writes
from storedmap_sql.store.writes import Hook

logger = logging.getLogger(__name__)


class IndexStore:
    """Key/value items with tag, range and secondary-key indexing."""

    def __init__(self, pool: StorePool, text_search: TextSearch | None = None):
        """Initialize with an open store pool."""
        self.pool = pool
        self.text_search = text_search

    async def put(
        self,
        key: str,
        index_name: str,
        value: bytes,
        *,
        before: Hook | None = None,
        after: Hook | None = None,
    ) -> None:
        """Store a value, replacing any previous one."""
        await writes.put_value(self.pool, key, index_name, value, before=before, after=after)

    async def put_index(
        self,
        key: str,
        index_name: str,
        attributes: Mapping[str, Any],
        *,
        sorter: bytes | None = None,
        secondary_key: str | None = None,
        tags: Sequence[str] | None = (),
        after: Hook | None = None,
    ) -> None:
        """Replace the index entry (attributes, sorter, secondary key, tags) for a key."""
        await writes.put_index_entry(
            self.pool, key, index_name, attributes, sorter, secondary_key, tags, after=after
        )

    async def get(self, key: str, index_name: str) -> bytes | None:
        """Return the value for a key, or None."""
        return await writes.get_value(self.pool, key, index_name)

    async def remove(self, key: str, index_name: str, *, after: Hook | None = None) -> None:
        """Delete a key's value and index entry."""
        await writes.remove(self.pool, key, index_name, after=after)

    async def remove_all(self, index_name: str) -> None:
        """Delete every item and index entry of an index."""
        await writes.remove_all(self.pool, index_name)

    async def keys(
        self,
        index_name: str,
        flt: QueryFilter | None = None,
        *,
        offset: int = 0,
        size: int | None = None,
    ) -> AsyncIterator[str]:
        """Return the matching keys as a lazy stream.

        The stream holds a pooled connection until it is exhausted or closed.
        """
        flt = flt or QueryFilter()
        if flt.text_query is not None:
            return await self._text_search().select(
                self.pool, index_name, flt, offset=offset, size=size
            )
        return await query.select_keys(self.pool, index_name, flt, offset=offset, size=size)

    async def count(self, index_name: str, flt: QueryFilter | None = None) -> int:
        """Count the matching keys."""
        flt = flt or QueryFilter()
        if flt.text_query is not None:
            return await self._text_search().count(self.pool, index_name, flt)
        return await query.count_keys(self.pool, index_name, flt)

    async def try_lock(
        self, key: str, index_name: str, lease_millis: int, session_id: str
    ) -> LockStatus:
        """Try to take the lease on a key without blocking."""
        return await locks.try_lock(self.pool, key, index_name, lease_millis, session_id)

    async def unlock(self, key: str, index_name: str) -> None:
        """Release the lease on a key."""
        await locks.unlock(self.pool, key, index_name)

    async def indices(self) -> set[str]:
        """Names of the indices present in the database."""
        return await self.pool.list_indices()

    async def close(self) -> None:
        """Close the underlying pool."""
        await self.pool.close()

    async def __aenter__(self) -> IndexStore:
        """Return the store; it is closed when the block exits."""
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        """Close the store."""
        await self.close()

    def _text_search(self) -> TextSearch:
        """Return the registered text search or raise if there is none."""
        if self.text_search is None:
            raise TextSearchUnavailableError()
        return self.text_search


async def open_store(
    properties: Mapping[str, str] | None = None, *, text_search: TextSearch | None = None
) -> IndexStore:
    """Parse ``sql.*`` properties, open the pool, and return a store."""
    settings = StoreSettings.from_properties(properties)
    pool = await create_pool(settings)
    return IndexStore(pool, text_search)
