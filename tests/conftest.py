"""Shared test fixtures."""

from collections.abc import AsyncIterator

import pytest_asyncio

from storedmap_sql.config import StoreSettings
from storedmap_sql.db.connection import create_pool
from storedmap_sql.models.query import QueryFilter
from storedmap_sql.store.index_store import IndexStore


def sqlite_properties(path, **pool: str) -> dict[str, str]:
    """Properties for a small SQLite pool on a file."""
    props = {
        "sql.url": str(path),
        "sql.pool.initialSize": "1",
        "sql.pool.minIdle": "1",
        "sql.pool.maxIdle": "4",
        "sql.pool.maxActive": "4",
    }
    props.update({f"sql.pool.{k}": v for k, v in pool.items()})
    return props


@pytest_asyncio.fixture
async def pool(tmp_path):
    """Store pool on a fresh SQLite file."""
    settings = StoreSettings.from_properties(sqlite_properties(tmp_path / "store.db"))
    pool = await create_pool(settings)
    yield pool
    await pool.close()


@pytest_asyncio.fixture
async def store(pool):
    """Index store backed by the SQLite pool."""
    return IndexStore(pool)


class FakeTextSearch:
    """Records free-text calls and answers with canned keys."""

    def __init__(self, keys: list[str] | None = None):
        self.keys = keys or []
        self.last_filter: QueryFilter | None = None
        self.last_window: tuple[int, int | None] | None = None

    async def select(self, pool, index_name, flt, *, offset=0, size=None) -> AsyncIterator[str]:
        self.last_filter = flt
        self.last_window = (offset, size)
        end = None if size is None else offset + size
        selected = self.keys[offset:end]

        async def _gen():
            for key in selected:
                yield key

        return _gen()

    async def count(self, pool, index_name, flt) -> int:
        self.last_filter = flt
        return len(self.keys)


async def collect(stream) -> list[str]:
    """Drain a key stream, closing it even if iteration fails."""
    async with stream:
        return [key async for key in stream]
