"""Schema management: create an index's tables on first use, discover indices."""

from __future__ import annotations

import asyncio
import logging

from storedmap_sql.db.backend import Connection, Pool
from storedmap_sql.db.statements import Statement
from storedmap_sql.db.templates import SqlRenderer, check_index_name

logger = logging.getLogger(__name__)

TABLE_SUFFIXES = ("_main", "_indx", "_lock")


async def _existing_tables(conn: Connection, renderer: SqlRenderer, index_name: str) -> set[str]:
    """Run the catalog check for an index and return the tables it found."""
    cursor = await conn.cursor(renderer.render(Statement.CHECK, index_name))
    try:
        found: set[str] = set()
        while rows := await cursor.fetchmany(10):
            found.update(str(row[0]).lower() for row in rows)
        return found
    finally:
        await cursor.close()


async def _create_tables(conn: Connection, renderer: SqlRenderer, index_name: str) -> None:
    """Execute every statement of the create script, then commit."""
    for sql in renderer.render_script(Statement.CREATE, index_name):
        await conn.execute(sql)
    await conn.commit()


class SchemaManager:
    """Tracks which indices have tables in one pool's database.

    The known-index set belongs to the pool that owns this manager and is
    only cleared when that pool closes.
    """

    def __init__(self, pool: Pool, renderer: SqlRenderer) -> None:
        """Initialize with the backend pool and its renderer."""
        self._pool = pool
        self._renderer = renderer
        self._known: set[str] = set()
        self._lock = asyncio.Lock()

    def is_known(self, index_name: str) -> bool:
        """True once the index's tables are confirmed to exist."""
        return index_name in self._known

    async def ensure_index(self, index_name: str) -> None:
        """Create the index's tables if they do not exist yet.

        Runs the catalog check and create script at most once per index for
        the lifetime of the pool. Table creation racing with another process
        is tolerated: a failed create is rolled back and accepted if the
        tables exist afterwards.
        """
        if index_name in self._known:
            return
        check_index_name(index_name)
        async with self._lock:
            if index_name in self._known:
                return
            expected = {f"{index_name.lower()}{suffix}" for suffix in TABLE_SUFFIXES}
            async with self._pool.acquire() as conn:
                if not expected <= await _existing_tables(conn, self._renderer, index_name):
                    logger.info("Creating tables for index '%s'", index_name)
                    try:
                        await _create_tables(conn, self._renderer, index_name)
                    except Exception:
                        await conn.rollback()
                        existing = await _existing_tables(conn, self._renderer, index_name)
                        if not expected <= existing:
                            raise
                        logger.warning(
                            "Tables for index '%s' were created concurrently", index_name
                        )
            self._known.add(index_name)

    async def list_indices(self) -> set[str]:
        """Discover index names from catalog tables carrying the index suffixes."""
        async with self._pool.acquire() as conn:
            tables = await conn.list_tables()
        indices: set[str] = set()
        for table in tables:
            name = table.lower()
            for suffix in TABLE_SUFFIXES:
                if name.endswith(suffix) and len(name) > len(suffix):
                    indices.add(name[: -len(suffix)])
                    break
        return indices

    def forget(self) -> None:
        """Drop every known index; used when the owning pool closes."""
        self._known.clear()
