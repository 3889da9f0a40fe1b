"""PostgreSQL implementation of the backend protocols.

Uses an asyncpg pool. All template SQL uses ``?`` placeholders; this backend
translates them to ``$N`` at execute time. asyncpg autocommits by default, so
each borrowed connection runs inside an explicit transaction that is started
lazily and ended by ``commit()``, ``rollback()`` or release.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import asyncpg
    from asyncpg.cursor import Cursor as AsyncpgCursor
    from asyncpg.transaction import Transaction

    from storedmap_sql.db.backend import Row

logger = logging.getLogger(__name__)

# Pre-compiled regex for placeholder translation
_PLACEHOLDER_RE = re.compile(r"\?")

# asyncpg spells isolation levels with underscores
_ISOLATION_LEVELS = {"read_uncommitted", "read_committed", "repeatable_read", "serializable"}


def _translate_placeholders(sql: str) -> str:
    """Convert ``?`` placeholders to ``$1, $2, ...`` for asyncpg."""
    counter = 0

    def _replace(_match: re.Match[str]) -> str:
        nonlocal counter
        counter += 1
        return f"${counter}"

    return _PLACEHOLDER_RE.sub(_replace, sql)


def _parse_rowcount(status: str | None) -> int:
    """Parse affected row count from asyncpg status string.

    Examples: "INSERT 0 1" → 1, "UPDATE 3" → 3, "DELETE 0" → 0.
    """
    if not status:
        return -1
    parts = status.split()
    if len(parts) >= 2:
        try:
            return int(parts[-1])
        except ValueError:
            pass
    return -1


class PostgresRow:
    """Wraps asyncpg.Record to satisfy the Row protocol."""

    def __init__(self, record: asyncpg.Record) -> None:
        """Initialize with an asyncpg Record."""
        self._record = record

    def __getitem__(self, key: str | int) -> Any:
        """Get a column value by name or position."""
        return self._record[key]

    def keys(self) -> list[str]:
        """Return column names."""
        return list(self._record.keys())


class PostgresCursor:
    """Wraps a server-side asyncpg cursor as a RowCursor.

    The cursor lives inside the connection's transaction; it is discarded
    when that transaction ends, so ``close()`` only drops the reference.
    """

    def __init__(self, cursor: AsyncpgCursor) -> None:
        """Initialize with an open asyncpg cursor."""
        self._cursor: AsyncpgCursor | None = cursor

    async def skip(self, count: int) -> None:
        """Move the server-side cursor forward by ``count`` rows."""
        if self._cursor is not None and count > 0:
            await self._cursor.forward(count)

    async def fetchmany(self, size: int) -> list[Row]:
        """Fetch up to ``size`` rows."""
        if self._cursor is None:
            return []
        return [PostgresRow(r) for r in await self._cursor.fetch(size)]

    async def close(self) -> None:
        """Drop the cursor."""
        self._cursor = None


class PostgresConnection:
    """Wraps an asyncpg connection to satisfy the Connection protocol."""

    def __init__(self, conn: asyncpg.Connection, isolation: str = "read_uncommitted") -> None:
        """Initialize with a borrowed asyncpg connection."""
        self._conn = conn
        self._isolation = isolation
        self._tx: Transaction | None = None

    @property
    def in_transaction(self) -> bool:
        """True while a transaction is open on this connection."""
        return self._tx is not None

    async def _begin(self) -> None:
        """Start the transaction if none is open."""
        if self._tx is None:
            tx = self._conn.transaction(isolation=self._isolation)
            await tx.start()
            self._tx = tx

    async def execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> int:
        """Execute a statement and return the number of affected rows."""
        await self._begin()
        status = await self._conn.execute(_translate_placeholders(sql), *params)
        return _parse_rowcount(status)

    async def fetchone(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> Row | None:
        """Execute a query and return its first row."""
        await self._begin()
        record = await self._conn.fetchrow(_translate_placeholders(sql), *params)
        return PostgresRow(record) if record is not None else None

    async def cursor(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> PostgresCursor:
        """Open a server-side cursor; asyncpg only allows these in a transaction."""
        await self._begin()
        stmt = await self._conn.prepare(_translate_placeholders(sql))
        return PostgresCursor(await stmt.cursor(*params))

    async def list_tables(self) -> list[str]:
        """Return table names in the current schema."""
        records = await self._conn.fetch(
            "SELECT table_name FROM information_schema.tables"
            " WHERE table_schema = current_schema()"
        )
        return [r["table_name"] for r in records]

    async def commit(self) -> None:
        """Commit the open transaction, if any."""
        tx, self._tx = self._tx, None
        if tx is not None:
            await tx.commit()

    async def rollback(self) -> None:
        """Roll back the open transaction, if any."""
        tx, self._tx = self._tx, None
        if tx is not None:
            await tx.rollback()


class PostgresPool:
    """PostgreSQL implementation of the Pool protocol."""

    def __init__(self, pool: asyncpg.Pool, *, isolation: str = "read_uncommitted") -> None:
        """Initialize with an asyncpg connection pool."""
        if isolation not in _ISOLATION_LEVELS:
            raise ValueError(f"Unsupported isolation level '{isolation}'")
        self._pool = pool
        self._isolation = isolation

    @classmethod
    async def create(
        cls,
        url: str,
        *,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 10,
        max_size: int = 90,
        statement_cache_size: int = 100,
        server_settings: dict[str, str] | None = None,
        isolation: str = "read_uncommitted",
    ) -> PostgresPool:
        """Create a PostgresPool from a connection URL."""
        import asyncpg as _asyncpg

        if isolation not in _ISOLATION_LEVELS:
            raise ValueError(f"Unsupported isolation level '{isolation}'")
        pool = await _asyncpg.create_pool(
            url,
            user=user,
            password=password,
            min_size=min(min_size, max_size),
            max_size=max_size,
            statement_cache_size=statement_cache_size,
            server_settings=server_settings or None,
        )
        return cls(pool, isolation=isolation)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[PostgresConnection]:
        """Borrow a connection, rolling back anything left uncommitted on exit."""
        async with self._pool.acquire() as conn:
            wrapper = PostgresConnection(conn, self._isolation)
            try:
                yield wrapper
            finally:
                await wrapper.rollback()

    async def close(self) -> None:
        """Close the connection pool."""
        await self._pool.close()
