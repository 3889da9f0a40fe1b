"""SQLite implementation of the backend protocols.

aiosqlite has no pool of its own, so ``SQLitePool`` keeps a small queue of
idle ``aiosqlite.Connection`` objects bounded by a semaphore. Templates are
already SQLite-flavored, so no SQL translation is needed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite

if TYPE_CHECKING:
    from storedmap_sql.db.backend import Row

logger = logging.getLogger(__name__)

_BUSY_TIMEOUT_MS = 5000


class SQLiteCursor:
    """Wraps aiosqlite.Cursor to satisfy the RowCursor protocol."""

    def __init__(self, cursor: aiosqlite.Cursor) -> None:
        """Initialize with an aiosqlite cursor."""
        self._cursor = cursor

    async def skip(self, count: int) -> None:
        """Advance past ``count`` rows.

        sqlite3 cursors cannot seek, so skipped rows are fetched and dropped
        in bounded batches.
        """
        while count > 0:
            rows = await self._cursor.fetchmany(min(count, 500))
            if not rows:
                return
            count -= len(rows)

    async def fetchmany(self, size: int) -> list[Row]:
        """Fetch up to ``size`` rows."""
        return list(await self._cursor.fetchmany(size))

    async def close(self) -> None:
        """Close the underlying cursor."""
        await self._cursor.close()


class SQLiteConnection:
    """Wraps aiosqlite.Connection to satisfy the Connection protocol.

    sqlite3's legacy transaction handling opens a transaction implicitly
    before the first DML statement, which gives the autocommit-off behavior
    the store expects.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        """Initialize with an aiosqlite connection."""
        self._conn = conn

    @property
    def in_transaction(self) -> bool:
        """True while uncommitted changes are pending."""
        return self._conn.in_transaction

    async def execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> int:
        """Execute a statement and return the number of affected rows."""
        async with self._conn.execute(sql, params) as cursor:
            rc = cursor.rowcount
        return rc if rc is not None else -1

    async def fetchone(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> Row | None:
        """Execute a query and return its first row."""
        async with self._conn.execute(sql, params) as cursor:
            return await cursor.fetchone()

    async def cursor(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> SQLiteCursor:
        """Execute a query and return a lazy cursor."""
        cursor = await self._conn.execute(sql, params)
        return SQLiteCursor(cursor)

    async def list_tables(self) -> list[str]:
        """Return table names from sqlite_master."""
        async with self._conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table'"
        ) as cursor:
            return [row[0] for row in await cursor.fetchall()]

    async def commit(self) -> None:
        """Commit the current transaction."""
        await self._conn.commit()

    async def rollback(self) -> None:
        """Roll back the current transaction."""
        await self._conn.rollback()


class SQLitePool:
    """A bounded pool of aiosqlite connections to one database.

    ``:memory:`` is mapped to a uniquely named shared-cache in-memory
    database served by a single connection. That connection stays open,
    otherwise SQLite would drop the data. Shared-cache writers fail with
    SQLITE_LOCKED instead of waiting on the busy timeout, so such a pool lends
    out one connection at a time.
    """

    def __init__(
        self,
        database: str,
        *,
        max_active: int = 90,
        max_idle: int = 50,
        min_idle: int = 10,
        initial_size: int = 10,
        cached_statements: int = 128,
        read_uncommitted: bool = True,
        pragmas: dict[str, str] | None = None,
    ) -> None:
        """Configure the pool; call ``open()`` before use."""
        self._memory = database == ":memory:"
        if self._memory:
            self._target = f"file:storedmap-{uuid.uuid4().hex}?mode=memory&cache=shared"
            max_active = 1
            min_idle = max(min_idle, 1)
            initial_size = 1
        else:
            self._target = database
        self._max_idle = max(max_idle, min_idle)
        self._initial_size = min(initial_size, max_active)
        self._cached_statements = cached_statements
        self._read_uncommitted = read_uncommitted
        self._pragmas = dict(pragmas or {})
        self._slots = asyncio.Semaphore(max_active)
        self._idle: list[aiosqlite.Connection] = []
        self._closed = False

    @property
    def database(self) -> str:
        """The path or URI the pool connects to."""
        return self._target

    async def open(self) -> SQLitePool:
        """Open the initial connections."""
        if not self._memory:
            Path(self._target).parent.mkdir(parents=True, exist_ok=True)
        for _ in range(self._initial_size):
            self._idle.append(await self._connect())
        logger.debug("SQLite pool opened on %s (%d idle)", self._target, len(self._idle))
        return self

    async def _connect(self) -> aiosqlite.Connection:
        """Open and configure a new connection."""
        conn = await aiosqlite.connect(
            self._target, uri=self._memory, cached_statements=self._cached_statements
        )
        conn.row_factory = aiosqlite.Row
        if not self._memory:
            # WAL lets pooled readers run alongside a writer
            await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute(f"PRAGMA busy_timeout={_BUSY_TIMEOUT_MS}")
        if self._read_uncommitted:
            await conn.execute("PRAGMA read_uncommitted=1")
        for name, value in self._pragmas.items():
            await conn.execute(f"PRAGMA {name}={value}")
        return conn

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[SQLiteConnection]:
        """Borrow a connection, rolling back anything left uncommitted on exit."""
        if self._closed:
            raise RuntimeError("SQLite pool is closed")
        async with self._slots:
            conn = self._idle.pop() if self._idle else await self._connect()
            try:
                yield SQLiteConnection(conn)
            finally:
                await self._release(conn)

    async def _release(self, conn: aiosqlite.Connection) -> None:
        """Roll back, then keep the connection idle or close it."""
        try:
            if conn.in_transaction:
                await conn.rollback()
        except Exception:
            logger.warning("Discarding SQLite connection that failed to roll back")
            await conn.close()
            return
        if self._closed or len(self._idle) >= self._max_idle:
            await conn.close()
        else:
            self._idle.append(conn)

    async def close(self) -> None:
        """Close all idle connections; borrowed ones close on release."""
        self._closed = True
        idle, self._idle = self._idle, []
        for conn in idle:
            await conn.close()
        logger.debug("SQLite pool closed on %s", self._target)
