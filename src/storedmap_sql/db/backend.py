"""Database backend protocol: a thin abstraction over pooled async connections.

Store code programs against these protocols. Each backend (SQLite,
Postgres, ...) provides a concrete implementation. All SQL uses ``?``
placeholders; dialect differences beyond that live in the template sets,
not in store code.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Row(Protocol):
    """A database row supporting both named and positional access."""

    def __getitem__(self, key: str | int) -> Any:
        """Get a column value by name or position."""
        ...

    def keys(self) -> Any:
        """Return column names."""
        ...


@runtime_checkable
class RowCursor(Protocol):
    """Lazy, forward-only cursor over a query result."""

    async def skip(self, count: int) -> None:
        """Advance past ``count`` rows without returning them."""
        ...

    async def fetchmany(self, size: int) -> list[Row]:
        """Fetch up to ``size`` rows; an empty list means exhausted."""
        ...

    async def close(self) -> None:
        """Release the cursor."""
        ...


@runtime_checkable
class Connection(Protocol):
    """A pooled connection with autocommit disabled.

    Writes stay pending until ``commit()``. Whatever is still uncommitted when
    the connection goes back to its pool is rolled back.
    """

    async def execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> int:
        """Execute a statement and return the number of affected rows."""
        ...

    async def fetchone(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> Row | None:
        """Execute a query and return its first row, or None."""
        ...

    async def cursor(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> RowCursor:
        """Execute a query and return a lazy cursor over its rows."""
        ...

    async def list_tables(self) -> list[str]:
        """Return the names of the tables visible to this connection."""
        ...

    async def commit(self) -> None:
        """Commit the current transaction."""
        ...

    async def rollback(self) -> None:
        """Roll back the current transaction."""
        ...


@runtime_checkable
class Pool(Protocol):
    """A connection pool with acquire/release semantics."""

    def acquire(self) -> AbstractAsyncContextManager[Connection]:
        """Borrow a connection; it is returned to the pool on exit."""
        ...

    async def close(self) -> None:
        """Close every pooled connection."""
        ...
