"""Key selection and counting over the enumerated filter combinations.

``select_keys`` renders the statement for a filter immediately but defers
all database work to the returned ``KeyStream``, which holds one pooled
connection and cursor from its first fetch until it is exhausted or closed.
Always consume it fully or close it::

    async with await select_keys(pool, "users", flt, offset=20, size=10) as keys:
        async for key in keys:
            ...
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from typing import Any

from storedmap_sql.db.backend import RowCursor
from storedmap_sql.db.connection import StorePool, backend_errors
from storedmap_sql.db.statements import bind, choose_variant, template_bindings
from storedmap_sql.models.query import QueryFilter

logger = logging.getLogger(__name__)

_BATCH_SIZE = 100


class KeyStream:
    """Lazy, forward-only, single-pass async iterator over matching keys.

    The ``(offset, size)`` window is applied at the cursor. The connection
    and cursor are released exactly once: on exhaustion, on ``aclose()``, or
    when an ``async with`` block exits, including by an exception raised in
    the consuming code. A closed stream yields nothing and cannot be
    restarted.
    """

    def __init__(
        self,
        pool: StorePool,
        index_name: str,
        sql: str,
        params: list[Any],
        *,
        offset: int = 0,
        size: int | None = None,
    ) -> None:
        """Prepare a stream; nothing is executed until the first fetch."""
        if offset < 0:
            raise ValueError("offset must be >= 0")
        if size is not None and size < 0:
            raise ValueError("size must be >= 0 or None")
        self._pool = pool
        self._index_name = index_name
        self._sql = sql
        self._params = params
        self._offset = offset
        self._remaining = size
        self._buffer: list[str] = []
        self._stack: AsyncExitStack | None = None
        self._cursor: RowCursor | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once the stream has released its resources."""
        return self._closed

    async def _open(self) -> None:
        """Borrow a connection, open the cursor and skip to the offset."""
        stack = AsyncExitStack()
        try:
            with backend_errors("query", self._index_name):
                conn = await stack.enter_async_context(self._pool.connection(self._index_name))
                cursor = await conn.cursor(self._sql, self._params)
                stack.push_async_callback(cursor.close)
                await cursor.skip(self._offset)
        except BaseException:
            await stack.aclose()
            self._closed = True
            raise
        self._stack = stack
        self._cursor = cursor

    async def _fill(self) -> None:
        """Fetch the next batch into the buffer."""
        if self._cursor is None:
            await self._open()
        assert self._cursor is not None
        batch = _BATCH_SIZE if self._remaining is None else min(_BATCH_SIZE, self._remaining)
        with backend_errors("query", self._index_name):
            rows = await self._cursor.fetchmany(batch)
        self._buffer = [row[0] for row in reversed(rows)]
        if len(rows) < batch:
            # short batch: nothing more to read, drop the cursor now
            await self._release()

    async def __anext__(self) -> str:
        """Return the next key, releasing resources when the window is done."""
        while not self._buffer:
            if self._closed or self._remaining == 0:
                await self._release()
                raise StopAsyncIteration
            try:
                await self._fill()
            except BaseException:
                await self.aclose()
                raise
            if not self._buffer:
                await self._release()
                raise StopAsyncIteration
        key = self._buffer.pop()
        if self._remaining is not None:
            self._remaining -= 1
            if self._remaining == 0:
                await self._release()
        return key

    def __aiter__(self) -> KeyStream:
        """Return the stream itself."""
        return self

    async def _release(self) -> None:
        """Release the cursor and connection once."""
        if self._closed and self._stack is None:
            return
        self._closed = True
        stack, self._stack = self._stack, None
        self._cursor = None
        if stack is not None:
            await stack.aclose()

    async def aclose(self) -> None:
        """Stop early and release the connection; safe to call repeatedly."""
        self._buffer = []
        await self._release()

    async def __aenter__(self) -> KeyStream:
        """Return the stream; it is closed when the block exits."""
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        """Close the stream, whether or not the block raised."""
        await self.aclose()

    async def to_list(self) -> list[str]:
        """Drain the stream into a list."""
        async with self:
            return [key async for key in self]


async def select_keys(
    pool: StorePool,
    index_name: str,
    flt: QueryFilter | None = None,
    *,
    offset: int = 0,
    size: int | None = None,
) -> KeyStream:
    """Return a stream of keys matching ``flt`` within ``(offset, size)``.

    Free-text filters are not handled here; see ``IndexStore.keys``.
    """
    flt = flt or QueryFilter()
    variant = choose_variant(flt)
    if variant.is_static:
        sql = pool.renderer.render(variant.select, index_name)
    else:
        sql = pool.renderer.render(
            variant.select, index_name, **template_bindings(variant, flt, for_select=True)
        )
    params = bind(variant, flt)
    logger.debug("Selecting from %s via %s", index_name, variant.select)
    return KeyStream(pool, index_name, sql, params, offset=offset, size=size)


async def count_keys(pool: StorePool, index_name: str, flt: QueryFilter | None = None) -> int:
    """Count the keys matching ``flt``."""
    flt = flt or QueryFilter()
    variant = choose_variant(flt)
    if variant.is_static:
        sql = pool.renderer.render(variant.count, index_name)
    else:
        sql = pool.renderer.render(
            variant.count, index_name, **template_bindings(variant, flt, for_select=False)
        )
    with backend_errors("count", index_name):
        async with pool.connection(index_name) as conn:
            row = await conn.fetchone(sql, bind(variant, flt))
    return int(row[0]) if row is not None else 0
