"""Item and index-entry writes, point reads and removals."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from storedmap_sql.db.connection import StorePool, backend_errors
from storedmap_sql.db.statements import Statement
from storedmap_sql.errors import SerializationError

logger = logging.getLogger(__name__)

Hook = Callable[[], None]


def serialize_attributes(key: str, attributes: Mapping[str, Any]) -> str:
    """Encode an attribute map as JSON."""
    try:
        return json.dumps(attributes, ensure_ascii=False, sort_keys=True)
    except (TypeError, ValueError) as e:
        raise SerializationError(key, str(e)) from e


async def put_value(
    pool: StorePool,
    key: str,
    index_name: str,
    value: bytes,
    *,
    before: Hook | None = None,
    after: Hook | None = None,
) -> None:
    """Store ``value`` under ``key``, replacing any previous value.

    ``before`` runs before a connection is taken; ``after`` runs only once the
    write has committed.
    """
    if before is not None:
        before()

    renderer = pool.renderer
    with backend_errors("put", index_name):
        async with pool.connection(index_name) as conn:
            await conn.execute(renderer.render(Statement.DELETE, index_name), (key,))
            await conn.execute(renderer.render(Statement.INSERT, index_name), (key, value))
            await conn.commit()
    logger.debug("Stored value for %s/%s (%d bytes)", index_name, key, len(value))

    if after is not None:
        after()


async def put_index_entry(
    pool: StorePool,
    key: str,
    index_name: str,
    attributes: Mapping[str, Any],
    sorter: bytes | None,
    secondary_key: str | None,
    tags: Sequence[str] | None = (),
    *,
    after: Hook | None = None,
) -> None:
    """Replace the index rows for ``key``: one row per tag, or one untagged row.

    ``tags`` of None or empty means the entry carries no tags.
    """
    attrs = serialize_attributes(key, attributes)
    # duplicates would collide on (id, tag)
    row_tags: list[str | None] = list(dict.fromkeys(tags or ())) or [None]

    renderer = pool.renderer
    with backend_errors("put index", index_name):
        async with pool.connection(index_name) as conn:
            await conn.execute(renderer.render(Statement.DELETE_INDEX, index_name), (key,))
            insert_sql = renderer.render(Statement.INSERT_INDEX, index_name)
            for tag in row_tags:
                await conn.execute(insert_sql, (key, attrs, tag, sorter, secondary_key))
            await conn.commit()
    logger.debug("Indexed %s/%s with %d row(s)", index_name, key, len(row_tags))

    if after is not None:
        after()


async def get_value(pool: StorePool, key: str, index_name: str) -> bytes | None:
    """Return the value stored under ``key``, or None."""
    with backend_errors("get", index_name):
        async with pool.connection(index_name) as conn:
            row = await conn.fetchone(
                pool.renderer.render(Statement.SELECT_BY_ID, index_name), (key,)
            )
    if row is None:
        return None
    return bytes(row[0]) if row[0] is not None else None


async def remove(
    pool: StorePool, key: str, index_name: str, *, after: Hook | None = None
) -> None:
    """Delete the value and index rows for ``key``; a missing key is not an error."""
    renderer = pool.renderer
    with backend_errors("remove", index_name):
        async with pool.connection(index_name) as conn:
            deleted = await conn.execute(renderer.render(Statement.DELETE, index_name), (key,))
            deleted += await conn.execute(
                renderer.render(Statement.DELETE_INDEX, index_name), (key,)
            )
            if deleted > 0:
                await conn.commit()
    logger.debug("Removed %s/%s (%d row(s))", index_name, key, max(deleted, 0))

    if after is not None:
        after()


async def remove_all(pool: StorePool, index_name: str) -> None:
    """Empty the main and index tables of an index in one transaction."""
    with backend_errors("remove all", index_name):
        async with pool.connection(index_name) as conn:
            for sql in pool.renderer.render_script(Statement.DELETE_ALL, index_name):
                await conn.execute(sql)
            await conn.commit()
    logger.info("Removed all items from index '%s'", index_name)
