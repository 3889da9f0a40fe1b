"""Advisory lease locks kept as rows in an index's lock table.

A lease is held while ``now < createdat + waitfor`` by the database clock.
``try_lock`` never blocks: it either takes the lease or reports how long the
current holder's lease still runs, leaving retry and backoff to the caller.
Expired leases need no cleanup; the next taker overwrites the row.
"""

from __future__ import annotations

import logging

from storedmap_sql.db.backend import Connection
from storedmap_sql.db.connection import StorePool, backend_errors
from storedmap_sql.db.statements import Statement
from storedmap_sql.models.lock import LockStatus

logger = logging.getLogger(__name__)


async def _attempt(
    conn: Connection,
    pool: StorePool,
    key: str,
    index_name: str,
    lease_millis: int,
    session_id: str,
) -> LockStatus | None:
    """Make one read-then-write attempt; None means another session raced us."""
    renderer = pool.renderer
    row = await conn.fetchone(renderer.render(Statement.SELECT_LOCK, index_name), (key,))

    if row is None:
        inserted = await conn.execute(
            renderer.render(Statement.INSERT_LOCK, index_name), (key, lease_millis, session_id)
        )
        if inserted == 0:
            await conn.rollback()
            return None
        await conn.commit()
        return LockStatus(wait_millis=0, holder_session=session_id)

    now_millis, created_at, wait_for, holder = row[0], row[1], row[2], row[3]
    remaining = int(created_at) + int(wait_for) - int(now_millis)
    if remaining > 0:
        # read only: nothing to commit, the connection's release ends the read
        return LockStatus(wait_millis=remaining, holder_session=holder)

    updated = await conn.execute(
        renderer.render(Statement.UPDATE_LOCK, index_name),
        (lease_millis, session_id, key, created_at, holder),
    )
    if updated == 0:
        await conn.rollback()
        return None
    await conn.commit()
    return LockStatus(wait_millis=0, holder_session=session_id)


async def try_lock(
    pool: StorePool, key: str, index_name: str, lease_millis: int, session_id: str
) -> LockStatus:
    """Try to take or refresh the lease on ``key`` for ``session_id``.

    Returns ``wait_millis == 0`` with the caller's session when the lease
    was granted (no lock row, or the previous lease expired). Otherwise no
    write happens and the status carries the time left on the live lease and
    the session holding it. An expired lease held by the caller itself is
    refreshed like any other.
    """
    if lease_millis < 0:
        raise ValueError("lease_millis must be >= 0")
    with backend_errors("lock", index_name):
        async with pool.connection(index_name) as conn:
            while True:
                status = await _attempt(conn, pool, key, index_name, lease_millis, session_id)
                if status is not None:
                    break
                logger.debug("Lost lock race on %s/%s, re-reading", index_name, key)

    if status.acquired:
        logger.debug("Lock on %s/%s taken by %s", index_name, key, session_id)
    else:
        logger.debug(
            "Lock on %s/%s held by %s for %d ms",
            index_name,
            key,
            status.holder_session,
            status.wait_millis,
        )
    return status


async def unlock(pool: StorePool, key: str, index_name: str) -> None:
    """Delete the lock row for ``key``; unlocking a free key is a no-op."""
    with backend_errors("unlock", index_name):
        async with pool.connection(index_name) as conn:
            deleted = await conn.execute(
                pool.renderer.render(Statement.DELETE_LOCK, index_name), (key,)
            )
            if deleted > 0:
                await conn.commit()
    logger.debug("Unlocked %s/%s", index_name, key)
