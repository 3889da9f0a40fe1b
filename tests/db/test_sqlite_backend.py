"""Tests for the SQLite connection pool."""

import asyncio

import pytest
import pytest_asyncio

from storedmap_sql.db.sqlite_backend import SQLitePool


@pytest_asyncio.fixture
async def sqlite_pool(tmp_path):
    pool = await SQLitePool(str(tmp_path / "pool.db"), initial_size=1, max_active=2).open()
    async with pool.acquire() as conn:
        await conn.execute("CREATE TABLE t (id TEXT PRIMARY KEY, v BLOB)")
        await conn.commit()
    yield pool
    await pool.close()


@pytest.mark.asyncio
async def test_uncommitted_write_rolled_back_on_release(sqlite_pool):
    async with sqlite_pool.acquire() as conn:
        assert await conn.execute("INSERT INTO t VALUES (?, ?)", ("a", b"1")) == 1
        assert conn.in_transaction
    async with sqlite_pool.acquire() as conn:
        assert await conn.fetchone("SELECT v FROM t WHERE id = ?", ("a",)) is None


@pytest.mark.asyncio
async def test_committed_write_visible_to_other_connection(sqlite_pool):
    async with sqlite_pool.acquire() as writer:
        await writer.execute("INSERT INTO t VALUES (?, ?)", ("a", b"1"))
        await writer.commit()
        async with sqlite_pool.acquire() as reader:
            row = await reader.fetchone("SELECT v FROM t WHERE id = ?", ("a",))
    assert row is not None
    assert bytes(row[0]) == b"1"
    assert bytes(row["v"]) == b"1"


@pytest.mark.asyncio
async def test_execute_returns_rowcount(sqlite_pool):
    async with sqlite_pool.acquire() as conn:
        await conn.execute("INSERT INTO t VALUES (?, ?)", ("a", b"1"))
        await conn.execute("INSERT INTO t VALUES (?, ?)", ("b", b"2"))
        assert await conn.execute("DELETE FROM t") == 2
        assert await conn.execute("DELETE FROM t") == 0


@pytest.mark.asyncio
async def test_cursor_skip_and_fetchmany(sqlite_pool):
    async with sqlite_pool.acquire() as conn:
        for i in range(10):
            await conn.execute("INSERT INTO t VALUES (?, ?)", (f"k{i}", None))
        await conn.commit()
        cursor = await conn.cursor("SELECT id FROM t ORDER BY id")
        await cursor.skip(7)
        rows = await cursor.fetchmany(5)
        await cursor.close()
    assert [r[0] for r in rows] == ["k7", "k8", "k9"]


@pytest.mark.asyncio
async def test_list_tables(sqlite_pool):
    async with sqlite_pool.acquire() as conn:
        assert "t" in await conn.list_tables()


@pytest.mark.asyncio
async def test_max_active_bounds_borrowed_connections(sqlite_pool):
    async with sqlite_pool.acquire(), sqlite_pool.acquire():
        with pytest.raises(TimeoutError):
            async with asyncio.timeout(0.2):
                async with sqlite_pool.acquire():
                    pass


@pytest.mark.asyncio
async def test_memory_database_survives_release():
    pool = await SQLitePool(":memory:", initial_size=0, max_idle=0, max_active=4).open()
    try:
        async with pool.acquire() as conn:
            await conn.execute("CREATE TABLE m (x INTEGER)")
            await conn.execute("INSERT INTO m VALUES (1)")
            await conn.commit()
        async with pool.acquire() as conn:
            row = await conn.fetchone("SELECT x FROM m")
        assert row is not None and row[0] == 1
    finally:
        await pool.close()


@pytest.mark.asyncio
async def test_memory_database_lends_one_connection_at_a_time():
    pool = await SQLitePool(":memory:", max_active=4).open()
    try:
        async with pool.acquire():
            with pytest.raises(TimeoutError):
                async with asyncio.timeout(0.2):
                    async with pool.acquire():
                        pass
    finally:
        await pool.close()


@pytest.mark.asyncio
async def test_acquire_after_close_fails(tmp_path):
    pool = await SQLitePool(str(tmp_path / "c.db"), initial_size=0).open()
    await pool.close()
    with pytest.raises(RuntimeError):
        async with pool.acquire():
            pass
