"""Tests for lazy table creation and index discovery."""

import asyncio
import sqlite3

import pytest

from storedmap_sql.config import StoreSettings
from storedmap_sql.db import schema as schema_module
from storedmap_sql.db.connection import create_pool
from storedmap_sql.errors import BackendError
from tests.conftest import sqlite_properties


@pytest.fixture
def create_calls(monkeypatch):
    """Count executions of the create script."""
    calls: list[str] = []
    original = schema_module._create_tables

    async def _counting(conn, renderer, index_name):
        calls.append(index_name)
        await original(conn, renderer, index_name)

    monkeypatch.setattr(schema_module, "_create_tables", _counting)
    return calls


@pytest.mark.asyncio
async def test_tables_created_on_first_use(pool):
    await pool.schema.ensure_index("users")
    async with pool.backend.acquire() as conn:
        tables = set(await conn.list_tables())
    assert {"users_main", "users_indx", "users_lock"} <= tables


@pytest.mark.asyncio
async def test_ensure_twice_creates_once(pool, create_calls):
    await pool.schema.ensure_index("users")
    await pool.schema.ensure_index("users")
    assert create_calls == ["users"]
    assert pool.schema.is_known("users")


@pytest.mark.asyncio
async def test_concurrent_first_access_creates_once(pool, create_calls):
    await asyncio.gather(*(pool.schema.ensure_index("users") for _ in range(5)))
    assert create_calls == ["users"]


@pytest.mark.asyncio
async def test_existing_tables_are_not_recreated(tmp_path, create_calls):
    settings = StoreSettings.from_properties(sqlite_properties(tmp_path / "store.db"))
    first = await create_pool(settings)
    try:
        await first.schema.ensure_index("users")
    finally:
        await first.close()

    second = await create_pool(settings)
    try:
        await second.schema.ensure_index("users")
        assert second.schema.is_known("users")
    finally:
        await second.close()
    assert create_calls == ["users"]


@pytest.mark.asyncio
async def test_each_pool_has_its_own_known_set(tmp_path):
    settings = StoreSettings.from_properties(sqlite_properties(tmp_path / "store.db"))
    a = await create_pool(settings)
    b = await create_pool(settings)
    try:
        await a.schema.ensure_index("users")
        assert a.schema.is_known("users")
        assert not b.schema.is_known("users")
    finally:
        await a.close()
        await b.close()


@pytest.mark.asyncio
async def test_close_forgets_known_indices(pool):
    await pool.schema.ensure_index("users")
    await pool.close()
    assert not pool.schema.is_known("users")


@pytest.mark.asyncio
async def test_list_indices(pool):
    await pool.schema.ensure_index("users")
    await pool.schema.ensure_index("orders")
    async with pool.backend.acquire() as conn:
        await conn.execute("CREATE TABLE unrelated (x INTEGER)")
        await conn.execute("CREATE TABLE _main (x INTEGER)")
        await conn.commit()
    assert await pool.list_indices() == {"users", "orders"}


@pytest.mark.asyncio
async def test_invalid_index_name(pool):
    with pytest.raises(ValueError):
        await pool.schema.ensure_index("not valid")


@pytest.mark.asyncio
async def test_create_losing_a_race_is_accepted(pool, monkeypatch):
    original = schema_module._create_tables

    async def _created_elsewhere(conn, renderer, index_name):
        await original(conn, renderer, index_name)
        raise sqlite3.OperationalError("table users_main already exists")

    monkeypatch.setattr(schema_module, "_create_tables", _created_elsewhere)
    await pool.schema.ensure_index("users")
    assert pool.schema.is_known("users")


@pytest.mark.asyncio
async def test_failed_create_without_tables_raises(pool, monkeypatch):
    async def _failing(conn, renderer, index_name):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(schema_module, "_create_tables", _failing)
    with pytest.raises(BackendError) as excinfo:
        async with pool.connection("users"):
            pass
    assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)
    assert not pool.schema.is_known("users")
