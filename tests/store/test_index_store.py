"""Tests for the IndexStore facade."""

import asyncio

import pytest

from storedmap_sql.errors import (
    ConfigurationError,
    PoolClosedError,
    TextSearchUnavailableError,
)
from storedmap_sql.models.query import QueryFilter
from storedmap_sql.search.text import TextSearch
from storedmap_sql.store.index_store import IndexStore, open_store
from tests.conftest import FakeTextSearch, collect, sqlite_properties


@pytest.mark.asyncio
async def test_put_get_remove(store):
    await store.put("k1", "notes", b"hello")
    await store.put_index("k1", "notes", {"title": "Hello"}, sorter=b"\x01", tags=["greeting"])
    assert await store.get("k1", "notes") == b"hello"
    assert await collect(await store.keys("notes", QueryFilter(tags=["greeting"]))) == ["k1"]
    assert await store.count("notes") == 1

    await store.remove("k1", "notes")
    assert await store.get("k1", "notes") is None
    assert await store.count("notes", QueryFilter(tags=["greeting"])) == 0


@pytest.mark.asyncio
async def test_remove_all(store):
    for key in ("a", "b", "c"):
        await store.put(key, "notes", b"v")
    await store.remove_all("notes")
    assert await store.count("notes") == 0


@pytest.mark.asyncio
async def test_keys_window(store):
    for i in range(6):
        await store.put(f"k{i}", "notes", b"v")
    keys = await collect(await store.keys("notes", offset=1, size=2))
    assert keys == ["k1", "k2"]


@pytest.mark.asyncio
async def test_lock_round_trip(store):
    assert (await store.try_lock("k1", "notes", 60_000, "s1")).acquired
    blocked = await store.try_lock("k1", "notes", 60_000, "s2")
    assert blocked.holder_session == "s1"
    await store.unlock("k1", "notes")
    assert (await store.try_lock("k1", "notes", 60_000, "s2")).acquired


@pytest.mark.asyncio
async def test_indices(store):
    await store.put("k1", "notes", b"v")
    await store.put("k1", "tasks", b"v")
    assert await store.indices() == {"notes", "tasks"}


@pytest.mark.asyncio
async def test_text_query_without_extension(store):
    flt = QueryFilter(text_query="hello")
    with pytest.raises(TextSearchUnavailableError):
        await store.keys("notes", flt)
    with pytest.raises(TextSearchUnavailableError):
        await store.count("notes", flt)


@pytest.mark.asyncio
async def test_text_query_dispatched_to_extension(pool):
    search = FakeTextSearch(["x", "y", "z"])
    assert isinstance(search, TextSearch)
    store = IndexStore(pool, text_search=search)
    flt = QueryFilter(text_query="hello", tags=["t"])

    keys = [key async for key in await store.keys("notes", flt, offset=1, size=1)]
    assert keys == ["y"]
    assert search.last_filter == flt
    assert search.last_window == (1, 1)

    assert await store.count("notes", flt) == 3


@pytest.mark.asyncio
async def test_plain_query_ignores_extension(pool):
    search = FakeTextSearch(["x"])
    store = IndexStore(pool, text_search=search)
    await store.put("k1", "notes", b"v")
    assert await collect(await store.keys("notes")) == ["k1"]
    assert search.last_filter is None


@pytest.mark.asyncio
async def test_open_store_in_memory():
    async with await open_store({"sql.url": "sqlite://"}) as store:
        await store.put("k1", "notes", b"v")
        assert await store.get("k1", "notes") == b"v"
    assert store.pool.closed


@pytest.mark.asyncio
async def test_in_memory_store_handles_concurrent_callers():
    async with await open_store({"sql.url": ":memory:"}) as store:
        await asyncio.gather(*(store.put(f"k{i}", "notes", b"v") for i in range(20)))
        await asyncio.gather(
            *(store.put_index(f"k{i}", "notes", {}, tags=["t"]) for i in range(20))
        )
        results = await asyncio.gather(
            *(store.try_lock("doc1", "notes", 60_000, f"s{i}") for i in range(8))
        )
        assert await store.count("notes") == 20
        assert await store.count("notes", QueryFilter(tags=["t"])) == 20
    assert sum(r.acquired for r in results) == 1
    assert len({r.holder_session for r in results}) == 1


@pytest.mark.asyncio
async def test_open_store_from_file(tmp_path):
    props = sqlite_properties(tmp_path / "data" / "store.db")
    store = await open_store(props)
    try:
        await store.put("k1", "notes", b"v")
    finally:
        await store.close()

    store = await open_store(props)
    try:
        assert await store.get("k1", "notes") == b"v"
        assert await store.indices() == {"notes"}
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_open_store_without_url(monkeypatch):
    monkeypatch.delenv("STOREDMAP_DATABASE_URL", raising=False)
    with pytest.raises(ConfigurationError):
        await open_store({})


@pytest.mark.asyncio
async def test_open_store_reads_url_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("STOREDMAP_DATABASE_URL", str(tmp_path / "env.db"))
    async with await open_store() as store:
        await store.put("k1", "notes", b"v")
    assert (tmp_path / "env.db").exists()


@pytest.mark.asyncio
async def test_closed_store_refuses_operations(store):
    await store.close()
    with pytest.raises(PoolClosedError):
        await store.put("k1", "notes", b"v")
    with pytest.raises(PoolClosedError):
        await store.try_lock("k1", "notes", 1000, "s1")
