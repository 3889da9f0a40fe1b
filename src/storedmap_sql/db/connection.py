"""Store pool creation and per-pool state."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager

from storedmap_sql.config import Dialect, StoreSettings, postgres_dsn, sqlite_path
from storedmap_sql.db.backend import Connection, Pool
from storedmap_sql.db.schema import SchemaManager
from storedmap_sql.db.sqlite_backend import SQLitePool
from storedmap_sql.db.templates import SqlRenderer, TemplateStore
from storedmap_sql.errors import BackendError, ConfigurationError, PoolClosedError

logger = logging.getLogger(__name__)

_STATEMENT_CACHE_SIZE = 128

try:
    import asyncpg

    BACKEND_ERRORS: tuple[type[Exception], ...] = (
        sqlite3.Error,
        asyncpg.PostgresError,
        asyncpg.InterfaceError,
    )
except ImportError:
    BACKEND_ERRORS = (sqlite3.Error,)


@contextmanager
def backend_errors(operation: str, index_name: str | None = None) -> Iterator[None]:
    """Re-raise driver exceptions as BackendError, chaining the original."""
    try:
        yield
    except BACKEND_ERRORS as e:
        raise BackendError(operation, index_name) from e


class StorePool:
    """An open backend pool together with the caches that belong to it.

    The rendered-SQL cache and the known-index record live exactly as long as
    this object; ``close()`` tears both down with the backend pool.
    """

    def __init__(self, backend: Pool, templates: TemplateStore, dialect: Dialect) -> None:
        """Wrap an opened backend pool."""
        self.backend = backend
        self.dialect = dialect
        self.renderer = SqlRenderer(templates)
        self.schema = SchemaManager(backend, self.renderer)
        self._closed = False

    @property
    def closed(self) -> bool:
        """True after ``close()``."""
        return self._closed

    @asynccontextmanager
    async def connection(self, index_name: str) -> AsyncIterator[Connection]:
        """Ensure the index's tables exist, then borrow a connection."""
        if self._closed:
            raise PoolClosedError()
        with backend_errors("schema check", index_name):
            await self.schema.ensure_index(index_name)
        async with self.backend.acquire() as conn:
            yield conn

    async def list_indices(self) -> set[str]:
        """Discover the indices present in the database."""
        with backend_errors("index discovery"):
            return await self.schema.list_indices()

    async def close(self) -> None:
        """Close the backend pool and drop this pool's caches."""
        if self._closed:
            return
        self._closed = True
        self.schema.forget()
        self.renderer.clear()
        await self.backend.close()
        logger.info("Closed %s store pool", self.dialect)


async def create_pool(settings: StoreSettings) -> StorePool:
    """Open a store pool for the configured dialect.

    Templates are loaded and compiled before any connection is made, so a
    broken template set fails without touching the database.
    """
    templates = TemplateStore.load(settings.dialect, settings.queries)
    if settings.dialect == Dialect.POSTGRESQL:
        backend: Pool = await _create_postgres(settings)
    else:
        backend = await _create_sqlite(settings)
    logger.info("Opened %s store pool", settings.dialect)
    return StorePool(backend, templates, settings.dialect)


async def _create_sqlite(settings: StoreSettings) -> Pool:
    """Create a pool of aiosqlite connections."""
    pool = settings.pool
    sqlite_pool = SQLitePool(
        sqlite_path(settings.url),
        max_active=pool.max_active,
        max_idle=pool.max_idle,
        min_idle=pool.min_idle,
        initial_size=pool.initial_size,
        cached_statements=_STATEMENT_CACHE_SIZE if pool.pool_prepared_statements else 0,
        read_uncommitted=settings.isolation == "read_uncommitted",
        pragmas=settings.connection_properties,
    )
    with backend_errors("pool open"):
        return await sqlite_pool.open()


async def _create_postgres(settings: StoreSettings) -> Pool:
    """Create an asyncpg-backed pool."""
    from storedmap_sql.db.postgres_backend import PostgresPool

    pool = settings.pool
    with backend_errors("pool open"):
        try:
            return await PostgresPool.create(
                postgres_dsn(settings.url),
                user=settings.user,
                password=settings.password,
                min_size=pool.min_idle,
                max_size=pool.max_active,
                statement_cache_size=_STATEMENT_CACHE_SIZE if pool.pool_prepared_statements else 0,
                server_settings=settings.connection_properties,
                isolation=settings.isolation,
            )
        except ImportError as e:
            raise ConfigurationError("PostgreSQL support needs the 'postgres' extra") from e
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
