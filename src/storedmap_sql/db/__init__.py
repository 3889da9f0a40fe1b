"""Backend pools, SQL templates and schema management."""

from storedmap_sql.db.backend import Connection, Pool, Row, RowCursor
from storedmap_sql.db.connection import StorePool, create_pool
from storedmap_sql.db.sqlite_backend import SQLitePool

try:
    from storedmap_sql.db.postgres_backend import PostgresPool
except ImportError:
    PostgresPool = None  # type: ignore[assignment,misc]

__all__ = [
    "Connection",
    "Pool",
    "PostgresPool",
    "Row",
    "RowCursor",
    "SQLitePool",
    "StorePool",
    "create_pool",
]
