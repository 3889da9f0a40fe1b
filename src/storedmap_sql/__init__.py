"""storedmap-sql: a tag- and range-indexed key/value store over SQL databases."""

from storedmap_sql.config import StoreSettings
from storedmap_sql.errors import (
    BackendError,
    ConfigurationError,
    PoolClosedError,
    SerializationError,
    StoredMapError,
    TextSearchUnavailableError,
)
from storedmap_sql.models import LockStatus, QueryFilter
from storedmap_sql.store import IndexStore, KeyStream, open_store

__all__ = [
    "BackendError",
    "ConfigurationError",
    "IndexStore",
    "KeyStream",
    "LockStatus",
    "PoolClosedError",
    "QueryFilter",
    "SerializationError",
    "StoreSettings",
    "StoredMapError",
    "TextSearchUnavailableError",
    "open_store",
]
