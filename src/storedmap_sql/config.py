"""Store configuration: a flat key/value map plus environment fallbacks."""

from __future__ import annotations

import os
from collections.abc import Mapping
from enum import StrEnum

from pydantic import BaseModel, Field, ValidationError

from storedmap_sql.errors import ConfigurationError

PREFIX = "sql."
QUERIES_PREFIX = "sql.queries."
POOL_PREFIX = "sql.pool."

_POOL_KEYS = {
    "maxActive": "max_active",
    "maxIdle": "max_idle",
    "minIdle": "min_idle",
    "initialSize": "initial_size",
    "poolPreparedStatements": "pool_prepared_statements",
}
_RESERVED = {"url", "driver", "user", "password", "isolation"}


def get_database_url() -> str | None:
    """Return the database URL from STOREDMAP_DATABASE_URL."""
    return os.environ.get("STOREDMAP_DATABASE_URL") or None


def get_log_level() -> str:
    """Return the logging level from STOREDMAP_LOG_LEVEL."""
    return os.environ.get("STOREDMAP_LOG_LEVEL", "WARNING")


class Dialect(StrEnum):
    """SQL dialects with a bundled template set."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class PoolSettings(BaseModel):
    """Connection pool sizing."""

    max_active: int = Field(default=90, ge=1)
    max_idle: int = Field(default=50, ge=0)
    min_idle: int = Field(default=10, ge=0)
    initial_size: int = Field(default=10, ge=0)
    pool_prepared_statements: bool = True


class StoreSettings(BaseModel):
    """Everything needed to open a store pool."""

    url: str
    dialect: Dialect
    user: str | None = None
    password: str | None = None
    isolation: str = "read_uncommitted"
    pool: PoolSettings = Field(default_factory=PoolSettings)
    queries: dict[str, str] = Field(default_factory=dict)
    connection_properties: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_properties(cls, properties: Mapping[str, str] | None = None) -> StoreSettings:
        """Parse a flat ``sql.*`` property map.

        ``sql.queries.<name>`` keys override SQL templates by name,
        ``sql.pool.<option>`` keys size the pool, and any other ``sql.<name>``
        key is handed to the backend as a connection property.
        """
        properties = dict(properties or {})
        url = properties.get(PREFIX + "url") or get_database_url()
        if not url:
            raise ConfigurationError(
                "No database URL: set 'sql.url' or STOREDMAP_DATABASE_URL"
            )

        pool: dict[str, str] = {}
        queries: dict[str, str] = {}
        extra: dict[str, str] = {}
        for name, value in properties.items():
            if name.startswith(QUERIES_PREFIX):
                queries[name[len(QUERIES_PREFIX) :]] = value
            elif name.startswith(POOL_PREFIX):
                option = name[len(POOL_PREFIX) :]
                if option not in _POOL_KEYS:
                    raise ConfigurationError(f"Unknown pool option '{name}'")
                pool[_POOL_KEYS[option]] = value
            elif name.startswith(PREFIX):
                option = name[len(PREFIX) :]
                if option not in _RESERVED:
                    extra[option] = value

        try:
            return cls(
                url=url,
                dialect=properties.get(PREFIX + "driver") or infer_dialect(url),
                user=properties.get(PREFIX + "user"),
                password=properties.get(PREFIX + "password"),
                isolation=properties.get(PREFIX + "isolation", "read_uncommitted"),
                pool=PoolSettings.model_validate(pool),
                queries=queries,
                connection_properties=extra,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid store configuration: {e}") from e


def infer_dialect(url: str) -> str:
    """Guess the dialect from a URL scheme; bare paths are SQLite files."""
    scheme = url.split(":", 1)[0].lower() if "://" in url else ""
    if scheme in ("postgres", "postgresql") or scheme.startswith("postgresql+"):
        return Dialect.POSTGRESQL
    if scheme in ("", "sqlite", "file"):
        return Dialect.SQLITE
    raise ConfigurationError(f"Cannot infer SQL dialect from URL scheme '{scheme}'")


def sqlite_path(url: str) -> str:
    """Return the SQLite database path for a ``sqlite://`` URL or bare path."""
    if url.startswith("sqlite:///"):
        return url[len("sqlite:///") :] or ":memory:"
    if url.startswith("sqlite://"):
        return url[len("sqlite://") :] or ":memory:"
    return url


def postgres_dsn(url: str) -> str:
    """Drop a ``+driver`` suffix from the URL scheme, which asyncpg rejects."""
    scheme, sep, rest = url.partition("://")
    if sep and "+" in scheme:
        return scheme.split("+", 1)[0] + sep + rest
    return url
