"""Structured error types for storedmap-sql."""

from __future__ import annotations


class StoredMapError(Exception):
    """Base error for all storedmap-sql errors."""


class ConfigurationError(StoredMapError):
    """Raised when the store cannot be opened with the given configuration.

    Covers missing connection properties, unknown dialects, and template sets
    that are unreadable, incomplete, or fail to compile.
    """


class BackendError(StoredMapError):
    """Raised when a SQL statement fails inside a store operation.

    The original driver exception is chained as ``__cause__``.
    """

    def __init__(self, operation: str, index_name: str | None = None) -> None:
        self.operation = operation
        self.index_name = index_name
        where = f" on index '{index_name}'" if index_name else ""
        super().__init__(f"Backend failure during {operation}{where}")


class PoolClosedError(StoredMapError):
    """Raised when a store operation is issued after the store was closed."""

    def __init__(self) -> None:
        super().__init__("Store pool is closed")


class SerializationError(StoredMapError):
    """Raised when an attribute map cannot be encoded to JSON."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        super().__init__(f"Attributes for key '{key}' are not serializable: {reason}")


class TextSearchUnavailableError(StoredMapError):
    """Raised when a free-text query is issued without a text search extension."""

    def __init__(self) -> None:
        super().__init__(
            "Free-text queries need a TextSearch extension; "
            "pass text_search= when opening the store."
        )
