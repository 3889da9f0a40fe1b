"""Data models for query filters and lock outcomes."""

from storedmap_sql.models.lock import LockStatus
from storedmap_sql.models.query import QueryFilter

__all__ = ["LockStatus", "QueryFilter"]
