"""Write path, query composition, lease locks and the store facade."""

from storedmap_sql.store.index_store import IndexStore, open_store
from storedmap_sql.store.query import KeyStream

__all__ = ["IndexStore", "KeyStream", "open_store"]
