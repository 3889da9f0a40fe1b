"""Free-text search extension point."""

from storedmap_sql.search.text import TextSearch

__all__ = ["TextSearch"]
