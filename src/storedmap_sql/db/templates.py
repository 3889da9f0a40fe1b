"""SQL template loading, rendering and caching.

Each dialect ships a TOML file under ``storedmap_sql/sql`` mapping query
names to Jinja2 templates. Templates see ``indexName`` plus, for the
variable-arity queries, ``tags``, ``minSorter``, ``maxSorter``, ``sec`` and
``ascending``. Values are never rendered into SQL; they are bound as ``?``
parameters by the caller.
"""

from __future__ import annotations

import logging
import re
import threading
import tomllib
from collections.abc import Mapping
from importlib import resources
from typing import Any

from jinja2 import Environment, StrictUndefined, Template, TemplateSyntaxError

from storedmap_sql.db.statements import Statement
from storedmap_sql.errors import ConfigurationError

logger = logging.getLogger(__name__)

_INDEX_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_index_name(index_name: str) -> str:
    """Reject index names that are not plain SQL identifiers."""
    if not _INDEX_NAME_RE.match(index_name):
        raise ValueError(f"Invalid index name: {index_name!r}")
    return index_name


def load_default_templates(dialect: str) -> dict[str, str]:
    """Read the bundled template set for a dialect."""
    try:
        raw = resources.files("storedmap_sql.sql").joinpath(f"{dialect}.toml").read_text("utf-8")
        data = tomllib.loads(raw)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"Cannot read SQL templates for dialect '{dialect}'") from e
    queries = data.get("queries")
    if not isinstance(queries, dict):
        raise ConfigurationError(f"Template set for '{dialect}' has no [queries] table")
    return {str(k): str(v) for k, v in queries.items()}


class TemplateStore:
    """Compiled SQL templates keyed by query name."""

    def __init__(self, sources: Mapping[str, str]) -> None:
        """Compile every template; fail fast on syntax errors or gaps."""
        missing = sorted(s.value for s in Statement if s.value not in sources)
        if missing:
            raise ConfigurationError(f"Missing SQL templates: {', '.join(missing)}")

        self._env = Environment(
            autoescape=False,  # noqa: S701 (SQL generation, not HTML)
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
        )
        self._templates: dict[str, Template] = {}
        for name, source in sources.items():
            try:
                self._templates[name] = self._env.from_string(source)
            except TemplateSyntaxError as e:
                raise ConfigurationError(f"SQL template '{name}' does not compile: {e}") from e

    @classmethod
    def load(cls, dialect: str, overrides: Mapping[str, str] | None = None) -> TemplateStore:
        """Load a dialect's default set and apply per-name overrides."""
        sources = load_default_templates(dialect)
        for name, source in (overrides or {}).items():
            logger.debug("Overriding SQL template '%s'", name)
            sources[name] = source
        return cls(sources)

    @property
    def names(self) -> list[str]:
        """All known query names."""
        return list(self._templates)

    def get(self, query_name: str) -> Template:
        """Return the compiled template for a query name."""
        try:
            return self._templates[query_name]
        except KeyError:
            raise ConfigurationError(f"No SQL template named '{query_name}'") from None


class SqlRenderer:
    """Renders SQL text, caching renderings that depend only on the index name.

    One renderer belongs to one open pool. Dynamic renderings (any extra
    binding present) are produced fresh on every call.
    """

    def __init__(self, templates: TemplateStore) -> None:
        """Initialize with a compiled template store."""
        self._templates = templates
        self._static: dict[str, dict[str, str]] = {name: {} for name in templates.names}
        self._lock = threading.Lock()

    def render(self, query_name: str, index_name: str, **bindings: Any) -> str:
        """Render ``query_name`` for ``index_name``."""
        check_index_name(index_name)
        template = self._templates.get(query_name)
        if bindings:
            return template.render(indexName=index_name, **bindings).strip()

        cache = self._static[query_name]
        sql = cache.get(index_name)
        if sql is None:
            with self._lock:
                sql = cache.get(index_name)
                if sql is None:
                    sql = template.render(indexName=index_name).strip()
                    cache[index_name] = sql
                    logger.debug("Rendered %s for %s: %s", query_name, index_name, sql)
        return sql

    def render_script(self, query_name: str, index_name: str) -> list[str]:
        """Render a semicolon-delimited template into its non-empty statements."""
        script = self.render(query_name, index_name)
        return [stmt.strip() for stmt in script.split(";") if stmt.strip()]

    def clear(self) -> None:
        """Forget every cached rendering."""
        with self._lock:
            for cache in self._static.values():
                cache.clear()
