"""Named statements and the binding table for each query variant.

Every select/count variant lists the positional parameter slots its
template expects. Parameters are always bound in the order
min sorter, max sorter, tags, secondary key; a slot contributes nothing when
its value is absent (an absent sorter bound also drops its placeholder from
the rendered template).
"""

from __future__ import annotations

from enum import Enum, StrEnum
from typing import TYPE_CHECKING, Any, NamedTuple

if TYPE_CHECKING:
    from storedmap_sql.models.query import QueryFilter


class Statement(StrEnum):
    """Every query name a template set must define."""

    CHECK = "check"
    CREATE = "create"
    INSERT = "insert"
    DELETE = "delete"
    SELECT_BY_ID = "selectById"
    INSERT_INDEX = "insertIndex"
    DELETE_INDEX = "deleteIndex"
    DELETE_ALL = "deleteAll"

    SELECT_ALL = "selectAll"
    SELECT_BY_TAGS = "selectByTags"
    SELECT_BY_SEC = "selectBySec"
    SELECT_FILTER_SORTED = "selectFilterSorted"
    SELECT_BY_TAGS_AND_FILTER_SORTED = "selectByTagsAndFilterSorted"
    SELECT_BY_TAGS_AND_SEC = "selectByTagsAndSec"
    SELECT_BY_SEC_AND_FILTER_SORTED = "selectBySecAndFilterSorted"
    SELECT_BY_TAGS_AND_SEC_AND_FILTER_SORTED = "selectByTagsAndSecAndFilterSorted"

    COUNT_ALL = "countAll"
    COUNT_BY_TAGS = "countByTags"
    COUNT_BY_SEC = "countBySec"
    COUNT_FILTERED = "countFiltered"
    COUNT_BY_TAGS_AND_FILTERED = "countByTagsAndFiltered"
    COUNT_BY_TAGS_AND_SEC = "countByTagsAndSec"
    COUNT_BY_SEC_AND_FILTERED = "countBySecAndFiltered"
    COUNT_BY_TAGS_AND_SEC_AND_FILTERED = "countByTagsAndSecAndFiltered"

    SELECT_LOCK = "selectLock"
    INSERT_LOCK = "insertLock"
    UPDATE_LOCK = "updateLock"
    DELETE_LOCK = "deleteLock"


class Slot(Enum):
    """Kinds of positional parameters in select/count templates."""

    MIN_SORTER = "minSorter"
    MAX_SORTER = "maxSorter"
    TAGS = "tags"
    SEC = "sec"


class Variant(NamedTuple):
    """One predicate combination: its select, its count, and its slots."""

    select: Statement
    count: Statement
    slots: tuple[Slot, ...]

    @property
    def is_static(self) -> bool:
        """True when the rendered SQL depends on the index name alone."""
        return not self.slots


_RANGE = (Slot.MIN_SORTER, Slot.MAX_SORTER)

# keyed by (secondary key?, sorter range?, tags?)
VARIANTS: dict[tuple[bool, bool, bool], Variant] = {
    (False, False, False): Variant(Statement.SELECT_ALL, Statement.COUNT_ALL, ()),
    (False, False, True): Variant(
        Statement.SELECT_BY_TAGS, Statement.COUNT_BY_TAGS, (Slot.TAGS,)
    ),
    (False, True, False): Variant(
        Statement.SELECT_FILTER_SORTED, Statement.COUNT_FILTERED, _RANGE
    ),
    (False, True, True): Variant(
        Statement.SELECT_BY_TAGS_AND_FILTER_SORTED,
        Statement.COUNT_BY_TAGS_AND_FILTERED,
        (*_RANGE, Slot.TAGS),
    ),
    (True, False, False): Variant(Statement.SELECT_BY_SEC, Statement.COUNT_BY_SEC, (Slot.SEC,)),
    (True, False, True): Variant(
        Statement.SELECT_BY_TAGS_AND_SEC, Statement.COUNT_BY_TAGS_AND_SEC, (Slot.TAGS, Slot.SEC)
    ),
    (True, True, False): Variant(
        Statement.SELECT_BY_SEC_AND_FILTER_SORTED,
        Statement.COUNT_BY_SEC_AND_FILTERED,
        (*_RANGE, Slot.SEC),
    ),
    (True, True, True): Variant(
        Statement.SELECT_BY_TAGS_AND_SEC_AND_FILTER_SORTED,
        Statement.COUNT_BY_TAGS_AND_SEC_AND_FILTERED,
        (*_RANGE, Slot.TAGS, Slot.SEC),
    ),
}


def choose_variant(flt: QueryFilter) -> Variant:
    """Pick the statement variant for a filter's present predicates."""
    has_sec = flt.secondary_key is not None
    has_range = flt.min_sorter is not None or flt.max_sorter is not None
    has_tags = bool(flt.tags)
    return VARIANTS[(has_sec, has_range, has_tags)]


def bind(variant: Variant, flt: QueryFilter) -> list[Any]:
    """Build the positional parameters for a variant in template order."""
    params: list[Any] = []
    for slot in variant.slots:
        if slot is Slot.MIN_SORTER and flt.min_sorter is not None:
            params.append(flt.min_sorter)
        elif slot is Slot.MAX_SORTER and flt.max_sorter is not None:
            params.append(flt.max_sorter)
        elif slot is Slot.TAGS:
            params.extend(flt.tags or ())
        elif slot is Slot.SEC:
            params.append(flt.secondary_key)
    return params


def template_bindings(variant: Variant, flt: QueryFilter, *, for_select: bool) -> dict[str, Any]:
    """Build the dynamic template context for a variant.

    Only presence matters to the templates, so sorter bounds and the
    secondary key are passed as booleans and tags as a count-bearing list.
    """
    context: dict[str, Any] = {}
    for slot in variant.slots:
        if slot is Slot.MIN_SORTER:
            context["minSorter"] = flt.min_sorter is not None
        elif slot is Slot.MAX_SORTER:
            context["maxSorter"] = flt.max_sorter is not None
        elif slot is Slot.TAGS:
            context["tags"] = list(flt.tags or ())
        elif slot is Slot.SEC:
            context["sec"] = True
    if for_select:
        context["ascending"] = flt.ascending
    return context
