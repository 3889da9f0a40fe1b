"""Query filter model."""

from pydantic import BaseModel, field_validator


class QueryFilter(BaseModel):
    """Optional predicates for selecting or counting keys in an index.

    Every field is optional; with none set the whole index is selected.
    ``tags`` matches entries carrying any of the listed tags. Sorter bounds
    are inclusive and compared byte-wise.
    """

    secondary_key: str | None = None
    min_sorter: bytes | None = None
    max_sorter: bytes | None = None
    tags: list[str] | None = None
    ascending: bool | None = None
    text_query: str | None = None

    @field_validator("tags")
    @classmethod
    def _empty_tags_mean_no_filter(cls, v: list[str] | None) -> list[str] | None:
        return v or None

    @property
    def has_range(self) -> bool:
        """True when at least one sorter bound is set."""
        return self.min_sorter is not None or self.max_sorter is not None
