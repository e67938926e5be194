"""Polymorphic many-to-many relation."""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeVar

from brickorm.query.builder import QueryBuilder, Row
from brickorm.relations.belongs_to_many import BelongsToMany
from brickorm.utils import foreign_key
from brickorm.validate.identifiers import assert_identifier

R = TypeVar("R")


class MorphToMany(BelongsToMany[R]):
    """A many-to-many relation whose pivot rows also name the parent's type.

    e.g. ``Post`` and ``Video`` both morph to many ``Tag`` rows through
    ``taggables`` (``taggable_id``, ``taggable_type``, ``tag_id``).

    Args:
        parent: The owning record.
        related: Related model class.
        name: Morph name; the pivot carries ``{name}_id`` and ``{name}_type``.
        pivot_table: Pivot table name.  Defaults to ``{name}s``.
        related_pivot_key: Pivot column referencing the related record.
    """

    def __init__(
        self,
        parent: Any,
        related: type[R],
        name: str,
        pivot_table: str | None = None,
        related_pivot_key: str | None = None,
        parent_key: str | None = None,
        related_key: str | None = None,
    ) -> None:
        name = assert_identifier(name, "morph name", dotted=False)
        self.morph_type = f"{name}_type"
        self.morph_class = parent.get_morph_class()
        super().__init__(
            parent,
            related,
            pivot_table or f"{name}s",
            f"{name}_id",
            related_pivot_key or foreign_key(related.table),
            parent_key,
            related_key,
        )

    def add_constraints(self) -> None:
        super().add_constraints()
        self.where(f"{self.pivot_table}.{self.morph_type}", self.morph_class)

    def _pivot_keys(self) -> list[str]:
        return [*super()._pivot_keys(), self.morph_type]

    def _pivot_query(self) -> QueryBuilder[Row]:
        return super()._pivot_query().where(self.morph_type, self.morph_class)

    def _pivot_row_matches(self, row: Mapping[str, Any]) -> bool:
        # Pivot rows without a projected type column were already filtered in SQL.
        return row.get(self.morph_type, self.morph_class) == self.morph_class

    def _pivot_attributes(self) -> dict[str, Any]:
        return {self.morph_type: self.morph_class}
