"""Polymorphic one-to-many and one-to-one relations."""
from __future__ import annotations

from collections.abc import Sequence
from typing import Any, TypeVar

from brickorm.query.builder import QueryBuilder
from brickorm.relations.has_many import HasMany
from brickorm.validate.identifiers import assert_identifier

R = TypeVar("R")


class MorphMany(HasMany[R]):
    """Children that point back at their parent by ``(type, id)``.

    e.g. ``Post`` and ``Video`` both morph many ``Comment`` rows
    (``comments.commentable_type``, ``comments.commentable_id``).

    Args:
        parent: The owning record.
        related: Related model class.
        name: Morph name; the related table carries ``{name}_id`` and
            ``{name}_type``.
        local_key: Parent column referenced by ``{name}_id``.
    """

    def __init__(
        self, parent: Any, related: type[R], name: str, local_key: str | None = None
    ) -> None:
        name = assert_identifier(name, "morph name", dotted=False)
        self.morph_type = f"{name}_type"
        self.morph_class = parent.get_morph_class()
        super().__init__(parent, related, f"{name}_id", local_key or parent.primary_key)

    def add_constraints(self) -> None:
        super().add_constraints()
        self.where(f"{self.table}.{self.morph_type}", self.morph_class)

    def _match_query(self, keys: list[Any], nested: Sequence[str]) -> QueryBuilder[R]:
        return super()._match_query(keys, nested).where(self.morph_type, self.morph_class)

    def _owns(self, child: Any) -> bool:
        return child.get_attribute(self.morph_type) == self.morph_class


class MorphOne(MorphMany[R]):
    """Like :class:`MorphMany`, unwrapped to the first child or ``None``."""

    def _result(self, children: list[R]) -> Any:
        return children[0] if children else None

    async def get_result(self) -> R | None:
        return await self.first()
