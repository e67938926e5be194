"""Direct one-to-many and one-to-one relations (foreign key on the related table)."""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from typing import Any, TypeVar

from brickorm.query.builder import QueryBuilder
from brickorm.relations.base import Relation

R = TypeVar("R")


class HasMany(Relation[R]):
    """A parent has many related records.

    e.g. a ``User`` has many ``Post`` rows (``posts.user_id``).

    Args:
        parent: The owning record.
        related: Related model class.
        foreign_key: Column on the related table that references the parent.
        local_key: Column on the parent referenced by ``foreign_key``.
    """

    def __init__(self, parent: Any, related: type[R], foreign_key: str, local_key: str) -> None:
        super().__init__(parent, related)
        self.foreign_key = foreign_key
        self.local_key = local_key
        self.add_constraints()

    def add_constraints(self) -> None:
        self._constrain(f"{self.table}.{self.foreign_key}", self.parent.get_attribute(self.local_key))

    def _match_query(self, keys: list[Any], nested: Sequence[str]) -> QueryBuilder[R]:
        return self.new_related_query(nested).where_in(self.foreign_key, keys)

    def _owns(self, child: Any) -> bool:
        return True

    def _result(self, children: list[R]) -> Any:
        return children

    async def match(
        self, models: Sequence[Any], relation_name: str, nested: Sequence[str] = ()
    ) -> None:
        """Fetch children of every parent with one ``WHERE fk IN (...)`` query."""
        keys = self.get_keys(models, self.local_key)
        children = await self._match_query(keys, nested).get() if keys else []

        grouped: dict[str | None, list[R]] = defaultdict(list)
        for child in children:
            if self._owns(child):
                grouped[self.norm_key(child.get_attribute(self.foreign_key))].append(child)

        for model in models:
            key = self.norm_key(model.get_attribute(self.local_key))
            found = grouped.get(key, []) if key is not None else []
            model.set_relation(relation_name, self._result(list(found)))


class HasOne(HasMany[R]):
    """A parent has at most one related record.

    Fetched like :class:`HasMany`, then unwrapped to the first child or
    ``None``.
    """

    def _result(self, children: list[R]) -> Any:
        return children[0] if children else None

    async def get_result(self) -> R | None:
        return await self.first()
