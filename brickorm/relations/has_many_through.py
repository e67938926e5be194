"""Distant one-to-many relation through an intermediate model."""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from typing import Any, TypeVar

from brickorm.relations.base import Relation
from brickorm.utils import foreign_key

R = TypeVar("R")


class HasManyThrough(Relation[R]):
    """Reach records two hops away through an intermediate table.

    e.g. a ``Country`` has many ``Post`` rows through ``User``::

        countries.id  <- users.country_id
        users.id      <- posts.user_id

    Args:
        parent: The owning record (``Country``).
        related: Far model class (``Post``).
        through: Intermediate model class (``User``).
        first_key: Intermediate column referencing the parent
            (``users.country_id``).
        second_key: Far column referencing the intermediate
            (``posts.user_id``).
        local_key: Parent column referenced by ``first_key``.
        second_local_key: Intermediate column referenced by ``second_key``.
    """

    def __init__(
        self,
        parent: Any,
        related: type[R],
        through: Any,
        first_key: str | None = None,
        second_key: str | None = None,
        local_key: str | None = None,
        second_local_key: str | None = None,
    ) -> None:
        super().__init__(parent, related)
        self.through = through
        self.first_key = first_key or foreign_key(parent.table)
        self.second_key = second_key or foreign_key(through.table)
        self.local_key = local_key or parent.primary_key
        self.second_local_key = second_local_key or through.primary_key
        self.add_constraints()

    def add_constraints(self) -> None:
        through_table = self.through.table
        self.join(
            through_table,
            f"{through_table}.{self.second_local_key}",
            "=",
            f"{self.table}.{self.second_key}",
        )
        self._constrain(
            f"{through_table}.{self.first_key}", self.parent.get_attribute(self.local_key)
        )

    async def match(
        self, models: Sequence[Any], relation_name: str, nested: Sequence[str] = ()
    ) -> None:
        """Load far records of every parent in two batch queries.

        The intermediate rows are fetched first to map each intermediate
        key back to its parent, then every far record is fetched at once.
        """
        parent_keys = self.get_keys(models, self.local_key)
        intermediates = (
            await self.through.new_query()
            .select([self.second_local_key, self.first_key])
            .where_in(self.first_key, parent_keys)
            .get()
            if parent_keys
            else []
        )

        parent_of: dict[str | None, str | None] = {}
        through_ids: list[Any] = []
        for intermediate in intermediates:
            through_id = intermediate.get_attribute(self.second_local_key)
            normalized = self.norm_key(through_id)
            if normalized is None or normalized in parent_of:
                continue
            parent_of[normalized] = self.norm_key(intermediate.get_attribute(self.first_key))
            through_ids.append(through_id)

        far = (
            await self.new_related_query(nested).where_in(self.second_key, through_ids).get()
            if through_ids
            else []
        )

        grouped: dict[str | None, list[R]] = defaultdict(list)
        for record in far:
            owner = parent_of.get(self.norm_key(record.get_attribute(self.second_key)))
            if owner is not None:
                grouped[owner].append(record)

        for model in models:
            key = self.norm_key(model.get_attribute(self.local_key))
            model.set_relation(relation_name, list(grouped.get(key, [])) if key is not None else [])
