"""Inverse one-to-one / many-to-one relation (foreign key on the parent)."""
from __future__ import annotations

from collections.abc import Sequence
from typing import Any, TypeVar

from brickorm.relations.base import Relation

R = TypeVar("R")


class BelongsTo(Relation[R]):
    """The parent record holds a foreign key to its owner.

    e.g. a ``Comment`` belongs to a ``Post`` (``comments.post_id``).

    Args:
        parent: The record holding the foreign key.
        related: Owner model class.
        foreign_key: Column on the parent pointing at the owner.
        owner_key: Column on the owner referenced by ``foreign_key``.
    """

    def __init__(self, parent: Any, related: type[R], foreign_key: str, owner_key: str) -> None:
        super().__init__(parent, related)
        self.foreign_key = foreign_key
        self.owner_key = owner_key
        self.add_constraints()

    def add_constraints(self) -> None:
        self._constrain(f"{self.table}.{self.owner_key}", self.parent.get_attribute(self.foreign_key))

    async def get_result(self) -> R | None:
        return await self.first()

    async def match(
        self, models: Sequence[Any], relation_name: str, nested: Sequence[str] = ()
    ) -> None:
        """Fetch every owner with one ``WHERE owner_key IN (...)`` query.

        Children with a null foreign key are skipped and receive ``None``.
        """
        keys = self.get_keys(models, self.foreign_key)
        owners = (
            await self.new_related_query(nested).where_in(self.owner_key, keys).get()
            if keys
            else []
        )
        dictionary = {self.norm_key(owner.get_attribute(self.owner_key)): owner for owner in owners}

        for model in models:
            key = self.norm_key(model.get_attribute(self.foreign_key))
            model.set_relation(relation_name, dictionary.get(key) if key is not None else None)
