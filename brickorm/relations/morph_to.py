"""Inverse polymorphic relation: the target table is chosen per row."""
from __future__ import annotations

from collections import defaultdict
from collections.abc import AsyncIterator, Iterator, Mapping, Sequence
from typing import Any

from brickorm.errors import UnknownMorphTypeError, UnsupportedOperationError
from brickorm.relations.base import Relation
from brickorm.validate.identifiers import assert_identifier


class MorphTypeMap:
    """Registry from stored discriminator value to model class.

    Example::

        commentables = MorphTypeMap({"post": Post, "video": Video})
        commentables.register("photo", Photo)
    """

    def __init__(self, types: Mapping[str, Any] | None = None) -> None:
        self._types: dict[str, Any] = {}
        for name, model in (types or {}).items():
            self.register(name, model)

    def register(self, name: str, model: Any) -> None:
        self._types[name] = model

    def get(self, name: str | None) -> Any | None:
        return self._types.get(name) if name is not None else None

    def resolve(self, name: str) -> Any:
        """Return the model class for ``name``.

        Raises:
            UnknownMorphTypeError: If ``name`` was never registered.
        """
        model = self.get(name)
        if model is None:
            raise UnknownMorphTypeError(name, self.known)
        return model

    @property
    def known(self) -> list[str]:
        return sorted(self._types)

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)


class MorphTo(Relation[Any]):
    """The parent stores ``{name}_type`` and ``{name}_id`` pointing at any model.

    e.g. a ``Comment`` morphs to its ``commentable``, which may be a
    ``Post`` or a ``Video``.

    There is no fixed target table, so only :meth:`get_result` (single
    record) and :meth:`match` (batched) are supported.

    Args:
        parent: The record holding the discriminator and id columns.
        name: Morph name.
        type_map: Discriminator registry.
    """

    def __init__(self, parent: Any, name: str, type_map: MorphTypeMap) -> None:
        name = assert_identifier(name, "morph name", dotted=False)
        super().__init__(parent, None, table=name)
        self.name = name
        self.morph_type = f"{name}_type"
        self.morph_id = f"{name}_id"
        self.type_map = type_map

    def add_constraints(self) -> None:
        pass

    async def get_result(self) -> Any | None:
        """Resolve the parent's discriminator and fetch the single target."""
        morph_type = self.parent.get_attribute(self.morph_type)
        morph_id = self.parent.get_attribute(self.morph_id)
        if morph_type is None or morph_id is None:
            return None
        return await self.type_map.resolve(morph_type).new_query().find(morph_id)

    async def first(self) -> Any | None:
        return await self.get_result()

    async def get(self) -> list[Any]:
        raise UnsupportedOperationError(
            f"MorphTo relation {self.name!r} has no fixed table; use get_result() "
            "or eager load it with with_relations()."
        )

    async def watch(self) -> AsyncIterator[list[Any]]:
        raise UnsupportedOperationError(
            f"MorphTo relation {self.name!r} has no fixed table to watch."
        )
        yield []  # pragma: no cover

    async def match(
        self, models: Sequence[Any], relation_name: str, nested: Sequence[str] = ()
    ) -> None:
        """Issue one batch query per distinct discriminator among ``models``."""
        ids_by_type: dict[str, list[Any]] = defaultdict(list)
        seen: dict[str, set[str | None]] = defaultdict(set)
        for model in models:
            morph_type = model.get_attribute(self.morph_type)
            morph_id = model.get_attribute(self.morph_id)
            key = self.norm_key(morph_id)
            if morph_type is None or key is None or key in seen[morph_type]:
                continue
            seen[morph_type].add(key)
            ids_by_type[morph_type].append(morph_id)

        dictionary: dict[tuple[str, str | None], Any] = {}
        for morph_type, ids in ids_by_type.items():
            target = self.type_map.resolve(morph_type)
            query = target.new_query()
            if nested:
                query.with_relations(list(nested))
            for record in await query.where_in(target.primary_key, ids).get():
                dictionary[(morph_type, self.norm_key(record.get_attribute(target.primary_key)))] = record

        for model in models:
            key = (model.get_attribute(self.morph_type), self.norm_key(model.get_attribute(self.morph_id)))
            model.set_relation(relation_name, dictionary.get(key))
