"""Relation base contract.

Every relation IS-A :class:`~brickorm.query.builder.QueryBuilder` bound to a
parent record, so callers can keep constraining it
(``user.posts().where("published", True).get()``).  On top of the builder
API a relation provides:

``add_constraints()``
    Applied once at construction: scopes the query to the single parent
    (e.g. ``WHERE posts.user_id = ?``).
``match(models, relation_name, nested)``
    The eager-loading contract.  Fetches the related records of *every*
    parent with a fixed number of batch queries that does not grow with
    the number of parents, then assigns them onto each parent's relation
    map.  The per-parent constraint from ``add_constraints`` is not used.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Protocol, TypeVar, runtime_checkable

from brickorm.query.builder import QueryBuilder
from brickorm.utils import norm_key

R = TypeVar("R")


@runtime_checkable
class Relatable(Protocol):
    """The record capabilities relations rely on."""

    attributes: dict[str, Any]
    relations: dict[str, Any]

    def get_attribute(self, key: str, default: Any = None) -> Any: ...

    def set_relation(self, name: str, value: Any) -> None: ...

    def get_relation(self, name: str) -> Relation[Any] | None: ...


class Relation(QueryBuilder[R], ABC):
    """Base class for all relations.

    Args:
        parent: The record this relation query belongs to.
        related: Related model class; used as the hydration factory and
            as the source of the table name, primary key and global scopes.
        table: Overrides the query's table when there is no fixed related
            model (polymorphic inverse relations).
    """

    def __init__(
        self,
        parent: Any,
        related: type[R] | None,
        table: str | None = None,
    ) -> None:
        if related is not None:
            super().__init__(related.table, related, primary_key=related.primary_key)
            related.register_global_scopes(self)
        else:
            super().__init__(table or "_morph")
        self.parent = parent
        self.related = related

    @abstractmethod
    def add_constraints(self) -> None:
        """Scope this query to :attr:`parent`."""

    @abstractmethod
    async def match(
        self, models: Sequence[Any], relation_name: str, nested: Sequence[str] = ()
    ) -> None:
        """Load this relation for every record in ``models`` in batch."""

    # ------------------------------------------------------------------
    # Helpers shared by the variants
    # ------------------------------------------------------------------

    def _constrain(self, column: str, value: Any) -> None:
        # A parent without a key has no related rows.
        if value is None:
            self.where_raw("1 = 0")
        else:
            self.where(column, value)

    def new_related_query(self, nested: Sequence[str] = ()) -> QueryBuilder[R]:
        """A fresh query on the related model (global scopes included)."""
        query = self.related.new_query()
        if nested:
            query.with_relations(list(nested))
        return query

    @staticmethod
    def get_keys(models: Sequence[Any], key: str) -> list[Any]:
        """Distinct non-null values of ``key`` across ``models``, first-seen order."""
        seen: set[str] = set()
        keys: list[Any] = []
        for model in models:
            value = model.get_attribute(key)
            normalized = norm_key(value)
            if normalized is None or normalized in seen:
                continue
            seen.add(normalized)
            keys.append(value)
        return keys

    @staticmethod
    def norm_key(value: Any) -> str | None:
        return norm_key(value)
