"""Active-record base class and relationship factories.

A model class names its table and primary key; instances carry the row as
``attributes``.  Relationships are declared as zero-argument methods that
return a relation built by one of the factories below::

    class User(Model):
        table = "users"

        def posts(self):
            return self.has_many(Post)

        def roles(self):
            return self.belongs_to_many(Role, "role_user")

    users = await User.query().with_relations(["posts", "roles"]).get()
    users[0].get_relation_list("posts")
"""
from __future__ import annotations

import copy
import inspect
from typing import Any, ClassVar, TypeVar

from brickorm import utils
from brickorm.errors import InvalidArgumentError, ModelNotFoundError
from brickorm.pivot import Pivot
from brickorm.query.builder import QueryBuilder
from brickorm.query.scope import Scope
from brickorm.relations import (
    BelongsTo,
    BelongsToMany,
    HasMany,
    HasManyThrough,
    HasOne,
    MorphMany,
    MorphOne,
    MorphTo,
    MorphToMany,
    MorphTypeMap,
    Relation,
)

M = TypeVar("M", bound="Model")


class Model:
    """Base class for records.

    Class attributes:
        table: Table name.
        primary_key: Primary key column.
        global_scopes: :class:`~brickorm.query.scope.Scope` instances (or
            classes) applied to every query of the model.
        morph_name: Discriminator stored in ``{name}_type`` columns.
            Defaults to the table name.
    """

    table: ClassVar[str] = ""
    primary_key: ClassVar[str] = "id"
    global_scopes: ClassVar[tuple[Scope | type[Scope], ...]] = ()
    morph_name: ClassVar[str | None] = None

    def __init__(self, attributes: dict[str, Any] | None = None, **values: Any) -> None:
        self.attributes: dict[str, Any] = {**(attributes or {}), **values}
        self.original: dict[str, Any] = {}
        self.relations: dict[str, Any] = {}
        self.pivot: Pivot | None = None
        self.exists = False

    def __getattr__(self, name: str) -> Any:
        attributes = self.__dict__.get("attributes")
        if attributes is not None and name in attributes:
            return attributes[name]
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.attributes!r})"

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    @property
    def id(self) -> Any:
        return self.attributes.get(self.primary_key)

    def get_attribute(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def sync_original(self) -> None:
        """Snapshot the current attributes as the persisted state."""
        self.original = copy.deepcopy(self.attributes)

    def get_dirty(self) -> dict[str, Any]:
        """Attributes changed since the last :meth:`sync_original`."""
        return {
            key: value
            for key, value in self.attributes.items()
            if key not in self.original or self.original[key] != value
        }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @classmethod
    def new_query(cls: type[M]) -> QueryBuilder[M]:
        """A builder hydrating ``cls`` records, with global scopes registered."""
        builder: QueryBuilder[M] = QueryBuilder(cls.table, cls, primary_key=cls.primary_key)
        cls.register_global_scopes(builder)
        return builder

    @classmethod
    def query(cls: type[M]) -> QueryBuilder[M]:
        return cls.new_query()

    @classmethod
    def register_global_scopes(cls, builder: QueryBuilder[Any]) -> None:
        for scope in cls.global_scopes:
            instance = scope() if isinstance(scope, type) else scope
            builder.with_global_scope(
                instance.scope_name(), lambda b, s=instance: s.apply(b, cls)
            )

    @classmethod
    def get_morph_class(cls) -> str:
        return cls.morph_name or cls.table

    # ------------------------------------------------------------------
    # Loaded relations
    # ------------------------------------------------------------------

    def get_relation(self, name: str) -> Relation[Any] | None:
        """Return the relation declared by the method ``name``, or ``None``.

        Only zero-argument methods defined on a subclass are considered.
        """
        if name.startswith("_") or hasattr(Model, name):
            return None
        method = getattr(type(self), name, None)
        if not inspect.isfunction(method) or inspect.iscoroutinefunction(method):
            return None
        parameters = list(inspect.signature(method).parameters.values())[1:]
        positional = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        if any(p.default is p.empty and p.kind in positional for p in parameters):
            return None
        relation = getattr(self, name)()
        return relation if isinstance(relation, Relation) else None

    def set_relation(self, name: str, value: Any) -> None:
        self.relations[name] = value

    def relation_loaded(self, name: str) -> bool:
        return name in self.relations

    def get_related(self, name: str) -> Any:
        """A loaded to-one relation (record or ``None``)."""
        return self.relations.get(name)

    def get_relation_list(self, name: str) -> list[Any]:
        """A loaded to-many relation; ``[]`` when not loaded."""
        value = self.relations.get(name)
        if value is None:
            return []
        return value if isinstance(value, list) else [value]

    # ------------------------------------------------------------------
    # Lifecycle hooks
    # ------------------------------------------------------------------

    async def on_saving(self) -> bool:
        """Called before :meth:`save` writes anything; return False to cancel."""
        return True

    async def on_saved(self) -> None:
        """Called after :meth:`save` has written the record."""

    async def on_deleting(self) -> bool:
        """Called before :meth:`delete` runs; return False to cancel."""
        return True

    async def on_deleted(self) -> None:
        pass

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save(self) -> bool:
        """Insert a new record or update the changed columns of a stored one.

        Returns False without writing when :meth:`on_saving` cancels.
        """
        if not await self.on_saving():
            return False
        if self.exists:
            dirty = self.get_dirty()
            if dirty:
                await self._key_query("update").update(dirty)
        else:
            key = await self.new_query().insert(self.attributes)
            if self.id is None and key is not None:
                self.attributes[self.primary_key] = key
            self.exists = True
        self.sync_original()
        await self.on_saved()
        return True

    async def refresh(self) -> None:
        """Reload attributes from the database; loaded relations are dropped.

        Raises:
            ModelNotFoundError: If the row no longer exists.
        """
        fresh = await self._key_query("refresh").first()
        if fresh is None:
            raise ModelNotFoundError(type(self).__name__, self.id)
        self.attributes = dict(fresh.attributes)
        self.relations = {}
        self.sync_original()

    async def delete(self) -> bool:
        if not self.exists or not await self.on_deleting():
            return False
        await self._key_query("delete").delete()
        self.exists = False
        await self.on_deleted()
        return True

    def _key_query(self, action: str) -> QueryBuilder[Any]:
        if self.id is None:
            raise InvalidArgumentError(
                f"Cannot {action} a {type(self).__name__} without a {self.primary_key!r} value.",
                details={"model": type(self).__name__},
            )
        return self.new_query().where(self.primary_key, self.id)

    # ------------------------------------------------------------------
    # Relationship factories
    # ------------------------------------------------------------------

    def has_one(
        self, related: type[M], foreign_key: str | None = None, local_key: str | None = None
    ) -> HasOne[M]:
        return HasOne(
            self,
            related,
            foreign_key or utils.foreign_key(self.table),
            local_key or self.primary_key,
        )

    def has_many(
        self, related: type[M], foreign_key: str | None = None, local_key: str | None = None
    ) -> HasMany[M]:
        return HasMany(
            self,
            related,
            foreign_key or utils.foreign_key(self.table),
            local_key or self.primary_key,
        )

    def belongs_to(
        self, related: type[M], foreign_key: str | None = None, owner_key: str | None = None
    ) -> BelongsTo[M]:
        return BelongsTo(
            self,
            related,
            foreign_key or utils.foreign_key(related.table),
            owner_key or related.primary_key,
        )

    def belongs_to_many(
        self,
        related: type[M],
        pivot_table: str,
        foreign_pivot_key: str | None = None,
        related_pivot_key: str | None = None,
        parent_key: str | None = None,
        related_key: str | None = None,
    ) -> BelongsToMany[M]:
        return BelongsToMany(
            self,
            related,
            pivot_table,
            foreign_pivot_key or utils.foreign_key(self.table),
            related_pivot_key or utils.foreign_key(related.table),
            parent_key,
            related_key,
        )

    def has_many_through(
        self,
        related: type[M],
        through: type[Model],
        first_key: str | None = None,
        second_key: str | None = None,
        local_key: str | None = None,
        second_local_key: str | None = None,
    ) -> HasManyThrough[M]:
        return HasManyThrough(
            self, related, through, first_key, second_key, local_key, second_local_key
        )

    def morph_one(self, related: type[M], name: str, local_key: str | None = None) -> MorphOne[M]:
        return MorphOne(self, related, name, local_key)

    def morph_many(self, related: type[M], name: str, local_key: str | None = None) -> MorphMany[M]:
        return MorphMany(self, related, name, local_key)

    def morph_to(self, name: str, type_map: MorphTypeMap) -> MorphTo:
        return MorphTo(self, name, type_map)

    def morph_to_many(
        self,
        related: type[M],
        name: str,
        pivot_table: str | None = None,
        related_pivot_key: str | None = None,
    ) -> MorphToMany[M]:
        return MorphToMany(self, related, name, pivot_table, related_pivot_key)
