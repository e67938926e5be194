"""Pydantic value objects for the accumulated state of one statement.

``QueryState`` is frozen.  Builder mutators never change a state in place;
they derive a new one with ``model_copy(update=...)`` and rebind it.  Any
code that needs a variation of the current statement (``first()`` adding
``LIMIT 1``, an aggregate swapping the projection, global scopes being
applied before execution) therefore works on a derived value and leaves
the builder's own state untouched.

Predicates carry their own bindings.  The flat binding list handed to the
adapter is the concatenation of WHERE bindings in insertion order followed
by HAVING bindings in insertion order, so the count of bindings always
matches the placeholders emitted for the fragments.
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

#: A named global scope: a callback receiving the builder it constrains.
ScopeCallback = Callable[[Any], None]

Boolean = Literal["AND", "OR"]


class RawExpression(BaseModel):
    """An opaque SQL fragment used verbatim in the projection.

    Attributes:
        value: The SQL text, emitted without quoting or validation.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    value: str

    def __str__(self) -> str:
        return self.value


class Predicate(BaseModel):
    """A single rendered WHERE or HAVING fragment.

    Attributes:
        boolean: Keyword joining this fragment to the previous one.
        sql: Rendered fragment with dialect placeholders.
        bindings: Values for the placeholders in ``sql``, in emission order.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    boolean: Boolean = "AND"
    sql: str
    bindings: tuple[Any, ...] = ()


class QueryState(BaseModel):
    """Immutable description of a SELECT / UPDATE / DELETE statement.

    Attributes:
        table: Base table name.
        columns: Projection; plain names, qualified names, aliased names,
            function-call expressions or :class:`RawExpression` values.
        wheres: WHERE fragments in insertion order.
        joins: Rendered JOIN fragments.
        join_tables: Tables referenced by ``joins``; used by ``watch()``.
        groups: GROUP BY column names.
        havings: HAVING fragments in insertion order.
        orders: Rendered ORDER BY fragments.
        limit: Optional LIMIT.
        offset: Optional OFFSET.
        distinct: Emit ``SELECT DISTINCT``.
        eager: Dotted relation paths queued for eager loading.
        scopes: Named global scopes, applied just before execution.
        ignore_scopes: Skip every global scope.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    table: str
    columns: tuple[str | RawExpression, ...] = ("*",)
    wheres: tuple[Predicate, ...] = ()
    joins: tuple[str, ...] = ()
    join_tables: tuple[str, ...] = ()
    groups: tuple[str, ...] = ()
    havings: tuple[Predicate, ...] = ()
    orders: tuple[str, ...] = ()
    limit: int | None = None
    offset: int | None = None
    distinct: bool = False
    eager: tuple[str, ...] = ()
    scopes: tuple[tuple[str, ScopeCallback], ...] = Field(default=())
    ignore_scopes: bool = False

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------

    @property
    def where_bindings(self) -> list[Any]:
        """Bindings for every WHERE fragment, in insertion order."""
        return [value for clause in self.wheres for value in clause.bindings]

    @property
    def having_bindings(self) -> list[Any]:
        """Bindings for every HAVING fragment, in insertion order."""
        return [value for clause in self.havings for value in clause.bindings]

    @property
    def bindings(self) -> list[Any]:
        """WHERE bindings followed by HAVING bindings."""
        return self.where_bindings + self.having_bindings

    @property
    def is_grouped(self) -> bool:
        return bool(self.groups or self.havings)

    # ------------------------------------------------------------------
    # Derivation helpers
    # ------------------------------------------------------------------

    def add_where(self, clause: Predicate) -> QueryState:
        return self.model_copy(update={"wheres": (*self.wheres, clause)})

    def add_having(self, clause: Predicate) -> QueryState:
        return self.model_copy(update={"havings": (*self.havings, clause)})

    def scope_names(self) -> list[str]:
        return [name for name, _ in self.scopes]

    def with_scope(self, name: str, callback: ScopeCallback) -> QueryState:
        """Register ``callback`` under ``name``, replacing any previous one."""
        kept = tuple((n, cb) for n, cb in self.scopes if n != name)
        return self.model_copy(update={"scopes": (*kept, (name, callback))})

    def without_scope(self, name: str) -> QueryState:
        kept = tuple((n, cb) for n, cb in self.scopes if n != name)
        return self.model_copy(update={"scopes": kept})
