"""Fluent statement builder and terminal execution.

``QueryBuilder`` accumulates a validated :class:`~brickorm.schema.QueryState`
and asks a :class:`~brickorm.compile.base.Grammar` to render it.  Mutators
validate their input, render their fragment immediately and rebind the
builder to a new immutable state, returning the builder itself so calls can
be chained.  Terminal operations (``get``, ``first``, aggregates, writes,
``watch``) compile from a state derived for that one call:

- global scopes are applied to a throwaway copy, never to the builder;
- ``first()`` / ``find()`` add ``LIMIT 1`` to the derived state only;
- aggregates swap the projection on the derived state only.

Execution failures raised by the adapter are re-raised as
:class:`~brickorm.errors.QueryError` carrying the SQL text and bindings.
"""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Iterable, Mapping, Sequence
from typing import Any, Generic, TypeVar

from brickorm.compile.base import Grammar
from brickorm.compile.registry import GrammarFactory
from brickorm.database.manager import DatabaseManager
from brickorm.eager import EagerLoader
from brickorm.errors import (
    AggregateGroupingError,
    BrickORMError,
    InvalidArgumentError,
    ModelNotFoundError,
    QueryError,
)
from brickorm.query.scope import Scope, scope_key
from brickorm.schema.query_state import (
    Predicate,
    QueryState,
    RawExpression,
    ScopeCallback,
)
from brickorm.validate.identifiers import (
    COMPARISON_OPERATORS,
    LIST_OPERATORS,
    WHERE_OPERATORS,
    assert_aggregate_or_identifier,
    assert_direction,
    assert_identifier,
    assert_operator,
    assert_select_column,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")

Row = dict[str, Any]


def _as_list(values: Any, what: str) -> list[Any]:
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        raise InvalidArgumentError(
            f"{what} requires a list of values, got {type(values).__name__}.",
            details={"value": values},
        )
    return list(values)


class QueryBuilder(Generic[T]):
    """Builds and runs SELECT / INSERT / UPDATE / DELETE statements for one table.

    Args:
        table: Base table name.
        factory: Hydration factory turning a row dict into a record.
            Defaults to returning the row dict itself.
        grammar: Dialect grammar or registered dialect name.  Defaults to
            the grammar of the adapter registered on
            :class:`~brickorm.database.manager.DatabaseManager`.
        primary_key: Column used by :meth:`find`.
        state: Initial state, used when deriving builders.

    Raises:
        InvalidIdentifierError: If ``table`` is not a plain identifier.
    """

    def __init__(
        self,
        table: str,
        factory: Callable[[Row], T] | None = None,
        *,
        grammar: Grammar | str | None = None,
        primary_key: str = "id",
        state: QueryState | None = None,
    ) -> None:
        assert_identifier(table, "table name", dotted=False)
        self.table = table
        self.factory: Callable[[Row], Any] = factory or dict
        self.primary_key = primary_key
        self._grammar = GrammarFactory.resolve(grammar) if grammar is not None else None
        self._state = state if state is not None else QueryState(table=table)

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def grammar(self) -> Grammar:
        if self._grammar is None:
            self._grammar = DatabaseManager().grammar
        return self._grammar

    @property
    def state(self) -> QueryState:
        """The current (immutable) query state."""
        return self._state

    def _update(self, **changes: Any) -> QueryBuilder[T]:
        self._state = self._state.model_copy(update=changes)
        return self

    def _add_where(self, sql: str, bindings: Sequence[Any], boolean: str) -> QueryBuilder[T]:
        clause = Predicate(boolean=self._boolean(boolean), sql=sql, bindings=tuple(bindings))
        self._state = self._state.add_where(clause)
        return self

    def _add_having(self, sql: str, bindings: Sequence[Any], boolean: str) -> QueryBuilder[T]:
        clause = Predicate(boolean=self._boolean(boolean), sql=sql, bindings=tuple(bindings))
        self._state = self._state.add_having(clause)
        return self

    @staticmethod
    def _boolean(boolean: str) -> str:
        keyword = str(boolean).strip().upper()
        if keyword not in ("AND", "OR"):
            raise InvalidArgumentError(
                f"Boolean must be 'AND' or 'OR', got {boolean!r}.",
                details={"boolean": boolean},
            )
        return keyword

    def _derive(self, state: QueryState) -> QueryBuilder[T]:
        return QueryBuilder(
            self.table,
            self.factory,
            grammar=self._grammar,
            primary_key=self.primary_key,
            state=state,
        )

    def clone(self) -> QueryBuilder[T]:
        """Return an independent builder over the same state and factory."""
        return self._derive(self._state)

    def cast(self, factory: Callable[[Row], U]) -> QueryBuilder[U]:
        """Return a builder with the same state that hydrates with ``factory``.

        The state is immutable, so sharing it is equivalent to copying every
        piece of it; the cast builder compiles byte-identical SQL.
        """
        return QueryBuilder(
            self.table,
            factory,
            grammar=self._grammar,
            primary_key=self.primary_key,
            state=self._state,
        )

    # ------------------------------------------------------------------
    # Debugging
    # ------------------------------------------------------------------

    def to_sql(self) -> str:
        """Return the SELECT that :meth:`get` would run, scopes included."""
        return self.grammar.compile_select(self._scoped_state())

    def bindings(self) -> list[Any]:
        """Return the bindings :meth:`get` would send, before dialect coercion."""
        return self._scoped_state().bindings

    def to_raw_sql(self) -> str:
        """Return the SELECT with prepared bindings interpolated.

        For logging and debugging only; never execute the result.
        """
        state = self._scoped_state()
        grammar = self.grammar
        sql = grammar.compile_select(state)
        return grammar.interpolate(sql, grammar.prepare_bindings(state.bindings))

    # ------------------------------------------------------------------
    # Global scopes
    # ------------------------------------------------------------------

    def with_global_scope(self, name: str, callback: ScopeCallback) -> QueryBuilder[T]:
        """Register ``callback`` under ``name``; re-registering replaces it.

        The callback receives a builder and is run at the start of every
        terminal operation, not now.
        """
        if not isinstance(name, str) or not name:
            raise InvalidArgumentError("Global scope name must be a non-empty string.")
        self._state = self._state.with_scope(name, callback)
        return self

    def without_global_scope(self, scope: str | Scope | type[Scope]) -> QueryBuilder[T]:
        self._state = self._state.without_scope(scope_key(scope))
        return self

    def without_global_scopes(self) -> QueryBuilder[T]:
        return self._update(ignore_scopes=True)

    def _scoped_state(self) -> QueryState:
        state = self._state
        if state.ignore_scopes or not state.scopes:
            return state
        scratch = self._derive(state.model_copy(update={"scopes": ()}))
        for name, callback in state.scopes:
            logger.debug("Applying global scope %r to %s", name, self.table)
            callback(scratch)
        return scratch.state

    # ------------------------------------------------------------------
    # WHERE
    # ------------------------------------------------------------------

    def where(
        self,
        column: str,
        value: Any,
        operator: str = "=",
        boolean: str = "AND",
    ) -> QueryBuilder[T]:
        """Add a ``column <operator> value`` predicate.

        ``None`` compared with ``=`` becomes ``IS NULL`` and with ``!=`` /
        ``<>`` becomes ``IS NOT NULL``.  ``IN``, ``NOT IN``, ``BETWEEN`` and
        ``NOT BETWEEN`` take a list value; every other operator takes a
        scalar.

        Raises:
            InvalidIdentifierError: If ``column`` is not a valid identifier.
            InvalidOperatorError: If ``operator`` is not allowed.
            InvalidArgumentError: If ``value`` has the wrong shape.
        """
        column = assert_identifier(column, "column name")
        op = assert_operator(operator, "where", WHERE_OPERATORS | LIST_OPERATORS)

        if op in LIST_OPERATORS:
            values = _as_list(value, op)
            if op in ("IN", "NOT IN"):
                return self._where_in(column, values, boolean, negate=op == "NOT IN")
            return self._where_between(column, values, boolean, negate=op == "NOT BETWEEN")

        if value is None:
            if op == "=":
                return self.where_null(column, boolean)
            if op in ("!=", "<>"):
                return self.where_not_null(column, boolean)
            raise InvalidArgumentError(
                f"Operator {op} cannot be compared against NULL.",
                details={"column": column, "operator": op},
            )
        if isinstance(value, (list, tuple, set, frozenset)):
            raise InvalidArgumentError(
                f"A list value cannot be used with operator {op}. "
                "Use IN, NOT IN, BETWEEN or NOT BETWEEN.",
                details={"column": column, "operator": op},
            )

        grammar = self.grammar
        sql = f"{grammar.wrap(column)} {op} {grammar.parameter(value)}"
        return self._add_where(sql, (value,), boolean)

    def or_where(self, column: str, value: Any, operator: str = "=") -> QueryBuilder[T]:
        return self.where(column, value, operator, "OR")

    def where_group(self, callback: Callable[[QueryBuilder[T]], Any]) -> QueryBuilder[T]:
        """Add a parenthesized group of predicates built by ``callback``.

        Example::

            query.where("active", True).where_group(
                lambda q: q.where("role", "admin").or_where("role", "owner")
            )
            # ... WHERE "active" = ? AND ("role" = ? OR "role" = ?)
        """
        return self._where_nested(callback, "AND")

    def or_where_group(self, callback: Callable[[QueryBuilder[T]], Any]) -> QueryBuilder[T]:
        return self._where_nested(callback, "OR")

    def _where_nested(
        self, callback: Callable[[QueryBuilder[T]], Any], boolean: str
    ) -> QueryBuilder[T]:
        nested = self._derive(QueryState(table=self.table))
        callback(nested)
        if not nested.state.wheres:
            return self
        inner = self.grammar.compile_predicates(nested.state.wheres)
        return self._add_where(f"({inner})", nested.state.where_bindings, boolean)

    def where_null(self, column: str, boolean: str = "AND") -> QueryBuilder[T]:
        column = assert_identifier(column, "column name")
        return self._add_where(f"{self.grammar.wrap(column)} IS NULL", (), boolean)

    def or_where_null(self, column: str) -> QueryBuilder[T]:
        return self.where_null(column, "OR")

    def where_not_null(self, column: str, boolean: str = "AND") -> QueryBuilder[T]:
        column = assert_identifier(column, "column name")
        return self._add_where(f"{self.grammar.wrap(column)} IS NOT NULL", (), boolean)

    def or_where_not_null(self, column: str) -> QueryBuilder[T]:
        return self.where_not_null(column, "OR")

    def where_in(
        self, column: str, values: Iterable[Any], boolean: str = "AND"
    ) -> QueryBuilder[T]:
        """Add ``column IN (...)``; an empty list compiles to ``1 = 0``."""
        column = assert_identifier(column, "column name")
        return self._where_in(column, _as_list(values, "IN"), boolean, negate=False)

    def or_where_in(self, column: str, values: Iterable[Any]) -> QueryBuilder[T]:
        return self.where_in(column, values, "OR")

    def where_not_in(
        self, column: str, values: Iterable[Any], boolean: str = "AND"
    ) -> QueryBuilder[T]:
        """Add ``column NOT IN (...)``; an empty list compiles to ``1 = 1``."""
        column = assert_identifier(column, "column name")
        return self._where_in(column, _as_list(values, "NOT IN"), boolean, negate=True)

    def or_where_not_in(self, column: str, values: Iterable[Any]) -> QueryBuilder[T]:
        return self.where_not_in(column, values, "OR")

    def _where_in(
        self, column: str, values: list[Any], boolean: str, negate: bool
    ) -> QueryBuilder[T]:
        if not values:
            return self._add_where("1 = 1" if negate else "1 = 0", (), boolean)
        op = "NOT IN" if negate else "IN"
        grammar = self.grammar
        sql = f"{grammar.wrap(column)} {op} ({grammar.parameters(values)})"
        return self._add_where(sql, values, boolean)

    def where_between(
        self, column: str, values: Sequence[Any], boolean: str = "AND"
    ) -> QueryBuilder[T]:
        column = assert_identifier(column, "column name")
        return self._where_between(column, _as_list(values, "BETWEEN"), boolean, negate=False)

    def or_where_between(self, column: str, values: Sequence[Any]) -> QueryBuilder[T]:
        return self.where_between(column, values, "OR")

    def where_not_between(
        self, column: str, values: Sequence[Any], boolean: str = "AND"
    ) -> QueryBuilder[T]:
        column = assert_identifier(column, "column name")
        return self._where_between(
            column, _as_list(values, "NOT BETWEEN"), boolean, negate=True
        )

    def or_where_not_between(self, column: str, values: Sequence[Any]) -> QueryBuilder[T]:
        return self.where_not_between(column, values, "OR")

    def _where_between(
        self, column: str, values: list[Any], boolean: str, negate: bool
    ) -> QueryBuilder[T]:
        op = "NOT BETWEEN" if negate else "BETWEEN"
        if len(values) != 2:
            raise InvalidArgumentError(
                f"{op} requires exactly two values [min, max], got {len(values)}.",
                details={"column": column, "values": values},
            )
        grammar = self.grammar
        low, high = values
        sql = f"{grammar.wrap(column)} {op} {grammar.parameter(low)} AND {grammar.parameter(high)}"
        return self._add_where(sql, values, boolean)

    def where_exists(
        self, query: QueryBuilder[Any], boolean: str = "AND", negate: bool = False
    ) -> QueryBuilder[T]:
        """Add ``EXISTS (subquery)``, merging the subquery's bindings."""
        sub_state = query._scoped_state()
        sub_sql = self.grammar.compile_select(sub_state)
        keyword = "NOT EXISTS" if negate else "EXISTS"
        return self._add_where(f"{keyword} ({sub_sql})", sub_state.bindings, boolean)

    def or_where_exists(self, query: QueryBuilder[Any]) -> QueryBuilder[T]:
        return self.where_exists(query, "OR")

    def where_not_exists(self, query: QueryBuilder[Any]) -> QueryBuilder[T]:
        return self.where_exists(query, negate=True)

    def or_where_not_exists(self, query: QueryBuilder[Any]) -> QueryBuilder[T]:
        return self.where_exists(query, "OR", negate=True)

    def where_raw(
        self, sql: str, bindings: Sequence[Any] = (), boolean: str = "AND"
    ) -> QueryBuilder[T]:
        """Add an unvalidated SQL fragment.  Bind user input via ``bindings``."""
        return self._add_where(sql, bindings, boolean)

    def or_where_raw(self, sql: str, bindings: Sequence[Any] = ()) -> QueryBuilder[T]:
        return self.where_raw(sql, bindings, "OR")

    def where_column(
        self,
        first: str | Sequence[Sequence[str]],
        second: str | None = None,
        operator: str = "=",
        boolean: str = "AND",
    ) -> QueryBuilder[T]:
        """Compare two columns.

        ``first`` may also be a list of ``[left, right]`` or
        ``[left, operator, right]`` conditions, each added with ``boolean``.
        """
        if not isinstance(first, str):
            for condition in first:
                if len(condition) == 2:
                    self.where_column(condition[0], condition[1], "=", boolean)
                elif len(condition) == 3:
                    self.where_column(condition[0], condition[2], condition[1], boolean)
                else:
                    raise InvalidArgumentError(
                        "where_column conditions must have two or three elements.",
                        details={"condition": list(condition)},
                    )
            return self

        if second is None:
            raise InvalidArgumentError("where_column requires two columns.")
        first = assert_identifier(first, "column name")
        second = assert_identifier(second, "column name")
        op = assert_operator(operator, "where_column", WHERE_OPERATORS)
        grammar = self.grammar
        return self._add_where(f"{grammar.wrap(first)} {op} {grammar.wrap(second)}", (), boolean)

    def or_where_column(
        self, first: str | Sequence[Sequence[str]], second: str | None = None, operator: str = "="
    ) -> QueryBuilder[T]:
        return self.where_column(first, second, operator, "OR")

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def select(self, columns: str | RawExpression | Sequence[str | RawExpression]) -> QueryBuilder[T]:
        """Replace the projection.

        Entries may be ``*``, ``table.*``, plain or qualified names,
        ``name AS alias``, simple function calls such as ``COUNT(*) AS n``,
        or :class:`~brickorm.schema.RawExpression` values.
        """
        if isinstance(columns, (str, RawExpression)):
            columns = [columns]
        resolved: list[str | RawExpression] = [
            column if isinstance(column, RawExpression) else assert_select_column(column)
            for column in columns
        ]
        if not resolved:
            raise InvalidArgumentError("select() requires at least one column.")
        return self._update(columns=tuple(resolved))

    def select_raw(self, expression: str) -> QueryBuilder[T]:
        """Add a raw projection expression, replacing the default ``*``."""
        raw = RawExpression(value=expression)
        if self._state.columns == ("*",):
            return self._update(columns=(raw,))
        return self._update(columns=(*self._state.columns, raw))

    def distinct(self) -> QueryBuilder[T]:
        return self._update(distinct=True)

    # ------------------------------------------------------------------
    # GROUP BY / HAVING
    # ------------------------------------------------------------------

    def group_by(self, columns: str | Sequence[str]) -> QueryBuilder[T]:
        if isinstance(columns, str):
            columns = [columns]
        groups = [assert_identifier(column, "group_by column") for column in columns]
        return self._update(groups=(*self._state.groups, *groups))

    def group_by_column(self, column: str) -> QueryBuilder[T]:
        return self.group_by([column])

    def _having_target(self, column: str) -> str:
        column = assert_aggregate_or_identifier(column, "having column")
        return column if "(" in column else self.grammar.wrap(column)

    def having(
        self,
        column: str,
        value: Any,
        operator: str = "=",
        boolean: str = "AND",
    ) -> QueryBuilder[T]:
        """Add a HAVING comparison on a column or an aggregate call.

        Example::

            orders.group_by(["customer_id"]).having("COUNT(*)", 3, ">=")
            # ... GROUP BY "customer_id" HAVING COUNT(*) >= ?
        """
        target = self._having_target(column)
        op = assert_operator(operator, "having", COMPARISON_OPERATORS)
        if value is None:
            if op == "=":
                return self._add_having(f"{target} IS NULL", (), boolean)
            if op in ("!=", "<>"):
                return self._add_having(f"{target} IS NOT NULL", (), boolean)
            raise InvalidArgumentError(
                f"Operator {op} cannot be compared against NULL.",
                details={"column": column, "operator": op},
            )
        if isinstance(value, (list, tuple, set, frozenset)):
            raise InvalidArgumentError(
                "having() takes a scalar value; use having_between() for ranges.",
                details={"column": column},
            )
        return self._add_having(f"{target} {op} {self.grammar.parameter(value)}", (value,), boolean)

    def or_having(self, column: str, value: Any, operator: str = "=") -> QueryBuilder[T]:
        return self.having(column, value, operator, "OR")

    def having_raw(
        self, sql: str, bindings: Sequence[Any] = (), boolean: str = "AND"
    ) -> QueryBuilder[T]:
        return self._add_having(sql, bindings, boolean)

    def or_having_raw(self, sql: str, bindings: Sequence[Any] = ()) -> QueryBuilder[T]:
        return self.having_raw(sql, bindings, "OR")

    def having_null(self, column: str, boolean: str = "AND") -> QueryBuilder[T]:
        return self._add_having(f"{self._having_target(column)} IS NULL", (), boolean)

    def having_not_null(self, column: str, boolean: str = "AND") -> QueryBuilder[T]:
        return self._add_having(f"{self._having_target(column)} IS NOT NULL", (), boolean)

    def having_between(
        self, column: str, low: Any, high: Any, boolean: str = "AND"
    ) -> QueryBuilder[T]:
        target = self._having_target(column)
        grammar = self.grammar
        sql = f"{target} BETWEEN {grammar.parameter(low)} AND {grammar.parameter(high)}"
        return self._add_having(sql, (low, high), boolean)

    # ------------------------------------------------------------------
    # Joins
    # ------------------------------------------------------------------

    def join(self, table: str, first: str, operator: str, second: str) -> QueryBuilder[T]:
        return self._join("JOIN", table, first, operator, second)

    def left_join(self, table: str, first: str, operator: str, second: str) -> QueryBuilder[T]:
        return self._join("LEFT JOIN", table, first, operator, second)

    def right_join(self, table: str, first: str, operator: str, second: str) -> QueryBuilder[T]:
        return self._join("RIGHT JOIN", table, first, operator, second)

    def _join(
        self, kind: str, table: str, first: str, operator: str, second: str
    ) -> QueryBuilder[T]:
        table = assert_identifier(table, "join table name", dotted=False)
        first = assert_identifier(first, "join lhs")
        second = assert_identifier(second, "join rhs")
        op = assert_operator(operator, "join", COMPARISON_OPERATORS)
        grammar = self.grammar
        sql = f"{kind} {grammar.wrap(table)} ON {grammar.wrap(first)} {op} {grammar.wrap(second)}"
        return self._update(
            joins=(*self._state.joins, sql),
            join_tables=(*self._state.join_tables, table),
        )

    # ------------------------------------------------------------------
    # Ordering and paging
    # ------------------------------------------------------------------

    def order_by(self, column: str, direction: str = "ASC") -> QueryBuilder[T]:
        column = assert_identifier(column, "order_by column")
        direction = assert_direction(direction)
        fragment = f"{self.grammar.wrap(column)} {direction}"
        return self._update(orders=(*self._state.orders, fragment))

    def limit(self, value: int) -> QueryBuilder[T]:
        return self._update(limit=self._non_negative(value, "limit"))

    def offset(self, value: int) -> QueryBuilder[T]:
        return self._update(offset=self._non_negative(value, "offset"))

    @staticmethod
    def _non_negative(value: Any, what: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidArgumentError(
                f"{what} must be a non-negative integer, got {value!r}.",
                details={what: value},
            )
        return value

    # ------------------------------------------------------------------
    # Eager loading
    # ------------------------------------------------------------------

    def with_relations(self, relations: str | Sequence[str]) -> QueryBuilder[T]:
        """Queue dotted relation paths to load after the main query.

        Example::

            User.query().with_relations(["posts.comments", "profile"])
        """
        if isinstance(relations, str):
            relations = [relations]
        eager = list(self._state.eager)
        for path in relations:
            for segment in str(path).split("."):
                assert_identifier(segment, "relation name", dotted=False)
            if path not in eager:
                eager.append(path)
        return self._update(eager=tuple(eager))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _select_rows(self, state: QueryState) -> list[Row]:
        grammar = self.grammar
        sql = grammar.compile_select(state)
        bindings = grammar.prepare_bindings(state.bindings)
        try:
            return await DatabaseManager().get_all(sql, bindings)
        except BrickORMError:
            raise
        except Exception as exc:
            raise QueryError(f"Failed to execute query: {exc}", sql, bindings) from exc

    def _hydrate(self, rows: Sequence[Row]) -> list[T]:
        """Turn rows into records; marks them persisted and snapshots them."""
        models: list[T] = []
        for row in rows:
            model = self.factory(dict(row))
            if hasattr(model, "exists"):
                model.exists = True
            sync_original = getattr(model, "sync_original", None)
            if callable(sync_original):
                sync_original()
            models.append(model)
        return models

    async def _fetch(self, state: QueryState) -> list[T]:
        rows = await self._select_rows(state)
        models = self._hydrate(rows)
        if state.eager and models:
            await EagerLoader(DatabaseManager().config).load(models, state.eager)
        return models

    async def get(self) -> list[T]:
        """Run the SELECT and return hydrated records, with eager loads attached."""
        return await self._fetch(self._scoped_state())

    async def first(self) -> T | None:
        """Return the first record, or ``None``.

        ``LIMIT 1`` is applied to a derived state; this builder keeps its own
        limit.
        """
        state = self._scoped_state().model_copy(update={"limit": 1})
        results = await self._fetch(state)
        return results[0] if results else None

    async def find(self, id: Any) -> T | None:
        """Return the record whose primary key equals ``id``, or ``None``."""
        grammar = self.grammar
        column = grammar.wrap(f"{self.table}.{self.primary_key}")
        clause = Predicate(sql=f"{column} = {grammar.parameter(id)}", bindings=(id,))
        state = self._scoped_state().add_where(clause).model_copy(update={"limit": 1})
        results = await self._fetch(state)
        return results[0] if results else None

    async def find_or_fail(self, id: Any) -> T:
        """Like :meth:`find`, but raise :class:`ModelNotFoundError` on a miss."""
        result = await self.find(id)
        if result is None:
            raise ModelNotFoundError(self.table, id)
        return result

    async def first_or_fail(self) -> T:
        result = await self.first()
        if result is None:
            raise ModelNotFoundError(self.table)
        return result

    async def exists(self) -> bool:
        return await self.first() is not None

    async def not_exist(self) -> bool:
        return not await self.exists()

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    async def _scalar(self, state: QueryState, sql: str) -> Any:
        grammar = self.grammar
        bindings = grammar.prepare_bindings(state.bindings)
        try:
            row = await DatabaseManager().get(sql, bindings)
        except BrickORMError:
            raise
        except Exception as exc:
            raise QueryError(
                f"Failed to execute aggregate query: {exc}", sql, bindings
            ) from exc
        if not row:
            return None
        alias = DatabaseManager().config.aggregate_alias
        return row.get(alias, next(iter(row.values())))

    async def _aggregate(self, function: str, column: str) -> Any:
        state = self._scoped_state()
        grammar = self.grammar
        if function != "COUNT" and state.is_grouped:
            raise AggregateGroupingError(function.lower(), grammar.compile_select(state))

        target = "*" if column == "*" else grammar.wrap(assert_identifier(column, "column name"))
        alias = grammar.wrap(DatabaseManager().config.aggregate_alias)
        projection = RawExpression(value=f"{function}({target}) AS {alias}")
        aggregate_state = state.model_copy(update={"columns": (projection,), "orders": ()})
        return await self._scalar(aggregate_state, grammar.compile_select(aggregate_state))

    async def count(self, column: str = "*") -> int:
        """Count matching rows; on a grouped query, count the groups."""
        state = self._scoped_state()
        if state.is_grouped:
            sql = self.grammar.compile_grouped_count(
                state, DatabaseManager().config.aggregate_alias
            )
            value = await self._scalar(state, sql)
        else:
            value = await self._aggregate("COUNT", column)
        return int(value or 0)

    async def sum(self, column: str) -> int | float:
        value = await self._aggregate("SUM", column)
        if value is None:
            return 0
        return value if isinstance(value, (int, float)) else float(value)

    async def avg(self, column: str) -> float | None:
        value = await self._aggregate("AVG", column)
        return None if value is None else float(value)

    async def min(self, column: str) -> Any:
        return await self._aggregate("MIN", column)

    async def max(self, column: str) -> Any:
        return await self._aggregate("MAX", column)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _execute(self, sql: str, bindings: list[Any]) -> int:
        try:
            return await DatabaseManager().execute(self.table, sql, bindings)
        except BrickORMError:
            raise
        except Exception as exc:
            raise QueryError(f"Failed to execute statement: {exc}", sql, bindings) from exc

    async def update(self, values: Mapping[str, Any]) -> int:
        """Update every matching row and return the affected row count."""
        if not values:
            return 0
        for column in values:
            assert_identifier(column, "column name", dotted=False)
        state = self._scoped_state()
        grammar = self.grammar
        sql = grammar.compile_update(state, values)
        bindings = grammar.prepare_bindings([*values.values(), *state.where_bindings])
        return await self._execute(sql, bindings)

    async def delete(self) -> int:
        """Delete every matching row and return the affected row count."""
        state = self._scoped_state()
        grammar = self.grammar
        sql = grammar.compile_delete(state)
        return await self._execute(sql, grammar.prepare_bindings(state.where_bindings))

    async def insert(self, values: Mapping[str, Any]) -> Any:
        """Insert one row through the adapter and return its generated key."""
        if not values:
            raise InvalidArgumentError("Insert values cannot be empty.")
        for column in values:
            assert_identifier(column, "column name", dotted=False)
        try:
            return await DatabaseManager().insert(self.table, dict(values))
        except BrickORMError:
            raise
        except Exception as exc:
            grammar = self.grammar
            row = dict(values)
            columns = grammar.insert_columns([row])
            raise QueryError(
                f"Failed to insert into {self.table}: {exc}",
                grammar.compile_insert(self.table, [row]),
                grammar.prepare_bindings(row[column] for column in columns),
            ) from exc

    async def insert_all(self, rows: Sequence[Mapping[str, Any]]) -> bool:
        """Insert several rows with one multi-row INSERT.

        Columns are emitted in sorted order and every row must carry the
        same columns.  An empty ``rows`` list is a no-op.
        """
        if not rows:
            return True
        grammar = self.grammar
        columns = grammar.insert_columns(rows)
        for column in columns:
            assert_identifier(column, "column name", dotted=False)
        sql = grammar.compile_insert(self.table, rows)
        bindings = grammar.prepare_bindings(row[column] for row in rows for column in columns)
        await self._execute(sql, bindings)
        return True

    # ------------------------------------------------------------------
    # Reactive
    # ------------------------------------------------------------------

    async def watch(self) -> AsyncIterator[list[T]]:
        """Yield the current results, then fresh results after each committed
        change to this query's table or any joined table.

        Changes made inside a transaction are delivered only after it
        commits and never after a rollback.

        Example::

            async for users in User.query().where("active", True).watch():
                render(users)
        """
        state = self._scoped_state()
        tables = {state.table, *state.join_tables}
        async with DatabaseManager().changes.subscription() as queue:
            yield await self._fetch(state)
            while True:
                touched = await queue.get()
                if tables & touched:
                    yield await self._fetch(state)
