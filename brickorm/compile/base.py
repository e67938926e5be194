"""Grammar abstraction: the dialect strategy that renders query state to SQL.

The Template Method pattern (GoF) is used:
- ``Grammar`` defines the skeleton for compiling each clause of a
  SELECT / INSERT / UPDATE / DELETE statement.
- ``SQLiteGrammar`` and ``PostgresGrammar`` override the dialect-specific
  steps (placeholder style, binding coercion, LIMIT/OFFSET quirks,
  ``RETURNING`` support).

Fragments for WHERE, HAVING, JOIN and ORDER BY are rendered by the builder
at mutation time using :meth:`Grammar.wrap` and :meth:`Grammar.parameter`;
the grammar only stitches them together here.
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from brickorm.errors import InvalidArgumentError
from brickorm.schema.query_state import Predicate, QueryState, RawExpression

_LEADING_BOOLEAN = re.compile(r"^(AND|OR)\s+")
_ALIAS_SPLIT = re.compile(r"\s+as\s+", re.IGNORECASE)


class Grammar(ABC):
    """Abstract base for dialect-specific SQL grammars.

    Subclasses implement the dialect-specific methods; the
    :class:`~brickorm.query.builder.QueryBuilder` uses this interface via
    the Strategy / Template Method patterns.
    """

    # ------------------------------------------------------------------
    # Dialect hooks
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the canonical dialect name (``'sqlite'`` or ``'postgres'``)."""

    @abstractmethod
    def parameter(self, value: Any = None) -> str:
        """Return the positional placeholder token for one bound value.

        Args:
            value: The value that will be bound.  Unused by the built-in
                dialects, which emit one fixed token per value.

        Returns:
            Dialect-specific placeholder string.
        """

    @abstractmethod
    def prepare_value(self, value: Any) -> Any:
        """Coerce a single binding into a type the driver accepts."""

    def quote_identifier(self, name: str) -> str:
        """Return a properly-quoted single identifier segment.

        Args:
            name: Unquoted identifier (table, column or alias name).

        Returns:
            Quoted identifier.
        """
        escaped = name.replace('"', '""')
        return f'"{escaped}"'

    # ------------------------------------------------------------------
    # Identifiers and bindings
    # ------------------------------------------------------------------

    def wrap(self, value: str) -> str:
        """Quote an identifier, segment by segment when it is dot-qualified.

        ``*`` is never quoted, so ``users.*`` becomes ``"users".*``.  Values
        that are already quoted are returned unchanged.
        """
        if value == "*":
            return value
        if "." in value:
            return ".".join(self.wrap(segment) for segment in value.split("."))
        if len(value) > 1 and value.startswith('"') and value.endswith('"'):
            return value
        return self.quote_identifier(value)

    def wrap_array(self, values: Iterable[str]) -> list[str]:
        return [self.wrap(value) for value in values]

    def parameters(self, values: Sequence[Any]) -> str:
        """Return a comma-separated placeholder list for ``values``."""
        return ", ".join(self.parameter(value) for value in values)

    def prepare_bindings(self, bindings: Iterable[Any]) -> list[Any]:
        """Normalize every binding for the driver.

        Called once, immediately before the adapter executes a statement,
        so in-memory comparisons still see native Python values.
        """
        return [self.prepare_value(value) for value in bindings]

    # ------------------------------------------------------------------
    # SELECT
    # ------------------------------------------------------------------

    def compile_select(self, state: QueryState) -> str:
        """Compile ``state`` into a SELECT statement."""
        return self.concatenate(self.compile_components(state))

    def compile_components(self, state: QueryState) -> list[str]:
        """Return the SELECT clauses in order; subclasses may reorder them."""
        return [
            "SELECT DISTINCT" if state.distinct else "SELECT",
            self.compile_columns(state),
            "FROM",
            self.wrap(state.table),
            *self.compile_joins(state),
            self.compile_wheres(state),
            self.compile_groups(state),
            self.compile_havings(state),
            self.compile_orders(state),
            self.compile_limit(state),
            self.compile_offset(state),
        ]

    def concatenate(self, components: Iterable[str]) -> str:
        return " ".join(component for component in components if component)

    def compile_columns(self, state: QueryState) -> str:
        """Render the projection.

        When the statement has joins, bare column names are qualified with
        the base table to avoid ambiguous-column errors.  Aliased,
        qualified and function-call expressions are never qualified.
        """
        needs_prefix = bool(state.joins)
        return ", ".join(
            self._compile_column(state.table, column, needs_prefix)
            for column in state.columns
        )

    def _compile_column(
        self, table: str, column: str | RawExpression, needs_prefix: bool
    ) -> str:
        if isinstance(column, RawExpression):
            return column.value
        if column == "*":
            return f"{self.wrap(table)}.*"

        parts = _ALIAS_SPLIT.split(column)
        if len(parts) == 2:
            target, alias = parts
            rendered = target if "(" in target else self.wrap(target)
            return f"{rendered} AS {self.wrap(alias)}"

        if "(" in column:
            return column
        if needs_prefix and "." not in column:
            return self.wrap(f"{table}.{column}")
        return self.wrap(column)

    def compile_joins(self, state: QueryState) -> list[str]:
        return list(state.joins)

    def compile_predicates(self, predicates: Sequence[Predicate]) -> str:
        """Join fragments by their recorded boolean, dropping the first keyword."""
        sql = " ".join(f"{clause.boolean} {clause.sql}" for clause in predicates)
        return _LEADING_BOOLEAN.sub("", sql, count=1)

    def compile_wheres(self, state: QueryState) -> str:
        if not state.wheres:
            return ""
        return "WHERE " + self.compile_predicates(state.wheres)

    def compile_groups(self, state: QueryState) -> str:
        if not state.groups:
            return ""
        return "GROUP BY " + ", ".join(self.wrap_array(state.groups))

    def compile_havings(self, state: QueryState) -> str:
        if not state.havings:
            return ""
        return "HAVING " + self.compile_predicates(state.havings)

    def compile_orders(self, state: QueryState) -> str:
        if not state.orders:
            return ""
        return "ORDER BY " + ", ".join(state.orders)

    def compile_limit(self, state: QueryState) -> str:
        if state.limit is None:
            return ""
        return f"LIMIT {int(state.limit)}"

    def compile_offset(self, state: QueryState) -> str:
        if state.offset is None:
            return ""
        return f"OFFSET {int(state.offset)}"

    def compile_grouped_count(self, state: QueryState, alias: str) -> str:
        """Count the groups of a grouped SELECT by wrapping it as a subquery."""
        return (
            f"SELECT COUNT(*) AS {self.wrap(alias)} "
            f"FROM ({self.compile_select(state)}) AS {self.wrap('temp_table')}"
        )

    # ------------------------------------------------------------------
    # INSERT / UPDATE / DELETE
    # ------------------------------------------------------------------

    @staticmethod
    def insert_columns(rows: Sequence[Mapping[str, Any]]) -> list[str]:
        """Return the sorted column list shared by every row of an INSERT.

        Raises:
            InvalidArgumentError: If ``rows`` is empty or the rows do not
                all carry the same set of columns.
        """
        if not rows:
            raise InvalidArgumentError("INSERT requires at least one row.")
        columns = sorted(rows[0])
        if not columns:
            raise InvalidArgumentError("INSERT requires at least one column.")
        for index, row in enumerate(rows[1:], start=1):
            if sorted(row) != columns:
                raise InvalidArgumentError(
                    "Every row of a multi-row INSERT must have the same columns.",
                    details={"row": index, "expected": columns, "got": sorted(row)},
                )
        return columns

    def compile_insert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        returning: str | None = None,
    ) -> str:
        """Compile a (possibly multi-row) INSERT with sorted column order.

        Args:
            table: Target table name.
            rows: One mapping per row; all rows must share the same keys.
            returning: Column to return, for dialects that support it.

        Returns:
            The INSERT statement.  Bindings are each row's values in
            :meth:`insert_columns` order, row after row.
        """
        columns = self.insert_columns(rows)
        row_sql = "(" + ", ".join(self.parameter() for _ in columns) + ")"
        values_sql = ", ".join(row_sql for _ in rows)
        return (
            f"INSERT INTO {self.wrap(table)} "
            f"({', '.join(self.wrap_array(columns))}) VALUES {values_sql}"
        )

    def compile_update(self, state: QueryState, values: Mapping[str, Any]) -> str:
        """Compile an UPDATE; bindings are ``values`` then WHERE bindings."""
        assignments = ", ".join(
            f"{self.wrap(column)} = {self.parameter(value)}"
            for column, value in values.items()
        )
        where = self.compile_wheres(state)
        return f"UPDATE {self.wrap(state.table)} SET {assignments} {where}".strip()

    def compile_delete(self, state: QueryState) -> str:
        where = self.compile_wheres(state)
        return f"DELETE FROM {self.wrap(state.table)} {where}".strip()

    # ------------------------------------------------------------------
    # Debugging
    # ------------------------------------------------------------------

    def format_value_for_debug(self, value: Any) -> str:
        """Render a prepared binding as an SQL literal.

        Only used for human-readable output; never executed.
        """
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, (int, float)):
            return str(value)
        escaped = str(value).replace("'", "''")
        return f"'{escaped}'"

    def interpolate(self, sql: str, bindings: Sequence[Any]) -> str:
        """Substitute prepared ``bindings`` into the placeholders of ``sql``."""
        token = self.parameter()
        pieces = sql.split(token)
        if len(pieces) - 1 != len(bindings):
            return sql
        rendered = [pieces[0]]
        for value, piece in zip(bindings, pieces[1:]):
            rendered.append(self.format_value_for_debug(value))
            rendered.append(piece)
        return "".join(rendered)
