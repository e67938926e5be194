"""Many-to-many relation through a pivot table."""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, TypeVar

from brickorm.database.manager import DatabaseManager
from brickorm.errors import InvalidArgumentError
from brickorm.pivot import GenericPivot, Pivot
from brickorm.query.builder import QueryBuilder, Row
from brickorm.relations.base import Relatable, Relation
from brickorm.schema.query_state import QueryState
from brickorm.validate.identifiers import assert_identifier

R = TypeVar("R")


class BelongsToMany(Relation[R]):
    """Records linked through rows of an intermediate pivot table.

    e.g. a ``User`` belongs to many ``Role`` rows via ``role_user``
    (``role_user.user_id``, ``role_user.role_id``).

    Args:
        parent: The owning record.
        related: Related model class.
        pivot_table: Intermediate table name.
        foreign_pivot_key: Pivot column referencing the parent.
        related_pivot_key: Pivot column referencing the related record.
        parent_key: Parent column referenced by ``foreign_pivot_key``.
        related_key: Related column referenced by ``related_pivot_key``.
    """

    def __init__(
        self,
        parent: Any,
        related: type[R],
        pivot_table: str,
        foreign_pivot_key: str,
        related_pivot_key: str,
        parent_key: str | None = None,
        related_key: str | None = None,
    ) -> None:
        super().__init__(parent, related)
        self.pivot_table = assert_identifier(pivot_table, "pivot table name", dotted=False)
        self.foreign_pivot_key = assert_identifier(foreign_pivot_key, "pivot column", dotted=False)
        self.related_pivot_key = assert_identifier(related_pivot_key, "pivot column", dotted=False)
        self.parent_key = parent_key or parent.primary_key
        self.related_key = related_key or related.primary_key
        self._pivot_class: type[Pivot] | None = None
        self._pivot_columns: list[str] = []
        self.add_constraints()

    def add_constraints(self) -> None:
        self.join(
            self.pivot_table,
            f"{self.table}.{self.related_key}",
            "=",
            f"{self.pivot_table}.{self.related_pivot_key}",
        )
        self._constrain(
            f"{self.pivot_table}.{self.foreign_pivot_key}",
            self.parent.get_attribute(self.parent_key),
        )

    # ------------------------------------------------------------------
    # Pivot configuration
    # ------------------------------------------------------------------

    def using(self, pivot_class: type[Pivot], columns: Iterable[str] = ()) -> BelongsToMany[R]:
        """Hydrate pivots as ``pivot_class`` and project its declared columns."""
        self._pivot_class = pivot_class
        self._add_pivot_columns([*pivot_class.columns, *columns])
        return self

    def with_pivot(self, *columns: str) -> BelongsToMany[R]:
        """Project extra pivot columns into ``model.pivot``."""
        self._add_pivot_columns(columns)
        if self._pivot_class is None:
            self._pivot_class = GenericPivot
        return self

    def _add_pivot_columns(self, columns: Iterable[str]) -> None:
        for column in columns:
            assert_identifier(column, "pivot column", dotted=False)
            if column not in self._pivot_columns:
                self._pivot_columns.append(column)

    @property
    def pivot_columns(self) -> list[str]:
        return list(self._pivot_columns)

    def _pivot_keys(self) -> list[str]:
        return [self.foreign_pivot_key, self.related_pivot_key]

    def _pivot_projection(self) -> list[str]:
        projection: list[str] = []
        for column in [*self._pivot_keys(), *self._pivot_columns]:
            if column not in projection:
                projection.append(column)
        return projection

    # ------------------------------------------------------------------
    # Pivot filters
    # ------------------------------------------------------------------

    def _pivot_column(self, column: str) -> str:
        return f"{self.pivot_table}.{assert_identifier(column, 'pivot column', dotted=False)}"

    def where_pivot(
        self, column: str, value: Any, operator: str = "=", boolean: str = "AND"
    ) -> BelongsToMany[R]:
        self.where(self._pivot_column(column), value, operator, boolean)
        return self

    def or_where_pivot(self, column: str, value: Any, operator: str = "=") -> BelongsToMany[R]:
        return self.where_pivot(column, value, operator, "OR")

    def where_pivot_in(
        self, column: str, values: Iterable[Any], boolean: str = "AND"
    ) -> BelongsToMany[R]:
        self.where_in(self._pivot_column(column), values, boolean)
        return self

    def or_where_pivot_in(self, column: str, values: Iterable[Any]) -> BelongsToMany[R]:
        return self.where_pivot_in(column, values, "OR")

    def where_pivot_not_in(
        self, column: str, values: Iterable[Any], boolean: str = "AND"
    ) -> BelongsToMany[R]:
        self.where_not_in(self._pivot_column(column), values, boolean)
        return self

    def or_where_pivot_not_in(self, column: str, values: Iterable[Any]) -> BelongsToMany[R]:
        return self.where_pivot_not_in(column, values, "OR")

    def where_pivot_null(self, column: str, boolean: str = "AND") -> BelongsToMany[R]:
        self.where_null(self._pivot_column(column), boolean)
        return self

    def where_pivot_not_null(self, column: str, boolean: str = "AND") -> BelongsToMany[R]:
        self.where_not_null(self._pivot_column(column), boolean)
        return self

    # ------------------------------------------------------------------
    # Single-parent reads
    # ------------------------------------------------------------------

    async def _fetch(self, state: QueryState) -> list[R]:
        if self._pivot_class is not None and state.columns == ("*",):
            prefix = DatabaseManager().config.pivot_prefix
            columns = [f"{self.table}.*"] + [
                f"{self.pivot_table}.{column} AS {prefix}{column}"
                for column in self._pivot_projection()
            ]
            state = state.model_copy(update={"columns": tuple(columns)})
        return await super()._fetch(state)

    def _hydrate(self, rows: Sequence[Row]) -> list[R]:
        if self._pivot_class is None:
            return super()._hydrate(rows)

        prefix = DatabaseManager().config.pivot_prefix
        aliases = {f"{prefix}{column}": column for column in self._pivot_projection()}
        clean_rows: list[Row] = []
        pivots: list[dict[str, Any]] = []
        for row in rows:
            clean: Row = {}
            pivot: dict[str, Any] = {}
            for key, value in row.items():
                if key in aliases:
                    pivot[aliases[key]] = value
                else:
                    clean[key] = value
            clean_rows.append(clean)
            pivots.append(pivot)

        models = super()._hydrate(clean_rows)
        for model, pivot in zip(models, pivots):
            model.pivot = self._pivot_class(pivot)
        return models

    # ------------------------------------------------------------------
    # Eager loading
    # ------------------------------------------------------------------

    def _pivot_query(self) -> QueryBuilder[Row]:
        return QueryBuilder(self.pivot_table, grammar=self.grammar)

    def _pivot_row_matches(self, row: Mapping[str, Any]) -> bool:
        return True

    async def _pivot_rows(self, parent_keys: list[Any]) -> list[Row]:
        query = self._pivot_query()
        if self._pivot_columns:
            query.select(self._pivot_projection())
        return await query.where_in(self.foreign_pivot_key, parent_keys).get()

    def _clone_for(self, original: Any, pivot_row: Mapping[str, Any]) -> R:
        clone = self.related(dict(original.attributes))
        clone.exists = True
        clone.sync_original()
        clone.relations = dict(original.relations)
        clone.pivot = (self._pivot_class or GenericPivot)(dict(pivot_row))
        return clone

    async def match(
        self, models: Sequence[Any], relation_name: str, nested: Sequence[str] = ()
    ) -> None:
        """Load related records of every parent in two batch queries.

        The pivot rows of all parents are fetched first, then every related
        record they reference.  Each parent receives its own clone of a
        related record so pivot payloads are never shared between parents.
        """
        parent_keys = self.get_keys(models, self.parent_key)
        pivot_rows = await self._pivot_rows(parent_keys) if parent_keys else []
        pivot_rows = [row for row in pivot_rows if self._pivot_row_matches(row)]

        related_ids: list[Any] = []
        seen: set[str | None] = set()
        for row in pivot_rows:
            key = self.norm_key(row.get(self.related_pivot_key))
            if key is not None and key not in seen:
                seen.add(key)
                related_ids.append(row[self.related_pivot_key])

        related = (
            await self.new_related_query(nested).where_in(self.related_key, related_ids).get()
            if related_ids
            else []
        )
        dictionary = {self.norm_key(model.get_attribute(self.related_key)): model for model in related}

        grouped: dict[str | None, list[R]] = defaultdict(list)
        for row in pivot_rows:
            original = dictionary.get(self.norm_key(row.get(self.related_pivot_key)))
            if original is not None:
                grouped[self.norm_key(row.get(self.foreign_pivot_key))].append(
                    self._clone_for(original, row)
                )

        for model in models:
            key = self.norm_key(model.get_attribute(self.parent_key))
            model.set_relation(relation_name, grouped.get(key, []) if key is not None else [])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _parent_id(self, action: str) -> Any:
        parent_id = self.parent.get_attribute(self.parent_key)
        if parent_id is None:
            raise InvalidArgumentError(
                f"Cannot {action} a model with no {self.parent_key!r}. Save the parent first.",
                details={"relation": type(self).__name__, "pivot_table": self.pivot_table},
            )
        return parent_id

    def _related_id(self, value: Any) -> Any:
        if isinstance(value, Relatable):
            related_id = value.get_attribute(self.related_key)
            if related_id is None:
                raise InvalidArgumentError(
                    "Cannot use a model with no key in a relationship operation.",
                    details={"related_key": self.related_key},
                )
            return related_id
        return value

    def _ids(self, ids: Any) -> list[Any]:
        if isinstance(ids, (list, tuple, set, frozenset)):
            return [self._related_id(value) for value in ids]
        return [self._related_id(ids)]

    def _pivot_attributes(self) -> dict[str, Any]:
        """Columns written on every pivot row besides the two keys."""
        return {}

    async def attach(self, ids: Any, attributes: Mapping[str, Any] | None = None) -> None:
        """Link the parent to one or more related records.

        Args:
            ids: A key, a record, or a list of either.
            attributes: Extra pivot columns written on every new row.
        """
        parent_id = self._parent_id("attach to")
        rows = [
            {
                **(attributes or {}),
                **self._pivot_attributes(),
                self.foreign_pivot_key: parent_id,
                self.related_pivot_key: related_id,
            }
            for related_id in self._ids(ids)
        ]
        await self._pivot_query().insert_all(rows)

    async def detach(self, ids: Any = None) -> int:
        """Unlink related records; ``None`` unlinks all of them.

        Returns:
            The number of pivot rows deleted.
        """
        query = self._pivot_query().where(self.foreign_pivot_key, self._parent_id("detach from"))
        if ids is not None:
            query.where_in(self.related_pivot_key, self._ids(ids))
        return await query.delete()
