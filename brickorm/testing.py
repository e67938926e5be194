"""Test double for :class:`~brickorm.database.adapter.DatabaseAdapter`.

``RecordingAdapter`` records every statement it receives and answers
SELECTs from canned responses keyed by SQL substrings, so tests can assert
on the generated SQL and on query counts without a real database.

Example::

    db = RecordingAdapter(responses={"FROM \\"posts\\"": [{"id": 1, "user_id": 7}]})
    DatabaseManager().set_database(db)
    posts = await Post.query().get()
    assert db.select_count == 1
"""
from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from brickorm.compile.base import Grammar
from brickorm.compile.registry import GrammarFactory
from brickorm.database.adapter import DatabaseAdapter, Row, TransactionContext

T = TypeVar("T")

BEGIN = "BEGIN TRANSACTION"
COMMIT = "COMMIT"
ROLLBACK = "ROLLBACK"


@dataclass(frozen=True)
class RecordedStatement:
    """One statement seen by the adapter.

    Attributes:
        kind: ``"select"``, ``"execute"``, ``"insert"`` or ``"transaction"``.
        sql: SQL text (or a transaction marker).
        bindings: Bindings passed alongside ``sql``.
        table: Table reported by ``execute``/``insert``.
    """

    kind: str
    sql: str
    bindings: tuple[Any, ...] = ()
    table: str | None = None


class RecordingAdapter(DatabaseAdapter):
    """In-memory adapter that records SQL and returns canned rows.

    Args:
        default_rows: Rows returned for SELECTs that match no response key.
        responses: Maps an SQL substring to the rows returned for SELECTs
            containing it.  Keys are tried in insertion order, first against
            the raw SQL and then against the SQL with quotes removed.
        grammar: A grammar instance or a registered dialect name.
        supports_transactions: Value reported by the property of that name.
    """

    def __init__(
        self,
        default_rows: Sequence[Row] | None = None,
        responses: Mapping[str, Sequence[Row]] | None = None,
        grammar: Grammar | str = "sqlite",
        supports_transactions: bool = True,
    ) -> None:
        self.default_rows: list[Row] = [dict(row) for row in default_rows or []]
        self.responses: dict[str, list[Row]] = {
            key: [dict(row) for row in rows] for key, rows in (responses or {}).items()
        }
        self._grammar = GrammarFactory.resolve(grammar)
        self._supports_transactions = supports_transactions
        self.statements: list[RecordedStatement] = []
        self.next_insert_id: int = 1
        #: Raise from any write made inside a transaction.
        self.fail_in_transaction = False
        #: Raise from any statement whose SQL contains this substring.
        self.fail_on: str | None = None
        self._depth = 0

    # ------------------------------------------------------------------
    # Configuration and inspection
    # ------------------------------------------------------------------

    @property
    def grammar(self) -> Grammar:
        return self._grammar

    @property
    def supports_transactions(self) -> bool:
        return self._supports_transactions

    def set_responses(self, responses: Mapping[str, Sequence[Row]]) -> None:
        """Replace every canned response."""
        self.responses = {key: [dict(row) for row in rows] for key, rows in responses.items()}

    @property
    def history(self) -> list[str]:
        return [statement.sql for statement in self.statements]

    @property
    def selects(self) -> list[RecordedStatement]:
        return [statement for statement in self.statements if statement.kind == "select"]

    @property
    def select_count(self) -> int:
        return len(self.selects)

    @property
    def last_sql(self) -> str:
        return self.statements[-1].sql if self.statements else ""

    @property
    def last_bindings(self) -> list[Any]:
        return list(self.statements[-1].bindings) if self.statements else []

    def clear(self) -> None:
        self.statements.clear()

    # ------------------------------------------------------------------
    # Adapter API
    # ------------------------------------------------------------------

    def _record(
        self, kind: str, sql: str, bindings: Sequence[Any] | None, table: str | None = None
    ) -> None:
        self.statements.append(RecordedStatement(kind, sql, tuple(bindings or ()), table))
        if self.fail_on is not None and self.fail_on in sql:
            raise RuntimeError(f"Simulated failure for: {sql}")
        if kind in ("execute", "insert") and self._depth and self.fail_in_transaction:
            raise RuntimeError("Simulated transaction failure")

    def _match(self, sql: str) -> list[Row]:
        for key, rows in self.responses.items():
            if key in sql:
                return [dict(row) for row in rows]
        normalized = sql.replace('"', "")
        for key, rows in self.responses.items():
            if key in normalized:
                return [dict(row) for row in rows]
        return [dict(row) for row in self.default_rows]

    async def get_all(self, sql: str, bindings: Sequence[Any] | None = None) -> list[Row]:
        self._record("select", sql, bindings)
        return self._match(sql)

    async def get(self, sql: str, bindings: Sequence[Any] | None = None) -> Row:
        rows = await self.get_all(sql, bindings)
        return rows[0] if rows else {}

    async def execute(
        self, table: str, sql: str, bindings: Sequence[Any] | None = None
    ) -> int:
        self._record("execute", sql, bindings, table)
        return 1

    async def insert(self, table: str, values: dict[str, Any]) -> Any:
        columns = self._grammar.insert_columns([values])
        sql = self._grammar.compile_insert(table, [values])
        self._record("insert", sql, [values[column] for column in columns], table)
        key = values.get("id", self.next_insert_id)
        self.next_insert_id += 1
        return key

    async def transaction(
        self, callback: Callable[[TransactionContext], Awaitable[T]]
    ) -> T:
        self.statements.append(RecordedStatement("transaction", BEGIN))
        self._depth += 1
        try:
            result = await callback(_RecordingTransaction(self))
        except BaseException:
            self.statements.append(RecordedStatement("transaction", ROLLBACK))
            raise
        else:
            self.statements.append(RecordedStatement("transaction", COMMIT))
            return result
        finally:
            self._depth -= 1


class _RecordingTransaction(TransactionContext):
    """Routes transaction-scoped calls back to the owning adapter."""

    def __init__(self, adapter: RecordingAdapter) -> None:
        self._adapter = adapter

    async def get_all(self, sql: str, bindings: Sequence[Any] | None = None) -> list[Row]:
        return await self._adapter.get_all(sql, bindings)

    async def get(self, sql: str, bindings: Sequence[Any] | None = None) -> Row:
        return await self._adapter.get(sql, bindings)

    async def execute(
        self, table: str, sql: str, bindings: Sequence[Any] | None = None
    ) -> int:
        return await self._adapter.execute(table, sql, bindings)

    async def insert(self, table: str, values: dict[str, Any]) -> Any:
        return await self._adapter.insert(table, values)
