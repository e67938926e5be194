"""Reference adapter on :mod:`aiosqlite`.

Example::

    db = await SQLiteAdapter("app.db").connect()
    DatabaseManager().set_database(db)
    ...
    await db.close()
"""
from __future__ import annotations

import asyncio
import itertools
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, TypeVar

import aiosqlite

from brickorm.compile.base import Grammar
from brickorm.compile.registry import GrammarFactory
from brickorm.database.adapter import DatabaseAdapter, Row, TransactionContext
from brickorm.errors import DatabaseNotInitializedError

T = TypeVar("T")

_adapter_ids = itertools.count()


class SQLiteAdapter(DatabaseAdapter):
    """Runs brickORM statements against one ``aiosqlite`` connection.

    The connection is opened in autocommit mode.  :meth:`transaction` issues
    ``BEGIN`` for the outermost level and ``SAVEPOINT`` for nested levels.

    A single connection carries at most one transaction, so the outermost
    transaction holds a lock until it commits or rolls back.  Statements
    issued outside a transaction by other tasks wait on the same lock and
    never land inside someone else's transaction.  The nesting depth is
    tracked per task in a :class:`~contextvars.ContextVar`, so a concurrent
    caller never mistakes another task's transaction for its own.

    Args:
        database: Path to the database file, or ``":memory:"``.
        grammar: A grammar instance or a registered dialect name.
        **connect_kwargs: Extra keyword arguments for :func:`aiosqlite.connect`.
    """

    def __init__(
        self,
        database: str = ":memory:",
        grammar: Grammar | str = "sqlite",
        **connect_kwargs: Any,
    ) -> None:
        self.database = database
        self._connect_kwargs = connect_kwargs
        self._conn: aiosqlite.Connection | None = None
        self._grammar = GrammarFactory.resolve(grammar)
        self._lock = asyncio.Lock()
        self._depth: ContextVar[int] = ContextVar(
            f"brickorm_sqlite_depth_{next(_adapter_ids)}", default=0
        )
        self._savepoints = itertools.count()
        self._context = _SQLiteTransaction(self)

    async def connect(self) -> SQLiteAdapter:
        """Open the connection; returns ``self`` for chaining."""
        if self._conn is None:
            self._conn = await aiosqlite.connect(
                self.database, isolation_level=None, **self._connect_kwargs
            )
            self._conn.row_factory = aiosqlite.Row
        return self

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @property
    def grammar(self) -> Grammar:
        return self._grammar

    @property
    def connection(self) -> aiosqlite.Connection:
        """The open connection.

        Raises:
            DatabaseNotInitializedError: If :meth:`connect` was not awaited.
        """
        if self._conn is None:
            raise DatabaseNotInitializedError(
                "SQLiteAdapter is not connected. Await SQLiteAdapter.connect() first."
            )
        return self._conn

    @property
    def in_transaction(self) -> bool:
        """True when the current task runs inside one of this adapter's transactions."""
        return self._depth.get() > 0

    async def execute_script(self, sql: str) -> None:
        """Run several ``;``-separated statements (schema setup, fixtures)."""
        async with self._exclusive():
            await self.connection.executescript(sql)

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        if self.in_transaction:
            yield
            return
        async with self._lock:
            yield

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    async def get_all(self, sql: str, bindings: Sequence[Any] | None = None) -> list[Row]:
        async with self._exclusive():
            async with self.connection.execute(sql, list(bindings or [])) as cursor:
                return [dict(row) for row in await cursor.fetchall()]

    async def get(self, sql: str, bindings: Sequence[Any] | None = None) -> Row:
        rows = await self.get_all(sql, bindings)
        return rows[0] if rows else {}

    async def execute(
        self, table: str, sql: str, bindings: Sequence[Any] | None = None
    ) -> int:
        async with self._exclusive():
            async with self.connection.execute(sql, list(bindings or [])) as cursor:
                return cursor.rowcount

    async def insert(self, table: str, values: dict[str, Any]) -> Any:
        columns = self._grammar.insert_columns([values])
        sql = self._grammar.compile_insert(table, [values])
        bindings = self._grammar.prepare_bindings(values[column] for column in columns)
        async with self._exclusive():
            async with self.connection.execute(sql, bindings) as cursor:
                return cursor.lastrowid

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def transaction(
        self, callback: Callable[[TransactionContext], Awaitable[T]]
    ) -> T:
        depth = self._depth.get()
        if depth:
            return await self._savepoint(callback, depth)

        async with self._lock:
            conn = self.connection
            token = self._depth.set(1)
            try:
                await conn.execute("BEGIN")
                try:
                    result = await callback(self._context)
                    await conn.execute("COMMIT")
                except BaseException:
                    if conn.in_transaction:
                        await conn.execute("ROLLBACK")
                    raise
                return result
            finally:
                self._depth.reset(token)

    async def _savepoint(
        self, callback: Callable[[TransactionContext], Awaitable[T]], depth: int
    ) -> T:
        conn = self.connection
        name = f"brickorm_sp_{next(self._savepoints)}"
        await conn.execute(f"SAVEPOINT {name}")
        token = self._depth.set(depth + 1)
        try:
            result = await callback(self._context)
        except BaseException:
            await conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            await conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        else:
            await conn.execute(f"RELEASE SAVEPOINT {name}")
            return result
        finally:
            self._depth.reset(token)


class _SQLiteTransaction(TransactionContext):
    """Routes transaction-scoped calls back to the owning connection."""

    def __init__(self, adapter: SQLiteAdapter) -> None:
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
