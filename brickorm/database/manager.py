"""Process-wide access point for the active database adapter.

``DatabaseManager`` is a singleton service locator: the application injects
an adapter once with :meth:`DatabaseManager.set_database` and every query
builder, model and relation reaches the database through it.

The open transaction is tracked in a :class:`contextvars.ContextVar`, so it
is scoped to the current task rather than shared process-wide.  While a
transaction is open in the current context every call is routed to its
:class:`~brickorm.database.adapter.TransactionContext`.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from contextvars import ContextVar
from typing import Any, ClassVar, TypeVar

from brickorm.compile.base import Grammar
from brickorm.config import OrmConfig
from brickorm.database.adapter import DatabaseAdapter, Row, TransactionContext
from brickorm.database.changes import ChangeFeed, TransactionScope
from brickorm.errors import DatabaseNotInitializedError, TransactionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_active_scope: ContextVar[TransactionScope | None] = ContextVar(
    "brickorm_active_transaction", default=None
)


class DatabaseManager:
    """Singleton holding the adapter, the runtime config and the change feed.

    Example::

        DatabaseManager().set_database(await SQLiteAdapter(":memory:").connect())

        async def transfer(txn):
            await Account.query().where("id", 1).update({"balance": 0})
            await Account.query().where("id", 2).update({"balance": 100})

        await DatabaseManager().transaction(transfer)
    """

    _instance: ClassVar[DatabaseManager | None] = None

    _db: DatabaseAdapter | None
    config: OrmConfig
    changes: ChangeFeed

    def __new__(cls) -> DatabaseManager:
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._db = None
            instance.config = OrmConfig()
            instance.changes = ChangeFeed()
            cls._instance = instance
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton so the next ``DatabaseManager()`` starts clean."""
        cls._instance = None
        _active_scope.set(None)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_database(self, db: DatabaseAdapter, config: OrmConfig | None = None) -> None:
        """Inject the adapter (and optionally the runtime config)."""
        self._db = db
        if config is not None:
            self.config = config

    @property
    def db(self) -> DatabaseAdapter:
        """The active adapter.

        Raises:
            DatabaseNotInitializedError: If :meth:`set_database` was not called.
        """
        if self._db is None:
            raise DatabaseNotInitializedError()
        return self._db

    @property
    def grammar(self) -> Grammar:
        return self.db.grammar

    @property
    def active_transaction(self) -> TransactionContext | None:
        scope = _active_scope.get()
        return None if scope is None else scope.context

    @property
    def in_transaction(self) -> bool:
        return _active_scope.get() is not None

    def _executor(self) -> TransactionContext:
        scope = _active_scope.get()
        return self.db if scope is None else scope.context

    def _log(self, sql: str, bindings: Sequence[Any] | None) -> None:
        if self.config.log_queries:
            logger.debug("SQL: %s | bindings: %s", sql, list(bindings or []))

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def transaction(
        self, callback: Callable[[TransactionContext], Awaitable[T]]
    ) -> T:
        """Run ``callback`` inside a transaction.

        Commits when ``callback`` returns and rolls back when it raises.
        Change notifications for writes made inside are published only
        after the outermost transaction commits.

        Raises:
            TransactionError: With ``was_rolled_back=False`` if the adapter
                does not support transactions, otherwise with
                ``was_rolled_back=True`` and the original exception chained.
        """
        db = self.db
        if not db.supports_transactions:
            raise TransactionError(
                "The current database adapter does not support transactions.",
                was_rolled_back=False,
            )

        parent = _active_scope.get()
        scopes: list[TransactionScope] = []

        async def run(txn: TransactionContext) -> T:
            scope = TransactionScope(context=txn, parent=parent)
            scopes.append(scope)
            token = _active_scope.set(scope)
            try:
                return await callback(txn)
            finally:
                _active_scope.reset(token)

        try:
            result = await db.transaction(run)
        except TransactionError:
            for scope in scopes:
                self.changes.discard(scope)
            raise
        except Exception as exc:
            for scope in scopes:
                self.changes.discard(scope)
            logger.warning("Transaction rolled back: %s", exc)
            raise TransactionError(
                f"Transaction failed: {exc}", was_rolled_back=True
            ) from exc

        for scope in scopes:
            if scope.parent is None:
                logger.info("Transaction committed")
            self.changes.commit(scope)
        return result

    # ------------------------------------------------------------------
    # Routed operations
    # ------------------------------------------------------------------

    async def get_all(self, sql: str, bindings: Sequence[Any] | None = None) -> list[Row]:
        self._log(sql, bindings)
        return await self._executor().get_all(sql, bindings)

    async def get(self, sql: str, bindings: Sequence[Any] | None = None) -> Row:
        self._log(sql, bindings)
        return await self._executor().get(sql, bindings)

    async def execute(
        self, table: str, sql: str, bindings: Sequence[Any] | None = None
    ) -> int:
        """Run a write and record ``table`` as touched for ``watch()`` streams."""
        self._log(sql, bindings)
        affected = await self._executor().execute(table, sql, bindings)
        self.changes.record(_active_scope.get(), table)
        return affected

    async def insert(self, table: str, values: dict[str, Any]) -> Any:
        if self.config.log_queries:
            grammar = self.grammar
            columns = grammar.insert_columns([values])
            self._log(
                grammar.compile_insert(table, [values]),
                grammar.prepare_bindings(values[column] for column in columns),
            )
        key = await self._executor().insert(table, values)
        self.changes.record(_active_scope.get(), table)
        return key
