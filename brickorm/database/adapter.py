"""Adapter contracts between brickORM and a database driver.

An adapter owns the connection and actually runs SQL; brickORM only hands
it compiled statements and prepared bindings.  Every operation is a
coroutine so drivers can suspend on network I/O.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from brickorm.compile.base import Grammar

T = TypeVar("T")

Row = dict[str, Any]


class TransactionContext(ABC):
    """Operations scoped to one open transaction.

    Everything executed through a context participates in that transaction
    and is rolled back with it.
    """

    @abstractmethod
    async def get_all(self, sql: str, bindings: Sequence[Any] | None = None) -> list[Row]:
        """Run a SELECT and return every row as a column → value dict."""

    @abstractmethod
    async def get(self, sql: str, bindings: Sequence[Any] | None = None) -> Row:
        """Run a SELECT and return the first row, or an empty dict."""

    @abstractmethod
    async def execute(
        self, table: str, sql: str, bindings: Sequence[Any] | None = None
    ) -> int:
        """Run a write against ``table`` and return the affected row count."""

    @abstractmethod
    async def insert(self, table: str, values: dict[str, Any]) -> Any:
        """Insert one row and return its generated primary key."""


class DatabaseAdapter(TransactionContext):
    """A database driver.

    Implementations MUST bind ``bindings`` as parameters and never
    interpolate them into the SQL text.
    """

    @property
    @abstractmethod
    def grammar(self) -> Grammar:
        """The dialect grammar matching this driver."""

    @property
    def supports_transactions(self) -> bool:
        return True

    @abstractmethod
    async def transaction(
        self, callback: Callable[[TransactionContext], Awaitable[T]]
    ) -> T:
        """Run ``callback`` inside a transaction.

        The transaction MUST be committed when ``callback`` returns and
        rolled back when it raises; the exception is re-raised unchanged.
        Nested calls should use savepoints where the database has them.
        """
