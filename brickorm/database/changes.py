"""Table-change notifications for ``watch()`` streams.

Writes report the logical table they touched.  Outside a transaction the
notification is published at once.  Inside a transaction it is buffered on
the transaction scope: a nested scope hands its buffer to its parent when
it succeeds, the outermost scope publishes one batch after commit, and any
scope that rolls back drops its buffer.  Subscribers therefore never see a
change that was not committed.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class TransactionScope:
    """State of one open (possibly nested) transaction.

    Attributes:
        context: The adapter's transaction context.
        parent: The enclosing scope, or ``None`` for the outermost one.
        touched: Tables written inside this scope and not yet published.
    """

    context: Any
    parent: TransactionScope | None = None
    touched: set[str] = field(default_factory=set)

    @property
    def depth(self) -> int:
        return 0 if self.parent is None else self.parent.depth + 1


class ChangeFeed:
    """Fan-out of committed table-change batches to subscribers.

    Each subscriber owns an :class:`asyncio.Queue` that receives one
    ``frozenset`` of table names per committed write (or per committed
    transaction).
    """

    def __init__(self) -> None:
        self._subscribers: set[asyncio.Queue[frozenset[str]]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[frozenset[str]]:
        queue: asyncio.Queue[frozenset[str]] = asyncio.Queue()
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[frozenset[str]]) -> None:
        self._subscribers.discard(queue)

    @asynccontextmanager
    async def subscription(self) -> AsyncIterator[asyncio.Queue[frozenset[str]]]:
        """Subscribe for the duration of an ``async with`` block."""
        queue = self.subscribe()
        try:
            yield queue
        finally:
            self.unsubscribe(queue)

    def publish(self, tables: Iterable[str]) -> None:
        batch = frozenset(tables)
        if not batch:
            return
        logger.debug(
            "Publishing change batch %s to %d subscriber(s)",
            sorted(batch),
            len(self._subscribers),
        )
        for queue in list(self._subscribers):
            queue.put_nowait(batch)

    def record(self, scope: TransactionScope | None, table: str) -> None:
        """Publish ``table`` now, or buffer it on the open transaction."""
        if scope is None:
            self.publish((table,))
        else:
            scope.touched.add(table)

    def commit(self, scope: TransactionScope) -> None:
        """Hand a successful scope's buffer to its parent, or publish it."""
        if scope.parent is not None:
            scope.parent.touched.update(scope.touched)
        else:
            self.publish(scope.touched)
        scope.touched.clear()

    def discard(self, scope: TransactionScope) -> None:
        if scope.touched:
            logger.debug("Discarding buffered changes for %s", sorted(scope.touched))
        scope.touched.clear()
