"""brickORM database layer: adapter contracts, manager and change feed."""
from brickorm.database.adapter import DatabaseAdapter, Row, TransactionContext
from brickorm.database.changes import ChangeFeed, TransactionScope
from brickorm.database.manager import DatabaseManager
from brickorm.database.sqlite import SQLiteAdapter

__all__ = [
    "ChangeFeed",
    "DatabaseAdapter",
    "DatabaseManager",
    "Row",
    "SQLiteAdapter",
    "TransactionContext",
    "TransactionScope",
]
