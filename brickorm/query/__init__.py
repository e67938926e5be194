"""brickORM query layer: fluent builder and global scopes."""
from brickorm.query.builder import QueryBuilder
from brickorm.query.scope import Scope, scope_key

__all__ = [
    "QueryBuilder",
    "Scope",
    "scope_key",
]
