"""brickORM schema models: immutable query state."""
from brickorm.schema.query_state import (
    Predicate,
    QueryState,
    RawExpression,
    ScopeCallback,
)

__all__ = [
    "Predicate",
    "QueryState",
    "RawExpression",
    "ScopeCallback",
]
