"""brickORM validation layer: identifier and operator allow-lists."""
from brickorm.validate.identifiers import (
    COMPARISON_OPERATORS,
    LIST_OPERATORS,
    WHERE_OPERATORS,
    assert_aggregate_or_identifier,
    assert_direction,
    assert_identifier,
    assert_operator,
    assert_select_column,
    normalize_operator,
)

__all__ = [
    "COMPARISON_OPERATORS",
    "LIST_OPERATORS",
    "WHERE_OPERATORS",
    "assert_aggregate_or_identifier",
    "assert_direction",
    "assert_identifier",
    "assert_operator",
    "assert_select_column",
    "normalize_operator",
]
