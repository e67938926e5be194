"""Identifier, operator and direction checks.

Identifiers cannot be sent as bound parameters, so every table, column
and alias name that reaches SQL text is matched against a strict grammar
first.  Operators and sort directions are matched against fixed
allow-lists.  All checks run at mutation time, before any I/O, and raise a
subclass of :class:`~brickorm.errors.ValidationError`.
"""
from __future__ import annotations

import re

from brickorm.errors import (
    InvalidDirectionError,
    InvalidIdentifierError,
    InvalidOperatorError,
)

_NAME = r"[A-Za-z_][A-Za-z0-9_]*"

TABLE_IDENT = re.compile(rf"^{_NAME}$")
DOTTED_IDENT = re.compile(rf"^{_NAME}(\.{_NAME})*$")

# COUNT(*), SUM(total), COUNT(DISTINCT orders.user_id)
AGGREGATE_CALL = re.compile(
    rf"^{_NAME}\(\s*(\*|(DISTINCT\s+)?{_NAME}(\.{_NAME})*(\.\*)?)\s*\)$",
    re.IGNORECASE,
)

# users.*, name, users.name, optionally followed by "AS alias"
_SELECT_TARGET = rf"({_NAME}(\.{_NAME})*(\.\*)?|\*)"
SELECT_COLUMN = re.compile(rf"^{_SELECT_TARGET}(\s+AS\s+{_NAME})?$", re.IGNORECASE)
# A function call projection: LOWER(name) AS lower_name, COUNT(*) as total
SELECT_CALL = re.compile(
    rf"^{_NAME}\([A-Za-z0-9_.*, ]*\)(\s+AS\s+{_NAME})?$", re.IGNORECASE
)

#: Scalar comparison operators accepted by ``where``.
WHERE_OPERATORS: frozenset[str] = frozenset(
    {"=", "!=", "<>", ">", "<", ">=", "<=", "LIKE", "NOT LIKE"}
)

#: Operators that take a list value in ``where``.
LIST_OPERATORS: frozenset[str] = frozenset({"IN", "NOT IN", "BETWEEN", "NOT BETWEEN"})

#: Operators accepted in JOIN ... ON and HAVING comparisons.
COMPARISON_OPERATORS: frozenset[str] = frozenset({"=", "!=", "<>", ">", "<", ">=", "<="})

DIRECTIONS: frozenset[str] = frozenset({"ASC", "DESC"})


def normalize_operator(operator: str) -> str:
    """Trim, upper-case and collapse internal whitespace of ``operator``."""
    return " ".join(str(operator).split()).upper()


def assert_identifier(value: object, what: str, dotted: bool = True) -> str:
    """Return ``value`` if it is a valid (optionally dot-qualified) identifier.

    Raises:
        InvalidIdentifierError: If ``value`` is not a string matching the
            identifier grammar.
    """
    pattern = DOTTED_IDENT if dotted else TABLE_IDENT
    if not isinstance(value, str) or not pattern.match(value):
        raise InvalidIdentifierError(str(value), what)
    return value


def assert_aggregate_or_identifier(value: object, what: str) -> str:
    """Accept a dotted identifier or a single aggregate call like ``COUNT(*)``."""
    if isinstance(value, str) and (DOTTED_IDENT.match(value) or AGGREGATE_CALL.match(value)):
        return value
    raise InvalidIdentifierError(str(value), what)


def assert_select_column(value: object) -> str:
    """Accept a projection entry: ``*``, ``t.*``, a name, an alias or a call."""
    if isinstance(value, str):
        stripped = value.strip()
        if SELECT_COLUMN.match(stripped) or SELECT_CALL.match(stripped):
            return stripped
    raise InvalidIdentifierError(str(value), "select column")


def assert_operator(operator: str, clause: str, allowed: frozenset[str]) -> str:
    """Return the normalized ``operator`` if it is in ``allowed``.

    Raises:
        InvalidOperatorError: If the operator is not allowed for ``clause``.
    """
    op = normalize_operator(operator)
    if op not in allowed:
        raise InvalidOperatorError(operator, clause, sorted(allowed))
    return op


def assert_direction(direction: str) -> str:
    direction_upper = str(direction).strip().upper()
    if direction_upper not in DIRECTIONS:
        raise InvalidDirectionError(direction)
    return direction_upper
