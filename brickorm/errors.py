"""Custom exception hierarchy for brickORM.

All public errors inherit from :class:`BrickORMError` so callers can catch
the base class for any brickORM-specific failure, or one of the narrower
subclasses below.

Taxonomy
--------
``ValidationError`` and subclasses
    Raised synchronously by builder mutators before any I/O.  Always a
    caller bug; never retried.
``QueryError``
    The adapter failed while executing a statement.  Carries the exact SQL
    text and bindings; the driver exception is chained as ``__cause__``.
``ModelNotFoundError``
    Expected-outcome error raised by ``find_or_fail`` / ``first_or_fail``.
``TransactionError``
    A transaction failed.  ``was_rolled_back`` tells whether the adapter
    rolled it back.
"""
from __future__ import annotations

from typing import Any


class BrickORMError(Exception):
    """Base exception for all brickORM errors."""


class ValidationError(BrickORMError):
    """Raised when a builder call is rejected before reaching the database.

    Args:
        message: Human-readable description.
        code: Machine-readable error code (e.g. ``INVALID_IDENTIFIER``).
        details: Extra context about the rejected input.
    """

    def __init__(
        self,
        message: str,
        code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details: dict[str, Any] = details or {}


class InvalidIdentifierError(ValidationError):
    """Raised when a table, column or alias name fails the identifier grammar."""

    def __init__(self, value: str, what: str) -> None:
        super().__init__(
            f"Invalid {what}: {value!r}",
            code="INVALID_IDENTIFIER",
            details={"value": value, "what": what},
        )


class InvalidOperatorError(ValidationError):
    """Raised when an operator is not in the allow-list for its clause."""

    def __init__(self, operator: str, clause: str, allowed: list[str]) -> None:
        super().__init__(
            f"Invalid operator for {clause}: {operator!r}",
            code="INVALID_OPERATOR",
            details={"operator": operator, "clause": clause, "allowed": allowed},
        )


class InvalidDirectionError(ValidationError):
    """Raised when an ORDER BY direction is neither ``ASC`` nor ``DESC``."""

    def __init__(self, direction: str) -> None:
        super().__init__(
            f"Invalid direction for order_by: {direction!r}",
            code="INVALID_DIRECTION",
            details={"direction": direction},
        )


class InvalidArgumentError(ValidationError):
    """Raised when a value has the wrong shape for the requested operation."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code="INVALID_ARGUMENT", details=details or {})


class AggregateGroupingError(ValidationError):
    """Raised when a scalar aggregate is combined with GROUP BY / HAVING.

    ``count()`` is exempt: it counts the groups instead.
    """

    def __init__(self, method: str, sql: str) -> None:
        super().__init__(
            f"Cannot use {method}() with group_by() or having(): a single "
            "value cannot represent multiple groups. Use get() to retrieve "
            "grouped results.",
            code="AGGREGATE_GROUPING_CONFLICT",
            details={"method": method, "sql": sql},
        )


class QueryError(BrickORMError):
    """Raised when the adapter fails to execute a compiled statement.

    Args:
        message: Human-readable description.
        sql: The SQL text that was sent to the adapter.
        bindings: The prepared bindings sent alongside ``sql``.
    """

    def __init__(
        self,
        message: str,
        sql: str,
        bindings: list[Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.sql = sql
        self.bindings = list(bindings or [])

    def __str__(self) -> str:
        return f"{self.args[0]}\nSQL: {self.sql}\nBindings: {self.bindings}"


class ModelNotFoundError(BrickORMError):
    """Raised by ``find_or_fail()`` / ``first_or_fail()`` when nothing matched."""

    def __init__(self, model: str, id: Any = None) -> None:
        suffix = f" with ID: {id}" if id is not None else ""
        super().__init__(f"No query results for model [{model}]{suffix}.")
        self.model = model
        self.id = id


class TransactionError(BrickORMError):
    """Raised when a transaction fails.

    Args:
        message: Human-readable description.
        was_rolled_back: Whether the adapter rolled the transaction back.
    """

    def __init__(self, message: str, was_rolled_back: bool = True) -> None:
        super().__init__(message)
        self.was_rolled_back = was_rolled_back

    def __str__(self) -> str:
        return f"{self.args[0]} (rolled back: {self.was_rolled_back})"


class DatabaseNotInitializedError(BrickORMError):
    """Raised when a query runs before ``DatabaseManager().set_database()``
    or before an adapter has opened its connection."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Database adapter not initialized. "
            "Call DatabaseManager().set_database(adapter) first."
        )


class RelationNotFoundError(BrickORMError):
    """Raised when a model does not define the requested relation."""

    def __init__(self, relation: str, model: str) -> None:
        super().__init__(f"Relation [{relation}] not found on model [{model}].")
        self.relation = relation
        self.model = model


class UnknownMorphTypeError(BrickORMError):
    """Raised when a polymorphic discriminator has no registered factory."""

    def __init__(self, morph_type: str, known: list[str]) -> None:
        super().__init__(
            f"Unknown morph type {morph_type!r}. Registered types: {known}."
        )
        self.morph_type = morph_type
        self.known = known


class UnsupportedOperationError(BrickORMError):
    """Raised when a relation cannot support a builder operation."""


class GrammarNotFoundError(BrickORMError):
    """Raised when no grammar is registered for a dialect name."""

    def __init__(self, name: str, registered: list[str]) -> None:
        super().__init__(
            f"Unsupported dialect: {name!r}. Registered dialects: {registered}."
        )
        self.name = name
