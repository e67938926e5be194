"""brickORM – Fluent SQL building and N+1-free relationship loading.

Build Queries. Load Relations in Batches.

Public API
----------
``Model``
    Active-record base class with the relationship DSL (``has_many``,
    ``belongs_to_many``, ``morph_to`` ...).

``QueryBuilder``
    Validated fluent builder compiled by a dialect ``Grammar``.

``DatabaseManager``
    Singleton holding the adapter, runtime ``OrmConfig``, transactions and
    the change feed behind ``QueryBuilder.watch()``.

Re-exported types
-----------------
Every relation class, ``Pivot``, ``Scope``, ``SQLiteAdapter``, grammars and
all error classes.

Extensibility
-------------
New dialect grammars can be registered via::

    from brickorm.compile.registry import GrammarFactory

    @GrammarFactory.register("mysql", "mariadb")
    class MySQLGrammar(Grammar):
        ...

After registration, adapters, test doubles and standalone builders accept
``grammar="mysql"`` (or an alias) wherever they accept a grammar.
"""

from __future__ import annotations

from brickorm.compile.base import Grammar
from brickorm.compile.postgres import PostgresGrammar
from brickorm.compile.registry import GrammarFactory
from brickorm.compile.sqlite import SQLiteGrammar
from brickorm.config import OrmConfig
from brickorm.database.adapter import DatabaseAdapter, TransactionContext
from brickorm.database.changes import ChangeFeed
from brickorm.database.manager import DatabaseManager
from brickorm.database.sqlite import SQLiteAdapter
from brickorm.eager import EagerLoader, parse_eager_paths
from brickorm.errors import (
    AggregateGroupingError,
    BrickORMError,
    DatabaseNotInitializedError,
    GrammarNotFoundError,
    InvalidArgumentError,
    InvalidDirectionError,
    InvalidIdentifierError,
    InvalidOperatorError,
    ModelNotFoundError,
    QueryError,
    RelationNotFoundError,
    TransactionError,
    UnknownMorphTypeError,
    UnsupportedOperationError,
    ValidationError,
)
from brickorm.model import Model
from brickorm.pivot import GenericPivot, Pivot
from brickorm.query.builder import QueryBuilder
from brickorm.query.scope import Scope
from brickorm.relations import (
    BelongsTo,
    BelongsToMany,
    HasMany,
    HasManyThrough,
    HasOne,
    MorphMany,
    MorphOne,
    MorphTo,
    MorphToMany,
    MorphTypeMap,
    Relation,
)
from brickorm.schema.query_state import QueryState, RawExpression

__all__ = [
    # Records
    "Model",
    "Pivot",
    "GenericPivot",
    "Scope",
    # Query building
    "QueryBuilder",
    "QueryState",
    "RawExpression",
    # Relations
    "Relation",
    "HasOne",
    "HasMany",
    "BelongsTo",
    "BelongsToMany",
    "HasManyThrough",
    "MorphOne",
    "MorphMany",
    "MorphTo",
    "MorphToMany",
    "MorphTypeMap",
    "EagerLoader",
    "parse_eager_paths",
    # Compilation
    "Grammar",
    "GrammarFactory",
    "SQLiteGrammar",
    "PostgresGrammar",
    # Database
    "DatabaseAdapter",
    "TransactionContext",
    "DatabaseManager",
    "ChangeFeed",
    "SQLiteAdapter",
    "OrmConfig",
    # Errors
    "BrickORMError",
    "ValidationError",
    "InvalidIdentifierError",
    "InvalidOperatorError",
    "InvalidDirectionError",
    "InvalidArgumentError",
    "AggregateGroupingError",
    "QueryError",
    "ModelNotFoundError",
    "TransactionError",
    "DatabaseNotInitializedError",
    "RelationNotFoundError",
    "UnknownMorphTypeError",
    "UnsupportedOperationError",
    "GrammarNotFoundError",
]
