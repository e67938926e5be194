"""brickORM compilation layer: query state → dialect SQL."""
from brickorm.compile.base import Grammar
from brickorm.compile.postgres import PostgresGrammar
from brickorm.compile.registry import GrammarFactory
from brickorm.compile.sqlite import SQLiteGrammar

__all__ = [
    "Grammar",
    "GrammarFactory",
    "PostgresGrammar",
    "SQLiteGrammar",
]
