"""PostgreSQL dialect grammar."""
from __future__ import annotations

import datetime
import json
from collections.abc import Mapping, Sequence
from typing import Any

from brickorm.compile.base import Grammar
from brickorm.compile.registry import GrammarFactory


@GrammarFactory.register("postgres", "postgresql", "pg")
class PostgresGrammar(Grammar):
    """Renders query state as PostgreSQL-flavoured parameterized SQL.

    Parameter style: ``%s`` – compatible with ``psycopg2`` and ``psycopg``
    positional-parameter execution.  Booleans are native in PostgreSQL and
    are passed through untouched.
    """

    @property
    def dialect_name(self) -> str:
        return "postgres"

    def parameter(self, value: Any = None) -> str:
        return "%s"

    def prepare_value(self, value: Any) -> Any:
        if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
            return value.isoformat()
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return value

    def compile_insert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        returning: str | None = None,
    ) -> str:
        sql = super().compile_insert(table, rows)
        if returning is None:
            return sql
        return f"{sql} RETURNING {self.wrap(returning)}"
