"""SQLite dialect grammar."""
from __future__ import annotations

import datetime
import json
from typing import Any

from brickorm.compile.base import Grammar
from brickorm.compile.registry import GrammarFactory
from brickorm.schema.query_state import QueryState


@GrammarFactory.register("sqlite", "sqlite3")
class SQLiteGrammar(Grammar):
    """Renders query state as SQLite-flavoured parameterized SQL.

    Parameter style: ``?`` – compatible with Python's built-in ``sqlite3``
    positional-parameter execution (``cursor.execute(sql, list)``).

    SQLite has no boolean, date or JSON column types, so booleans become
    ``0``/``1``, dates become ISO-8601 text and dicts/lists become JSON text.
    """

    @property
    def dialect_name(self) -> str:
        return "sqlite"

    def parameter(self, value: Any = None) -> str:
        return "?"

    def prepare_value(self, value: Any) -> Any:
        if isinstance(value, bool):
            return 1 if value else 0
        if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
            return value.isoformat()
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return value

    def compile_limit(self, state: QueryState) -> str:
        # SQLite rejects OFFSET without LIMIT; -1 means "no limit".
        if state.limit is None and state.offset is not None:
            return "LIMIT -1"
        return super().compile_limit(state)

    def format_value_for_debug(self, value: Any) -> str:
        if isinstance(value, bool):
            return "1" if value else "0"
        return super().format_value_for_debug(value)
