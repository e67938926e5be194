"""Unit tests for the SQL grammars (both dialects)."""

from __future__ import annotations

import datetime

import pytest

from brickorm.compile.base import Grammar
from brickorm.compile.postgres import PostgresGrammar
from brickorm.compile.registry import GrammarFactory
from brickorm.compile.sqlite import SQLiteGrammar
from brickorm.errors import GrammarNotFoundError, InvalidArgumentError
from brickorm.query.builder import QueryBuilder
from brickorm.schema.query_state import QueryState
from brickorm.testing import RecordingAdapter


def _pg(table: str = "users") -> QueryBuilder:
    return QueryBuilder(table, grammar=PostgresGrammar())


def _sq(table: str = "users") -> QueryBuilder:
    return QueryBuilder(table, grammar=SQLiteGrammar())


def test_default_select_qualifies_star():
    assert _sq().to_sql() == 'SELECT "users".* FROM "users"'


def test_wrap_splits_dotted_identifiers():
    grammar = SQLiteGrammar()
    assert grammar.wrap("users.id") == '"users"."id"'
    assert grammar.wrap("users.*") == '"users".*'
    assert grammar.wrap("*") == "*"
    assert grammar.wrap('"already"') == '"already"'


def test_quote_identifier_escapes_quotes():
    assert SQLiteGrammar().quote_identifier('we"ird') == '"we""ird"'


def test_placeholders_per_dialect():
    sq = _sq().where("age", 18, ">")
    pg = _pg().where("age", 18, ">")
    assert sq.to_sql() == 'SELECT "users".* FROM "users" WHERE "age" > ?'
    assert pg.to_sql() == 'SELECT "users".* FROM "users" WHERE "age" > %s'


def test_select_alias_and_function_columns():
    sql = _sq().select(["name AS label", "COUNT(*) AS total", "users.email"]).to_sql()
    assert sql == 'SELECT "name" AS "label", COUNT(*) AS "total", "users"."email" FROM "users"'


def test_bare_columns_qualified_when_joined():
    sql = (
        _sq()
        .select(["id", "posts.title"])
        .join("posts", "posts.user_id", "=", "users.id")
        .to_sql()
    )
    assert sql == (
        'SELECT "users"."id", "posts"."title" FROM "users" '
        'JOIN "posts" ON "posts"."user_id" = "users"."id"'
    )


def test_join_kinds():
    sql = (
        _sq()
        .left_join("profiles", "profiles.user_id", "=", "users.id")
        .right_join("teams", "teams.id", "=", "users.team_id")
        .to_sql()
    )
    assert 'LEFT JOIN "profiles" ON "profiles"."user_id" = "users"."id"' in sql
    assert 'RIGHT JOIN "teams" ON "teams"."id" = "users"."team_id"' in sql


def test_clause_order():
    sql = (
        _sq("orders")
        .select(["customer_id", "COUNT(*) AS n"])
        .where("status", "paid")
        .group_by("customer_id")
        .having("COUNT(*)", 2, ">")
        .order_by("customer_id", "desc")
        .limit(10)
        .offset(20)
        .to_sql()
    )
    assert sql == (
        'SELECT "customer_id", COUNT(*) AS "n" FROM "orders" WHERE "status" = ? '
        'GROUP BY "customer_id" HAVING COUNT(*) > ? ORDER BY "customer_id" DESC '
        "LIMIT 10 OFFSET 20"
    )


def test_sqlite_offset_without_limit():
    assert _sq().offset(5).to_sql().endswith("LIMIT -1 OFFSET 5")
    assert _pg().offset(5).to_sql().endswith(" OFFSET 5")
    assert "LIMIT" not in _pg().offset(5).to_sql()


def test_distinct():
    assert _sq().select("role").distinct().to_sql() == 'SELECT DISTINCT "role" FROM "users"'


def test_sqlite_prepare_value():
    grammar = SQLiteGrammar()
    moment = datetime.datetime(2024, 1, 2, 3, 4, 5)
    assert grammar.prepare_bindings([True, False, moment, {"a": 1}, [1, 2], None, 3]) == [
        1,
        0,
        "2024-01-02T03:04:05",
        '{"a": 1}',
        "[1, 2]",
        None,
        3,
    ]


def test_postgres_prepare_value_keeps_booleans():
    grammar = PostgresGrammar()
    assert grammar.prepare_bindings([True, datetime.date(2024, 5, 1), {"k": "v"}]) == [
        True,
        "2024-05-01",
        '{"k": "v"}',
    ]


def test_compile_insert_sorts_columns():
    sql = SQLiteGrammar().compile_insert("users", [{"name": "a", "age": 1}, {"age": 2, "name": "b"}])
    assert sql == 'INSERT INTO "users" ("age", "name") VALUES (?, ?), (?, ?)'


def test_compile_insert_rejects_mismatched_rows():
    with pytest.raises(InvalidArgumentError):
        SQLiteGrammar().compile_insert("users", [{"name": "a"}, {"email": "b"}])


def test_postgres_insert_returning():
    sql = PostgresGrammar().compile_insert("users", [{"name": "a"}], returning="id")
    assert sql == 'INSERT INTO "users" ("name") VALUES (%s) RETURNING "id"'


def test_compile_update_and_delete():
    grammar = SQLiteGrammar()
    state = _sq().where("id", 3).state
    assert grammar.compile_update(state, {"name": "x", "age": 4}) == (
        'UPDATE "users" SET "name" = ?, "age" = ? WHERE "id" = ?'
    )
    assert grammar.compile_delete(state) == 'DELETE FROM "users" WHERE "id" = ?'
    assert grammar.compile_delete(QueryState(table="users")) == 'DELETE FROM "users"'


def test_compile_grouped_count_wraps_subquery():
    state = _sq("orders").select("customer_id").group_by("customer_id").state
    sql = SQLiteGrammar().compile_grouped_count(state, "aggregate")
    assert sql == (
        'SELECT COUNT(*) AS "aggregate" FROM (SELECT "customer_id" FROM "orders" '
        'GROUP BY "customer_id") AS "temp_table"'
    )


def test_to_raw_sql_interpolates_for_debugging():
    raw = _sq().where("name", "O'Brien").where("active", True).to_raw_sql()
    assert raw == """SELECT "users".* FROM "users" WHERE "name" = 'O''Brien' AND "active" = 1"""
    pg_raw = _pg().where("active", True).where("age", None).to_raw_sql()
    assert pg_raw == 'SELECT "users".* FROM "users" WHERE "active" = TRUE AND "age" IS NULL'


def test_factory_creates_registered_grammars():
    assert isinstance(GrammarFactory.create("sqlite"), SQLiteGrammar)
    assert isinstance(GrammarFactory.create("postgres"), PostgresGrammar)
    assert {"sqlite", "postgres"} <= set(GrammarFactory.dialects())


def test_factory_resolves_aliases_to_shared_instances():
    assert GrammarFactory.create("PostgreSQL") is GrammarFactory.create("postgres")
    assert GrammarFactory.create(" pg ") is GrammarFactory.create("postgres")
    assert GrammarFactory.create("sqlite3") is GrammarFactory.create("sqlite")
    assert GrammarFactory.canonical("postgresql") == "postgres"


def test_factory_resolve_passes_instances_through():
    grammar = PostgresGrammar()
    assert GrammarFactory.resolve(grammar) is grammar
    assert isinstance(GrammarFactory.resolve("sqlite"), SQLiteGrammar)


def test_factory_unknown_dialect():
    with pytest.raises(GrammarNotFoundError) as exc_info:
        GrammarFactory.create("oracle")
    assert "oracle" in str(exc_info.value)
    assert exc_info.value.name == "oracle"


def test_factory_register_decorator():
    @GrammarFactory.register("mysql_test", "mariadb_test")
    class MySQLGrammar(SQLiteGrammar):
        def quote_identifier(self, name: str) -> str:
            return f"`{name}`"

    try:
        grammar: Grammar = GrammarFactory.create("mariadb_test")
        assert isinstance(grammar, MySQLGrammar)
        assert grammar.wrap("users.id") == "`users`.`id`"
        assert QueryBuilder("users", grammar="mysql_test").to_sql() == "SELECT `users`.* FROM `users`"
    finally:
        GrammarFactory.unregister("mysql_test")
    assert "mysql_test" not in GrammarFactory.dialects()
    with pytest.raises(GrammarNotFoundError):
        GrammarFactory.create("mariadb_test")


def test_builder_and_adapter_accept_dialect_names():
    builder = QueryBuilder("users", grammar="postgresql").where("id", 1)
    assert builder.grammar is GrammarFactory.create("postgres")
    assert builder.to_sql() == 'SELECT "users".* FROM "users" WHERE "id" = %s'
    assert RecordingAdapter(grammar="pg").grammar is GrammarFactory.create("postgres")
