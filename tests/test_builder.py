"""Unit tests for QueryBuilder: validation, compilation and terminal operations."""

from __future__ import annotations

import pytest

from brickorm.compile.sqlite import SQLiteGrammar
from brickorm.errors import (
    AggregateGroupingError,
    DatabaseNotInitializedError,
    InvalidArgumentError,
    InvalidDirectionError,
    InvalidIdentifierError,
    InvalidOperatorError,
    ModelNotFoundError,
    QueryError,
)
from brickorm.query.builder import QueryBuilder
from brickorm.schema.query_state import RawExpression
from brickorm.testing import RecordingAdapter
from tests.fixtures import PublishedPost, PublishedScope, User


def _sq(table: str = "users") -> QueryBuilder:
    return QueryBuilder(table, grammar=SQLiteGrammar())


BAD_IDENTIFIERS = [
    "name; DROP TABLE users",
    "na me",
    "1abc",
    "users.",
    "a-b",
    "name--",
    "",
]


# ---------------------------------------------------------------------------
# WHERE
# ---------------------------------------------------------------------------


def test_age_role_scenario():
    query = _sq().where("age", 18, ">=").where("age", 65, "<=").or_where("role", "admin")
    assert query.to_sql() == (
        'SELECT "users".* FROM "users" WHERE "age" >= ? AND "age" <= ? OR "role" = ?'
    )
    assert query.bindings() == [18, 65, "admin"]


def test_where_none_becomes_is_null():
    query = _sq().where("deleted_at", None)
    assert query.to_sql() == 'SELECT "users".* FROM "users" WHERE "deleted_at" IS NULL'
    assert query.bindings() == []


@pytest.mark.parametrize("operator", ["!=", "<>"])
def test_where_none_not_equal_becomes_is_not_null(operator):
    query = _sq().where("deleted_at", None, operator)
    assert query.to_sql().endswith('WHERE "deleted_at" IS NOT NULL')
    assert query.bindings() == []


def test_where_none_with_ordering_operator_rejected():
    with pytest.raises(InvalidArgumentError):
        _sq().where("age", None, ">")


def test_where_in_empty_is_always_false():
    query = _sq().where_in("id", [])
    assert query.to_sql().endswith("WHERE 1 = 0")
    assert query.bindings() == []


def test_where_not_in_empty_is_always_true():
    query = _sq().where_not_in("id", [])
    assert query.to_sql().endswith("WHERE 1 = 1")
    assert query.bindings() == []


def test_where_in_and_not_in():
    query = _sq().where_in("id", [1, 2, 3]).or_where_not_in("role", ("a", "b"))
    assert query.to_sql().endswith('WHERE "id" IN (?, ?, ?) OR "role" NOT IN (?, ?)')
    assert query.bindings() == [1, 2, 3, "a", "b"]


def test_where_list_operators():
    query = _sq().where("id", [1, 2], "in").where("age", [18, 30], "BETWEEN")
    assert query.to_sql().endswith('WHERE "id" IN (?, ?) AND "age" BETWEEN ? AND ?')
    assert query.bindings() == [1, 2, 18, 30]


def test_where_not_between():
    query = _sq().where_not_between("age", [1, 9]).or_where_between("score", [5, 6])
    assert query.to_sql().endswith('WHERE "age" NOT BETWEEN ? AND ? OR "score" BETWEEN ? AND ?')


@pytest.mark.parametrize("values", [[1], [1, 2, 3], []])
def test_between_requires_two_values(values):
    with pytest.raises(InvalidArgumentError):
        _sq().where_between("age", values)


def test_list_value_with_scalar_operator_rejected():
    with pytest.raises(InvalidArgumentError):
        _sq().where("id", [1, 2])


def test_in_operator_requires_list():
    with pytest.raises(InvalidArgumentError):
        _sq().where("id", "1,2", "IN")


@pytest.mark.parametrize("column", BAD_IDENTIFIERS)
def test_where_rejects_bad_identifiers(column):
    with pytest.raises(InvalidIdentifierError):
        _sq().where(column, 1)


@pytest.mark.parametrize("column", BAD_IDENTIFIERS)
def test_every_column_mutator_rejects_bad_identifiers(column):
    mutators = [
        lambda q: q.where_in(column, [1]),
        lambda q: q.where_null(column),
        lambda q: q.where_between(column, [1, 2]),
        lambda q: q.order_by(column),
        lambda q: q.group_by(column),
        lambda q: q.having(column, 1),
        lambda q: q.join("posts", column, "=", "users.id"),
        lambda q: q.select([column]),
        lambda q: q.where_column(column, "users.id"),
    ]
    for mutate in mutators:
        with pytest.raises(InvalidIdentifierError):
            mutate(_sq())


@pytest.mark.parametrize("operator", ["==", "LIKEX", "; DROP", "ILIKE", "REGEXP"])
def test_where_rejects_unknown_operators(operator):
    with pytest.raises(InvalidOperatorError):
        _sq().where("name", "x", operator)


def test_join_rejects_like_and_in():
    with pytest.raises(InvalidOperatorError):
        _sq().join("posts", "posts.user_id", "LIKE", "users.id")
    with pytest.raises(InvalidOperatorError):
        _sq().join("posts", "posts.user_id", "IN", "users.id")


def test_having_rejects_like():
    with pytest.raises(InvalidOperatorError):
        _sq().group_by("role").having("role", "a%", "LIKE")


@pytest.mark.parametrize("direction", ["UP", "ASC;", "descending", ""])
def test_order_by_rejects_bad_direction(direction):
    with pytest.raises(InvalidDirectionError):
        _sq().order_by("name", direction)


def test_operator_is_normalized():
    assert _sq().where("name", "a%", "not   like").to_sql().endswith('"name" NOT LIKE ?')


def test_invalid_boolean_rejected():
    with pytest.raises(InvalidArgumentError):
        _sq().where("name", "x", "=", "XOR")


def test_where_group_nests_and_merges_bindings():
    query = (
        _sq("orders")
        .where("status", "paid")
        .where_group(lambda q: q.where("total", 10, ">").or_where("vip", True))
        .or_where_group(
            lambda q: q.where("region", "eu").where_group(
                lambda inner: inner.where("a", 1).or_where("b", 2)
            )
        )
    )
    assert query.to_sql() == (
        'SELECT "orders".* FROM "orders" WHERE "status" = ? AND ("total" > ? OR "vip" = ?) '
        'OR ("region" = ? AND ("a" = ? OR "b" = ?))'
    )
    assert query.bindings() == ["paid", 10, True, "eu", 1, 2]


def test_empty_where_group_is_ignored():
    assert _sq().where_group(lambda q: None).to_sql() == 'SELECT "users".* FROM "users"'


def test_binding_order_where_then_having():
    query = (
        _sq("orders")
        .where("status", "paid")
        .group_by("customer_id")
        .having("COUNT(*)", 2, ">")
        .where_group(lambda q: q.where("total", 10, ">"))
        .having_between("SUM(total)", 100, 500)
        .where("region", "eu")
    )
    assert query.bindings() == ["paid", 10, "eu", 2, 100, 500]
    sql = query.to_sql()
    assert sql.index("WHERE") < sql.index("GROUP BY") < sql.index("HAVING")
    assert sql.count("?") == len(query.bindings())


def test_where_exists_merges_subquery_bindings():
    posts = _sq("posts").where_column("posts.user_id", "users.id").where("posts.published", True)
    query = _sq().where("active", True).where_exists(posts)
    assert query.to_sql() == (
        'SELECT "users".* FROM "users" WHERE "active" = ? AND EXISTS '
        '(SELECT "posts".* FROM "posts" WHERE "posts"."user_id" = "users"."id" '
        'AND "posts"."published" = ?)'
    )
    assert query.bindings() == [True, True]


def test_where_not_exists():
    sql = _sq().where_not_exists(_sq("bans")).to_sql()
    assert sql.endswith('WHERE NOT EXISTS (SELECT "bans".* FROM "bans")')


def test_where_raw_keeps_caller_bindings():
    query = _sq().where("active", True).or_where_raw("LOWER(name) = ?", ["bob"])
    assert query.to_sql().endswith('WHERE "active" = ? OR LOWER(name) = ?')
    assert query.bindings() == [True, "bob"]


def test_where_column_list_form():
    sql = _sq().where_column([["first_name", "last_name"], ["updated_at", ">", "created_at"]]).to_sql()
    assert sql.endswith('WHERE "first_name" = "last_name" AND "updated_at" > "created_at"')


def test_where_column_rejects_bad_condition_shape():
    with pytest.raises(InvalidArgumentError):
        _sq().where_column([["only_one"]])


# ---------------------------------------------------------------------------
# SELECT / GROUP BY / HAVING / ORDER BY / paging
# ---------------------------------------------------------------------------


def test_count_having_scenario():
    query = _sq("orders").group_by(["customer_id"]).having("COUNT(*)", 3, ">=")
    assert query.to_sql() == (
        'SELECT "orders".* FROM "orders" GROUP BY "customer_id" HAVING COUNT(*) >= ?'
    )
    assert query.bindings() == [3]


def test_having_variants():
    query = (
        _sq("orders")
        .group_by_column("customer_id")
        .having_null("region")
        .or_having("COUNT(DISTINCT product_id)", 2, ">")
        .having_raw("SUM(total) > ?", [10])
        .having_not_null("MAX(total)")
    )
    assert query.to_sql().endswith(
        'HAVING "region" IS NULL OR COUNT(DISTINCT product_id) > ? AND SUM(total) > ? '
        "AND MAX(total) IS NOT NULL"
    )
    assert query.bindings() == [2, 10]


def test_having_rejects_arbitrary_expressions():
    with pytest.raises(InvalidIdentifierError):
        _sq("orders").having("SUM(total) + 1", 3)


def test_select_star_is_qualified_and_raw_expressions_kept():
    query = _sq().select(["*", RawExpression(value="1 AS one")])
    assert query.to_sql() == 'SELECT "users".*, 1 AS one FROM "users"'
    assert _sq().select_raw("COUNT(*) AS n").to_sql() == 'SELECT COUNT(*) AS n FROM "users"'


def test_select_requires_columns():
    with pytest.raises(InvalidArgumentError):
        _sq().select([])


def test_order_by_appends():
    sql = _sq().order_by("name").order_by("id", "desc").to_sql()
    assert sql.endswith('ORDER BY "name" ASC, "id" DESC')


@pytest.mark.parametrize("value", [-1, 1.5, "10", True])
def test_limit_and_offset_require_non_negative_ints(value):
    with pytest.raises(InvalidArgumentError):
        _sq().limit(value)
    with pytest.raises(InvalidArgumentError):
        _sq().offset(value)


def test_with_relations_validates_segments():
    query = _sq().with_relations(["posts.comments", "profile", "posts.comments"])
    assert query.state.eager == ("posts.comments", "profile")
    with pytest.raises(InvalidIdentifierError):
        _sq().with_relations("posts..comments")


# ---------------------------------------------------------------------------
# Immutability, cast and scopes
# ---------------------------------------------------------------------------


def test_mutators_return_same_builder_with_new_state():
    query = _sq()
    before = query.state
    assert query.where("id", 1) is query
    assert query.state is not before
    assert before.wheres == ()


def test_cast_round_trip_is_identical():
    original = (
        _sq()
        .select(["id", "name"])
        .join("posts", "posts.user_id", "=", "users.id")
        .where("age", 18, ">")
        .group_by("users.id")
        .having("COUNT(*)", 1, ">")
        .order_by("name")
        .limit(5)
        .offset(10)
        .with_relations("posts")
        .with_global_scope("active", lambda q: q.where("active", True))
    )
    cast = original.cast(User)
    assert cast.to_sql() == original.to_sql()
    assert cast.bindings() == original.bindings()
    assert cast.factory is User
    assert original.factory is dict
    cast.where("extra", 1)
    assert "extra" not in original.to_sql()


def test_clone_is_independent():
    query = _sq().where("a", 1)
    copy = query.clone().where("b", 2)
    assert '"b"' not in query.to_sql()
    assert '"b"' in copy.to_sql()


def test_global_scope_applied_lazily():
    query = _sq().with_global_scope("active", lambda q: q.where("active", True))
    assert query.state.wheres == ()
    assert query.to_sql().endswith('WHERE "active" = ?')
    assert query.state.wheres == ()


def test_global_scope_registration_is_idempotent_per_name():
    query = (
        _sq()
        .with_global_scope("tenant", lambda q: q.where("tenant_id", 1))
        .with_global_scope("tenant", lambda q: q.where("tenant_id", 2))
    )
    assert query.bindings() == [2]


def test_without_global_scope_by_name_class_and_all(db):
    query = PublishedPost.new_query()
    assert '"posts"."published" = ?' in query.to_sql()
    assert "published" not in query.clone().without_global_scope(PublishedScope).to_sql()
    assert "published" not in query.clone().without_global_scope("PublishedScope").to_sql()
    assert "published" not in query.clone().without_global_scopes().to_sql()


def test_scopes_run_after_own_predicates(db):
    query = PublishedPost.new_query().where("views", 10, ">")
    assert query.to_sql().endswith('WHERE "views" > ? AND "posts"."published" = ?')


def test_grammar_requires_database_when_not_given():
    with pytest.raises(DatabaseNotInitializedError):
        QueryBuilder("users").where("id", 1)


# ---------------------------------------------------------------------------
# Terminal operations
# ---------------------------------------------------------------------------


@pytest.mark.anyio
class TestReads:
    async def test_first_does_not_leak_limit(self, db: RecordingAdapter) -> None:
        query = QueryBuilder("users").where("active", True)
        await query.first()
        assert db.last_sql.endswith("LIMIT 1")
        await query.get()
        assert "LIMIT" not in db.last_sql

    async def test_first_keeps_explicit_limit(self, db: RecordingAdapter) -> None:
        query = QueryBuilder("users").limit(5)
        await query.first()
        assert db.last_sql.endswith("LIMIT 1")
        await query.get()
        assert db.last_sql.endswith("LIMIT 5")

    async def test_get_hydrates_with_factory(self, db: RecordingAdapter) -> None:
        db.set_responses({'FROM "users"': [{"id": 1, "name": "ann"}]})
        users = await User.query().get()
        assert isinstance(users[0], User)
        assert users[0].exists is True
        assert users[0].get_dirty() == {}

    async def test_find_uses_qualified_primary_key(self, db: RecordingAdapter) -> None:
        db.set_responses({'FROM "users"': [{"id": 9}]})
        user = await QueryBuilder("users").find(9)
        assert user == {"id": 9}
        assert db.last_sql == 'SELECT "users".* FROM "users" WHERE "users"."id" = ? LIMIT 1'
        assert db.last_bindings == [9]

    async def test_find_or_fail(self, db: RecordingAdapter) -> None:
        with pytest.raises(ModelNotFoundError) as exc_info:
            await QueryBuilder("users").find_or_fail(404)
        assert exc_info.value.id == 404
        with pytest.raises(ModelNotFoundError):
            await QueryBuilder("users").first_or_fail()

    async def test_exists_and_not_exist(self, db: RecordingAdapter) -> None:
        assert await QueryBuilder("users").exists() is False
        assert await QueryBuilder("users").not_exist() is True
        db.set_responses({'FROM "users"': [{"id": 1}]})
        assert await QueryBuilder("users").exists() is True
        assert db.last_sql.endswith("LIMIT 1")

    async def test_bindings_prepared_at_execution(self, db: RecordingAdapter) -> None:
        query = QueryBuilder("users").where("active", True)
        assert query.bindings() == [True]
        await query.get()
        assert db.last_bindings == [1]

    async def test_adapter_errors_wrapped_in_query_error(self, db: RecordingAdapter) -> None:
        db.fail_on = 'FROM "users"'
        with pytest.raises(QueryError) as exc_info:
            await QueryBuilder("users").where("id", 3).get()
        error = exc_info.value
        assert error.sql == 'SELECT "users".* FROM "users" WHERE "id" = ?'
        assert error.bindings == [3]
        assert isinstance(error.__cause__, RuntimeError)

    async def test_scopes_applied_on_get(self, db: RecordingAdapter) -> None:
        await PublishedPost.query().get()
        assert db.last_sql.endswith('WHERE "posts"."published" = ?')
        assert db.last_bindings == [1]


@pytest.mark.anyio
class TestAggregates:
    async def test_count(self, db: RecordingAdapter) -> None:
        db.set_responses({"COUNT(*)": [{"aggregate": 7}]})
        total = await QueryBuilder("users").where("active", True).order_by("name").count()
        assert total == 7
        assert db.last_sql == 'SELECT COUNT(*) AS "aggregate" FROM "users" WHERE "active" = ?'

    async def test_count_leaves_projection_untouched(self, db: RecordingAdapter) -> None:
        query = QueryBuilder("users").select(["id", "name"])
        await query.count()
        assert query.to_sql() == 'SELECT "id", "name" FROM "users"'

    async def test_count_on_grouped_query_counts_groups(self, db: RecordingAdapter) -> None:
        db.set_responses({"temp_table": [{"aggregate": 4}]})
        query = QueryBuilder("orders").group_by(["customer_id"]).having("COUNT(*)", 3, ">=")
        assert await query.count() == 4
        assert db.last_sql == (
            'SELECT COUNT(*) AS "aggregate" FROM (SELECT "orders".* FROM "orders" '
            'GROUP BY "customer_id" HAVING COUNT(*) >= ?) AS "temp_table"'
        )
        assert db.last_bindings == [3]

    @pytest.mark.parametrize("method", ["sum", "avg", "min", "max"])
    async def test_scalar_aggregates_reject_grouping(
        self, db: RecordingAdapter, method: str
    ) -> None:
        query = QueryBuilder("orders").group_by(["customer_id"]).having("COUNT(*)", 3, ">=")
        with pytest.raises(AggregateGroupingError) as exc_info:
            await getattr(query, method)("total")
        assert exc_info.value.details["method"] == method
        assert db.select_count == 0

    async def test_sum_avg_min_max(self, db: RecordingAdapter) -> None:
        db.set_responses(
            {
                "SUM(": [{"aggregate": 12}],
                "AVG(": [{"aggregate": "2.5"}],
                "MIN(": [{"aggregate": 1}],
                "MAX(": [{"aggregate": 9}],
            }
        )
        query = QueryBuilder("orders")
        assert await query.sum("total") == 12
        assert db.last_sql == 'SELECT SUM("total") AS "aggregate" FROM "orders"'
        assert await query.avg("total") == 2.5
        assert await query.min("total") == 1
        assert await query.max("total") == 9

    async def test_sum_of_nothing_is_zero(self, db: RecordingAdapter) -> None:
        db.set_responses({"SUM(": [{"aggregate": None}]})
        assert await QueryBuilder("orders").sum("total") == 0
        assert await QueryBuilder("orders").avg("total") is None


@pytest.mark.anyio
class TestWrites:
    async def test_update_binds_values_then_wheres(self, db: RecordingAdapter) -> None:
        affected = await QueryBuilder("users").where("id", 5).update({"active": False, "name": "x"})
        assert affected == 1
        assert db.last_sql == 'UPDATE "users" SET "active" = ?, "name" = ? WHERE "id" = ?'
        assert db.last_bindings == [0, "x", 5]
        assert db.statements[-1].table == "users"

    async def test_update_with_nothing_is_noop(self, db: RecordingAdapter) -> None:
        assert await QueryBuilder("users").update({}) == 0
        assert db.statements == []

    async def test_delete(self, db: RecordingAdapter) -> None:
        await QueryBuilder("users").where_in("id", [1, 2]).delete()
        assert db.last_sql == 'DELETE FROM "users" WHERE "id" IN (?, ?)'
        assert db.last_bindings == [1, 2]

    async def test_insert_returns_generated_key(self, db: RecordingAdapter) -> None:
        db.next_insert_id = 42
        key = await QueryBuilder("users").insert({"name": "ann", "age": 30})
        assert key == 42
        assert db.last_sql == 'INSERT INTO "users" ("age", "name") VALUES (?, ?)'

    async def test_insert_failure_reports_compiled_statement(self, db: RecordingAdapter) -> None:
        db.fail_on = "INSERT"
        with pytest.raises(QueryError) as exc_info:
            await QueryBuilder("users").insert({"name": "ann", "active": True})
        error = exc_info.value
        assert error.sql == 'INSERT INTO "users" ("active", "name") VALUES (?, ?)'
        assert error.bindings == [1, "ann"]
        assert isinstance(error.__cause__, RuntimeError)

    async def test_insert_rejects_empty_and_bad_columns(self, db: RecordingAdapter) -> None:
        with pytest.raises(InvalidArgumentError):
            await QueryBuilder("users").insert({})
        with pytest.raises(InvalidIdentifierError):
            await QueryBuilder("users").insert({"bad col": 1})

    async def test_insert_all(self, db: RecordingAdapter) -> None:
        assert await QueryBuilder("users").insert_all([]) is True
        assert db.statements == []
        await QueryBuilder("users").insert_all([{"name": "a", "age": 1}, {"age": 2, "name": "b"}])
        assert db.last_sql == 'INSERT INTO "users" ("age", "name") VALUES (?, ?), (?, ?)'
        assert db.last_bindings == [1, "a", 2, "b"]
