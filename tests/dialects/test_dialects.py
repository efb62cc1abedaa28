import pytest

from personnel.dialects import PostgresDialect, SQLiteDialect


def test_sqlite_placeholders_and_quoting():
    dialect = SQLiteDialect()
    assert dialect.parameter_placeholder() == "?"
    assert dialect.quote_identifier('odd"name') == '"odd""name"'
    assert dialect.format_table("employees") == '"employees"'


@pytest.mark.parametrize(
    "limit, offset, expected",
    [
        (10, None, "LIMIT 10"),
        (10, 5, "LIMIT 10 OFFSET 5"),
        (None, 5, "LIMIT -1 OFFSET 5"),
        (None, None, ""),
    ],
)
def test_sqlite_limit_clause(limit, offset, expected):
    assert SQLiteDialect().limit_clause(limit, offset) == expected


def test_sqlite_insert_has_no_returning():
    sql = SQLiteDialect().insert_sql("projects", ["name", "status"], "id")
    assert sql == 'INSERT INTO "projects" ("name", "status") VALUES (?, ?)'


def test_postgres_placeholders_and_schema_tables():
    dialect = PostgresDialect()
    assert dialect.parameter_placeholder() == "%s"
    assert dialect.format_table("hr.employees") == '"hr"."employees"'
    assert dialect.limit_clause(None, 5) == "OFFSET 5"
    assert dialect.capabilities.supports_returning


def test_postgres_insert_returns_primary_key():
    sql = PostgresDialect().insert_sql("projects", ["name"], "id")
    assert sql == 'INSERT INTO "projects" ("name") VALUES (%s) RETURNING "id"'


def test_auto_primary_keys():
    assert SQLiteDialect().auto_primary_key("id") == '"id" INTEGER PRIMARY KEY AUTOINCREMENT'
    assert PostgresDialect().auto_primary_key("id") == '"id" SERIAL PRIMARY KEY'
