"""
Unit tests -- SQL executor: placeholder binding, serialisation, failure handling.
Uses an in-memory SQLite engine behind a stub pool; no Postgres needed.
"""
import datetime
import decimal
from contextlib import contextmanager

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError, ProgrammingError

from sales_copilot.db.executor import (
    QueryResult,
    SalesDatabase,
    _serialise_value,
    bind_placeholders,
    describe_sql,
)


def _register_now(dbapi_conn, _record):
    dbapi_conn.create_function("NOW", 0, lambda: "2024-03-15 09:00:00")


class SQLitePool:
    def __init__(self):
        self.engine = create_engine("sqlite://")
        event.listen(self.engine, "connect", _register_now)
        self.discarded = 0

    @contextmanager
    def readonly_connection(self):
        with self.engine.connect() as conn:
            yield conn

    def discard(self):
        self.discarded += 1


class FailingPool:
    def __init__(self, exc):
        self.exc = exc
        self.discarded = 0

    @property
    def engine(self):
        raise self.exc

    @contextmanager
    def readonly_connection(self):
        raise self.exc
        yield  # pragma: no cover

    def discard(self):
        self.discarded += 1


def _connection_error():
    return OperationalError("SELECT 1", {}, Exception("connection refused"))


# ── bind_placeholders ────────────────────────────────────

def test_bind_placeholders_in_order():
    sql, binds = bind_placeholders("SELECT * FROM t WHERE a = ? AND b >= ?", ["x", "2024-01-01"])
    assert sql == "SELECT * FROM t WHERE a = :p0 AND b >= :p1"
    assert binds == {"p0": "x", "p1": "2024-01-01"}


def test_bind_placeholders_without_params():
    sql, binds = bind_placeholders("SELECT 1", None)
    assert sql == "SELECT 1"
    assert binds == {}


# ── helpers ──────────────────────────────────────────────

def test_serialise_value():
    assert _serialise_value(decimal.Decimal("12.50")) == 12.5
    assert _serialise_value(datetime.date(2024, 1, 5)) == "2024-01-05"
    assert _serialise_value(datetime.datetime(2024, 1, 5, 8, 30)) == "2024-01-05T08:30:00"
    assert _serialise_value("Perth") == "Perth"


@pytest.mark.parametrize("sql, explanation", [
    ("SELECT * FROM sales_data", "This query retrieves data from the database"),
    ("SELECT city, SUM(quantity) FROM sales_data GROUP BY city", "This query aggregates data from the database"),
    ("SELECT * FROM sales_data ORDER BY sales_date DESC", "This query retrieves data from the database and sorts the results"),
])
def test_describe_sql(sql, explanation):
    assert describe_sql(sql) == explanation


def test_query_result_to_dict():
    result = QueryResult(success=True, data=[{"n": 1}, {"n": 2}], explanation="ok")
    assert result.to_dict() == {"success": True, "data": [{"n": 1}, {"n": 2}], "rowCount": 2, "explanation": "ok"}
    assert "error" in QueryResult(success=False, error="boom").to_dict()


# ── SalesDatabase.execute ────────────────────────────────

def test_execute_returns_rows():
    db = SalesDatabase(SQLitePool())
    result = db.execute("SELECT ? AS city, 2.5 AS price, ? AS qty", ["Perth", 3])
    assert result.success is True
    assert result.data == [{"city": "Perth", "price": 2.5, "qty": 3}]
    assert result.row_count == 1


def test_execute_empty_sql():
    result = SalesDatabase(SQLitePool()).execute("   ")
    assert result.success is False
    assert result.error == "No SQL query provided"
    assert result.explanation == "Failed to generate SQL query"


def test_execute_bad_sql_is_reported_not_raised():
    result = SalesDatabase(SQLitePool()).execute("SELECT * FROM no_such_table")
    assert result.success is False
    assert "no_such_table" in result.error
    assert result.explanation == "An error occurred while executing your query."


def test_connection_error_discards_pool():
    pool = FailingPool(_connection_error())
    result = SalesDatabase(pool).execute("SELECT 1")
    assert result.success is False
    assert result.error == "connection refused"
    assert pool.discarded == 1


def test_statement_error_keeps_pool():
    pool = FailingPool(ProgrammingError("SELECT x", {}, Exception("syntax error")))
    result = SalesDatabase(pool).execute("SELECT x")
    assert result.success is False
    assert pool.discarded == 0


# ── health_check ─────────────────────────────────────────

def test_health_check_ok():
    status = SalesDatabase(SQLitePool()).health_check()
    assert status == {"connected": True, "timestamp": "2024-03-15 09:00:00"}


def test_health_check_failure_discards_pool():
    pool = FailingPool(_connection_error())
    status = SalesDatabase(pool).health_check()
    assert status == {"connected": False, "error": "connection refused"}
    assert pool.discarded == 1
