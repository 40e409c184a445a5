"""
Read-only SQL executor for generated sales queries.

``SalesDatabase.execute``:
  1. Maps each ``?`` placeholder, left to right, to a named bind (``:p0``, ``:p1`` ...)
  2. Runs the statement in a READ ONLY transaction (Postgres-enforced)
  3. Converts Decimal/date/datetime to JSON-safe Python types
  4. Reports failures as ``{"success": False, "error": ...}`` instead of raising
"""
from __future__ import annotations

import datetime
import decimal
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError

from sales_copilot.core.logging import get_logger
from sales_copilot.db.connection import DatabasePool

logger = get_logger(__name__)


def _serialise_value(val: Any) -> Any:
    """Convert DB types to JSON-serialisable Python types."""
    if isinstance(val, decimal.Decimal):
        return float(val)
    if isinstance(val, (datetime.date, datetime.datetime)):
        return val.isoformat()
    if isinstance(val, datetime.timedelta):
        return str(val)
    return val


def bind_placeholders(sql: str, params: list[Any] | None) -> tuple[str, dict[str, Any]]:
    """Rewrite ``?`` markers as ``:p0, :p1 ...`` and build the bind dict."""
    params = list(params or [])
    parts = sql.split("?")
    if len(parts) - 1 != len(params):
        logger.warning("Placeholder count %d does not match %d params", len(parts) - 1, len(params))
    out = [parts[0]]
    for i, part in enumerate(parts[1:]):
        out.append(f":p{i}")
        out.append(part)
    binds = {f"p{i}": value for i, value in enumerate(params)}
    return "".join(out), binds


def describe_sql(sql: str) -> str:
    lower = sql.lower()
    explanation = "This query retrieves data from the database"
    if "group by" in lower:
        explanation = "This query aggregates data from the database"
    if "order by" in lower:
        explanation += " and sorts the results"
    return explanation


@dataclass
class QueryResult:
    success: bool
    data: list[dict[str, Any]] = field(default_factory=list)
    explanation: str = ""
    error: str | None = None

    @property
    def row_count(self) -> int:
        return len(self.data)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "data": self.data,
            "rowCount": self.row_count,
            "explanation": self.explanation,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


def _is_connection_error(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


class SalesDatabase:
    """Query-execution collaborator; holds a reference to the app's pool."""

    def __init__(self, pool: DatabasePool):
        self.pool = pool

    def execute(self, sql: str, params: list[Any] | None = None) -> QueryResult:
        if not sql or not sql.strip():
            return QueryResult(
                success=False,
                error="No SQL query provided",
                explanation="Failed to generate SQL query",
            )

        bound_sql, binds = bind_placeholders(sql, params)
        logger.info("Executing SQL (%d chars, %d params)", len(sql), len(binds))
        try:
            with self.pool.readonly_connection() as conn:
                result = conn.execute(text(bound_sql), binds)
                columns = list(result.keys())
                rows = [
                    {col: _serialise_value(val) for col, val in zip(columns, row)}
                    for row in result.fetchall()
                ]
        except SQLAlchemyError as exc:
            if _is_connection_error(exc):
                self.pool.discard()
            logger.exception("SQL execution failed")
            return QueryResult(
                success=False,
                error=str(getattr(exc, "orig", None) or exc),
                explanation="An error occurred while executing your query.",
            )

        logger.info("Returned %d rows", len(rows))
        return QueryResult(success=True, data=rows, explanation=describe_sql(sql))

    def health_check(self) -> dict[str, Any]:
        try:
            with self.pool.engine.connect() as conn:
                now = conn.execute(text("SELECT NOW()")).scalar()
        except SQLAlchemyError as exc:
            self.pool.discard()
            logger.warning("Database health check failed: %s", exc)
            return {"connected": False, "error": str(getattr(exc, "orig", None) or exc)}
        return {"connected": True, "timestamp": _serialise_value(now)}
