"""
Standalone NL-to-SQL engine: analyzer + builder + description, without an LLM.

Used by ``POST /api/sql``, by the orchestrator when a query tool call
arrives without SQL, and by the mock LLM provider.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Protocol

from sales_copilot.catalog.loader import SchemaNotFoundError
from sales_copilot.copilot.analyzer import analyze
from sales_copilot.copilot.explainer import describe_intent
from sales_copilot.copilot.sql_builder import build_sql
from sales_copilot.core.logging import get_logger

logger = get_logger(__name__)


class HealthChecked(Protocol):
    def health_check(self) -> dict[str, Any]: ...


def generate_sql_query(question: str, db: HealthChecked, today: date | None = None) -> dict[str, Any]:
    """Translate *question* into ``{sql, params, explanation, success, error?}``.

    The database is health-checked first so callers can degrade to a
    text-only answer when it is unreachable.
    """
    status = db.health_check()
    if not status.get("connected"):
        logger.warning("Skipping SQL generation: database unreachable (%s)", status.get("error"))
        return {
            "sql": "",
            "params": [],
            "explanation": "Database connection failed",
            "error": "Unable to connect to the database",
            "success": False,
        }

    try:
        intent = analyze(question, today=today)
        built = build_sql(intent)
    except SchemaNotFoundError as exc:
        logger.exception("SQL generation failed")
        return {
            "sql": "",
            "params": [],
            "explanation": "Failed to generate a SQL query",
            "error": str(exc),
            "success": False,
        }

    return {
        "sql": built.sql,
        "params": built.params,
        "explanation": describe_intent(intent),
        "success": True,
    }
