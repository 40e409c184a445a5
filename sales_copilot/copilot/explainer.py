"""
Explanation layer.

Two jobs:
  - describe what a generated query does in plain language (template based,
    used by the NL-to-SQL engine)
  - make sure a chat answer actually cites the returned numbers, asking a
    cheaper LLM for a short grounded answer when it does not
"""
from __future__ import annotations

import json
import math
import re
from typing import Any

from sales_copilot.catalog.loader import SchemaCatalog, load_catalog
from sales_copilot.copilot.intent import COUNT_ALL, QueryIntent
from sales_copilot.copilot.sql_builder import order_by_is_valid
from sales_copilot.core.config import get_settings
from sales_copilot.core.logging import get_logger

logger = get_logger(__name__)

SAMPLE_ROWS = 5
_LOWER_RE = re.compile(r"^LOWER\((.+)\)$")

_EXPLAIN_SYSTEM_PROMPT = (
    "You are a helpful data analyst assistant. Your task is to provide direct, factual "
    "answers based on database query results. Keep your answers concise (1-3 sentences) "
    "and focus on directly answering the question with specific numbers from the data."
)


# ── Query description ────────────────────────────────────

def _aggregate_phrase(column: str, aggregate: str) -> str:
    if column == COUNT_ALL:
        return "the total count of records"
    if aggregate == "SUM":
        return f"the sum of {column}"
    if aggregate == "AVG":
        return f"the average {column}"
    return f"{aggregate} of {column}"


def _bare(field: str) -> str:
    """``sales_data.city`` / ``LOWER(sales_data.city)`` -> ``city``; other expressions unchanged."""
    m = _LOWER_RE.match(field)
    if m:
        field = m.group(1)
    if "(" in field:
        return field
    return field.split(".")[-1]


def describe_intent(intent: QueryIntent, catalog: SchemaCatalog | None = None) -> str:
    """One-paragraph plain-language description of the query *intent* renders to."""
    catalog = catalog or load_catalog()
    text = f"This query retrieves data from the {catalog.get_table(intent.main_table).description}"
    if intent.join_table:
        text += f" and joins it with the {catalog.get_table(intent.join_table).description}"

    aggregates = [c for c in intent.selected_columns if c.aggregate]
    plain = [c for c in intent.selected_columns if not c.aggregate]
    if aggregates:
        text += ". It calculates " + ", ".join(_aggregate_phrase(c.column, c.aggregate) for c in aggregates)
    if plain:
        text += " and includes " + ", ".join(c.alias for c in plain)

    if intent.filters:
        text += ". The data is filtered to include only records where " + " and ".join(
            f"{_bare(f.field)} {f.operator} {f.value}" for f in intent.filters
        )

    if intent.group_by:
        text += ". The results are grouped by " + ", ".join(_bare(g) for g in intent.group_by)

    if order_by_is_valid(intent.sorting, intent.selected_columns, intent.group_by):
        text += f". The results are ordered by {_bare(intent.sorting.field)} in {intent.sorting.direction.lower()} order"

    if intent.limit is not None:
        text += f". Only the first {intent.limit} results will be returned"

    return text + "."


# ── Grounding check ──────────────────────────────────────

def _decimal_string(value: Any) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, str):
        try:
            float(value)
        except ValueError:
            return None
        return value.strip()
    return None


def needs_data_explanation(text: str, rows: list[dict[str, Any]]) -> bool:
    """True when *text* cites none of the numeric values in *rows*."""
    if not rows or not text:
        return False
    for row in rows:
        for value in row.values():
            as_text = _decimal_string(value)
            if as_text and as_text in text:
                return False
    return True


def _sample(rows: list[dict[str, Any]]) -> str:
    sample = json.dumps(rows[:SAMPLE_ROWS], indent=2, default=str)
    if len(rows) > SAMPLE_ROWS:
        sample += f"\n... and {len(rows) - SAMPLE_ROWS} more rows"
    return sample


async def explain_data(
    original: str,
    rows: list[dict[str, Any]],
    question: str,
    provider: str | None = None,
) -> str:
    """Append a 1-3 sentence grounded answer to *original*.

    Uses the cheaper explanation model.  Falls back to *original* unchanged
    if the call fails.
    """
    from sales_copilot.copilot.llm_client import complete

    settings = get_settings()
    prompt = (
        f'I asked: "{question}"\n\n'
        "You ran a database query and got these results:\n"
        f"```\n{_sample(rows)}\n```\n\n"
        "Please provide a direct answer to my question in 1-3 sentences based on this data. "
        "Include specific numbers from the data in your answer. Don't mention that you're "
        "looking at query results - just answer my question directly."
    )
    try:
        response = await complete(
            model=settings.explanation_model,
            messages=[{"role": "user", "content": prompt}],
            system_prompt=_EXPLAIN_SYSTEM_PROMPT,
            temperature=settings.chat_temperature,
            max_tokens=settings.explanation_max_tokens,
            provider=provider,
        )
    except Exception as exc:
        logger.warning("Data explanation failed, keeping original answer: %s", exc)
        return original

    explanation = response.text.strip()
    if not explanation:
        return original
    logger.info("Generated data explanation (%d chars)", len(explanation))
    return f"{original}\n\n{explanation}" if original else explanation
