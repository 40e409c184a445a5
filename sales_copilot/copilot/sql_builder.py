"""
SQL Builder: renders a QueryIntent as one SELECT statement plus its ordered
bind parameters.

Table names, join conditions and field expressions come from the catalog.
Filter values never reach the SQL text; each one becomes a ``?`` placeholder
that the executor maps to a named bind.  The builder never raises on odd
intents and leaves correctness checks to the database.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from sales_copilot.catalog.loader import SchemaCatalog, load_catalog
from sales_copilot.copilot.intent import QueryIntent, SelectedColumn, Sorting
from sales_copilot.core.logging import get_logger

logger = get_logger(__name__)

_MASK_RE = re.compile(r"'([^']*)'")

# Checked in order; the first match names the synthesized column.
_EXPRESSION_ALIASES: list[tuple[str, str]] = [
    ('"Q"', "quarter"),
    ("IW", "week"),
    ("YYYY-MM-DD", "date"),
    ("YYYY-MM", "month"),
    ("YYYY", "year"),
]
_KEYWORD_ALIASES = ("quarter", "week", "month", "year")


@dataclass
class BuiltQuery:
    sql: str
    params: list[Any] = field(default_factory=list)


def expression_alias(expression: str) -> str:
    """Derive a column alias for a GROUP BY date expression."""
    m = _MASK_RE.search(expression)
    if m:
        mask = m.group(1)
        for token, alias in _EXPRESSION_ALIASES:
            if token in mask:
                return alias
    upper = expression.upper()
    for keyword in _KEYWORD_ALIASES:
        if keyword.upper() in upper:
            return keyword
    return "group_field"


def order_by_is_valid(
    sorting: Sorting | None,
    selected: list[SelectedColumn],
    group_by: list[str],
) -> bool:
    """Whether ORDER BY *sorting* is legal for this aggregation shape.

    Legal when nothing is aggregated, when the sort field is itself an
    expression, or when the field's column appears in a GROUP BY item.
    """
    if sorting is None:
        return False
    if not any(c.aggregate for c in selected):
        return True
    if "(" in sorting.field:
        return True
    base = sorting.field.split(".")[-1]
    return any(base in item for item in group_by)


def select_list(intent: QueryIntent) -> list[SelectedColumn]:
    """Selected columns plus every GROUP BY item missing from them."""
    columns = list(intent.selected_columns)

    for item in intent.group_by:
        if "(" in item:
            continue
        table, _, column = item.rpartition(".")
        already = any(
            not c.aggregate and (c.column == column or c.qualified == item)
            for c in columns
        )
        if not already:
            columns.append(SelectedColumn(table=table, column=column, alias=column))

    for item in intent.group_by:
        if "(" not in item:
            continue
        alias = expression_alias(item)
        if any(c.alias == alias for c in columns):
            continue
        columns.append(SelectedColumn(table="", column=item, alias=alias))

    return columns


def build_sql(intent: QueryIntent, catalog: SchemaCatalog | None = None) -> BuiltQuery:
    """Render *intent* as ``(sql, params)``; one ``?`` per filter, in filter order."""
    catalog = catalog or load_catalog()
    main = catalog.get_table(intent.main_table)

    columns = select_list(intent)
    sql_lines: list[str] = []
    if columns:
        sql_lines.append("SELECT " + ", ".join(c.to_sql() for c in columns))
    else:
        sql_lines.append("SELECT *")

    sql_lines.append(f"FROM {main.storage_name} AS {main.name}")

    if intent.join_table:
        join_table = catalog.get_table(intent.join_table)
        path = catalog.find_join(main.name, join_table.name)
        if path is None:
            logger.warning("No join path from %s to %s; skipping join", main.name, join_table.name)
        else:
            sql_lines.append(f"LEFT JOIN {join_table.storage_name} AS {join_table.name} ON {path.on}")

    if intent.filters:
        sql_lines.append("WHERE " + " AND ".join(f.to_sql() for f in intent.filters))

    if intent.group_by:
        sql_lines.append("GROUP BY " + ", ".join(intent.group_by))

    if order_by_is_valid(intent.sorting, intent.selected_columns, intent.group_by):
        sql_lines.append(f"ORDER BY {intent.sorting.field} {intent.sorting.direction}")

    if intent.limit is not None:
        sql_lines.append(f"LIMIT {intent.limit}")

    sql = "\n".join(sql_lines)
    logger.info("Generated SQL:\n%s", sql)
    return BuiltQuery(sql=sql, params=intent.params)
