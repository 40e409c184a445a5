"""
Analyzer -- converts a natural-language sales question into a QueryIntent.

Pure lexical matching against the schema catalog; no model involved.  Each
step is an ordered rule table evaluated against the lower-cased question,
so single rules can be tested in isolation:

  table selection  → join inference → column selection → grouping
  → filters (non-time, then time) → sorting → limit
"""
from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Callable, NamedTuple

from sales_copilot.catalog.loader import (
    Column,
    SchemaCatalog,
    TableSchema,
    load_catalog,
)
from sales_copilot.copilot.intent import (
    COUNT_ALL,
    Filter,
    QueryIntent,
    SelectedColumn,
    Sorting,
)
from sales_copilot.core.logging import get_logger

logger = get_logger(__name__)

Predicate = Callable[[str], bool]


def _has_any(*phrases: str) -> Predicate:
    return lambda q: any(p in q for p in phrases)


# ── Table selection / join inference (first match wins) ──

DEFAULT_TABLE = "sales_data"

TABLE_RULES: list[tuple[Predicate, str]] = [
    (lambda q: "product" in q and "material" in q, "product_design"),
    (lambda q: "vehicle" in q or ("delivery" in q and "plate" in q), "vehicle_master"),
]

# Only evaluated when the main table is sales_data.
JOIN_RULES: list[tuple[Predicate, str]] = [
    (_has_any("material", "product price", "product cost"), "product_design"),
    (lambda q: "vehicle" in q and "delivery plate" not in q, "vehicle_master"),
]

# ── Aggregation vocabulary ───────────────────────────────

# count/sum/min/max need word boundaries: "country", "summary", "minutes"
_AGGREGATION_RE = re.compile(r"total|average|\bsum\b|\bcount\b|\bmin(?:imum)?\b|\bmax(?:imum)?\b|group by")
_COUNT_RE = re.compile(r"how many|\bcount\b|number of")
_SUM_RE = re.compile(r"total|\bsum\b")
_AVG_RE = re.compile(r"average|\bavg\b")

TIME_SERIES_PHRASES = ("trend", "over time", "time series", "timeseries")


class AggregateRule(NamedTuple):
    function: str
    trigger: re.Pattern[str]
    alias_prefix: str
    defaults: dict[str, tuple[str, ...]]  # table -> first-present fallback columns


AGGREGATE_RULES: list[AggregateRule] = [
    AggregateRule("SUM", _SUM_RE, "total", {"sales_data": ("quantity", "total_cost", "total_product_cost")}),
    AggregateRule("AVG", _AVG_RE, "avg", {"sales_data": ("unit_price", "total_cost", "delivery_duration_mins")}),
]

DEFAULT_PROJECTION: dict[str, tuple[str, ...]] = {
    "sales_data": ("sales_date", "product_name", "quantity", "unit_price", "total_cost"),
}

IMPLICIT_MEASURE = "quantity"

# ── Grouping ─────────────────────────────────────────────

# PostgreSQL TO_CHAR masks; results are display-ready strings.
TIME_BUCKETS: dict[str, str] = {
    "day": "YYYY-MM-DD",
    "week": 'IYYY-"W"IW',
    "month": "YYYY-MM",
    "quarter": 'YYYY-"Q"Q',
    "year": "YYYY",
}


class GroupingRule(NamedTuple):
    phrases: tuple[str, ...]
    column: str | None = None
    bucket: str | None = None


GROUPING_RULES: list[GroupingRule] = [
    GroupingRule(("by country",), column="country"),
    GroupingRule(("by region",), column="region"),
    GroupingRule(("by city",), column="city"),
    GroupingRule(("by store",), column="store_name"),
    GroupingRule(("by product", "by product_name", "sales by product"), column="product_name"),
    GroupingRule(("by month", "monthly"), bucket="month"),
    GroupingRule(("by year", "yearly"), bucket="year"),
    GroupingRule(("by quarter", "quarterly"), bucket="quarter"),
    GroupingRule(("by week", "weekly"), bucket="week"),
    GroupingRule(("by day", "daily"), bucket="day"),
]

TIME_BUCKET_PHRASES = tuple(p for r in GROUPING_RULES if r.bucket for p in r.phrases)

# ── Filters ──────────────────────────────────────────────

_DATE_TOKEN_RE = re.compile(r"\b\d{4}[-/]\d{1,2}[-/]\d{1,2}\b")
_LOCATION_RE = re.compile(r"(in|for|at|from)\s+([a-z\s]+)(country|region|city)")
_LOCATION_NON_VALUES = frozenset({"each", "every", "all", "any", "per", "the", "a"})


def _filter_patterns(col_name: str) -> list[tuple[re.Pattern[str], str, int, Callable]]:
    """(regex, operator, value group, value converter) for one column name."""
    c = re.escape(col_name.lower())
    return [
        (re.compile(rf"(where|with|for|if)\s+{c}\s+(is|=|equals?)\s+([\w\s]+)"), "=", 3, str.strip),
        (re.compile(rf"{c}\s+(contains|like|has)\s+([\w\s]+)"), "LIKE", 2, lambda v: f"%{v.strip()}%"),
        (re.compile(rf"{c}\s+(>|greater than|more than)\s+(\d+(?:\.\d+)?)"), ">", 2, _to_number),
        (re.compile(rf"{c}\s+(<|less than|under)\s+(\d+(?:\.\d+)?)"), "<", 2, _to_number),
    ]


def _to_number(raw: str) -> float:
    return float(raw)


class ShortcutRule(NamedTuple):
    matches: Predicate
    column: str
    value: str


# First match wins.
SHORTCUT_RULES: list[ShortcutRule] = [
    ShortcutRule(_has_any("instore", "in store"), "sales_type", "instore"),
    ShortcutRule(
        lambda q: "delivery" in q and "delivery fee" not in q and "delivery plate" not in q,
        "sales_type",
        "delivery",
    ),
]

# ── Sorting / limit ──────────────────────────────────────

_SORT_PHRASES = ("order by", "sort by", "sorted by")
_DESC_WORDS = ("descending", "desc", "highest", "most")
_LIMIT_RE = re.compile(r"(top|first|limit)\s+(\d+)")
RECENT_LIMIT = 10


# ── Step implementations ─────────────────────────────────

def select_main_table(q: str) -> str:
    for matches, table in TABLE_RULES:
        if matches(q):
            return table
    return DEFAULT_TABLE


def select_join_table(q: str, main_table: str) -> str | None:
    if main_table != DEFAULT_TABLE:
        return None
    for matches, table in JOIN_RULES:
        if matches(q):
            return table
    return None


def is_sales_by_product(q: str) -> bool:
    """Broad special case: the literal phrase, or "sales" and "product" anywhere."""
    return "sales by product" in q or ("sales" in q and "product" in q)


def mentions_time_series(q: str) -> bool:
    return any(p in q for p in TIME_SERIES_PHRASES + TIME_BUCKET_PHRASES)


def needs_aggregation(q: str) -> bool:
    return bool(_AGGREGATION_RE.search(q)) or is_sales_by_product(q) or mentions_time_series(q)


class _ColumnList:
    """Accumulates SELECT items, ignoring repeats of (table, column, aggregate)."""

    def __init__(self) -> None:
        self.items: list[SelectedColumn] = []
        self._seen: set[tuple[str, str, str | None]] = set()

    def add(self, item: SelectedColumn) -> None:
        key = (item.table, item.column.lower(), item.aggregate)
        if key in self._seen:
            return
        self._seen.add(key)
        self.items.append(item)

    def has_aggregate(self, function: str | None = None) -> bool:
        return any(c.aggregate and (function is None or c.aggregate == function) for c in self.items)

    def is_aggregated(self, table: str, column: str) -> bool:
        return any(
            c.aggregate and c.table == table and c.column.lower() == column.lower()
            for c in self.items
        )


def _aggregate_item(table: TableSchema, col: Column, rule: AggregateRule) -> SelectedColumn:
    return SelectedColumn(
        table=table.name,
        column=col.db_name,
        alias=f"{rule.alias_prefix}_{col.name}",
        aggregate=rule.function,
    )


def select_columns(
    q: str,
    main: TableSchema,
    join: TableSchema | None,
    implicit_measure: bool = False,
) -> list[SelectedColumn]:
    columns = _ColumnList()

    # 1. record count
    if _COUNT_RE.search(q):
        columns.add(SelectedColumn(table=main.name, column=COUNT_ALL, alias="record_count", aggregate="COUNT"))

    # 2-3. SUM / AVG on mentioned numeric columns, else table defaults
    for rule in AGGREGATE_RULES:
        if not rule.trigger.search(q):
            continue
        for col in main.numeric_columns:
            if col.mentioned_in(q):
                columns.add(_aggregate_item(main, col, rule))
        if columns.has_aggregate(rule.function):
            continue
        for name in rule.defaults.get(main.name, ()):
            col = main.column(name)
            if col is not None:
                columns.add(_aggregate_item(main, col, rule))
                break

    # 4. plain columns mentioned by name or description
    for col in main.business_columns:
        if col.mentioned_in(q) and not columns.is_aggregated(main.name, col.db_name):
            columns.add(SelectedColumn(table=main.name, column=col.db_name, alias=col.name))
    if join is not None:
        for col in join.business_columns:
            if col.mentioned_in(q):
                columns.add(SelectedColumn(table=join.name, column=col.db_name, alias=f"{join.name}_{col.name}"))

    # 5. implicit measure for "sales by product" / time-series questions
    if implicit_measure and not columns.has_aggregate():
        col = main.column(IMPLICIT_MEASURE)
        if col is not None:
            columns.add(SelectedColumn(
                table=main.name, column=col.db_name, alias=f"total_{col.name}", aggregate="SUM",
            ))

    # 6. default projection
    if not columns.items:
        names = DEFAULT_PROJECTION.get(main.name)
        if names is None:
            names = tuple(c.name for c in main.business_columns)
        for name in names:
            col = main.column(name)
            if col is not None:
                columns.add(SelectedColumn(table=main.name, column=col.db_name, alias=col.name))

    return columns.items


def time_bucket_expression(table: TableSchema, bucket: str) -> str | None:
    date_col = table.date_column
    if date_col is None:
        return None
    return f"TO_CHAR({table.name}.{date_col.db_name}, '{TIME_BUCKETS[bucket]}')"


def infer_grouping(q: str, selected: list[SelectedColumn], main: TableSchema) -> list[str]:
    if not any(c.aggregate for c in selected):
        return []

    for rule in GROUPING_RULES:
        if not any(p in q for p in rule.phrases):
            continue
        if rule.column is not None:
            col = main.column(rule.column)
            if col is not None:
                return [f"{main.name}.{col.db_name}"]
        else:
            expr = time_bucket_expression(main, rule.bucket)
            if expr is not None:
                return [expr]

    if any(p in q for p in TIME_SERIES_PHRASES):
        expr = time_bucket_expression(main, "month")
        if expr is not None:
            return [expr]

    return [c.qualified for c in selected if not c.aggregate]


def filter_field(table: TableSchema, col: Column) -> str:
    """Qualified column for a WHERE clause; text columns compare lower-cased."""
    qualified = f"{table.name}.{col.db_name}"
    return f"LOWER({qualified})" if col.type == "text" else qualified


def _column_filters(q: str, table: TableSchema) -> list[Filter]:
    filters: list[Filter] = []
    for col in table.columns:
        for pattern, op, group, convert in _filter_patterns(col.name):
            m = pattern.search(q)
            if m:
                filters.append(Filter(field=filter_field(table, col), operator=op, value=convert(m.group(group))))
    return filters


def infer_filters(q: str, main: TableSchema, join: TableSchema | None) -> list[Filter]:
    """Non-time filters, in encounter order."""
    filters = _column_filters(q, main)
    if join is not None:
        filters.extend(_column_filters(q, join))

    for rule in SHORTCUT_RULES:
        if rule.matches(q):
            col = main.column(rule.column)
            if col is not None:
                filters.append(Filter(field=filter_field(main, col), operator="=", value=rule.value))
            break

    m = _LOCATION_RE.search(q)
    if m:
        value = m.group(2).strip()
        col = main.column(m.group(3))
        if col is not None and value and value not in _LOCATION_NON_VALUES:
            filters.append(Filter(field=filter_field(main, col), operator="=", value=value))

    return filters


def _month_start(d: date) -> date:
    return d.replace(day=1)


def infer_time_filters(q: str, main: TableSchema, today: date | None = None) -> list[Filter]:
    date_col = main.date_column
    if date_col is None:
        return []
    field = f"{main.name}.{date_col.db_name}"
    today = today or date.today()
    filters: list[Filter] = []

    dates = [d.replace("/", "-") for d in _DATE_TOKEN_RE.findall(q)]
    if dates:
        filters.append(Filter(field=field, operator=">=", value=dates[0]))
    if len(dates) >= 2:
        filters.append(Filter(field=field, operator="<=", value=dates[1]))

    if "last month" in q or "previous month" in q:
        last_month_end = _month_start(today) - timedelta(days=1)
        filters.append(Filter(field=field, operator=">=", value=_month_start(last_month_end).isoformat()))
        filters.append(Filter(field=field, operator="<=", value=last_month_end.isoformat()))
    elif "this month" in q or "current month" in q:
        filters.append(Filter(field=field, operator=">=", value=_month_start(today).isoformat()))
    elif "last year" in q or "previous year" in q:
        filters.append(Filter(field=field, operator=">=", value=f"{today.year - 1}-01-01"))
        filters.append(Filter(field=field, operator="<=", value=f"{today.year - 1}-12-31"))
    elif "this year" in q or "current year" in q:
        filters.append(Filter(field=field, operator=">=", value=f"{today.year}-01-01"))

    return filters


def _sort_requested(q: str, alias: str) -> bool:
    alias = alias.lower()
    return any(f"{p} {alias}" in q for p in _SORT_PHRASES)


def infer_sorting(
    q: str,
    selected: list[SelectedColumn],
    main: TableSchema,
    group_by: list[str],
) -> Sorting | None:
    direction = "DESC" if any(w in q for w in _DESC_WORDS) else "ASC"

    if any(p in q for p in _SORT_PHRASES):
        # plain columns take precedence over aggregates
        for col in sorted(selected, key=lambda c: c.aggregate is not None):
            if _sort_requested(q, col.alias):
                if col.aggregate and col.column != COUNT_ALL:
                    return Sorting(field=f"{col.aggregate}({col.qualified})", direction=direction)
                return Sorting(field=col.qualified, direction=direction)

    date_col = main.date_column
    if date_col is None or "oldest" in q:
        return None
    date_field = f"{main.name}.{date_col.db_name}"
    if not any(c.aggregate for c in selected):
        return Sorting(field=date_field, direction="DESC")
    for item in group_by:
        if date_field in item:
            return Sorting(field=item, direction="DESC")
    return None


def infer_limit(q: str) -> int | None:
    m = _LIMIT_RE.search(q)
    if m:
        return int(m.group(2))
    if "recent" in q:
        return RECENT_LIMIT
    return None


# ── Public API ───────────────────────────────────────────

def analyze(
    question: str,
    today: date | None = None,
    catalog: SchemaCatalog | None = None,
) -> QueryIntent:
    """Map *question* to a QueryIntent.

    Parameters
    ----------
    question : str
        Free-text question from the user.
    today : date, optional
        Reference date for relative periods ("last month"); wall clock if omitted.
    catalog : SchemaCatalog, optional
        Defaults to the packaged catalog.

    Raises
    ------
    SchemaNotFoundError
        If an inferred table is missing from the catalog.
    """
    catalog = catalog or load_catalog()
    q = question.lower().strip()

    main = catalog.get_table(select_main_table(q))
    join_name = select_join_table(q, main.name)
    join = catalog.get_table(join_name) if join_name else None

    by_product = is_sales_by_product(q)
    selected = select_columns(q, main, join, implicit_measure=by_product or mentions_time_series(q))

    group_by = infer_grouping(q, selected, main)
    if by_product and not group_by and any(c.aggregate for c in selected):
        col = main.column("product_name")
        if col is not None:
            group_by.append(f"{main.name}.{col.db_name}")

    filters = infer_filters(q, main, join) + infer_time_filters(q, main, today)

    intent = QueryIntent(
        main_table=main.name,
        join_table=join.name if join else None,
        selected_columns=selected,
        is_aggregated=needs_aggregation(q),
        group_by=group_by,
        filters=filters,
        sorting=infer_sorting(q, selected, main, group_by),
        limit=infer_limit(q),
    )
    logger.info("Analyzer -> %s", intent.model_dump_json(exclude_defaults=True))
    return intent
