"""
Visualization selector.

Given the *result rows* of a query and the question that produced them,
decides whether a chart is worth showing and, if so, which chart type and
how to reshape the rows for it.

Decision order:
  1. ``should_visualize``   -- ordered rule table, first decision wins
  2. ``detect_roles``       -- time / numeric / categorical columns
  3. ``select_chart_type``  -- text overrides, then result-schema heuristics
  4. ``prepare_chart``      -- reshape rows into a ChartSpec

Nothing here raises on odd data: an unusable result simply yields no chart.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable

from sales_copilot.copilot.chart_spec import (
    ChartConfig,
    ChartSpec,
    ChartType,
    SeriesConfig,
    palette_color,
)
from sales_copilot.core.logging import get_logger
from sales_copilot.core.utils import slugify_key

logger = get_logger(__name__)

Rows = list[dict[str, Any]]


# ── Should we chart at all? ──────────────────────────────

_SHOW_PREFIXES = ("show", "display")
_SHOW_PHRASES = ("show me", "visual")
_VIZ_KEYWORDS = ("compare", "trend", "distribution", "chart", "graph")
_METRIC_RE = re.compile(r"\b(sales|revenue|profit|products|performance|data|count|total|amount)\b")
_CATEGORY_TERMS = ("region", "country", "city", "product", "category", "month", "year", "quarter", "date", "day", "type")
_COMPARISON_RE = re.compile(r"\b(top|bottom|highest|lowest|most|least|compare|comparison|versus|vs)\b")
_RANKING_COUNT_RE = re.compile(r"\b(top|bottom|highest|lowest|most|least)\s+(\d+)\b")
_TIME_NAME_TERMS = ("date", "time", "month", "year")
_CATEGORY_NAME_TERMS = ("type", "category", "region", "country", "city", "product", "name")

SMALL_RESULT = 3


@dataclass
class VizContext:
    rows: Rows
    query: str  # lower-cased, stripped
    chart_requested: bool = False

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def columns(self) -> list[str]:
        return list(self.rows[0].keys()) if self.rows else []


def _rule_chart_requested(ctx: VizContext) -> bool | None:
    return True if ctx.chart_requested else None


def _rule_show_request(ctx: VizContext) -> bool | None:
    if ctx.query.startswith(_SHOW_PREFIXES) or any(p in ctx.query for p in _SHOW_PHRASES):
        return True
    return None


def _rule_viz_keyword(ctx: VizContext) -> bool | None:
    return True if any(k in ctx.query for k in _VIZ_KEYWORDS) else None


def _rule_metric_by_category(ctx: VizContext) -> bool | None:
    q = ctx.query
    if " by " not in q:
        return None
    has_metric = bool(_METRIC_RE.search(q))
    has_category = any(f" by {c}" in q for c in _CATEGORY_TERMS)
    if has_metric and has_category and ctx.row_count > 1:
        return True
    return None


def _rule_ranking(ctx: VizContext) -> bool | None:
    if not _COMPARISON_RE.search(ctx.query):
        return None
    m = _RANKING_COUNT_RE.search(ctx.query)
    if m:
        return int(m.group(2)) > SMALL_RESULT
    return ctx.row_count > SMALL_RESULT


def _rule_small_result(ctx: VizContext) -> bool | None:
    return False if ctx.row_count <= SMALL_RESULT else None


def _rule_time_column(ctx: VizContext) -> bool | None:
    if any(t in c.lower() for c in ctx.columns for t in _TIME_NAME_TERMS):
        return True
    return None


def _rule_category_column(ctx: VizContext) -> bool | None:
    if any(t in c.lower() for c in ctx.columns for t in _CATEGORY_NAME_TERMS):
        return True
    return None


def _rule_several_numeric(ctx: VizContext) -> bool | None:
    return True if len(detect_roles(ctx.rows).numeric) > 1 else None


# Evaluated in order; the first rule returning a bool decides.
VISUALIZE_RULES: list[tuple[str, Callable[[VizContext], bool | None]]] = [
    ("chart tool requested", _rule_chart_requested),
    ("explicit show request", _rule_show_request),
    ("visualization keyword", _rule_viz_keyword),
    ("metric by category", _rule_metric_by_category),
    ("ranking / comparison", _rule_ranking),
    ("small result", _rule_small_result),
    ("time column", _rule_time_column),
    ("categorical column", _rule_category_column),
    ("several numeric columns", _rule_several_numeric),
]


def should_visualize(rows: Rows, query: str, chart_requested: bool = False) -> bool:
    """Decide whether *rows* deserve a chart for *query*."""
    ctx = VizContext(rows=rows, query=(query or "").lower().strip(), chart_requested=chart_requested)
    for name, rule in VISUALIZE_RULES:
        decision = rule(ctx)
        if decision is not None:
            logger.info("Visualization decision: %s (rule: %s)", decision, name)
            return decision
    logger.info("Visualization decision: False (no rule matched)")
    return False


# ── Column roles ─────────────────────────────────────────

_TIME_ROLE_TERMS = ("date", "month", "year", "period", "time_period", "quarter", "week")


@dataclass
class ColumnRoles:
    columns: list[str] = field(default_factory=list)
    time: list[str] = field(default_factory=list)
    numeric: list[str] = field(default_factory=list)
    categorical: list[str] = field(default_factory=list)

    @property
    def x_axis(self) -> str | None:
        if self.time:
            return self.time[0]
        if self.categorical:
            return self.categorical[0]
        return self.columns[0] if self.columns else None


def _first_value(rows: Rows, column: str) -> Any:
    for row in rows:
        value = row.get(column)
        if value is not None:
            return value
    return None


def is_time_column(name: str) -> bool:
    lower = name.lower()
    return "(" in lower or any(t in lower for t in _TIME_ROLE_TERMS)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def detect_roles(rows: Rows, primary_key: str = "key") -> ColumnRoles:
    roles = ColumnRoles(columns=list(rows[0].keys()) if rows else [])
    for col in roles.columns:
        value = _first_value(rows, col)
        if is_time_column(col):
            roles.time.append(col)
        elif _is_number(value) and "id" not in col.lower() and col != primary_key:
            roles.numeric.append(col)
        elif isinstance(value, str):
            roles.categorical.append(col)
    return roles


# ── Chart type ───────────────────────────────────────────

_DISTRIBUTION_TERMS = ("distribution", "breakdown", "proportion", "percentage", "share", "pie")
_TREND_TERMS = ("trend", "over time", "timeseries", "time series")
LINE_MIN_POINTS = 10


def select_chart_type(
    roles: ColumnRoles,
    query: str,
    row_count: int,
    hint: Any = None,
) -> ChartType:
    """Pick a chart type; *hint* only applies when no heuristic fires."""
    q = (query or "").lower()
    if any(t in q for t in _DISTRIBUTION_TERMS):
        return ChartType.PIE
    if roles.time and any(t in q for t in _TREND_TERMS):
        return ChartType.LINE
    if roles.time and row_count > LINE_MIN_POINTS:
        return ChartType.LINE
    if roles.categorical and len(roles.numeric) > 1:
        return ChartType.MULTI_BAR
    if len(roles.numeric) > 3:
        return ChartType.MULTI_BAR
    if len(roles.numeric) == 1 and len(roles.categorical) == 1:
        return ChartType.BAR

    hinted = ChartType.parse(hint)
    if hinted is not None:
        return hinted
    return ChartType.BAR


# ── Labels ───────────────────────────────────────────────

_SQL_DATE_FUNCS = ("FORMAT(", "YEAR(", "MONTH(", "DAY(", "TO_CHAR(", "DATE_TRUNC(", "EXTRACT(")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
_DAY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")
_QUARTER_RE = re.compile(r"^(\d{4})-(Q[1-4])$")


def format_column_label(name: str) -> str:
    """``total_quantity`` -> "Total quantity", ``unit_price`` -> "Unit Price"."""
    if name.startswith("total_"):
        return "Total " + name[6:].replace("_", " ")
    if name.startswith("avg_"):
        return "Average " + name[4:].replace("_", " ")
    if name.startswith("count_"):
        return "Count of " + name[6:].replace("_", " ")
    upper = name.upper()
    if any(f in upper for f in _SQL_DATE_FUNCS):
        return "Date"
    return " ".join(w[:1].upper() + w[1:] for w in name.split("_"))


def format_time_label(value: Any) -> Any:
    """Display form for bucketed dates; anything unrecognised is returned as-is."""
    if not isinstance(value, str):
        return value
    m = _DAY_RE.match(value)
    if m:
        year, month, day = (int(g) for g in m.groups())
        if 1 <= month <= 12:
            return f"{_MONTHS[month - 1]} {day}, {year}"
        return value
    m = _MONTH_RE.match(value)
    if m:
        month = int(m.group(2))
        if 1 <= month <= 12:
            return f"{_MONTHS[month - 1]} {m.group(1)}"
        return value
    m = _QUARTER_RE.match(value)
    if m:
        return f"{m.group(2)} {m.group(1)}"
    return value


# ── Reshaping ────────────────────────────────────────────

def pick_value_column(numeric: list[str], query: str) -> str | None:
    """Single metric for bar / line charts."""
    q = (query or "").lower()
    for col in numeric:
        if col.lower() in q:
            return col
    for needle in ("total", "sum"):
        for col in numeric:
            if needle in col.lower():
                return col
    if "quantity" in numeric:
        return "quantity"
    return numeric[0] if numeric else None


def _x_value(row: dict[str, Any], x: str, is_time: bool) -> Any:
    value = row.get(x)
    return format_time_label(value) if is_time else value


def _series(columns: list[str]) -> dict[str, SeriesConfig]:
    return {
        slugify_key(col): SeriesConfig(data_key=col, name=format_column_label(col), color=palette_color(i))
        for i, col in enumerate(columns)
    }


def _shape_pie(rows: Rows, x: str, value: str, x_is_time: bool) -> tuple[Rows, dict[str, SeriesConfig]]:
    data = [{"segment": str(_x_value(row, x, x_is_time)), "value": row.get(value)} for row in rows]
    chart_config: dict[str, SeriesConfig] = {}
    for item in data:
        key = slugify_key(item["segment"])
        if key not in chart_config:
            chart_config[key] = SeriesConfig(
                data_key="value", name=item["segment"], color=palette_color(len(chart_config)),
            )
    return data, chart_config


def prepare_chart(rows: Rows, query: str, hint: Any = None) -> ChartSpec | None:
    """Reshape *rows* into a ChartSpec, or None when no sensible chart exists.

    Parameters
    ----------
    rows : list[dict]
        Query result rows (JSON-safe values).
    query : str
        The natural-language question, used for text overrides and value choice.
    hint : str, optional
        Chart type suggested by the LLM's own chart tool call.
    """
    if not rows:
        return None
    try:
        return _prepare_chart(rows, query, hint)
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Chart preparation failed: %s", exc)
        return None


def _prepare_chart(rows: Rows, query: str, hint: Any) -> ChartSpec | None:
    roles = detect_roles(rows)
    x = roles.x_axis
    if x is None:
        return None
    chart_type = select_chart_type(roles, query, len(rows), hint)
    x_is_time = x in roles.time
    numeric = [c for c in roles.numeric if c != x]
    x_label = format_column_label(x)

    if chart_type is ChartType.PIE:
        value = numeric[0] if numeric else None
        if value is None:
            return None
        data, chart_config = _shape_pie(rows, x, value, x_is_time)
        config = ChartConfig(
            x_axis_key="segment",
            title=f"Distribution of {format_column_label(value)} by {x_label}",
            subtitle=f"Breakdown of {format_column_label(value)} across {x_label} values",
            legend_position="right",
        )
    elif chart_type in (ChartType.MULTI_BAR, ChartType.STACKED_AREA):
        if not numeric:
            return None
        data = [{x: _x_value(row, x, x_is_time), **{c: row.get(c) for c in numeric}} for row in rows]
        chart_config = _series(numeric)
        shown = ", ".join(format_column_label(c) for c in numeric[:3])
        more = " and others" if len(numeric) > 3 else ""
        config = ChartConfig(
            x_axis_key=x,
            title=f"Comparison of {shown}{more} by {x_label}",
            subtitle=f"Comparing metrics across {x_label} values",
            legend_position="bottom",
            stacked=True if chart_type is ChartType.STACKED_AREA else None,
        )
    else:
        value = pick_value_column(numeric, query)
        if value is None:
            return None
        data = [{x: _x_value(row, x, x_is_time), value: row.get(value)} for row in rows]
        chart_config = _series([value])
        v_label = format_column_label(value)
        if chart_type in (ChartType.LINE, ChartType.AREA):
            title, subtitle = f"{v_label} Trend by {x_label}", f"How {v_label} changes over time"
        else:
            title, subtitle = f"{v_label} by {x_label}", f"Comparison of {v_label} across {x_label} values"
        config = ChartConfig(x_axis_key=x, title=title, subtitle=subtitle)

    spec = ChartSpec(chart_type=chart_type, data=data, config=config, chart_config=chart_config)
    logger.info("Prepared %s chart: x=%s series=%s rows=%d", chart_type.value, config.x_axis_key,
                list(chart_config), len(data))
    return spec
