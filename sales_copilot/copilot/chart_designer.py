"""
Secondary chart-design pass for charts the LLM produced without a query.

The LLM only ever sees a statistical summary of the data and only returns
``config`` / ``chartConfig``; the ``data`` array is carried through verbatim.
Any failure (provider error, unparsable JSON, keys that do not exist in the
data) falls back to ``default_design``.
"""
from __future__ import annotations

import copy
import json
from typing import Any

from sales_copilot.copilot.chart_spec import DEFAULT_MARGIN, ChartType, palette_color
from sales_copilot.copilot.visualizer import detect_roles, format_column_label
from sales_copilot.core.config import get_settings
from sales_copilot.core.logging import get_logger
from sales_copilot.core.utils import slugify_key, strip_code_fences

logger = get_logger(__name__)

_DESIGN_SYSTEM_PROMPT = """\
You are a data-visualization designer. You receive a chart type and a \
statistical summary of a dataset (never the rows themselves) and return an \
improved chart configuration.

Respond ONLY with a JSON object with exactly two keys:
  config      : object -- xAxisKey (must be one of the listed columns), title, \
subtitle, legendPosition (top | bottom | left | right), footer, \
yAxisFormatter and tooltipFormatter (one of: currency, percentage, date, integer, number)
  chartConfig : object -- one entry per series: {{"dataKey": <column>, "name": <label>, "color": <#hex>}}

Available columns: {columns}
No markdown, no explanation."""


def _is_row_list(data: Any) -> bool:
    return isinstance(data, list) and bool(data) and all(isinstance(row, dict) for row in data)


def summarize_data(data: list[dict[str, Any]]) -> dict[str, Any]:
    """Per-column inferred type plus min / max / avg for numeric columns."""
    data = [row for row in data or [] if isinstance(row, dict)]
    roles = detect_roles(data)
    columns: dict[str, Any] = {}
    for col in roles.columns:
        if col in roles.numeric:
            values = [
                row[col] for row in data
                if isinstance(row.get(col), (int, float)) and not isinstance(row.get(col), bool)
            ]
            columns[col] = {
                "type": "number",
                "min": min(values) if values else None,
                "max": max(values) if values else None,
                "avg": round(sum(values) / len(values), 4) if values else None,
            }
        elif col in roles.time:
            columns[col] = {"type": "time"}
        elif col in roles.categorical:
            distinct = {str(row.get(col)) for row in data if row.get(col) is not None}
            columns[col] = {"type": "string", "distinct": len(distinct)}
        else:
            columns[col] = {"type": "unknown"}
    return {"rowCount": len(data), "columns": columns}


def default_design(chart: dict[str, Any]) -> dict[str, Any]:
    """Rule-based config / chartConfig from column roles; data untouched."""
    result = copy.deepcopy(chart)
    data = result.get("data")
    if not _is_row_list(data):
        return result
    config = dict(result["config"]) if isinstance(result.get("config"), dict) else {}
    chart_type = ChartType.parse(result.get("chartType")) or ChartType.BAR

    if chart_type is ChartType.PIE and all("segment" in row for row in data):
        config["xAxisKey"] = "segment"
        series: dict[str, Any] = {}
        for row in data:
            segment = str(row.get("segment"))
            series.setdefault(slugify_key(segment), {
                "dataKey": "value", "name": segment, "color": palette_color(len(series)),
            })
    else:
        roles = detect_roles(data)
        x = config.get("xAxisKey")
        if x not in roles.columns:
            x = roles.x_axis
        config["xAxisKey"] = x
        numeric = [c for c in roles.numeric if c != x]
        series = {
            slugify_key(c): {"dataKey": c, "name": format_column_label(c), "color": palette_color(i)}
            for i, c in enumerate(numeric)
        }
        if not config.get("title") and numeric and x:
            config["title"] = f"{', '.join(format_column_label(c) for c in numeric[:3])} by {format_column_label(x)}"

    config.setdefault("margin", dict(DEFAULT_MARGIN))
    result["config"] = config
    result["chartConfig"] = series
    return result


def _design_is_usable(design: Any, data: list[dict[str, Any]]) -> bool:
    if not isinstance(design, dict):
        return False
    config, series = design.get("config"), design.get("chartConfig")
    if not isinstance(config, dict) or not isinstance(series, dict) or not series:
        return False
    keys = set(data[0].keys())
    x = config.get("xAxisKey")
    if not isinstance(x, str) or x not in keys:
        return False
    return all(
        isinstance(s, dict) and isinstance(s.get("dataKey"), str) and s["dataKey"] in keys
        for s in series.values()
    )


async def redesign_chart(chart: dict[str, Any], question: str = "", provider: str | None = None) -> dict[str, Any]:
    """Ask the LLM for a better config / chartConfig for *chart*.

    Returns a new chart dict; ``data`` and ``chartType`` are preserved.
    """
    from sales_copilot.copilot.llm_client import complete

    data = chart.get("data")
    if not _is_row_list(data):
        return copy.deepcopy(chart)

    settings = get_settings()
    summary = summarize_data(data)
    prompt = (
        f"Question: {question}\n"
        f"Chart type: {chart.get('chartType', 'bar')}\n"
        f"Data summary:\n{json.dumps(summary, indent=2, default=str)}\n\n"
        "JSON:"
    )
    try:
        response = await complete(
            model=settings.default_model,
            messages=[{"role": "user", "content": prompt}],
            system_prompt=_DESIGN_SYSTEM_PROMPT.format(columns=", ".join(summary["columns"])),
            temperature=0.0,
            max_tokens=settings.chart_redesign_max_tokens,
            provider=provider,
        )
        design = json.loads(strip_code_fences(response.text))
    except Exception as exc:
        logger.warning("Chart redesign failed, using default design: %s", exc)
        return default_design(chart)

    if not _design_is_usable(design, data):
        logger.warning("Chart redesign returned unusable config, using default design")
        return default_design(chart)

    result = copy.deepcopy(chart)
    result["config"] = design["config"]
    result["chartConfig"] = design["chartConfig"]
    logger.info("Chart redesigned: x=%s series=%s", design["config"].get("xAxisKey"), list(design["chartConfig"]))
    return result
