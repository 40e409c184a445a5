"""
Final chart normalization, run on every chart right before it leaves the API.

Upstream charts come from two places: the visualizer (well-formed) and the
LLM's own ``generate_graph_data`` tool call (anything goes).  This pass makes
both satisfy the renderer contract:

  - ``chartType`` is one of the known types (default ``bar``)
  - ``data`` is a non-empty list of objects, else the chart is rejected
  - ``config.xAxisKey`` and every ``chartConfig[*].dataKey`` exist on every row
  - every series has a name and a palette colour
  - pie data is ``{segment, value}`` with one series entry per segment
  - ``config.margin`` is set; formatter names are from the closed set

Pie rows are projected to exactly those two keys.  Otherwise it works on a
copy, never drops a valid field, and is idempotent.
"""
from __future__ import annotations

import copy
from typing import Any

from sales_copilot.copilot.chart_spec import DEFAULT_MARGIN, ChartType, Formatter, palette_color
from sales_copilot.copilot.visualizer import detect_roles, format_column_label
from sales_copilot.core.logging import get_logger
from sales_copilot.core.utils import slugify_key

logger = get_logger(__name__)

DEFAULT_TITLE = "Sales Data Analysis"
_FORMATTER_KEYS = ("yAxisFormatter", "tooltipFormatter")


def _is_pie_shaped(data: list[dict[str, Any]]) -> bool:
    return all("segment" in row and "value" in row for row in data)


def _pie_value_key(data: list[dict[str, Any]], x: str) -> str:
    for key, value in data[0].items():
        if key != x and isinstance(value, (int, float)) and not isinstance(value, bool):
            return key
    return "value"


def _reshape_pie(data: list[dict[str, Any]], config: dict[str, Any]) -> list[dict[str, Any]]:
    x = config.get("xAxisKey")
    if not isinstance(x, str) or not any(x in row for row in data):
        x = detect_roles(data).x_axis or "segment"
    value_key = _pie_value_key(data, x)
    return [{"segment": str(row.get(x)), "value": row.get(value_key, row.get("value"))} for row in data]


def _pie_series(data: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    series: dict[str, dict[str, Any]] = {}
    for row in data:
        segment = str(row.get("segment"))
        key = slugify_key(segment)
        if key not in series:
            series[key] = {"dataKey": "value", "name": segment}
    return series


def _clean_series(raw: Any, data: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Keep series whose data key exists in the rows; fill dataKey / name."""
    if not isinstance(raw, dict):
        return {}
    series: dict[str, dict[str, Any]] = {}
    for key, entry in raw.items():
        if not isinstance(entry, dict):
            continue
        data_key = entry.get("dataKey")
        if not isinstance(data_key, str) or not data_key:
            data_key = key
        if not isinstance(data_key, str) or not any(data_key in row for row in data):
            logger.warning("Dropping chart series %r: no rows carry %r", key, data_key)
            continue
        entry = dict(entry)
        entry["dataKey"] = data_key
        if not entry.get("name"):
            entry["name"] = entry.get("label") or format_column_label(data_key)
        series[key] = entry
    return series


def _synthesize_series(data: list[dict[str, Any]], x: str) -> dict[str, dict[str, Any]]:
    numeric = [c for c in detect_roles(data).numeric if c != x]
    return {slugify_key(c): {"dataKey": c, "name": format_column_label(c)} for c in numeric}


def normalize_chart(raw: Any) -> dict[str, Any] | None:
    """Return a renderer-ready copy of *raw*, or None when it cannot be drawn."""
    if not isinstance(raw, dict):
        return None
    chart = copy.deepcopy(raw)

    chart_type = ChartType.parse(chart.get("chartType"))
    if chart_type is None:
        if chart.get("chartType") is not None:
            logger.warning("Unknown chartType %r; using bar", chart.get("chartType"))
        chart_type = ChartType.BAR
    chart["chartType"] = chart_type.value

    data = chart.get("data")
    if not isinstance(data, list) or not data or not all(isinstance(row, dict) for row in data):
        logger.warning("Rejecting chart without usable data")
        return None

    config = chart.get("config") if isinstance(chart.get("config"), dict) else {}

    if chart_type is ChartType.PIE:
        if _is_pie_shaped(data):
            data = [{"segment": row["segment"], "value": row["value"]} for row in data]
        else:
            data = _reshape_pie(data, config)
        config["xAxisKey"] = "segment"
        series = _clean_series(chart.get("chartConfig"), data) or _pie_series(data)
    else:
        x = config.get("xAxisKey")
        if not isinstance(x, str) or not any(x in row for row in data):
            x = detect_roles(data).x_axis
            if x is None:
                logger.warning("Rejecting chart: no x-axis column")
                return None
            config["xAxisKey"] = x
        series = _clean_series(chart.get("chartConfig"), data) or _synthesize_series(data, x)

    if not series:
        logger.warning("Rejecting chart: no plottable series")
        return None

    required = [config["xAxisKey"]] + [s["dataKey"] for s in series.values()]
    for row in data:
        for key in required:
            row.setdefault(key, None)

    for index, entry in enumerate(series.values()):
        if not entry.get("color"):
            entry["color"] = palette_color(index)

    if not isinstance(config.get("margin"), dict):
        config["margin"] = dict(DEFAULT_MARGIN)
    if not config.get("title"):
        config["title"] = DEFAULT_TITLE

    for key in _FORMATTER_KEYS:
        if key not in config:
            continue
        fmt = Formatter.parse(config[key])
        if fmt is None:
            logger.warning("Dropping unsupported %s %r", key, config[key])
            del config[key]
        else:
            config[key] = fmt.value

    chart["data"] = data
    chart["config"] = config
    chart["chartConfig"] = series
    return chart
