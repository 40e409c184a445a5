"""
Tool schemas exposed to the chat LLM (Anthropic ``input_schema`` format).
"""
from __future__ import annotations

from typing import Any

from sales_copilot.copilot.chart_spec import ChartType

QUERY_TOOL = "query_sales_data"
CHART_TOOL = "generate_graph_data"

GENERATE_GRAPH_DATA: dict[str, Any] = {
    "name": CHART_TOOL,
    "description": "Generate structured JSON data for creating sales charts and graphs.",
    "input_schema": {
        "type": "object",
        "properties": {
            "chartType": {
                "type": "string",
                "enum": [t.value for t in ChartType],
                "description": "The type of chart to generate",
            },
            "data": {
                "type": "array",
                "items": {"type": "object"},
                "description": "The data to visualize",
            },
            "config": {
                "type": "object",
                "description": "Configuration options for the chart (xAxisKey, title, subtitle, ...)",
            },
            "chartConfig": {
                "type": "object",
                "description": "Configuration for individual series in the chart",
            },
        },
        "required": ["chartType", "data", "config", "chartConfig"],
    },
}

QUERY_SALES_DATA: dict[str, Any] = {
    "name": QUERY_TOOL,
    "description": "Query the database to retrieve sales data",
    "input_schema": {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "Natural language description of the data to retrieve",
            },
            "sql": {
                "type": "string",
                "description": "SQL query to execute (not shown to user)",
            },
            "params": {
                "type": "array",
                "description": "Parameters for the SQL query, one per ? placeholder (not shown to user)",
                "items": {"type": "string"},
            },
        },
        "required": ["query", "sql"],
    },
}

TOOLS: list[dict[str, Any]] = [GENERATE_GRAPH_DATA, QUERY_SALES_DATA]
