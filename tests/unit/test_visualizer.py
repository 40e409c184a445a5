"""
Unit tests -- visualization selector: should_visualize, roles, chart type, reshaping.
"""
import pytest

from sales_copilot.copilot.chart_spec import ChartType
from sales_copilot.copilot.visualizer import (
    detect_roles,
    format_column_label,
    format_time_label,
    pick_value_column,
    prepare_chart,
    select_chart_type,
    should_visualize,
)

PRODUCT_ROWS = [
    {"total_quantity": 120, "product_name": "Classic Burger"},
    {"total_quantity": 95, "product_name": "Chicken Wrap"},
    {"total_quantity": 40, "product_name": "Flat White"},
]

MONTH_ROWS = [
    {"total_quantity": 10 * i, "month": f"2024-{i:02d}"} for i in range(1, 7)
]

SEGMENT_ROWS = [
    {"segment_label": f"s{i}", "quantity": i, "unit_price": 2.5 * i} for i in range(1, 6)
]


# ── should_visualize ─────────────────────────────────────

def test_total_sales_by_product_visualized():
    assert should_visualize(PRODUCT_ROWS, "total sales by product") is True


def test_top_two_is_not_visualized():
    rows = [{"country": "Australia", "total_quantity": 500}, {"country": "New Zealand", "total_quantity": 200}]
    assert should_visualize(rows, "top 2 countries by sales") is False


def test_top_five_is_visualized():
    rows = [{"country": f"c{i}", "total_quantity": i} for i in range(2)]
    assert should_visualize(rows, "top 5 countries") is True


def test_ranking_without_count_depends_on_rows():
    assert should_visualize(PRODUCT_ROWS, "highest selling item") is False
    assert should_visualize(SEGMENT_ROWS, "highest selling item") is True


def test_several_numeric_columns_visualized():
    assert should_visualize(SEGMENT_ROWS, "how did things go") is True


def test_chart_tool_always_wins():
    assert should_visualize([{"n": 1}], "what is the number", chart_requested=True) is True


def test_show_request():
    assert should_visualize([{"n": 1}], "Show the number") is True
    assert should_visualize([{"n": 1}], "can you visualize it") is True


def test_viz_keyword():
    assert should_visualize([{"n": 1}], "sales distribution") is True


def test_small_result_floor():
    rows = [{"month": "2024-01", "total_quantity": 4}]
    assert should_visualize(rows, "what happened") is False


def test_time_column_visualized():
    assert should_visualize(MONTH_ROWS, "what happened") is True


def test_categorical_column_visualized():
    rows = [{"store_name": f"s{i}", "quantity": i} for i in range(5)]
    assert should_visualize(rows, "what happened") is True


def test_default_is_no_chart():
    rows = [{"quantity": i} for i in range(5)]
    assert should_visualize(rows, "what happened") is False


def test_country_does_not_trigger_count_metric():
    rows = [{"n": 1}, {"n": 2}]
    assert should_visualize(rows, "orders by country") is False


# ── Roles ────────────────────────────────────────────────

def test_detect_roles():
    rows = [{"key": 1, "store_id": 7, "month": "2024-01", "city": "Perth", "quantity": 3, "note": None}]
    roles = detect_roles(rows)
    assert roles.time == ["month"]
    assert roles.numeric == ["quantity"]
    assert roles.categorical == ["city"]
    assert roles.x_axis == "month"


def test_expression_column_is_time():
    roles = detect_roles([{"TO_CHAR(sales_date, 'YYYY')": "2024", "total": 3}])
    assert roles.time == ["TO_CHAR(sales_date, 'YYYY')"]


def test_first_non_null_value_decides_role():
    rows = [{"city": None, "quantity": None}, {"city": "Perth", "quantity": 2}]
    roles = detect_roles(rows)
    assert roles.categorical == ["city"]
    assert roles.numeric == ["quantity"]


# ── Chart type ───────────────────────────────────────────

def test_bar_for_one_metric_one_category():
    roles = detect_roles(PRODUCT_ROWS)
    assert select_chart_type(roles, "total sales by product", 3) is ChartType.BAR


def test_line_for_trend():
    roles = detect_roles(MONTH_ROWS)
    assert select_chart_type(roles, "show me revenue trend by month", 6) is ChartType.LINE


def test_line_for_long_time_series():
    rows = [{"sales_date": f"2024-01-{i:02d}", "total_quantity": i} for i in range(1, 13)]
    assert select_chart_type(detect_roles(rows), "daily sales", 12) is ChartType.LINE


def test_pie_for_distribution_vocabulary():
    assert select_chart_type(detect_roles(PRODUCT_ROWS), "sales breakdown", 3) is ChartType.PIE


def test_multibar_for_several_metrics():
    assert select_chart_type(detect_roles(SEGMENT_ROWS), "how did things go", 5) is ChartType.MULTI_BAR


def test_hint_only_when_heuristics_fall_through():
    month_only = detect_roles([{"month": "2024-01", "total_quantity": 1}])
    assert select_chart_type(month_only, "sales", 1, hint="area") is ChartType.AREA
    assert select_chart_type(detect_roles(PRODUCT_ROWS), "sales", 3, hint="pie") is ChartType.BAR


# ── Labels / values ──────────────────────────────────────

@pytest.mark.parametrize("name, label", [
    ("total_quantity", "Total quantity"),
    ("avg_unit_price", "Average unit price"),
    ("count_orders", "Count of orders"),
    ("TO_CHAR(sales_date, 'YYYY-MM')", "Date"),
    ("unit_price", "Unit Price"),
])
def test_format_column_label(name, label):
    assert format_column_label(name) == label


@pytest.mark.parametrize("value, label", [
    ("2024-01-05", "Jan 5, 2024"),
    ("2024-03", "Mar 2024"),
    ("2024-Q2", "Q2 2024"),
    ("2024", "2024"),
    ("Perth", "Perth"),
    (7, 7),
])
def test_format_time_label(value, label):
    assert format_time_label(value) == label


def test_pick_value_column_prefers_query_mention():
    assert pick_value_column(["quantity", "unit_price"], "average unit_price") == "unit_price"


def test_pick_value_column_prefers_total():
    assert pick_value_column(["unit_price", "total_cost"], "sales") == "total_cost"


def test_pick_value_column_quantity_then_first():
    assert pick_value_column(["unit_price", "quantity"], "sales") == "quantity"
    assert pick_value_column(["unit_price", "delivery_fee"], "sales") == "unit_price"
    assert pick_value_column([], "sales") is None


# ── prepare_chart ────────────────────────────────────────

def test_prepare_bar_chart():
    spec = prepare_chart(PRODUCT_ROWS, "total sales by product")
    wire = spec.to_wire()
    assert wire["chartType"] == "bar"
    assert wire["config"]["xAxisKey"] == "product_name"
    assert wire["config"]["title"] == "Total quantity by Product Name"
    assert wire["data"][0] == {"product_name": "Classic Burger", "total_quantity": 120}
    assert wire["chartConfig"]["total_quantity"]["dataKey"] == "total_quantity"


def test_prepare_line_chart_formats_months():
    wire = prepare_chart(MONTH_ROWS, "show me revenue trend by month").to_wire()
    assert wire["chartType"] == "line"
    assert wire["data"][0]["month"] == "Jan 2024"
    assert wire["config"]["title"] == "Total quantity Trend by Month"


def test_prepare_pie_chart():
    wire = prepare_chart(PRODUCT_ROWS, "share of sales per product").to_wire()
    assert wire["chartType"] == "pie"
    assert wire["config"]["xAxisKey"] == "segment"
    assert all({"segment", "value"} <= set(item) for item in wire["data"])
    # one legend entry per segment
    assert len(wire["chartConfig"]) == 3
    assert {s["dataKey"] for s in wire["chartConfig"].values()} == {"value"}


def test_prepare_multibar_chart():
    wire = prepare_chart(SEGMENT_ROWS, "how did things go").to_wire()
    assert wire["chartType"] == "multiBar"
    assert [s["dataKey"] for s in wire["chartConfig"].values()] == ["quantity", "unit_price"]
    for row in wire["data"]:
        assert {"segment_label", "quantity", "unit_price"} <= set(row)


def test_every_series_key_on_every_row():
    for rows, query in [(PRODUCT_ROWS, "total sales by product"), (MONTH_ROWS, "trend"), (SEGMENT_ROWS, "x")]:
        wire = prepare_chart(rows, query).to_wire()
        x = wire["config"]["xAxisKey"]
        for row in wire["data"]:
            assert x in row
            for series in wire["chartConfig"].values():
                assert series["dataKey"] in row


def test_no_chart_without_value_column():
    assert prepare_chart([{"city": "Perth"}, {"city": "Sydney"}], "cities") is None


def test_no_chart_for_empty_rows():
    assert prepare_chart([], "anything") is None
