"""
Unit tests -- SQL builder: QueryIntent -> (sql, params).
"""
from datetime import date

import pytest

from sales_copilot.copilot.analyzer import analyze
from sales_copilot.copilot.intent import Filter, QueryIntent, SelectedColumn, Sorting
from sales_copilot.copilot.sql_builder import (
    build_sql,
    expression_alias,
    order_by_is_valid,
    select_list,
)

TODAY = date(2024, 3, 15)

SUM_QTY = SelectedColumn(table="sales_data", column="quantity", alias="total_quantity", aggregate="SUM")


def _select_line(sql: str) -> str:
    return sql.splitlines()[0]


# ── End-to-end from questions ────────────────────────────

def test_total_sales_by_product_sql():
    built = build_sql(analyze("total sales by product", today=TODAY))
    assert built.sql == (
        "SELECT SUM(sales_data.quantity) AS total_quantity, sales_data.product_name AS product_name\n"
        "FROM sales_data AS sales_data\n"
        "GROUP BY sales_data.product_name"
    )
    assert built.params == []


def test_monthly_trend_sql():
    built = build_sql(analyze("show me revenue trend by month", today=TODAY))
    assert "TO_CHAR(sales_data.sales_date, 'YYYY-MM') AS month" in _select_line(built.sql)
    assert "GROUP BY TO_CHAR(sales_data.sales_date, 'YYYY-MM')" in built.sql
    assert "ORDER BY TO_CHAR(sales_data.sales_date, 'YYYY-MM') DESC" in built.sql


def test_date_range_params_in_order():
    built = build_sql(analyze("sales between 2024-01-01 and 2024-03-31", today=TODAY))
    assert "WHERE sales_data.sales_date >= ? AND sales_data.sales_date <= ?" in built.sql
    assert built.params == ["2024-01-01", "2024-03-31"]


def test_join_clause():
    built = build_sql(analyze("show material details for orders", today=TODAY))
    assert (
        "LEFT JOIN unique_products_with_materials_masterlist AS product_design "
        "ON sales_data.product_name = product_design.Product_Name"
    ) in built.sql


def test_lookup_table_uses_storage_name():
    built = build_sql(analyze("product material costs", today=TODAY))
    assert "FROM unique_products_with_materials_masterlist AS product_design" in built.sql


def test_limit_rendered_last():
    built = build_sql(analyze("top 5 products by sales", today=TODAY))
    assert built.sql.splitlines()[-1] == "LIMIT 5"


@pytest.mark.parametrize("question", [
    "total sales by product",
    "how many orders per city",
    "total sales quarterly",
    "average unit_price by region",
    "sales trend over time",
    "total quantity by store",
])
def test_group_by_items_appear_in_select(question):
    intent = analyze(question, today=TODAY)
    select = _select_line(build_sql(intent).sql)
    assert intent.group_by
    for item in intent.group_by:
        assert item in select


@pytest.mark.parametrize("question", [
    "instore sales between 2024-01-01 and 2024-01-31",
    "list orders where city is brisbane and quantity > 2",
    "total sales last month in queensland region",
])
def test_one_placeholder_per_filter(question):
    intent = analyze(question, today=TODAY)
    built = build_sql(intent)
    assert built.sql.count("?") == len(intent.filters)
    assert built.params == [f.value for f in intent.filters]


def test_text_filters_compare_lower_cased():
    built = build_sql(analyze("list orders where product_name contains Burger", today=TODAY))
    assert "WHERE LOWER(sales_data.product_name) LIKE ?" in built.sql
    assert built.params == ["%burger%"]


def test_location_filter_compares_lower_cased():
    built = build_sql(analyze("total sales in Brisbane city", today=TODAY))
    assert "WHERE LOWER(sales_data.city) = ?" in built.sql
    assert built.params == ["brisbane"]


def test_numeric_filter_not_lowered():
    built = build_sql(analyze("list orders with quantity > 5", today=TODAY))
    assert "WHERE sales_data.quantity > ?" in built.sql
    assert built.params == [5.0]


# ── Intent-level edge cases ──────────────────────────────

def test_empty_columns_render_select_star():
    built = build_sql(QueryIntent(main_table="sales_data"))
    assert _select_line(built.sql) == "SELECT *"


def test_group_column_synthesized():
    intent = QueryIntent(main_table="sales_data", selected_columns=[SUM_QTY], group_by=["sales_data.city"])
    aliases = [c.alias for c in select_list(intent)]
    assert aliases == ["total_quantity", "city"]


def test_group_column_not_duplicated():
    city = SelectedColumn(table="sales_data", column="city", alias="city")
    intent = QueryIntent(main_table="sales_data", selected_columns=[SUM_QTY, city], group_by=["sales_data.city"])
    assert len(select_list(intent)) == 2


def test_expression_alias_collision_skipped():
    month = SelectedColumn(table="sales_data", column="sales_date", alias="month")
    intent = QueryIntent(
        main_table="sales_data",
        selected_columns=[SUM_QTY, month],
        group_by=["TO_CHAR(sales_data.sales_date, 'YYYY-MM')"],
    )
    assert [c.alias for c in select_list(intent)] == ["total_quantity", "month"]


def test_count_star_rendering():
    count = SelectedColumn(table="sales_data", column="COUNT(*)", alias="record_count", aggregate="COUNT")
    built = build_sql(QueryIntent(main_table="sales_data", selected_columns=[count]))
    assert _select_line(built.sql) == "SELECT COUNT(*) AS record_count"


def test_illegal_order_by_dropped():
    intent = QueryIntent(
        main_table="sales_data",
        selected_columns=[SUM_QTY],
        group_by=["sales_data.city"],
        sorting=Sorting(field="sales_data.sales_date", direction="DESC"),
    )
    assert "ORDER BY" not in build_sql(intent).sql


def test_filter_values_never_inlined():
    intent = QueryIntent(
        main_table="sales_data",
        filters=[Filter(field="sales_data.city", operator="=", value="x'; DROP TABLE sales_data; --")],
    )
    built = build_sql(intent)
    assert "DROP" not in built.sql
    assert built.params == ["x'; DROP TABLE sales_data; --"]


# ── order_by_is_valid ────────────────────────────────────

def test_order_by_none():
    assert order_by_is_valid(None, [], []) is False


def test_order_by_without_aggregation():
    plain = SelectedColumn(table="sales_data", column="city", alias="city")
    assert order_by_is_valid(Sorting(field="sales_data.sales_date"), [plain], []) is True


def test_order_by_aggregate_expression():
    assert order_by_is_valid(Sorting(field="SUM(sales_data.quantity)"), [SUM_QTY], ["sales_data.city"]) is True


def test_order_by_grouped_column():
    assert order_by_is_valid(Sorting(field="sales_data.city"), [SUM_QTY], ["sales_data.city"]) is True


def test_order_by_ungrouped_column():
    assert order_by_is_valid(Sorting(field="sales_data.region"), [SUM_QTY], ["sales_data.city"]) is False


# ── expression_alias ─────────────────────────────────────

@pytest.mark.parametrize("expr, alias", [
    ("TO_CHAR(sales_data.sales_date, 'YYYY-MM')", "month"),
    ("TO_CHAR(sales_data.sales_date, 'YYYY')", "year"),
    ("TO_CHAR(sales_data.sales_date, 'YYYY-\"Q\"Q')", "quarter"),
    ("TO_CHAR(sales_data.sales_date, 'IYYY-\"W\"IW')", "week"),
    ("TO_CHAR(sales_data.sales_date, 'YYYY-MM-DD')", "date"),
    ("EXTRACT(MONTH FROM sales_data.sales_date)", "month"),
    ("COALESCE(sales_data.city, 'n/a')", "group_field"),
])
def test_expression_alias(expr, alias):
    assert expression_alias(expr) == alias
