"""
Unit tests -- schema catalog: YAML loading, lookups, join paths.
"""
import pytest
import yaml

from sales_copilot.catalog.loader import _CATALOG_PATH, SchemaNotFoundError, get_table, load_catalog


@pytest.fixture(scope="module")
def catalog():
    return load_catalog()


def test_three_tables(catalog):
    assert catalog.table_names() == ["sales_data", "product_design", "vehicle_master"]


def test_storage_names(catalog):
    assert catalog.get_table("sales_data").storage_name == "sales_data"
    assert catalog.get_table("product_design").storage_name == "unique_products_with_materials_masterlist"
    assert catalog.get_table("vehicle_master").storage_name == "vehicle_master"


def test_unknown_table_raises(catalog):
    with pytest.raises(SchemaNotFoundError) as exc_info:
        catalog.get_table("customers")
    assert exc_info.value.table == "customers"


def test_module_level_get_table():
    assert get_table("sales_data").primary_key == "key"


def test_column_lookup_is_case_insensitive(catalog):
    design = catalog.get_table("product_design")
    assert design.column("product_name").name == "Product_Name"
    assert design.has_column("MATERIAL_CODE")
    assert not design.has_column("quantity")


def test_column_types(catalog):
    sales = catalog.get_table("sales_data")
    assert sales.column("quantity").type == "int"
    assert sales.column("unit_price").type == "decimal"
    assert sales.column("sales_date").type == "date"
    assert sales.column("discount_code").nullable is True


def test_technical_columns_excluded(catalog):
    sales = catalog.get_table("sales_data")
    names = [c.name for c in sales.business_columns]
    assert "created_at" not in names
    assert "updated_at" not in names
    assert "created_at" not in [c.name for c in sales.numeric_columns]


def test_date_column(catalog):
    assert catalog.get_table("sales_data").date_column.name == "sales_date"
    assert catalog.get_table("vehicle_master").date_column is None


def test_join_paths_both_directions(catalog):
    forward = catalog.find_join("sales_data", "product_design")
    backward = catalog.find_join("product_design", "sales_data")
    assert forward is not None
    assert forward == backward
    assert "sales_data.product_name = product_design.Product_Name" in forward.on


def test_vehicle_join_uses_plate_and_location(catalog):
    path = catalog.find_join("sales_data", "vehicle_master")
    assert "sales_data.delivery_plate = vehicle_master.Vehicle_Plate" in path.on
    for part in ("country", "region", "city"):
        assert f"sales_data.{part}" in path.on


def test_no_join_between_lookup_tables(catalog):
    assert catalog.find_join("product_design", "vehicle_master") is None


def test_tables_list_for_api(catalog):
    tables = catalog.get_tables_list()
    assert len(tables) == 3
    sales = tables[0]
    assert sales["name"] == "sales_data"
    assert {"name", "type", "description", "nullable"} <= set(sales["columns"][0])


def test_render_for_prompt_mentions_every_table(catalog):
    text = catalog.render_for_prompt()
    assert "unique_products_with_materials_masterlist" in text
    assert "vehicle_master" in text
    assert "Join sales_data -> product_design" in text


def test_packaged_yaml_join_keys_are_strings():
    with open(_CATALOG_PATH) as f:
        raw = yaml.safe_load(f)
    for join in raw["joins"]:
        assert set(join) == {"left", "right", "condition"}
        assert isinstance(join["condition"], str)


def test_join_condition_whitespace_collapsed(catalog):
    for path in catalog.joins:
        assert "\n" not in path.on
        assert "  " not in path.on
