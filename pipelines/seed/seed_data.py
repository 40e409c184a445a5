"""
Seed data generator: creates the three copilot tables and fills them with
realistic sales data.

Generates:
  - ~120 product/material rows (15 products × 8 locations, several materials each)
  - ~40 delivery vehicles
  - ~8 000 sales transactions over two years

Table DDL is derived from the schema catalog so the physical tables always
match what the query engine generates SQL against.
Run:  python -m pipelines.seed.seed_data
"""
from __future__ import annotations

import random
from datetime import date, timedelta

from faker import Faker
from sqlalchemy import create_engine, text

from sales_copilot.catalog.loader import SchemaCatalog, TableSchema, load_catalog
from sales_copilot.core.config import get_settings

fake = Faker("en_AU")
Faker.seed(42)
random.seed(42)

# ── Tunables ─────────────────────────────────────────────
NUM_SALES = 8_000
NUM_VEHICLES = 40
MATERIALS_PER_PRODUCT = (2, 4)

LOCATIONS = [
    ("Australia", "Queensland", "Brisbane"),
    ("Australia", "Queensland", "Gold Coast"),
    ("Australia", "New South Wales", "Sydney"),
    ("Australia", "New South Wales", "Newcastle"),
    ("Australia", "Victoria", "Melbourne"),
    ("Australia", "Western Australia", "Perth"),
    ("New Zealand", "Auckland", "Auckland"),
    ("New Zealand", "Wellington", "Wellington"),
]

PRODUCTS = {
    "Classic Burger": 12.50,
    "Cheese Burger": 13.90,
    "Chicken Wrap": 11.00,
    "Veggie Bowl": 14.50,
    "Fish Tacos": 15.00,
    "Caesar Salad": 10.50,
    "Beef Pie": 8.90,
    "Sausage Roll": 5.50,
    "Flat White": 4.80,
    "Iced Latte": 6.20,
    "Smoothie": 7.50,
    "Pavlova": 9.00,
    "Lamington": 4.50,
    "Meat Lovers Pizza": 18.90,
    "Margherita Pizza": 16.50,
}

MATERIALS = ["BEEF01", "BUN02", "CHS03", "CHK04", "LET05", "TOM06", "FSH07", "MLK08", "COF09", "FLR10", "SUG11", "EGG12"]
SALES_TYPES = ["instore", "delivery"]
SALES_TYPE_WEIGHTS = [0.6, 0.4]
DISCOUNT_CODES = {"WELCOME10": 10, "SUMMER15": 15, "VIP20": 20}

DATE_START = date(2024, 1, 1)
DATE_END = date(2025, 12, 31)
DATE_RANGE_DAYS = (DATE_END - DATE_START).days

_SQL_TYPES = {"int": "INTEGER", "text": "TEXT", "decimal": "NUMERIC(12, 2)", "date": "DATE"}


def _rand_date() -> date:
    return DATE_START + timedelta(days=random.randint(0, DATE_RANGE_DAYS))


# ── DDL ──────────────────────────────────────────────────

def create_table_sql(table: TableSchema) -> str:
    """``CREATE TABLE`` for *table*; technical columns default to NOW()."""
    lines = []
    for col in table.columns:
        if col.technical:
            lines.append(f"{col.db_name} TIMESTAMP NOT NULL DEFAULT NOW()")
            continue
        ddl = f"{col.db_name} {_SQL_TYPES[col.type]}"
        if col.name == table.primary_key:
            ddl += " PRIMARY KEY"
        elif not col.nullable:
            ddl += " NOT NULL"
        lines.append(ddl)
    body = ",\n  ".join(lines)
    return f"CREATE TABLE IF NOT EXISTS {table.storage_name} (\n  {body}\n)"


# ── Generators ───────────────────────────────────────────

def gen_product_design() -> list[dict]:
    rows = []
    for country, region, city in LOCATIONS:
        for product, price in PRODUCTS.items():
            for code in random.sample(MATERIALS, random.randint(*MATERIALS_PER_PRODUCT)):
                qty = random.randint(1, 5)
                unit_cost = round(random.uniform(0.2, 3.0), 2)
                shipping = round(random.uniform(0.05, 0.8), 2)
                rows.append({
                    "country": country,
                    "region": region,
                    "city": city,
                    "product_name": product,
                    "product_price": price,
                    "material_code": code,
                    "material_quantity": qty,
                    "material_unit_cost": unit_cost,
                    "material_shipping_cost": shipping,
                    "total_material_cost": round(qty * unit_cost, 2),
                    "total_material_shipping_cost": round(qty * shipping, 2),
                })
    return rows


def gen_vehicles() -> list[dict]:
    rows = []
    for _ in range(NUM_VEHICLES):
        country, region, city = random.choice(LOCATIONS)
        rows.append({
            "country": country,
            "region": region,
            "city": city,
            "vehicle_plate": fake.unique.bothify("???-###").upper(),
        })
    return rows


def _material_costs(design: list[dict]) -> dict[tuple, tuple[float, float]]:
    """(product, country, region, city) -> (material cost, material shipping) per unit."""
    costs: dict[tuple, tuple[float, float]] = {}
    for r in design:
        key = (r["product_name"], r["country"], r["region"], r["city"])
        mat, ship = costs.get(key, (0.0, 0.0))
        costs[key] = (mat + r["total_material_cost"], ship + r["total_material_shipping_cost"])
    return costs


def gen_sales(design: list[dict], vehicles: list[dict]) -> list[dict]:
    costs = _material_costs(design)
    stores = {loc: (i + 1, f"{loc[2]} {fake.last_name()} Store") for i, loc in enumerate(LOCATIONS)}
    plates_by_city: dict[tuple, list[str]] = {}
    for v in vehicles:
        plates_by_city.setdefault((v["country"], v["region"], v["city"]), []).append(v["vehicle_plate"])

    rows = []
    for key in range(1, NUM_SALES + 1):
        loc = random.choice(LOCATIONS)
        country, region, city = loc
        store_id, store_name = stores[loc]
        product = random.choice(list(PRODUCTS))
        unit_price = PRODUCTS[product]
        quantity = random.randint(1, 8)
        material_unit, shipping_unit = costs[(product, country, region, city)]
        material_cost = round(material_unit * quantity, 2)
        shipping_cost = round(shipping_unit * quantity, 2)
        sales_type = random.choices(SALES_TYPES, weights=SALES_TYPE_WEIGHTS, k=1)[0]

        delivery = sales_type == "delivery" and bool(plates_by_city.get(loc))
        discount_code = random.choice(list(DISCOUNT_CODES)) if random.random() < 0.2 else None
        rows.append({
            "key": key,
            "country": country,
            "region": region,
            "city": city,
            "store_id": store_id,
            "store_name": store_name,
            "sales_order_number": f"SO-{key:06d}",
            "sales_date": _rand_date(),
            "product_name": product,
            "quantity": quantity,
            "unit_price": unit_price,
            "total_product_cost": round(unit_price * quantity, 2),
            "material_cost": material_cost,
            "shipping_cost": shipping_cost,
            "total_cost": round(material_cost + shipping_cost, 2),
            "sales_type": "delivery" if delivery else "instore",
            "delivery_fee": round(random.uniform(3.0, 9.0), 2) if delivery else 0.0,
            "delivery_duration_mins": random.randint(10, 75) if delivery else None,
            "discount_code": discount_code,
            "discount_percent": DISCOUNT_CODES[discount_code] if discount_code else None,
            "delivery_plate": random.choice(plates_by_city[loc]) if delivery else None,
        })
    return rows


# ── Bulk insert helper ───────────────────────────────────

def _bulk_insert(engine, table: str, rows: list[dict], batch_size: int = 2000):
    """Insert rows into *table* in batches using executemany-style VALUES."""
    if not rows:
        return
    cols = list(rows[0].keys())
    col_list = ", ".join(cols)
    param_list = ", ".join(f":{c}" for c in cols)
    sql = text(f"INSERT INTO {table} ({col_list}) VALUES ({param_list}) ON CONFLICT DO NOTHING")
    with engine.begin() as conn:
        for i in range(0, len(rows), batch_size):
            conn.execute(sql, rows[i : i + batch_size])
    print(f"  ✓ {table}: {len(rows):,} rows")


def create_tables(engine, catalog: SchemaCatalog) -> None:
    with engine.begin() as conn:
        for table in catalog.tables.values():
            conn.execute(text(create_table_sql(table)))
            conn.execute(text(f"TRUNCATE TABLE {table.storage_name}"))


# ── Main ─────────────────────────────────────────────────

def main():
    print("═══ Seed Data Generator ═══")
    catalog = load_catalog()
    engine = create_engine(get_settings().database_url, echo=False)

    print("Creating and truncating tables …")
    create_tables(engine, catalog)

    print("Generating data …")
    design = gen_product_design()
    vehicles = gen_vehicles()
    sales = gen_sales(design, vehicles)

    print("Inserting …")
    _bulk_insert(engine, catalog.get_table("product_design").storage_name, design)
    _bulk_insert(engine, catalog.get_table("vehicle_master").storage_name, vehicles)
    _bulk_insert(engine, catalog.get_table("sales_data").storage_name, sales)

    print(f"\nDone: seeded {len(sales):,} sales, {len(design):,} product/material rows, "
          f"{len(vehicles):,} vehicles.")


if __name__ == "__main__":
    main()
