"""
Loads, parses, and caches the schema catalog YAML into typed objects.

The catalog is the single source of truth for:
  - the three queryable tables (logical name, physical name, description)
  - their columns (type, nullability, technical bookkeeping flag)
  - the two known join paths out of ``sales_data``

Every field expression the query engine inlines into SQL text is drawn from
here, never from the user's question.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml

_CATALOG_PATH = Path(__file__).resolve().parent / "schema_catalog.yml"

NUMERIC_TYPES = frozenset({"int", "decimal"})
COLUMN_TYPES = frozenset({"int", "text", "decimal", "date"})


class SchemaNotFoundError(LookupError):
    """Raised when a logical table name is not in the catalog."""

    def __init__(self, table: str):
        super().__init__(f"Unknown table: {table}")
        self.table = table


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class Column:
    name: str
    type: str  # int | text | decimal | date
    description: str = ""
    nullable: bool = False
    technical: bool = False
    storage_name: str = ""

    @property
    def db_name(self) -> str:
        return self.storage_name or self.name

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_TYPES

    def mentioned_in(self, text: str) -> bool:
        """True when *text* (already lower-cased) names this column or its description."""
        if self.name.lower() in text:
            return True
        return bool(self.description) and self.description.lower() in text


@dataclass(frozen=True)
class TableSchema:
    name: str
    storage_name: str
    description: str
    columns: tuple[Column, ...] = field(default_factory=tuple)
    primary_key: str | None = None

    def column(self, name: str) -> Column | None:
        """Case-insensitive lookup by logical column name."""
        wanted = name.lower()
        for col in self.columns:
            if col.name.lower() == wanted:
                return col
        return None

    def has_column(self, name: str) -> bool:
        return self.column(name) is not None

    @property
    def numeric_columns(self) -> list[Column]:
        return [c for c in self.columns if c.is_numeric and not c.technical]

    @property
    def business_columns(self) -> list[Column]:
        return [c for c in self.columns if not c.technical]

    @property
    def date_column(self) -> Column | None:
        """The table's business date column (``sales_date``), if any."""
        for col in self.columns:
            if col.type == "date" and not col.technical:
                return col
        return None


@dataclass(frozen=True)
class JoinPath:
    left: str
    right: str
    on: str


@dataclass
class SchemaCatalog:
    """Fully parsed schema catalog."""

    version: int
    tables: dict[str, TableSchema]  # keyed by logical name
    joins: list[JoinPath]

    def get_table(self, name: str) -> TableSchema:
        try:
            return self.tables[name]
        except KeyError:
            raise SchemaNotFoundError(name) from None

    def table_names(self) -> list[str]:
        return list(self.tables.keys())

    def find_join(self, left: str, right: str) -> JoinPath | None:
        """Return the join path connecting *left* and *right* (either direction)."""
        for j in self.joins:
            if (j.left, j.right) in ((left, right), (right, left)):
                return j
        return None

    def get_tables_list(self) -> list[dict[str, Any]]:
        """Return tables as a list of dicts (for API responses)."""
        result = []
        for t in self.tables.values():
            result.append({
                "name": t.name,
                "storage_name": t.storage_name,
                "description": t.description,
                "columns": [
                    {
                        "name": c.name,
                        "type": c.type,
                        "description": c.description,
                        "nullable": c.nullable,
                    }
                    for c in t.business_columns
                ],
            })
        return result

    def render_for_prompt(self) -> str:
        """Plain-text description of every table, used in the LLM system prompt."""
        blocks = []
        for t in self.tables.values():
            lines = [f"Table: {t.storage_name} (alias {t.name}) - {t.description}"]
            for c in t.columns:
                null = " NULL" if c.nullable else ""
                lines.append(f"  - {c.db_name} {c.type}{null}: {c.description}")
            blocks.append("\n".join(lines))
        for j in self.joins:
            blocks.append(f"Join {j.left} -> {j.right} ON {j.on}")
        return "\n\n".join(blocks)


# ── Parsing ──────────────────────────────────────────────

def _parse_column(raw: dict[str, Any]) -> Column:
    col_type = raw.get("type", "text")
    if col_type not in COLUMN_TYPES:
        raise ValueError(f"Column {raw.get('name')!r} has unsupported type {col_type!r}")
    return Column(
        name=raw["name"],
        type=col_type,
        description=raw.get("description", ""),
        nullable=raw.get("nullable", False),
        technical=raw.get("technical", False),
        storage_name=raw.get("storage_name", ""),
    )


def _parse_table(raw: dict[str, Any]) -> TableSchema:
    return TableSchema(
        name=raw["name"],
        storage_name=raw.get("storage_name", raw["name"]),
        description=raw.get("description", ""),
        columns=tuple(_parse_column(c) for c in raw.get("columns", [])),
        primary_key=raw.get("primary_key"),
    )


def _parse_join(raw: dict[str, Any]) -> JoinPath:
    return JoinPath(left=raw["left"], right=raw["right"], on=" ".join(raw["condition"].split()))


def _parse_catalog(raw_yaml: dict[str, Any]) -> SchemaCatalog:
    tables = {t["name"]: _parse_table(t) for t in raw_yaml.get("tables", [])}
    joins = [_parse_join(j) for j in raw_yaml.get("joins", [])]
    return SchemaCatalog(version=raw_yaml.get("version", 1), tables=tables, joins=joins)


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_catalog() -> SchemaCatalog:
    """Load and cache the schema catalog from YAML."""
    with open(_CATALOG_PATH) as f:
        raw = yaml.safe_load(f)
    return _parse_catalog(raw)


def get_table(name: str) -> TableSchema:
    return load_catalog().get_table(name)
