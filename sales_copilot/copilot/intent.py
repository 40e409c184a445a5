"""
QueryIntent -- the structured interpretation of a sales question, sitting
between natural language and SQL text.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

Aggregate = Literal["SUM", "AVG", "COUNT", "MIN", "MAX"]
Operator = Literal["=", "LIKE", ">", "<", ">=", "<="]
Direction = Literal["ASC", "DESC"]

COUNT_ALL = "COUNT(*)"


class SelectedColumn(BaseModel):
    """One item of the SELECT list."""

    table: str = Field(..., description="Logical table name; empty for bare expressions")
    column: str = Field(..., description="Storage column name or SQL expression")
    alias: str
    aggregate: Aggregate | None = None

    @property
    def is_expression(self) -> bool:
        return "(" in self.column

    @property
    def qualified(self) -> str:
        if not self.table or self.is_expression:
            return self.column
        return f"{self.table}.{self.column}"

    def to_sql(self) -> str:
        if self.column == COUNT_ALL:
            return f"{COUNT_ALL} AS {self.alias}"
        if self.aggregate:
            return f"{self.aggregate}({self.qualified}) AS {self.alias}"
        return f"{self.qualified} AS {self.alias}"


class Filter(BaseModel):
    """``<field> <operator> ?`` -- only *value* is sent as a bind parameter."""

    field: str
    operator: Operator
    value: Any

    def to_sql(self) -> str:
        return f"{self.field} {self.operator} ?"


class Sorting(BaseModel):
    field: str
    direction: Direction = "ASC"


class QueryIntent(BaseModel):
    """Everything the builder needs to render one SELECT statement."""

    main_table: str
    join_table: str | None = None
    selected_columns: list[SelectedColumn] = Field(default_factory=list)
    is_aggregated: bool = False
    group_by: list[str] = Field(default_factory=list, description="Qualified columns or date expressions")
    filters: list[Filter] = Field(default_factory=list, description="Non-time filters first, then time filters")
    sorting: Sorting | None = None
    limit: int | None = None

    @property
    def has_aggregates(self) -> bool:
        return any(c.aggregate for c in self.selected_columns)

    @property
    def params(self) -> list[Any]:
        return [f.value for f in self.filters]
