"""
GET /catalog -- table and column metadata for the UI sidebar.
"""
from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from sales_copilot.catalog.loader import load_catalog

router = APIRouter()


class ColumnItem(BaseModel):
    name: str
    type: str
    description: str
    nullable: bool


class TableItem(BaseModel):
    name: str
    storage_name: str
    description: str
    columns: list[ColumnItem]


class JoinItem(BaseModel):
    left: str
    right: str
    on: str


class CatalogResponse(BaseModel):
    tables: list[TableItem]
    joins: list[JoinItem]


@router.get("/catalog", response_model=CatalogResponse)
def full_catalog() -> CatalogResponse:
    catalog = load_catalog()
    return CatalogResponse(
        tables=[TableItem(**t) for t in catalog.get_tables_list()],
        joins=[JoinItem(left=j.left, right=j.right, on=j.on) for j in catalog.joins],
    )
