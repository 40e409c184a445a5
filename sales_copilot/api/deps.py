"""
Shared API plumbing: the ``ApiError`` exception and request dependencies.
"""
from __future__ import annotations

from fastapi import Request

from sales_copilot.db.connection import DatabasePool
from sales_copilot.db.executor import SalesDatabase


class ApiError(Exception):
    """Error rendered as ``{"error": message}`` with *status_code*."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def get_pool(request: Request) -> DatabasePool:
    pool = getattr(request.app.state, "db_pool", None)
    if pool is None:
        pool = DatabasePool()
        request.app.state.db_pool = pool
    return pool


def get_database(request: Request) -> SalesDatabase:
    return SalesDatabase(get_pool(request))
