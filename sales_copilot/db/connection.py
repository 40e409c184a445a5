"""SQLAlchemy connection pool owned by the application.

The pool is an explicit object rather than a module global: the FastAPI app
creates one at startup, hands it to request handlers through a dependency and
disposes it on shutdown.  The engine itself is only created on first use and
is thrown away after a connection-level failure so the next request builds a
fresh one.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

from sales_copilot.core.config import get_settings
from sales_copilot.core.logging import get_logger

logger = get_logger(__name__)


class DatabasePool:
    """Lazily created, discardable SQLAlchemy engine."""

    def __init__(self, url: str | None = None, pool_size: int | None = None):
        settings = get_settings()
        self._url = url or settings.database_url
        self._pool_size = pool_size or settings.db_pool_size
        self._engine: Engine | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = create_engine(
                self._url,
                pool_pre_ping=True,
                pool_size=self._pool_size,
                max_overflow=10,
                echo=False,
            )
            logger.info("DB engine created  pool_size=%d", self._pool_size)
        return self._engine

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def discard(self) -> None:
        """Drop the engine after a pool-level failure; the next use recreates it."""
        if self._engine is not None:
            logger.warning("Discarding DB engine after connection failure")
            self._engine.dispose()
            self._engine = None

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.info("DB engine disposed")

    @contextmanager
    def readonly_connection(self) -> Generator[Connection, None, None]:
        """Yield a connection set to READ ONLY transaction mode.

        The connection is returned to the pool on exit.
        """
        conn = self.engine.connect()
        try:
            conn.execute(text("SET TRANSACTION READ ONLY"))
            yield conn
        finally:
            conn.close()
