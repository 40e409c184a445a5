"""
FastAPI application entry-point.
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from sales_copilot.api.deps import ApiError, get_database
from sales_copilot.api.routers import catalog, finance
from sales_copilot.core.logging import get_logger
from sales_copilot.db.connection import DatabasePool
from sales_copilot.db.executor import SalesDatabase

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.db_pool = DatabasePool()
    logger.info("Application started")
    yield
    app.state.db_pool.dispose()
    logger.info("Application stopped")


app = FastAPI(
    title="Sales Analyst Copilot",
    version="0.1.0",
    description="Conversational sales analytics: NL-to-SQL with automatic charts",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


app.include_router(finance.router, prefix="/api", tags=["Copilot"])
app.include_router(catalog.router, tags=["Catalog"])


@app.get("/health")
async def health(db: SalesDatabase = Depends(get_database)):
    status = await run_in_threadpool(db.health_check)
    return {"status": "ok" if status.get("connected") else "degraded", "database": status}
