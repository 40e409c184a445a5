"""POST /api/finance -- chat endpoint; POST /api/sql -- direct NL-to-SQL engine."""
from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from starlette.concurrency import run_in_threadpool

from sales_copilot.api.deps import ApiError, get_database
from sales_copilot.copilot.llm_client import LLMAuthenticationError
from sales_copilot.copilot.query_engine import generate_sql_query
from sales_copilot.copilot.service import Attachment, FileDataError, handle_chat
from sales_copilot.core.logging import get_logger
from sales_copilot.db.executor import SalesDatabase

logger = get_logger(__name__)
router = APIRouter()


class ChatMessage(BaseModel):
    role: str
    content: Any


class FileData(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    base64: str = ""
    media_type: str = ""
    is_text: bool = False
    file_name: str = ""


class FinanceRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    messages: list[ChatMessage] = Field(..., min_length=1)
    file_data: FileData | None = None
    model: str | None = None
    provider: str | None = Field(None, description="mock | anthropic | openai")


class SqlRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=500, description="Natural-language question")


async def _read_json(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ApiError(400, "Request body must be valid JSON") from exc
    if not isinstance(body, dict):
        raise ApiError(400, "Request body must be a JSON object")
    return body


def parse_finance_request(body: dict[str, Any]) -> FinanceRequest:
    """Validate the raw chat body; every failure is an ``ApiError(400)``."""
    messages = body.get("messages")
    if not isinstance(messages, list) or not messages:
        raise ApiError(400, "Messages array is required")
    # omitted model means "use the default"; an explicit null/empty one is an error
    if "model" in body and not body["model"]:
        raise ApiError(400, "Model selection is required")
    try:
        return FinanceRequest.model_validate(body)
    except ValidationError as exc:
        raise ApiError(400, f"Invalid request: {exc.errors()[0]['msg']}") from exc


@router.post("/finance")
async def finance_endpoint(request: Request, db: SalesDatabase = Depends(get_database)):
    req = parse_finance_request(await _read_json(request))

    attachment = None
    if req.file_data is not None:
        attachment = Attachment(
            base64=req.file_data.base64,
            media_type=req.file_data.media_type,
            is_text=req.file_data.is_text,
            file_name=req.file_data.file_name,
        )

    try:
        result = await handle_chat(
            [m.model_dump() for m in req.messages],
            db,
            model=req.model,
            attachment=attachment,
            provider=req.provider,
        )
    except FileDataError as exc:
        raise ApiError(400, str(exc)) from exc
    except LLMAuthenticationError as exc:
        logger.warning("LLM authentication failed: %s", exc)
        raise ApiError(401, "Authentication failed. Please check your API key.") from exc
    except Exception as exc:
        logger.exception("Chat turn failed")
        raise ApiError(500, str(exc) or "An unexpected error occurred") from exc

    return result.to_response()


def parse_sql_request(body: dict[str, Any]) -> SqlRequest:
    try:
        return SqlRequest.model_validate(body)
    except ValidationError as exc:
        raise ApiError(400, f"Invalid request: {exc.errors()[0]['msg']}") from exc


@router.post("/sql")
async def sql_endpoint(request: Request, db: SalesDatabase = Depends(get_database)):
    """Fallback engine: question -> analyzer -> builder, without the LLM."""
    req = parse_sql_request(await _read_json(request))
    try:
        return await run_in_threadpool(generate_sql_query, req.query, db)
    except Exception as exc:
        logger.exception("SQL generation failed")
        raise ApiError(500, str(exc)) from exc
