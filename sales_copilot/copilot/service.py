"""
Copilot chat service -- orchestrates one chat turn:

  LLM (tools) -> query tool? -> execute -> grounding check -> visualize
              -> chart tool only? -> optional redesign
  -> final chart normalization

At most one chart is returned per turn.  When the LLM asked for data, the
rows decide the chart and any chart tool call it made alongside only
contributes its chart type as a hint; its input is replaced.  A chart tool
call without a query is passed through with its data untouched.

Database calls are synchronous SQLAlchemy and run in Starlette's threadpool.
"""
from __future__ import annotations

import base64
import binascii
import copy
from dataclasses import dataclass
from typing import Any

from starlette.concurrency import run_in_threadpool

from sales_copilot.copilot.chart_designer import redesign_chart
from sales_copilot.copilot.chart_normalizer import normalize_chart
from sales_copilot.copilot.explainer import explain_data, needs_data_explanation
from sales_copilot.copilot.llm_client import ContentBlock, complete, message_text, new_tool_use_id
from sales_copilot.copilot.prompts import system_prompt
from sales_copilot.copilot.query_engine import generate_sql_query
from sales_copilot.copilot.tools import CHART_TOOL, QUERY_TOOL, TOOLS
from sales_copilot.copilot.visualizer import prepare_chart, should_visualize
from sales_copilot.core.config import get_settings
from sales_copilot.core.logging import get_logger
from sales_copilot.core.utils import timer
from sales_copilot.db.executor import SalesDatabase

logger = get_logger(__name__)


class FileDataError(ValueError):
    """The uploaded file could not be attached to the conversation."""


@dataclass
class Attachment:
    base64: str
    media_type: str = ""
    is_text: bool = False
    file_name: str = ""


class ChatResult:
    def __init__(
        self,
        content: str,
        tool_use: ContentBlock | None = None,
        chart_data: dict[str, Any] | None = None,
        has_tool_use: bool = False,
        rows: list[dict[str, Any]] | None = None,
        sql: str = "",
        latency_ms: int = 0,
    ):
        self.content = content
        self.tool_use = tool_use
        self.chart_data = chart_data
        self.has_tool_use = has_tool_use
        self.rows = rows or []
        self.sql = sql
        self.latency_ms = latency_ms

    def to_response(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "hasToolUse": self.has_tool_use,
            "toolUse": self.tool_use.to_dict() if self.tool_use else None,
            "chartData": self.chart_data,
            "replaceChart": True,
        }


# ── Message preparation ──────────────────────────────────

def _decode(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise FileDataError("Failed to process file content") from exc


def attach_file(messages: list[dict[str, Any]], attachment: Attachment | None) -> list[dict[str, Any]]:
    """Copy *messages*, folding *attachment* into the last message.

    Text files are decoded and prepended as a text block; images become a
    base64 image block.  Other media types are ignored.
    """
    prepared = [{"role": m["role"], "content": m["content"]} for m in messages]
    if attachment is None:
        return prepared
    if not attachment.base64:
        raise FileDataError("No file data")

    question = message_text(prepared[-1])
    if attachment.is_text:
        try:
            decoded = _decode(attachment.base64).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FileDataError("Failed to process file content") from exc
        prepared[-1] = {
            "role": "user",
            "content": [
                {"type": "text", "text": f"File contents of {attachment.file_name}:\n\n{decoded}"},
                {"type": "text", "text": question},
            ],
        }
    elif attachment.media_type.startswith("image/"):
        _decode(attachment.base64)
        prepared[-1] = {
            "role": "user",
            "content": [
                {
                    "type": "image",
                    "source": {"type": "base64", "media_type": attachment.media_type, "data": attachment.base64},
                },
                {"type": "text", "text": question},
            ],
        }
    else:
        logger.warning("Ignoring attachment %s with media type %s", attachment.file_name, attachment.media_type)
    return prepared


# ── Tool resolution ──────────────────────────────────────

async def _resolve_query(
    call: ContentBlock,
    chart_calls: list[ContentBlock],
    text: str,
    fallback_question: str,
    db: SalesDatabase,
    provider: str | None,
) -> tuple[str, ContentBlock | None, list[dict[str, Any]], str]:
    """Run the query tool call; return (text, chart tool use, rows, sql)."""
    question = call.input.get("query") or fallback_question
    sql = call.input.get("sql") or ""
    params = call.input.get("params") or []

    if not sql:
        generated = await run_in_threadpool(generate_sql_query, question, db)
        if generated["success"]:
            sql, params = generated["sql"], generated["params"]
        else:
            logger.warning("Fallback SQL generation failed: %s", generated.get("error"))

    result = await run_in_threadpool(db.execute, sql, params)
    if not result.success or not result.data:
        logger.info("Query returned no data or failed: %s", result.error)
        return text, None, [], sql

    rows = result.data
    logger.info("Query returned %d rows", len(rows))
    if needs_data_explanation(text, rows):
        logger.info("Answer cites no returned values; requesting a grounded explanation")
        text = await explain_data(text, rows, question, provider=provider)

    if not should_visualize(rows, question, chart_requested=bool(chart_calls)):
        return text, None, rows, sql

    hint = chart_calls[0].input.get("chartType") if chart_calls else None
    spec = prepare_chart(rows, question, hint=hint)
    if spec is None:
        return text, None, rows, sql

    if chart_calls:
        tool_use = copy.copy(chart_calls[0])
        tool_use.input = spec.to_wire()
    else:
        logger.info("Creating synthetic %s tool call", CHART_TOOL)
        tool_use = ContentBlock(type="tool_use", id=new_tool_use_id(), name=CHART_TOOL, input=spec.to_wire())
    return text, tool_use, rows, sql


async def handle_chat(
    messages: list[dict[str, Any]],
    db: SalesDatabase,
    model: str | None = None,
    attachment: Attachment | None = None,
    provider: str | None = None,
) -> ChatResult:
    """Run one chat turn end to end.

    Parameters
    ----------
    messages : list[dict]
        Conversation so far, ``{"role", "content"}``, last one from the user.
    db : SalesDatabase
        Query-execution collaborator.
    model : str, optional
        Chat model; defaults to ``settings.default_model``.
    attachment : Attachment, optional
        File uploaded with the last message.
    provider : str, optional
        LLM provider override (mock | anthropic | openai).

    Raises
    ------
    FileDataError
        The attachment is empty or cannot be decoded.
    LLMAuthenticationError
        The provider rejected the API key.
    """
    settings = get_settings()
    with timer() as t:
        llm_messages = attach_file(messages, attachment)
        question = message_text(messages[-1]) if messages else ""

        response = await complete(
            model=model or settings.default_model,
            messages=llm_messages,
            tools=TOOLS,
            system_prompt=system_prompt(),
            temperature=settings.chat_temperature,
            max_tokens=settings.chat_max_tokens,
            provider=provider,
        )
        text = response.text
        query_calls = response.tool_uses(QUERY_TOOL)
        chart_calls = response.tool_uses(CHART_TOOL)
        logger.info("LLM used tools: %s", [b.name for b in response.tool_uses()] or "none")

        tool_use: ContentBlock | None = None
        rows: list[dict[str, Any]] = []
        sql = ""
        if query_calls:
            text, tool_use, rows, sql = await _resolve_query(
                query_calls[0], chart_calls, text, question, db, provider,
            )
        elif chart_calls:
            tool_use = copy.copy(chart_calls[-1])
            if settings.chart_redesign_enabled:
                tool_use.input = await redesign_chart(tool_use.input, question, provider=provider)

        chart_data = None
        if tool_use is not None:
            chart_data = normalize_chart(tool_use.input)
            if chart_data is None:
                logger.warning("Dropping chart that could not be normalized")
                tool_use = None
            else:
                tool_use.input = chart_data

    result = ChatResult(
        content=text,
        tool_use=tool_use,
        chart_data=chart_data,
        has_tool_use=bool(response.tool_uses()) or tool_use is not None,
        rows=rows,
        sql=sql,
        latency_ms=t.get("elapsed_ms", 0),
    )
    logger.info("Chat turn done  chart=%s  rows=%d", chart_data["chartType"] if chart_data else None, len(rows))
    return result
