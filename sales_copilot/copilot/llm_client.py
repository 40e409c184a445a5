"""
LLM client abstraction -- provider-agnostic async wrapper with tool calling.

Supported providers:
  mock      -- deterministic offline provider; answers data questions by
               authoring a ``query_sales_data`` tool call with the local
               NL-to-SQL engine (for tests / offline dev)
  openai    -- OpenAI Chat Completions with function tools (gpt-4o-mini default)
  anthropic -- Anthropic Messages with tools (claude-3-haiku default)

Messages use the Anthropic shape: ``{"role", "content"}`` where content is a
string or a list of ``text`` / ``image`` blocks.  Responses are normalised to
a list of ``text`` / ``tool_use`` content blocks whatever the provider.

Configuration is read from Settings (env / .env).
"""
from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any

from sales_copilot.core.config import get_settings
from sales_copilot.core.logging import get_logger

logger = get_logger(__name__)


_OPENAI_DEFAULT_MODEL = "gpt-4o-mini"
_ANTHROPIC_DEFAULT_MODEL = "claude-3-haiku-20240307"


class LLMAuthenticationError(RuntimeError):
    """The provider rejected (or we lack) the API key."""


@dataclass
class ContentBlock:
    type: str  # text | tool_use
    text: str = ""
    id: str = ""
    name: str = ""
    input: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        if self.type == "tool_use":
            return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}
        return {"type": "text", "text": self.text}


@dataclass
class LLMResponse:
    content: list[ContentBlock] = field(default_factory=list)
    model: str = ""

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.content if b.type == "text")

    def tool_uses(self, name: str | None = None) -> list[ContentBlock]:
        return [b for b in self.content if b.type == "tool_use" and (name is None or b.name == name)]


def new_tool_use_id() -> str:
    return f"tu_{uuid.uuid4().hex[:24]}"


def message_text(message: dict[str, Any]) -> str:
    """Flatten a message's content to plain text (image blocks are skipped)."""
    content = message.get("content", "")
    if isinstance(content, str):
        return content
    return "\n".join(b.get("text", "") for b in content if isinstance(b, dict) and b.get("type") == "text")


# ── Mock ─────────────────────────────────────────────────

async def _complete_mock(
    *,
    model: str,
    messages: list[dict[str, Any]],
    tools: list[dict[str, Any]] | None,
    system_prompt: str,
    temperature: float,
    max_tokens: int,
) -> LLMResponse:
    prompt = message_text(messages[-1]) if messages else ""
    tool_names = {t["name"] for t in tools or []}

    if "query_sales_data" not in tool_names:
        logger.info("LLM mock mode -- returning echo")
        return LLMResponse(content=[ContentBlock(type="text", text=f"[MOCK] {prompt[:200]}")], model="mock")

    from sales_copilot.copilot.analyzer import analyze
    from sales_copilot.copilot.sql_builder import build_sql

    built = build_sql(analyze(prompt))
    logger.info("LLM mock mode -- authoring query_sales_data tool call")
    return LLMResponse(
        content=[
            ContentBlock(type="text", text=f"[MOCK] Querying the sales data for: {prompt[:200]}"),
            ContentBlock(
                type="tool_use",
                id=new_tool_use_id(),
                name="query_sales_data",
                input={"query": prompt, "sql": built.sql, "params": built.params},
            ),
        ],
        model="mock",
    )


# ── Anthropic ────────────────────────────────────────────

async def _complete_anthropic(
    *,
    model: str,
    messages: list[dict[str, Any]],
    tools: list[dict[str, Any]] | None,
    system_prompt: str,
    temperature: float,
    max_tokens: int,
) -> LLMResponse:
    """Call Anthropic Messages API."""
    settings = get_settings()
    api_key = settings.anthropic_api_key
    if not api_key:
        raise LLMAuthenticationError(
            "anthropic_api_key is not set.  "
            "Set ANTHROPIC_API_KEY in your .env file or environment."
        )

    try:
        import anthropic  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'anthropic' package is not installed.  "
            "Run: pip install anthropic"
        ) from exc

    kwargs: dict[str, Any] = {
        "model": model or _ANTHROPIC_DEFAULT_MODEL,
        "max_tokens": max_tokens,
        "temperature": temperature,
        "messages": messages,
    }
    if system_prompt:
        kwargs["system"] = system_prompt
    if tools:
        kwargs["tools"] = tools
        kwargs["tool_choice"] = {"type": "auto"}

    client = anthropic.AsyncAnthropic(api_key=api_key)
    try:
        response = await client.messages.create(**kwargs)
    except anthropic.AuthenticationError as exc:
        raise LLMAuthenticationError(str(exc)) from exc

    blocks: list[ContentBlock] = []
    for block in response.content:
        if block.type == "text":
            blocks.append(ContentBlock(type="text", text=block.text))
        elif block.type == "tool_use":
            blocks.append(ContentBlock(type="tool_use", id=block.id, name=block.name, input=dict(block.input)))
    logger.info("Anthropic response (%d blocks, stop=%s)", len(blocks), response.stop_reason)
    return LLMResponse(content=blocks, model=response.model)


# ── OpenAI ───────────────────────────────────────────────

def _openai_content(content: Any) -> Any:
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if block.get("type") == "text":
            parts.append({"type": "text", "text": block["text"]})
        elif block.get("type") == "image":
            src = block["source"]
            parts.append({
                "type": "image_url",
                "image_url": {"url": f"data:{src['media_type']};base64,{src['data']}"},
            })
    return parts


def _openai_messages(messages: list[dict[str, Any]], system_prompt: str) -> list[dict[str, Any]]:
    converted: list[dict[str, Any]] = []
    if system_prompt:
        converted.append({"role": "system", "content": system_prompt})
    for m in messages:
        if m["role"] == "assistant":
            converted.append({"role": "assistant", "content": message_text(m)})
        else:
            converted.append({"role": m["role"], "content": _openai_content(m["content"])})
    return converted


def _openai_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": t["name"],
                "description": t.get("description", ""),
                "parameters": t["input_schema"],
            },
        }
        for t in tools
    ]


async def _complete_openai(
    *,
    model: str,
    messages: list[dict[str, Any]],
    tools: list[dict[str, Any]] | None,
    system_prompt: str,
    temperature: float,
    max_tokens: int,
) -> LLMResponse:
    """Call OpenAI Chat Completions API."""
    settings = get_settings()
    api_key = settings.openai_api_key
    if not api_key:
        raise LLMAuthenticationError(
            "openai_api_key is not set.  "
            "Set OPENAI_API_KEY in your .env file or environment."
        )

    try:
        import openai  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'openai' package is not installed.  "
            "Run: pip install openai"
        ) from exc

    # Claude model names are meaningless here
    if not model or model.startswith("claude"):
        model = _OPENAI_DEFAULT_MODEL

    kwargs: dict[str, Any] = {
        "model": model,
        "messages": _openai_messages(messages, system_prompt),
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if tools:
        kwargs["tools"] = _openai_tools(tools)
        kwargs["tool_choice"] = "auto"

    client = openai.AsyncOpenAI(api_key=api_key)
    try:
        response = await client.chat.completions.create(**kwargs)
    except openai.AuthenticationError as exc:
        raise LLMAuthenticationError(str(exc)) from exc

    message = response.choices[0].message
    blocks: list[ContentBlock] = []
    if message.content:
        blocks.append(ContentBlock(type="text", text=message.content))
    for call in message.tool_calls or []:
        try:
            arguments = json.loads(call.function.arguments or "{}")
        except json.JSONDecodeError as exc:
            logger.warning("Dropping tool call %s with invalid JSON arguments: %s", call.function.name, exc)
            continue
        blocks.append(ContentBlock(type="tool_use", id=call.id, name=call.function.name, input=arguments))
    logger.info("OpenAI response (%d blocks)", len(blocks))
    return LLMResponse(content=blocks, model=response.model)


_PROVIDERS: dict[str, Any] = {
    "mock": _complete_mock,
    "openai": _complete_openai,
    "anthropic": _complete_anthropic,
}


async def complete(
    *,
    messages: list[dict[str, Any]],
    model: str | None = None,
    tools: list[dict[str, Any]] | None = None,
    system_prompt: str = "",
    temperature: float | None = None,
    max_tokens: int | None = None,
    provider: str | None = None,
) -> LLMResponse:
    """Send *messages* to the configured (or overridden) LLM provider.

    Parameters
    ----------
    messages : list[dict]
        Conversation history, oldest first.
    model : str, optional
        Provider model id; defaults to ``settings.default_model``.
    tools : list[dict], optional
        Tool schemas (Anthropic ``input_schema`` format).
    provider : str, optional
        Override the provider from settings.  One of: mock, openai, anthropic.

    Raises
    ------
    LLMAuthenticationError
        Missing or rejected API key.
    """
    settings = get_settings()
    if provider is None:
        provider = settings.llm_provider.lower()

    fn = _PROVIDERS.get(provider)
    if fn is None:
        raise NotImplementedError(
            f"LLM provider '{provider}' is not supported.  "
            f"Choose from: {', '.join(_PROVIDERS)}"
        )

    logger.info("Calling LLM provider=%s  messages=%d  tools=%d", provider, len(messages), len(tools or []))
    return await fn(
        model=model or settings.default_model,
        messages=messages,
        tools=tools,
        system_prompt=system_prompt,
        temperature=settings.chat_temperature if temperature is None else temperature,
        max_tokens=max_tokens or settings.chat_max_tokens,
    )
