"""
Small shared utilities.
"""
from __future__ import annotations

import re
import time
from contextlib import contextmanager
from typing import Generator

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*")
_FENCE_CLOSE_RE = re.compile(r"\s*```$")
_SLUG_RE = re.compile(r"[^a-zA-Z0-9_]")


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Context manager that records elapsed wall-clock milliseconds."""
    result: dict = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - start) * 1000)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json fence from an LLM reply."""
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN_RE.sub("", text)
        text = _FENCE_CLOSE_RE.sub("", text)
    return text


def slugify_key(value: object) -> str:
    """Turn an arbitrary label into a lowercase ``snake_case`` config key."""
    key = re.sub(r"\s+", "_", str(value))
    return _SLUG_RE.sub("", key).lower()
