"""Tolerant extraction of a JSON object from free-form model output."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

__all__ = ["JsonExtractionError", "extract_json"]


class JsonExtractionError(ValueError):
    """Raised when no JSON object can be recovered from a model reply."""


def extract_json(text: str) -> Dict[str, Any]:
    """Return the first JSON object found in ``text``.

    A strict parse is attempted first. Failing that, the text is scanned from
    the first ``{`` for a balanced block, ignoring braces inside string literals.
    """
    stripped = _strip_code_fence(text.strip())
    try:
        parsed = json.loads(stripped)
    except json.JSONDecodeError:
        pass
    else:
        if isinstance(parsed, dict):
            return parsed

    start = stripped.find("{")
    while start != -1:
        candidate = _balanced_block(stripped, start)
        if candidate is None:
            break
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            pass
        else:
            if isinstance(parsed, dict):
                return parsed
        start = stripped.find("{", start + 1)

    raise JsonExtractionError("No JSON object found in response")


def _balanced_block(text: str, start: int) -> Optional[str]:
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def _strip_code_fence(payload: str) -> str:
    """Remove Markdown-style code fences that wrap JSON payloads."""
    if not payload.startswith("```"):
        return payload
    fence_header_match = re.match(r"```(?:json)?", payload[:10], re.IGNORECASE)
    if not fence_header_match:
        return payload
    fence_end = payload.find("```", len(fence_header_match.group(0)))
    if fence_end == -1:
        return payload
    content_start = payload.find("\n", len(fence_header_match.group(0)))
    if content_start == -1:
        return payload
    return payload[content_start + 1 : fence_end].strip()
