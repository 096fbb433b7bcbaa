"""Helpers for pulling JSON out of model text."""
from __future__ import annotations

import json
from typing import Any


def strip_fences(raw_text: str) -> str:
    text = raw_text.strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    return text


def load_json_object(raw_text: str) -> dict[str, Any]:
    text = strip_fences(raw_text)
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise json.JSONDecodeError("object not found", text, 0)
    parsed = json.loads(text[start : end + 1])
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("not an object", text, 0)
    return parsed


def load_json_value(raw_text: str) -> Any:
    """Parse the outermost array or object in `raw_text`, whichever opens first."""
    text = strip_fences(raw_text)
    starts = [i for i in (text.find("["), text.find("{")) if i >= 0]
    if not starts:
        raise json.JSONDecodeError("no JSON value found", text, 0)
    start = min(starts)
    closer = "]" if text[start] == "[" else "}"
    end = text.rfind(closer)
    if end <= start:
        raise json.JSONDecodeError("unterminated JSON value", text, start)
    return json.loads(text[start : end + 1])
