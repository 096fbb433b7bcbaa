"""Prompt templates loaded from `prompts/prompts.json` (string.Template syntax)."""
from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from string import Template
from typing import Any

PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"


@lru_cache(maxsize=1)
def _catalog() -> dict[str, Any]:
    payload = json.loads(PROMPTS_PATH.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Prompt catalog must be a JSON object.")
    return payload


def get_template(key: str) -> Template:
    node: Any = _catalog()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(f"Prompt key not found: {key}")
        node = node[part]
    if not isinstance(node, str):
        raise TypeError(f"Prompt key must map to a string: {key}")
    return Template(node)


def render_prompt(key: str, **values: Any) -> str:
    template = get_template(key)
    try:
        return template.substitute(**values)
    except KeyError as exc:
        raise KeyError(f"Missing template value {exc.args[0]!r} for prompt {key!r}") from exc
