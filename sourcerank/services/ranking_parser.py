"""Assembly and validation of the ranker's streamed JSON answer."""
from __future__ import annotations

import json
import math
from typing import Any

from loguru import logger

from sourcerank.config import settings
from sourcerank.errors import ParseError
from sourcerank.models.schemas import RankedResult
from sourcerank.services.json_text import load_json_value

RESULTS_KEY = "finalResults"
STRING_FIELDS = ("title", "link", "snippet")
SCORE_KEYS = ("relevance_score", "relevanceScore")
REASON_KEYS = ("reasoning", "Reason", "reason")


class RankedOutputAssembler:
    """Buffers fragments in arrival order; parses only once the stream has ended."""

    def __init__(self, max_results: int | None = None):
        self.max_results = max_results if max_results is not None else settings.max_ranked_sources
        self._parts: list[str] = []

    def append(self, fragment: str) -> None:
        self._parts.append(fragment)

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def finalize(self, *, expect_results: bool = True) -> list[RankedResult]:
        return parse_ranked_results(
            self.text,
            max_results=self.max_results,
            expect_results=expect_results,
        )


def _items_of(payload: Any, raw_text: str) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        items = payload.get(RESULTS_KEY)
        if isinstance(items, list):
            return items
        raise ParseError(f"Ranking object has no '{RESULTS_KEY}' array", raw_text)
    raise ParseError("Ranking output is not a JSON array", raw_text)


def _string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value)


def _score(item: dict[str, Any], raw_text: str) -> float | None:
    for key in SCORE_KEYS:
        if key in item and item[key] is not None and item[key] != "":
            raw = item[key]
            if isinstance(raw, bool):
                raise ParseError(f"'{key}' must be a number, got {raw!r}", raw_text)
            try:
                value = float(raw)
            except (TypeError, ValueError) as exc:
                raise ParseError(f"'{key}' must be a number, got {raw!r}", raw_text) from exc
            if not math.isfinite(value):
                raise ParseError(f"'{key}' must be finite, got {raw!r}", raw_text)
            return min(max(value, 0.0), 1.0)
    return None


def _reasoning(item: dict[str, Any]) -> str | None:
    for key in REASON_KEYS:
        value = item.get(key)
        if value:
            return _string(value)
    return None


def parse_ranked_results(
    raw_text: str,
    *,
    max_results: int | None = None,
    expect_results: bool = True,
) -> list[RankedResult]:
    """Parse the assembled ranker output into RankedResults.

    Positions are reassigned densely from array order; a `position` the model wrote that
    disagrees is only logged. Raises ParseError when the text is not an array of objects,
    or when it is empty although results were expected.
    """
    cap = max_results if max_results is not None else settings.max_ranked_sources
    if not raw_text or not raw_text.strip():
        raise ParseError("Ranking output is empty", raw_text or "")
    try:
        payload = load_json_value(raw_text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Ranking output is not valid JSON: {exc.msg}", raw_text) from exc

    items = _items_of(payload, raw_text)
    if not items and expect_results:
        raise ParseError("Ranking output is an empty array", raw_text)

    for offset, item in enumerate(items):
        if not isinstance(item, dict):
            raise ParseError(f"Ranking element {offset} is not an object", raw_text)

    results: list[RankedResult] = []
    for offset, item in enumerate(items[: max(cap, 0)]):
        position = offset + 1
        claimed = item.get("position")
        if claimed not in (None, "") and str(claimed).strip() != str(position):
            logger.debug(f"Ranker claimed position {claimed!r} for element {position}")
        results.append(
            RankedResult(
                title=_string(item.get("title")),
                link=_string(item.get("link")),
                snippet=_string(item.get("snippet")),
                position=position,
                relevance_score=_score(item, raw_text),
                reasoning=_reasoning(item),
            )
        )
    return results
