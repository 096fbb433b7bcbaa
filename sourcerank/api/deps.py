from __future__ import annotations

from functools import lru_cache

from sourcerank.agents.pipeline import AnswerPipeline


@lru_cache(maxsize=1)
def get_pipeline() -> AnswerPipeline:
    """Shared pipeline; its clients are stateless per call and safe across requests."""
    return AnswerPipeline.from_settings()
