from __future__ import annotations

import asyncio
import json
import math
import time
from typing import Any

from loguru import logger

from sourcerank.config import settings
from sourcerank.errors import BackendError, InterpretationError
from sourcerank.llm_client import ChatAdapter, client as llm_client, get_model
from sourcerank.models.schemas import Intent
from sourcerank.services import logger as log_service
from sourcerank.services.deadline import Deadline
from sourcerank.services.json_text import load_json_object
from sourcerank.services.prompt_store import render_prompt
from sourcerank.services.retry import with_retry


class QueryInterpreter:
    """Turns raw user text into an Intent with a single model round trip."""

    name = "query_interpreter"

    def __init__(
        self,
        client: ChatAdapter | None = None,
        model: str | None = None,
        *,
        count_range: tuple[int, int] | None = None,
        clamp: bool | None = None,
    ):
        self.client = client
        self.model = model or get_model()
        self.count_range = count_range or (
            settings.desired_count_min,
            settings.desired_count_max,
        )
        self.clamp = settings.clamp_desired_count if clamp is None else clamp

    async def parse(self, user_text: str, deadline: Deadline | None = None) -> Intent:
        deadline = deadline or Deadline()
        active_client = self.client or llm_client()
        system = render_prompt("intent.system", default_count=self.count_range[1])

        t0 = time.monotonic()
        try:
            response = await with_retry(
                "intent",
                self._call,
                active_client,
                system,
                user_text,
                deadline,
            )
        except InterpretationError:
            raise
        except Exception as exc:
            log_service.log_llm_call(
                model=self.model,
                caller=self.name,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(exc),
            )
            raise InterpretationError(f"Intent call failed: {exc}") from exc

        log_service.log_llm_call(
            model=self.model,
            caller=self.name,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return self.to_intent(response.text)

    async def _call(self, active_client: ChatAdapter, system: str, user_text: str, deadline: Deadline):
        deadline.raise_if_cancelled()
        timeout = deadline.timeout()
        call = active_client.create(
            model=self.model,
            system=system,
            user=user_text,
            max_tokens=256,
            json_mode=True,
        )
        if timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except TimeoutError as exc:
            raise BackendError(f"Intent call exceeded {timeout:.2f}s") from exc

    def to_intent(self, text: str) -> Intent:
        """Validate the model's JSON reply. Never returns a partially populated Intent."""
        if not text or not text.strip():
            raise InterpretationError("No response from the generation backend")
        try:
            payload = load_json_object(text)
        except json.JSONDecodeError as exc:
            logger.warning(f"Intent reply is not JSON: {text[:200]!r}")
            raise InterpretationError("Failed to parse JSON response from the generation backend") from exc

        topic = payload.get("topic")
        media_type = payload.get("mediaType", payload.get("media_type"))
        if not isinstance(topic, str) or not topic.strip():
            raise InterpretationError("Intent is missing a non-empty 'topic'")
        if not isinstance(media_type, str):
            raise InterpretationError("Intent is missing a 'mediaType' string")
        if "numResults" not in payload and "num_results" not in payload:
            raise InterpretationError("Intent is missing 'numResults'")

        raw_count = payload.get("numResults", payload.get("num_results"))
        return Intent(
            topic=topic.strip(),
            media_type=media_type.strip(),
            desired_count=self._coerce_count(raw_count),
        )

    def _coerce_count(self, raw: Any) -> int:
        low, high = self.count_range
        if raw is None:
            # Present but unspecified.
            return high
        if isinstance(raw, bool):
            raise InterpretationError(f"'numResults' must be a number, got {raw!r}")
        if isinstance(raw, (int, float)):
            value = float(raw)
        elif isinstance(raw, str):
            try:
                value = float(raw.strip())
            except ValueError as exc:
                raise InterpretationError(f"'numResults' must be a number, got {raw!r}") from exc
        else:
            raise InterpretationError(f"'numResults' must be a number, got {raw!r}")

        if not math.isfinite(value):
            raise InterpretationError(f"'numResults' must be finite, got {raw!r}")
        count = int(value)
        if not self.clamp:
            return count
        return min(max(count, low), high)
