from __future__ import annotations

import asyncio
import json
import time
from typing import AsyncGenerator, Sequence

from loguru import logger

from sourcerank.config import settings
from sourcerank.errors import BackendError
from sourcerank.llm_client import ChatAdapter, ChatStream, client as llm_client, get_model
from sourcerank.models.schemas import IndexMatch, Intent, SourceRecord
from sourcerank.services import logger as log_service
from sourcerank.services.deadline import Deadline
from sourcerank.services.prompt_store import render_prompt
from sourcerank.services.retry import with_retry

EXCERPT_CHARS = 600


class Ranker:
    """Streams the model's ranking of the retrieved sources.

    Fragments are yielded exactly as the backend produces them; no JSON is parsed here.
    The generator returns normally only after the backend reported completion.
    """

    name = "ranker"

    def __init__(
        self,
        client: ChatAdapter | None = None,
        model: str | None = None,
        *,
        max_sources: int | None = None,
        max_tokens: int | None = None,
    ):
        self.client = client
        self.model = model or get_model()
        self.max_sources = max_sources or settings.max_ranked_sources
        self.max_tokens = max_tokens or settings.llm_max_tokens

    def build_system_prompt(
        self,
        sources: Sequence[SourceRecord],
        excerpts: Sequence[IndexMatch] = (),
    ) -> str:
        serialized = json.dumps(
            [source.to_ranking_dict() for source in sources[: self.max_sources]],
            ensure_ascii=False,
        )
        excerpt_block = ""
        if excerpts:
            passages = "\n".join(
                f"- [{match.chunk.url}] {match.chunk.text[:EXCERPT_CHARS]}" for match in excerpts
            )
            excerpt_block = render_prompt("ranker.excerpts", passages=passages)
        return render_prompt("ranker.system", sources=serialized, excerpts=excerpt_block)

    async def rank(
        self,
        sources: Sequence[SourceRecord],
        intent: Intent,
        *,
        query: str | None = None,
        excerpts: Sequence[IndexMatch] = (),
        deadline: Deadline | None = None,
    ) -> AsyncGenerator[str, None]:
        deadline = deadline or Deadline()
        active_client = self.client or llm_client()
        system = self.build_system_prompt(sources, excerpts)
        user = render_prompt("ranker.user", intent=query or intent.topic)

        t0 = time.monotonic()
        # Only opening the stream is retried; once a fragment is out it cannot be replayed.
        try:
            stream = await with_retry("ranking", self._open, active_client, system, user, deadline)
        except asyncio.CancelledError:
            raise
        except BackendError:
            raise
        except Exception as exc:
            self._log_failure(t0, exc)
            raise BackendError(f"Ranking stream could not be opened: {exc}") from exc

        fragments = 0
        try:
            iterator = stream.text_stream.__aiter__()
            while True:
                deadline.raise_if_cancelled()
                try:
                    text = await asyncio.wait_for(iterator.__anext__(), timeout=deadline.timeout())
                except StopAsyncIteration:
                    break
                except TimeoutError as exc:
                    raise BackendError("Ranking stream exceeded the request deadline") from exc
                fragments += 1
                yield text
        except (asyncio.CancelledError, GeneratorExit):
            raise
        except BackendError as exc:
            self._log_failure(t0, exc)
            raise
        except Exception as exc:
            self._log_failure(t0, exc)
            raise BackendError(f"Ranking stream broke after {fragments} fragments: {exc}") from exc
        finally:
            await stream.close()

        if not stream.completed:
            error = BackendError("Ranking stream ended without a completion signal")
            self._log_failure(t0, error)
            raise error
        if stream.finish_reason != "stop":
            logger.warning(f"Ranking stream finished with reason {stream.finish_reason!r}")

        log_service.log_llm_call(
            model=self.model,
            caller=self.name,
            input_tokens=stream.usage.input_tokens,
            output_tokens=stream.usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )

    async def _open(
        self,
        active_client: ChatAdapter,
        system: str,
        user: str,
        deadline: Deadline,
    ) -> ChatStream:
        deadline.raise_if_cancelled()
        stream = active_client.stream(
            model=self.model,
            system=system,
            user=user,
            max_tokens=self.max_tokens,
        )
        timeout = deadline.timeout()
        try:
            return await asyncio.wait_for(stream.open(), timeout=timeout)
        except TimeoutError as exc:
            raise BackendError(f"Ranking stream did not open within {timeout:.2f}s") from exc

    def _log_failure(self, t0: float, exc: BaseException) -> None:
        log_service.log_llm_call(
            model=self.model,
            caller=self.name,
            duration_ms=int((time.monotonic() - t0) * 1000),
            status="error",
            error=str(exc),
        )
