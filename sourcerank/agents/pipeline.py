"""Answer pipeline: intent -> retrieval -> content -> index -> streamed ranking."""
from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from enum import Enum
from typing import AsyncGenerator

from loguru import logger

from sourcerank.agents.content_fetcher import ContentFetcher
from sourcerank.agents.content_indexer import ContentIndexer
from sourcerank.agents.query_interpreter import QueryInterpreter
from sourcerank.agents.ranker import Ranker
from sourcerank.agents.retriever import Retriever
from sourcerank.config import settings
from sourcerank.errors import BackendError, ParseError
from sourcerank.llm_client import get_client
from sourcerank.models.events import ProgressEvent, TimingMilestone
from sourcerank.models.schemas import IndexMatch
from sourcerank.services import logger as log_service
from sourcerank.services import streaming
from sourcerank.services.deadline import Deadline
from sourcerank.services.embeddings import get_embedder
from sourcerank.services.ranking_parser import RankedOutputAssembler


class PipelineState(str, Enum):
    START = "start"
    INTENT_PARSED = "intent_parsed"
    RETRIEVED = "retrieved"
    CONTENT_FETCHED = "content_fetched"
    INDEXED = "indexed"
    RANKING = "ranking"
    DONE = "done"
    FAILED = "failed"


class AnswerPipeline:
    """Runs one request through every stage and yields its ProgressEvents in order.

    This is the only place that decides whether a failure is fatal. Intent and ranking
    failures end the stream with a `failed` status; provider, fetch and indexing failures
    shrink the evidence and the request carries on. Events already yielded are never
    retracted.
    """

    def __init__(
        self,
        interpreter: QueryInterpreter,
        retriever: Retriever,
        fetcher: ContentFetcher,
        indexer: ContentIndexer | None,
        ranker: Ranker,
        *,
        request_timeout: float | None = None,
    ):
        self.interpreter = interpreter
        self.retriever = retriever
        self.fetcher = fetcher
        self.indexer = indexer
        self.ranker = ranker
        self.request_timeout = (
            request_timeout if request_timeout is not None else settings.request_timeout_seconds
        )

    @classmethod
    def from_settings(cls) -> "AnswerPipeline":
        chat = get_client()
        return cls(
            interpreter=QueryInterpreter(client=chat),
            retriever=Retriever(),
            fetcher=ContentFetcher(),
            indexer=ContentIndexer(embedder=get_embedder()),
            ranker=Ranker(client=chat),
        )

    async def run(
        self,
        user_text: str,
        deadline: Deadline | None = None,
        *,
        request_id: str | None = None,
    ) -> AsyncGenerator[ProgressEvent, None]:
        request_id = request_id or uuid.uuid4().hex[:12]
        deadline = deadline or Deadline.after(self.request_timeout)
        started = time.monotonic()
        state = PipelineState.START
        log_service.log_pipeline_step(request_id, state.value, "started", {"query": user_text[:200]})

        try:
            # Intent
            try:
                intent = await self.interpreter.parse(user_text, deadline)
            except BackendError as exc:
                yield self._fail(request_id, state, "intent", exc)
                return
            state = PipelineState.INTENT_PARSED
            log_service.log_pipeline_step(request_id, state.value, "ok", intent.model_dump())
            yield streaming.timing(TimingMilestone.PARSE_QUERY, time.monotonic() - started)
            yield streaming.intent_parsed(intent)

            # Retrieval: all three branches settle before anything moves on.
            search_started = time.monotonic()
            deadline.raise_if_cancelled()
            retrieved = await self.retriever.search(intent, user_text, deadline)
            for failure in retrieved.failures:
                logger.warning(f"[{request_id}] Provider branch degraded to empty: {failure}")
            state = PipelineState.RETRIEVED
            log_service.log_pipeline_step(
                request_id,
                state.value,
                "ok",
                {
                    "web": len(retrieved.web.items),
                    "images": len(retrieved.images.items),
                    "videos": len(retrieved.videos.items),
                    "failed_branches": [f.provider for f in retrieved.failures],
                },
            )
            sources = retrieved.web.items
            yield streaming.source_batch(sources)
            yield streaming.images(retrieved.images.items)
            yield streaming.videos(retrieved.videos.items)
            yield streaming.timing(TimingMilestone.SEARCH, time.monotonic() - search_started)

            # Content
            deadline.raise_if_cancelled()
            contents = await self.fetcher.fetch_batch(sources, deadline)
            state = PipelineState.CONTENT_FETCHED
            log_service.log_pipeline_step(
                request_id, state.value, "ok", {"fetched": len(contents), "of": len(sources)}
            )

            # Similarity index (optional stage)
            matches: list[IndexMatch] = []
            if self.indexer is not None and contents:
                deadline.raise_if_cancelled()
                try:
                    matches = await self.indexer.index(contents, user_text, deadline)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.warning(f"[{request_id}] Indexing skipped: {exc!r}")
                state = PipelineState.INDEXED
                log_service.log_pipeline_step(request_id, state.value, "ok", {"matches": len(matches)})

            # Ranking
            state = PipelineState.RANKING
            log_service.log_pipeline_step(request_id, state.value, "started", {"sources": len(sources)})
            chat_started = time.monotonic()
            assembler = RankedOutputAssembler(max_results=self.ranker.max_sources)
            try:
                ranking = self.ranker.rank(
                    sources,
                    intent,
                    query=user_text,
                    excerpts=matches,
                    deadline=deadline,
                )
                async with contextlib.aclosing(ranking) as fragments:
                    async for text in fragments:
                        assembler.append(text)
                        yield streaming.fragment(text)
            except BackendError as exc:
                yield self._fail(request_id, state, "ranking", exc)
                return
            yield streaming.stream_end()

            try:
                results = assembler.finalize(expect_results=bool(sources))
            except ParseError as exc:
                logger.warning(f"[{request_id}] Unparseable ranking output: {exc.raw_text!r}")
                yield self._fail(request_id, state, "ranking", exc)
                return
            yield streaming.timing(TimingMilestone.CHAT, time.monotonic() - chat_started)
            yield streaming.timing(TimingMilestone.EXECUTION, time.monotonic() - started)

            state = PipelineState.DONE
            log_service.log_pipeline_step(request_id, state.value, "ok", {"results": len(results)})
            yield streaming.done(results, desired_count=intent.desired_count)
        except asyncio.CancelledError:
            log_service.log_pipeline_step(request_id, state.value, "cancelled")
            raise
        except GeneratorExit:
            log_service.log_pipeline_step(request_id, state.value, "closed")
            raise
        except Exception as exc:
            logger.exception(f"[{request_id}] Pipeline crashed in state {state.value}")
            yield self._fail(request_id, state, state.value, exc)

    def _fail(
        self,
        request_id: str,
        state: PipelineState,
        stage: str,
        exc: BaseException,
    ) -> ProgressEvent:
        logger.error(f"[{request_id}] {stage} failed: {exc}")
        log_service.log_pipeline_step(
            request_id,
            PipelineState.FAILED.value,
            "error",
            {"from_state": state.value, "stage": stage, "error": str(exc)},
        )
        return streaming.failed(stage, str(exc) or type(exc).__name__)
