from __future__ import annotations

import contextlib
import uuid
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from sourcerank.agents.pipeline import AnswerPipeline
from sourcerank.api.deps import get_pipeline
from sourcerank.config import settings
from sourcerank.models.schemas import AnswerRequest
from sourcerank.services import logger as log_service
from sourcerank.services import streaming
from sourcerank.services.deadline import Deadline

router = APIRouter(prefix="/api/answer", tags=["answer"])


async def relay_events(
    pipeline: AnswerPipeline,
    query: str,
    request: Request,
    deadline: Deadline,
    request_id: str,
) -> AsyncIterator[dict[str, str]]:
    """Forward pipeline events as SSE messages until the pipeline ends or the client leaves."""
    log_service.log_event(
        event_type="answer_started",
        message="Answer stream started",
        request_id=request_id,
        query=query[:100],
    )
    try:
        async with contextlib.aclosing(pipeline.run(query, deadline, request_id=request_id)) as events:
            async for event in events:
                if await request.is_disconnected():
                    log_service.log_event(
                        event_type="client_disconnected",
                        message="Client went away, stopping pipeline",
                        request_id=request_id,
                    )
                    deadline.cancel()
                    break
                yield event.to_sse()
    except Exception as e:
        log_service.log_event(
            event_type="stream_error",
            message="Unhandled error in answer stream",
            error=str(e),
            request_id=request_id,
        )
        yield streaming.failed("stream", "Answer stream failed unexpectedly.").to_sse()
    finally:
        deadline.cancel()


@router.post("/stream")
async def stream_answer(
    body: AnswerRequest,
    request: Request,
    pipeline: AnswerPipeline = Depends(get_pipeline),
):
    """SSE endpoint that streams the answer pipeline's progress events."""
    request_id = uuid.uuid4().hex[:12]
    deadline = Deadline.after(settings.request_timeout_seconds)
    return EventSourceResponse(relay_events(pipeline, body.query, request, deadline, request_id))
