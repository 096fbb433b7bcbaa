from __future__ import annotations

from typing import Iterable

from sourcerank.models.events import (
    FragmentEvent,
    IntentEvent,
    MediaBatchEvent,
    MediaKind,
    SourceBatchEvent,
    Status,
    StatusEvent,
    StreamEndEvent,
    TimingEvent,
    TimingMilestone,
)
from sourcerank.models.schemas import (
    ImageResult,
    Intent,
    RankedResult,
    SourceRecord,
    VideoResult,
)


def timing(milestone: TimingMilestone, seconds: float) -> TimingEvent:
    return TimingEvent(milestone=milestone, seconds=seconds)


def intent_parsed(intent: Intent) -> IntentEvent:
    return IntentEvent(
        topic=intent.topic,
        media_type=intent.media_type,
        desired_count=intent.desired_count,
    )


def source_batch(sources: Iterable[SourceRecord]) -> SourceBatchEvent:
    return SourceBatchEvent(sources=tuple(s.model_dump() for s in sources))


def images(items: Iterable[ImageResult]) -> MediaBatchEvent:
    return MediaBatchEvent(kind=MediaKind.IMAGES, items=tuple(i.model_dump() for i in items))


def videos(items: Iterable[VideoResult]) -> MediaBatchEvent:
    return MediaBatchEvent(kind=MediaKind.VIDEOS, items=tuple(v.model_dump() for v in items))


def fragment(text: str) -> FragmentEvent:
    return FragmentEvent(text=text)


def stream_end() -> StreamEndEvent:
    return StreamEndEvent()


def done(results: Iterable[RankedResult], desired_count: int | None = None) -> StatusEvent:
    return StatusEvent(
        status=Status.DONE,
        desired_count=desired_count,
        results=tuple(r.model_dump(exclude_none=True) for r in results),
    )


def failed(stage: str, message: str) -> StatusEvent:
    return StatusEvent(status=Status.FAILED, stage=stage, message=message)
