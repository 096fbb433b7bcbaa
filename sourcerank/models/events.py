"""Streamed progress protocol.

Each variant updates exactly one logical field of the in-progress answer, so a consumer
never sees an event that mixes unrelated updates.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar


class EventType(str, Enum):
    TIMING = "timing"
    INTENT = "intent"
    MEDIA_BATCH = "media_batch"
    SOURCE_BATCH = "source_batch"
    FRAGMENT = "fragment"
    STREAM_END = "stream_end"
    STATUS = "status"


class TimingMilestone(str, Enum):
    PARSE_QUERY = "parse_query"
    SEARCH = "search"
    CHAT = "chat"
    EXECUTION = "execution"


class MediaKind(str, Enum):
    IMAGES = "images"
    VIDEOS = "videos"


class Status(str, Enum):
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressEvent:
    event: ClassVar[EventType]

    @property
    def data(self) -> dict[str, Any]:
        raise NotImplementedError

    def to_sse(self) -> dict[str, str]:
        return {"event": self.event.value, "data": json.dumps(self.data)}


@dataclass(frozen=True)
class TimingEvent(ProgressEvent):
    event: ClassVar[EventType] = EventType.TIMING
    milestone: TimingMilestone
    seconds: float

    @property
    def data(self) -> dict[str, Any]:
        return {"milestone": self.milestone.value, "seconds": round(self.seconds, 3)}


@dataclass(frozen=True)
class IntentEvent(ProgressEvent):
    event: ClassVar[EventType] = EventType.INTENT
    topic: str
    media_type: str
    desired_count: int

    @property
    def data(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "media_type": self.media_type,
            "desired_count": self.desired_count,
        }


@dataclass(frozen=True)
class MediaBatchEvent(ProgressEvent):
    event: ClassVar[EventType] = EventType.MEDIA_BATCH
    kind: MediaKind
    items: tuple[dict[str, Any], ...] = ()

    @property
    def data(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "items": list(self.items)}


@dataclass(frozen=True)
class SourceBatchEvent(ProgressEvent):
    event: ClassVar[EventType] = EventType.SOURCE_BATCH
    sources: tuple[dict[str, Any], ...] = ()

    @property
    def data(self) -> dict[str, Any]:
        return {"sources": list(self.sources)}


@dataclass(frozen=True)
class FragmentEvent(ProgressEvent):
    event: ClassVar[EventType] = EventType.FRAGMENT
    text: str

    @property
    def data(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass(frozen=True)
class StreamEndEvent(ProgressEvent):
    event: ClassVar[EventType] = EventType.STREAM_END

    @property
    def data(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class StatusEvent(ProgressEvent):
    """Terminal event. Nothing is emitted after it."""

    event: ClassVar[EventType] = EventType.STATUS
    status: Status
    stage: str | None = None
    message: str | None = None
    desired_count: int | None = None
    results: tuple[dict[str, Any], ...] = field(default=())

    @property
    def data(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": self.status.value}
        if self.stage:
            payload["stage"] = self.stage
        if self.message:
            payload["message"] = self.message
        if self.status is Status.DONE:
            payload["results"] = list(self.results)
            if self.desired_count is not None:
                payload["desired_count"] = self.desired_count
        return payload
