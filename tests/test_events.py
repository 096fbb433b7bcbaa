from __future__ import annotations

import json

from sourcerank.models.events import EventType, MediaKind, Status
from sourcerank.models.schemas import ImageResult, Intent, RankedResult, SourceRecord
from sourcerank.services import streaming


def _parse(message: dict[str, str]) -> tuple[str, dict]:
    assert set(message) == {"event", "data"}
    return message["event"], json.loads(message["data"])


def test_each_variant_carries_one_field():
    intent = Intent(topic="rust", media_type="podcast", desired_count=4)

    assert streaming.intent_parsed(intent).data == {
        "topic": "rust",
        "media_type": "podcast",
        "desired_count": 4,
    }
    assert streaming.fragment("[{").data == {"text": "[{"}
    assert streaming.stream_end().data == {}
    batch = streaming.images([ImageResult(title="t", link="https://i.example/1.png")])
    assert batch.kind is MediaKind.IMAGES
    assert batch.data == {"kind": "images", "items": [{"title": "t", "link": "https://i.example/1.png"}]}


def test_source_batch_serializes_records():
    event = streaming.source_batch([SourceRecord(title="A", url="https://a.example", snippet="s")])

    assert event.event is EventType.SOURCE_BATCH
    assert event.data["sources"][0]["url"] == "https://a.example"
    assert event.data["sources"][0]["favicon_url"] == ""


def test_done_status_drops_missing_optional_fields():
    results = [
        RankedResult(title="A", link="https://a.example", snippet="", position=1, relevance_score=0.5),
        RankedResult(title="B", link="https://b.example", snippet="", position=2),
    ]

    name, data = _parse(streaming.done(results, desired_count=2).to_sse())

    assert name == "status"
    assert data["status"] == "done"
    assert data["desired_count"] == 2
    assert data["results"][0]["relevance_score"] == 0.5
    assert "relevance_score" not in data["results"][1]
    assert "reasoning" not in data["results"][1]


def test_failed_status_has_stage_and_message_only():
    event = streaming.failed("ranking", "Ranking output is not valid JSON")

    assert event.status is Status.FAILED
    assert _parse(event.to_sse()) == (
        "status",
        {"status": "failed", "stage": "ranking", "message": "Ranking output is not valid JSON"},
    )
