"""Tests for API routes."""
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from sourcerank.api.routes.answer import relay_events
from sourcerank.models.events import TimingMilestone
from sourcerank.models.schemas import RankedResult
from sourcerank.services import streaming
from sourcerank.services.deadline import Deadline


class FakePipeline:
    def __init__(self, events):
        self.events = events
        self.queries = []
        self.deadlines = []

    async def run(self, user_text, deadline=None, *, request_id=None):
        self.queries.append(user_text)
        self.deadlines.append(deadline)
        for event in self.events:
            yield event


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    from sse_starlette.sse import AppStatus

    # The exit event is bound to the loop of the first TestClient that used it.
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield


@pytest.fixture
def app():
    from sourcerank.main import app

    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)


def _parse_sse(body: str) -> list[tuple[str, dict]]:
    events = []
    for block in body.replace("\r\n", "\n").split("\n\n"):
        name, data = None, None
        for line in block.split("\n"):
            if line.startswith("event:"):
                name = line[len("event:"):].strip()
            elif line.startswith("data:"):
                data = json.loads(line[len("data:"):].strip())
        if name:
            events.append((name, data))
    return events


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "sourcerank"


def test_answer_stream_relays_pipeline_events(app, client):
    from sourcerank.api.deps import get_pipeline

    result = RankedResult(title="A", link="https://a.example", snippet="s", position=1)
    fake = FakePipeline(
        [
            streaming.timing(TimingMilestone.PARSE_QUERY, 0.25),
            streaming.fragment('[{"title": "A"}]'),
            streaming.stream_end(),
            streaming.done([result], desired_count=3),
        ]
    )
    app.dependency_overrides[get_pipeline] = lambda: fake

    response = client.post("/api/answer/stream", json={"query": "climate change articles"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = _parse_sse(response.text)
    assert [name for name, _ in events] == ["timing", "fragment", "stream_end", "status"]
    assert events[0][1] == {"milestone": "parse_query", "seconds": 0.25}
    assert events[-1][1]["status"] == "done"
    assert events[-1][1]["results"][0]["link"] == "https://a.example"
    assert fake.queries == ["climate change articles"]
    assert fake.deadlines[0].cancelled is True


def test_answer_stream_reports_pipeline_crash_as_failed_status(app, client):
    from sourcerank.api.deps import get_pipeline

    class CrashingPipeline:
        async def run(self, user_text, deadline=None, *, request_id=None):
            yield streaming.timing(TimingMilestone.PARSE_QUERY, 0.1)
            raise RuntimeError("boom")

    app.dependency_overrides[get_pipeline] = lambda: CrashingPipeline()

    response = client.post("/api/answer/stream", json={"query": "q"})

    events = _parse_sse(response.text)
    assert [name for name, _ in events] == ["timing", "status"]
    assert events[-1][1] == {
        "status": "failed",
        "stage": "stream",
        "message": "Answer stream failed unexpectedly.",
    }


def test_answer_stream_rejects_empty_query(client):
    response = client.post("/api/answer/stream", json={"query": ""})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_client_disconnect_cancels_and_closes_the_pipeline():
    closed_with = []

    class StreamingPipeline:
        async def run(self, user_text, deadline=None, *, request_id=None):
            try:
                yield streaming.timing(TimingMilestone.PARSE_QUERY, 0.1)
                yield streaming.fragment("[")
                yield streaming.fragment("]")
            finally:
                closed_with.append(deadline.cancelled)

    request = SimpleNamespace(is_disconnected=AsyncMock(side_effect=[False, True]))
    deadline = Deadline()

    sent = [
        message
        async for message in relay_events(StreamingPipeline(), "q", request, deadline, "req-1")
    ]

    assert [message["event"] for message in sent] == ["timing"]
    assert closed_with == [True]
    assert request.is_disconnected.await_count == 2
