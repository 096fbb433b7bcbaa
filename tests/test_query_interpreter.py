from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from sourcerank.agents.query_interpreter import QueryInterpreter
from sourcerank.errors import InterpretationError
from sourcerank.llm_client import ChatResponse, Usage


def _client(*texts: str) -> MagicMock:
    client = MagicMock()
    client.create = AsyncMock(
        side_effect=[ChatResponse(text=t, usage=Usage(10, 5), finish_reason="stop") for t in texts]
    )
    return client


def _interpreter(client) -> QueryInterpreter:
    return QueryInterpreter(client=client, model="test-model", count_range=(1, 9), clamp=True)


@pytest.mark.asyncio
async def test_parse_returns_intent_from_model_json():
    client = _client('{"topic": "climate change", "mediaType": "articles", "numResults": 5}')

    intent = await _interpreter(client).parse("climate change articles, 5 results")

    assert intent.topic == "climate change"
    assert intent.media_type == "articles"
    assert intent.desired_count == 5
    client.create.assert_awaited_once()
    kwargs = client.create.await_args.kwargs
    assert kwargs["user"] == "climate change articles, 5 results"
    assert "numResults" in kwargs["system"]
    assert kwargs["json_mode"] is True


@pytest.mark.asyncio
async def test_parse_accepts_fenced_json():
    client = _client('```json\n{"topic": "rust", "mediaType": "podcast", "numResults": 3}\n```')

    intent = await _interpreter(client).parse("rust podcasts")

    assert intent.topic == "rust"
    assert intent.desired_count == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw, expected",
    [
        (25, 9),
        (0, 1),
        ("4", 4),
        (6.7, 6),
        (None, 9),
    ],
)
async def test_parse_coerces_and_clamps_desired_count(raw, expected):
    payload = json.dumps({"topic": "t", "mediaType": "articles", "numResults": raw})
    intent = await _interpreter(_client(payload)).parse("q")

    assert intent.desired_count == expected


@pytest.mark.asyncio
async def test_parse_passes_count_through_when_clamping_disabled():
    client = _client('{"topic": "t", "mediaType": "", "numResults": 40}')
    interpreter = QueryInterpreter(client=client, model="m", count_range=(1, 9), clamp=False)

    intent = await interpreter.parse("q")

    assert intent.desired_count == 40
    assert intent.media_type == ""


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "text",
    [
        "",
        "   ",
        "Sure! Here is what you asked for.",
        '{"mediaType": "articles", "numResults": 3}',
        '{"topic": "", "mediaType": "articles", "numResults": 3}',
        '{"topic": "x", "numResults": 3}',
        '{"topic": "x", "mediaType": 7, "numResults": 3}',
        '{"topic": "x", "mediaType": "articles"}',
        '{"topic": "x", "mediaType": "articles", "numResults": "many"}',
        '{"topic": "x", "mediaType": "articles", "numResults": true}',
    ],
)
async def test_parse_rejects_incomplete_or_invalid_replies(text):
    with pytest.raises(InterpretationError):
        await _interpreter(_client(text)).parse("q")


@pytest.mark.asyncio
async def test_parse_wraps_backend_failure_as_interpretation_error():
    client = MagicMock()
    client.create = AsyncMock(side_effect=ValueError("boom"))

    with pytest.raises(InterpretationError):
        await _interpreter(client).parse("q")

    client.create.assert_awaited_once()


@pytest.mark.asyncio
async def test_parse_retries_transient_transport_errors(monkeypatch):
    from sourcerank.services import retry

    monkeypatch.setattr(retry.settings, "retry_initial_wait_seconds", 0.0)
    monkeypatch.setattr(retry.settings, "retry_max_wait_seconds", 0.0)
    client = MagicMock()
    client.create = AsyncMock(
        side_effect=[
            httpx.ConnectError("down"),
            ChatResponse(text='{"topic": "t", "mediaType": "a", "numResults": 2}'),
        ]
    )

    intent = await _interpreter(client).parse("q")

    assert intent.desired_count == 2
    assert client.create.await_count == 2
