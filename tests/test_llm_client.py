from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from sourcerank.llm_client import ChatAdapter, ChatStream


def _openai_client(create_result):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=create_result)
    return client


class TestChatAdapter:
    @pytest.mark.asyncio
    async def test_create_maps_text_usage_and_finish_reason(self):
        response = SimpleNamespace(
            choices=[
                SimpleNamespace(
                    message=SimpleNamespace(content='  {"topic": "x"}  '),
                    finish_reason="stop",
                )
            ],
            usage=SimpleNamespace(prompt_tokens=30, completion_tokens=8),
        )
        openai_client = _openai_client(response)

        result = await ChatAdapter(openai_client).create(
            model="gpt-4o-mini", system="sys", user="hello", max_tokens=64
        )

        assert result.text == '{"topic": "x"}'
        assert result.finish_reason == "stop"
        assert result.usage.input_tokens == 30
        assert result.usage.output_tokens == 8
        kwargs = openai_client.chat.completions.create.await_args.kwargs
        assert kwargs["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "hello"},
        ]
        assert kwargs["temperature"] == 0
        assert "response_format" not in kwargs

    @pytest.mark.asyncio
    async def test_create_handles_empty_choices(self):
        openai_client = _openai_client(SimpleNamespace(choices=[], usage=None))

        result = await ChatAdapter(openai_client).create(
            model="m", system="s", user="u", max_tokens=10, json_mode=True
        )

        assert result.text == ""
        kwargs = openai_client.chat.completions.create.await_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}

    def test_gpt5_models_use_default_temperature(self):
        assert ChatAdapter._temperature_for_model("openai/gpt-5-mini") == 1
        assert ChatAdapter._temperature_for_model("gpt-4o") == 0


class TestChatStream:
    @pytest.mark.asyncio
    async def test_stream_yields_text_until_finish_and_maps_usage(self):
        async def chunk_iter():
            yield SimpleNamespace(
                choices=[SimpleNamespace(delta=SimpleNamespace(content="Hello "), finish_reason=None)],
                usage=None,
            )
            yield SimpleNamespace(
                choices=[SimpleNamespace(delta=SimpleNamespace(content="world"), finish_reason="stop")],
                usage=None,
            )
            yield SimpleNamespace(
                choices=[SimpleNamespace(delta=SimpleNamespace(content="ignored"), finish_reason=None)],
                usage=None,
            )
            yield SimpleNamespace(choices=[], usage=SimpleNamespace(prompt_tokens=12, completion_tokens=9))

        class FakeStream:
            closed = False

            def __aiter__(self):
                return chunk_iter()

            async def close(self):
                FakeStream.closed = True

        async def fake_stream_coro():
            return FakeStream()

        stream = ChatStream(fake_stream_coro())
        async with stream as s:
            chunks = [text async for text in s.text_stream]

        assert "".join(chunks) == "Hello world"
        assert stream.finish_reason == "stop"
        assert stream.completed is True
        assert stream.usage.input_tokens == 12
        assert stream.usage.output_tokens == 9
        assert FakeStream.closed is True

    @pytest.mark.asyncio
    async def test_stream_without_finish_reason_is_not_completed(self):
        async def chunk_iter():
            yield SimpleNamespace(
                choices=[SimpleNamespace(delta=SimpleNamespace(content="partial"), finish_reason=None)],
                usage=None,
            )

        class FakeStream:
            def __aiter__(self):
                return chunk_iter()

        async def fake_stream_coro():
            return FakeStream()

        async with ChatStream(fake_stream_coro()) as s:
            chunks = [text async for text in s.text_stream]

        assert chunks == ["partial"]
        assert s.completed is False

    @pytest.mark.asyncio
    async def test_adapter_stream_requests_usage(self):
        openai_client = MagicMock()
        openai_client.chat.completions.create = AsyncMock(return_value=MagicMock())

        stream = ChatAdapter(openai_client).stream(model="m", system="s", user="u", max_tokens=5)
        await stream.open()

        kwargs = openai_client.chat.completions.create.await_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["stream_options"] == {"include_usage": True}
