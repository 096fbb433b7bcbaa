"""OpenAI-compatible chat client factory with a small response/stream adapter."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from sourcerank.config import settings


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class ChatResponse:
    text: str
    usage: Usage = field(default_factory=Usage)
    finish_reason: str | None = None


def _map_usage(usage: Any) -> Usage:
    return Usage(
        input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        output_tokens=getattr(usage, "completion_tokens", 0) or 0,
    )


class ChatStream:
    """Async context manager over a streamed chat completion.

    `text_stream` yields content deltas in arrival order. `finish_reason` is set once the
    backend reports completion; trailing usage-only chunks are still drained.
    """

    def __init__(self, stream_coro: Any):
        self._stream_coro = stream_coro
        self._stream: Any | None = None
        self.usage = Usage()
        self.finish_reason: str | None = None

    async def open(self) -> "ChatStream":
        if self._stream is None:
            self._stream = await self._stream_coro
        return self

    async def __aenter__(self) -> "ChatStream":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._stream is not None:
            close = getattr(self._stream, "close", None)
            if close is not None:
                await close()

    async def _iter_text(self) -> AsyncIterator[str]:
        if self._stream is None:
            return
        async for chunk in self._stream:
            usage = getattr(chunk, "usage", None)
            if usage:
                self.usage = _map_usage(usage)

            choices = getattr(chunk, "choices", None) or []
            if not choices:
                continue
            choice = choices[0]
            if self.finish_reason is None:
                delta = getattr(choice, "delta", None)
                text = getattr(delta, "content", None) if delta else None
                if text:
                    yield text
            reason = getattr(choice, "finish_reason", None)
            if reason and self.finish_reason is None:
                self.finish_reason = reason

    @property
    def text_stream(self) -> AsyncIterator[str]:
        return self._iter_text()

    @property
    def completed(self) -> bool:
        return self.finish_reason is not None


class ChatAdapter:
    def __init__(self, openai_client: Any):
        self._client = openai_client

    @staticmethod
    def _temperature_for_model(model: str) -> int:
        # Some GPT-5-compatible gateways reject temperature=0.
        lowered = (model or "").lower()
        if "gpt-5" in lowered:
            return 1
        return 0

    @staticmethod
    def _messages(system: str, user: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    async def create(
        self,
        *,
        model: str,
        system: str,
        user: str,
        max_tokens: int,
        json_mode: bool = False,
    ) -> ChatResponse:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": self._messages(system, user),
            "max_tokens": max_tokens,
            "temperature": self._temperature_for_model(model),
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self._client.chat.completions.create(**kwargs)
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ChatResponse(text="", usage=_map_usage(getattr(response, "usage", None)))
        message = getattr(choices[0], "message", None)
        return ChatResponse(
            text=(getattr(message, "content", None) or "").strip(),
            usage=_map_usage(getattr(response, "usage", None)),
            finish_reason=getattr(choices[0], "finish_reason", None),
        )

    def stream(
        self,
        *,
        model: str,
        system: str,
        user: str,
        max_tokens: int,
    ) -> ChatStream:
        stream = self._client.chat.completions.create(
            model=model,
            messages=self._messages(system, user),
            max_tokens=max_tokens,
            temperature=self._temperature_for_model(model),
            stream=True,
            stream_options={"include_usage": True},
        )
        return ChatStream(stream)


def get_client() -> ChatAdapter:
    """Build a chat adapter over the OpenAI SDK (OpenAI, Groq, Ollama, ...)."""
    from openai import AsyncOpenAI

    openai_client = AsyncOpenAI(
        api_key=settings.inference_api_key,
        base_url=settings.inference_base_url,
    )
    return ChatAdapter(openai_client)


def get_model() -> str:
    return settings.inference_model


_client: ChatAdapter | None = None


def client() -> ChatAdapter:
    """Get or create the shared chat adapter."""
    global _client
    if _client is None:
        _client = get_client()
    return _client
