from __future__ import annotations

import asyncio
import time
from typing import Any, Protocol

from sourcerank.config import OLLAMA_BASE_URL, settings
from sourcerank.errors import BackendError
from sourcerank.services import logger as log_service
from sourcerank.services.retry import with_retry

OPENAI_EMBED_BATCH = 64


class Embedder(Protocol):
    async def embed_texts(self, texts: list[str]) -> list[list[float]]: ...

    async def embed_text(self, text: str) -> list[float]: ...


class OpenAIEmbeddingService:
    """Embeddings over the OpenAI-compatible `/embeddings` endpoint (OpenAI or Ollama)."""

    def __init__(self, model_name: str | None = None, client: Any | None = None):
        self.model_name = model_name or settings.embeddings_model
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI

            if settings.use_ollama_embeddings:
                self._client = AsyncOpenAI(api_key="ollama", base_url=f"{OLLAMA_BASE_URL}/v1")
            else:
                self._client = AsyncOpenAI(
                    api_key=settings.openai_api_key,
                    base_url=settings.openai_base_url,
                )
        return self._client

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        client = self._get_client()
        vectors: list[list[float]] = []
        t0 = time.monotonic()
        for start in range(0, len(texts), OPENAI_EMBED_BATCH):
            batch = texts[start : start + OPENAI_EMBED_BATCH]
            response = await with_retry(
                "embeddings",
                client.embeddings.create,
                model=self.model_name,
                input=batch,
            )
            rows = sorted(response.data, key=lambda row: row.index)
            if len(rows) != len(batch):
                raise BackendError(
                    f"Embedding backend returned {len(rows)} vectors for {len(batch)} inputs"
                )
            vectors.extend([list(map(float, row.embedding)) for row in rows])
        usage = getattr(response, "usage", None)
        log_service.log_llm_call(
            model=self.model_name,
            caller="embeddings",
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return vectors

    async def embed_text(self, text: str) -> list[float]:
        vectors = await self.embed_texts([text])
        return vectors[0]


class LocalEmbeddingService:
    """sentence-transformers embeddings run in a worker thread (install the `local` extra)."""

    def __init__(self, model_name: str | None = None, batch_size: int | None = None):
        self.model_name = model_name or settings.local_embed_model
        self.batch_size = batch_size or int(settings.local_embed_batch_size)
        self._model: Any | None = None
        self._lock = asyncio.Lock()

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        async with self._lock:
            if self._model is None:
                self._model = await asyncio.to_thread(self._load_model)
        return await asyncio.to_thread(self._embed_sync, texts)

    async def embed_text(self, text: str) -> list[float]:
        vectors = await self.embed_texts([text])
        return vectors[0]

    def _load_model(self) -> Any:
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as exc:
            raise BackendError(
                "embedding_backend=local requires the sentence-transformers package"
            ) from exc
        return SentenceTransformer(self.model_name)

    def _embed_sync(self, texts: list[str]) -> list[list[float]]:
        vectors = self._model.encode(
            texts,
            batch_size=self.batch_size,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return [list(map(float, row)) for row in vectors]


_embedder: Embedder | None = None


def get_embedder() -> Embedder:
    """Shared, stateless-per-call embedder chosen by `embedding_backend`."""
    global _embedder
    if _embedder is None:
        backend = settings.embedding_backend.lower().strip()
        if backend == "local":
            _embedder = LocalEmbeddingService()
        elif backend == "openai":
            _embedder = OpenAIEmbeddingService()
        else:
            raise ValueError(f"Unsupported EMBEDDING_BACKEND: {settings.embedding_backend}")
    return _embedder
