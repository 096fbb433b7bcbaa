from __future__ import annotations

import asyncio
from typing import Sequence

from loguru import logger

from sourcerank.config import settings
from sourcerank.models.schemas import Chunk, ContentRecord, IndexMatch
from sourcerank.services.deadline import Deadline
from sourcerank.services.embeddings import Embedder, get_embedder
from sourcerank.services.text_splitter import split_record
from sourcerank.services.vector_index import EphemeralVectorIndex

MAX_TOP_K = 5
INDEX_SCOPES = ("first", "all")


class ContentIndexer:
    """Chunks fetched page text and scores the chunks against the query.

    With scope "first" (the default) only the first record that yields indexable chunks is
    used; later records are consulted only when an earlier one fails. Scope "all" pools the
    chunks of every record into one index. The index lives for a single `index` call.
    """

    def __init__(
        self,
        embedder: Embedder | None = None,
        *,
        top_k: int | None = None,
        scope: str | None = None,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ):
        self._embedder = embedder
        requested = top_k if top_k is not None else int(settings.number_of_similarity_results)
        self.top_k = max(min(requested, MAX_TOP_K), 1)
        self.scope = (scope or settings.index_scope).lower().strip()
        if self.scope not in INDEX_SCOPES:
            raise ValueError(f"Unsupported index scope: {self.scope}")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    @property
    def embedder(self) -> Embedder:
        if self._embedder is None:
            self._embedder = get_embedder()
        return self._embedder

    async def index(
        self,
        content_records: Sequence[ContentRecord],
        query: str,
        deadline: Deadline | None = None,
    ) -> list[IndexMatch]:
        deadline = deadline or Deadline()
        if self.scope == "all":
            return await self._index_all(content_records, query, deadline)

        for record in content_records:
            if not record.text.strip():
                continue
            try:
                chunks = self._split(record)
                if not chunks:
                    continue
                return await self._search(chunks, query, deadline)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(f"Indexing {record.url} failed, trying next record: {exc!r}")
        return []

    async def _index_all(
        self,
        content_records: Sequence[ContentRecord],
        query: str,
        deadline: Deadline,
    ) -> list[IndexMatch]:
        chunks: list[Chunk] = []
        for record in content_records:
            if not record.text.strip():
                continue
            try:
                chunks.extend(self._split(record))
            except Exception as exc:
                logger.warning(f"Chunking {record.url} failed, skipping: {exc!r}")
        if not chunks:
            return []
        try:
            return await self._search(chunks, query, deadline)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(f"Indexing {len(chunks)} pooled chunks failed: {exc!r}")
            return []

    def _split(self, record: ContentRecord) -> list[Chunk]:
        return split_record(record, chunk_size=self.chunk_size, overlap=self.chunk_overlap)

    async def _search(self, chunks: list[Chunk], query: str, deadline: Deadline) -> list[IndexMatch]:
        # Chunks and query go through the same embedder so their vectors are comparable.
        vectors, query_vectors = await asyncio.wait_for(
            asyncio.gather(
                self.embedder.embed_texts([chunk.text for chunk in chunks]),
                self.embedder.embed_texts([query]),
            ),
            timeout=deadline.timeout(),
        )
        index = EphemeralVectorIndex()
        index.add(chunks, vectors)
        matches = index.search(query_vectors[0], self.top_k)
        logger.debug(f"Indexed {len(chunks)} chunks, kept {len(matches)} matches")
        return matches
