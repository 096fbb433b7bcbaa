from __future__ import annotations

import math

from sourcerank.models.schemas import Chunk, IndexMatch


class EphemeralVectorIndex:
    """Brute-force cosine index held in memory for a single request.

    Nothing is persisted; the index is dropped with the object.
    """

    def __init__(self):
        self._rows: list[tuple[Chunk, list[float]]] = []

    def __len__(self) -> int:
        return len(self._rows)

    def add(self, chunks: list[Chunk], vectors: list[list[float]]) -> None:
        if len(chunks) != len(vectors):
            raise ValueError(f"Got {len(vectors)} vectors for {len(chunks)} chunks")
        self._rows.extend(zip(chunks, vectors))

    def search(self, vector: list[float], top_k: int) -> list[IndexMatch]:
        scored = [
            (index, _cosine_similarity(vector, row_vec))
            for index, (_, row_vec) in enumerate(self._rows)
        ]
        # Ties keep insertion order.
        scored.sort(key=lambda item: (-item[1], item[0]))
        return [
            IndexMatch(chunk=self._rows[index][0], score=score)
            for index, score in scored[: max(int(top_k), 0)]
        ]


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)
