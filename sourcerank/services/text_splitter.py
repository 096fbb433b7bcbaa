from __future__ import annotations

from sourcerank.config import settings
from sourcerank.models.schemas import Chunk, ContentRecord


def chunk_text(text: str, *, chunk_size: int = 800, overlap: int = 200) -> list[str]:
    """Fixed-size windows; each window shares `overlap` characters with the previous one."""
    if not text.strip():
        return []
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    chunks: list[str] = []
    step = max(chunk_size - max(overlap, 0), 1)
    start = 0
    while start < len(text):
        chunk = text[start : start + chunk_size].strip()
        if chunk:
            chunks.append(chunk)
        if start + chunk_size >= len(text):
            break
        start += step
    return chunks


def split_record(
    record: ContentRecord,
    *,
    chunk_size: int | None = None,
    overlap: int | None = None,
) -> list[Chunk]:
    size = chunk_size or int(settings.text_chunk_size)
    lap = overlap if overlap is not None else int(settings.text_chunk_overlap)
    return [
        Chunk(text=piece, title=record.title, url=record.url)
        for piece in chunk_text(record.text, chunk_size=size, overlap=lap)
    ]
