from __future__ import annotations

import asyncio
from typing import Callable, Sequence, TypeVar

import httpx
from loguru import logger

from sourcerank.config import settings

T = TypeVar("T")


async def is_image_url(client: httpx.AsyncClient, url: str, *, timeout: float) -> bool:
    """HEAD the url and confirm it answers 2xx with an image/* content type."""
    try:
        response = await asyncio.wait_for(client.head(url), timeout=timeout)
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.debug(f"Image check failed for {url}: {exc!r}")
        return False
    if not response.is_success:
        return False
    content_type = response.headers.get("content-type", "")
    return content_type.lower().startswith("image/")


async def filter_image_candidates(
    candidates: Sequence[T],
    url_of: Callable[[T], str],
    *,
    timeout: float | None = None,
    limit: int | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[T]:
    """Keep candidates whose image url validates, in provider order, capped at `limit`."""
    if not candidates:
        return []
    per_check = timeout if timeout is not None else settings.media_validation_timeout_seconds
    cap = limit if limit is not None else settings.max_media_results

    async def run(active: httpx.AsyncClient) -> list[T]:
        checks = await asyncio.gather(
            *(is_image_url(active, url_of(c), timeout=per_check) for c in candidates)
        )
        accepted = [c for c, ok in zip(candidates, checks) if ok]
        return accepted[: max(cap, 0)]

    if client is not None:
        return await run(client)
    async with httpx.AsyncClient(
        follow_redirects=True,
        headers={"User-Agent": settings.fetch_user_agent},
    ) as own_client:
        return await run(own_client)
