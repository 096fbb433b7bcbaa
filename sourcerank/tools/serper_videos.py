from __future__ import annotations

import httpx

from sourcerank.config import settings
from sourcerank.errors import ProviderError
from sourcerank.models.schemas import VideoResult
from sourcerank.tools import web_utils

SERPER_VIDEOS_URL = "https://google.serper.dev/videos"


async def search(
    query: str,
    *,
    timeout: float | None = None,
) -> list[VideoResult]:
    """POST the query to Serper's video endpoint; thumbnails are not yet validated."""
    if not settings.serper_api_key:
        raise ProviderError("serper", "SERPER_API_KEY is not configured")

    async with httpx.AsyncClient(
        timeout=timeout if timeout is not None else settings.provider_timeout_seconds
    ) as client:
        response = await client.post(
            SERPER_VIDEOS_URL,
            json={"q": query},
            headers={
                "X-API-KEY": settings.serper_api_key,
                "Content-Type": "application/json",
            },
        )
        response.raise_for_status()
        payload = response.json()

    videos = payload.get("videos") if isinstance(payload, dict) else None
    if not isinstance(videos, list):
        raise ProviderError("serper", "Invalid API response format: missing videos")

    candidates: list[VideoResult] = []
    for video in videos:
        if not isinstance(video, dict):
            continue
        image_url = video.get("imageUrl")
        link = video.get("link")
        if not isinstance(image_url, str) or not web_utils.is_valid_url(image_url):
            continue
        if not isinstance(link, str):
            continue
        candidates.append(VideoResult(image_url=image_url, link=link))
    return candidates
