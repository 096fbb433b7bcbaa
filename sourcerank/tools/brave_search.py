from __future__ import annotations

from typing import Any

import httpx

from sourcerank.config import settings
from sourcerank.errors import ProviderError
from sourcerank.models.schemas import ImageResult, SourceRecord
from sourcerank.tools import web_utils

BRAVE_WEB_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
BRAVE_IMAGE_SEARCH_URL = "https://api.search.brave.com/res/v1/images/search"

# Brave rejects larger web page sizes.
MAX_WEB_COUNT = 20


def _headers() -> dict[str, str]:
    if not settings.brave_api_key:
        raise ProviderError("brave", "BRAVE_API_KEY is not configured")
    return {
        "Accept": "application/json",
        "Accept-Encoding": "gzip",
        "X-Subscription-Token": settings.brave_api_key,
    }


async def _get_json(url: str, params: dict[str, Any], timeout: float) -> dict[str, Any]:
    headers = _headers()
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(url, params=params, headers=headers)
        response.raise_for_status()
        payload = response.json()
    if not isinstance(payload, dict):
        raise ProviderError("brave", "Invalid API response format")
    return payload


async def search_web(
    query: str,
    *,
    max_results: int = 10,
    timeout: float | None = None,
) -> list[SourceRecord]:
    """Execute a Brave web search and normalize results in provider order."""
    params: dict[str, Any] = {
        "q": query,
        "count": max(1, min(int(max_results), MAX_WEB_COUNT)),
    }
    payload = await _get_json(
        BRAVE_WEB_SEARCH_URL,
        params,
        timeout if timeout is not None else settings.provider_timeout_seconds,
    )

    web = payload.get("web")
    if not isinstance(web, dict) or not isinstance(web.get("results"), list):
        raise ProviderError("brave", "Invalid API response format: missing web.results")

    mapped: list[SourceRecord] = []
    for item in web["results"]:
        if not isinstance(item, dict):
            continue
        url = item.get("url")
        if not isinstance(url, str) or not web_utils.is_valid_url(url):
            continue
        description = web_utils.strip_markup(item.get("description", "") or "")
        if not description:
            snippets = item.get("extra_snippets", []) or []
            description = web_utils.strip_markup(" ".join(s for s in snippets if isinstance(s, str)))
        profile = item.get("profile") or {}
        meta_url = item.get("meta_url") or {}
        favicon = profile.get("img") or meta_url.get("favicon") or ""
        mapped.append(
            SourceRecord(
                title=web_utils.strip_markup(item.get("title", "") or ""),
                url=url,
                snippet=description,
                favicon_url=favicon if isinstance(favicon, str) else "",
            )
        )
    return mapped


async def search_images(
    query: str,
    *,
    timeout: float | None = None,
) -> list[ImageResult]:
    """Return unvalidated image candidates from Brave image search."""
    payload = await _get_json(
        BRAVE_IMAGE_SEARCH_URL,
        {"q": query, "spellcheck": 1},
        timeout if timeout is not None else settings.provider_timeout_seconds,
    )
    results = payload.get("results")
    if not isinstance(results, list):
        raise ProviderError("brave", "Invalid API response format: missing results")

    candidates: list[ImageResult] = []
    for item in results:
        properties = item.get("properties") if isinstance(item, dict) else None
        if not isinstance(properties, dict):
            continue
        link = properties.get("url")
        if not isinstance(link, str) or not web_utils.is_valid_url(link):
            continue
        title = item.get("title") or properties.get("title") or ""
        candidates.append(ImageResult(title=title if isinstance(title, str) else "", link=link))
    return candidates
