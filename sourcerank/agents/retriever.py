from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

from sourcerank.config import settings
from sourcerank.errors import ProviderError
from sourcerank.models.schemas import ImageResult, Intent, SourceRecord, VideoResult
from sourcerank.services.deadline import Deadline
from sourcerank.services.retry import with_retry
from sourcerank.tools import brave_search, media_validation, serper_videos

T = TypeVar("T")

WebSearchFn = Callable[..., Awaitable[list[SourceRecord]]]
ImageSearchFn = Callable[..., Awaitable[list[ImageResult]]]
VideoSearchFn = Callable[..., Awaitable[list[VideoResult]]]
MediaFilterFn = Callable[..., Awaitable[list[Any]]]


@dataclass(slots=True)
class BranchResult(Generic[T]):
    branch: str
    items: list[T] = field(default_factory=list)
    error: ProviderError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class RetrievalResult:
    web: BranchResult[SourceRecord]
    images: BranchResult[ImageResult]
    videos: BranchResult[VideoResult]

    @property
    def failures(self) -> list[ProviderError]:
        return [b.error for b in (self.web, self.images, self.videos) if b.error is not None]


class Retriever:
    """Fans out to web, image and video providers concurrently.

    Each branch settles independently: a failing branch carries its ProviderError and an
    empty item list, and never cancels its siblings. Results stay in provider order.
    """

    def __init__(
        self,
        *,
        web_search: WebSearchFn | None = None,
        image_search: ImageSearchFn | None = None,
        video_search: VideoSearchFn | None = None,
        media_filter: MediaFilterFn | None = None,
        pages_to_scan: int | None = None,
        include_media_type: bool | None = None,
        max_media_results: int | None = None,
    ):
        self.web_search = web_search or brave_search.search_web
        self.image_search = image_search or brave_search.search_images
        self.video_search = video_search or serper_videos.search
        self.media_filter = media_filter or media_validation.filter_image_candidates
        self.pages_to_scan = pages_to_scan or settings.number_of_pages_to_scan
        self.include_media_type = (
            settings.search_include_media_type if include_media_type is None else include_media_type
        )
        self.max_media_results = max_media_results or settings.max_media_results

    async def search(
        self,
        intent: Intent,
        user_text: str,
        deadline: Deadline | None = None,
    ) -> RetrievalResult:
        deadline = deadline or Deadline()
        web, images, videos = await asyncio.gather(
            self._branch("web", self._web(intent, deadline), deadline),
            self._branch("images", self._images(user_text, deadline), deadline),
            self._branch("videos", self._videos(user_text, deadline), deadline),
        )
        return RetrievalResult(web=web, images=images, videos=videos)

    async def _branch(self, name: str, work: Awaitable[list[Any]], deadline: Deadline) -> BranchResult:
        try:
            items = await asyncio.wait_for(work, timeout=deadline.timeout())
        except asyncio.CancelledError:
            raise
        except ProviderError as exc:
            return BranchResult(branch=name, error=exc)
        except TimeoutError:
            return BranchResult(branch=name, error=ProviderError(name, "timed out"))
        except Exception as exc:
            logger.debug(f"{name} branch raised {exc!r}")
            return BranchResult(branch=name, error=ProviderError(name, str(exc) or repr(exc)))
        return BranchResult(branch=name, items=items)

    def _provider_timeout(self, deadline: Deadline) -> float | None:
        return deadline.timeout(settings.provider_timeout_seconds)

    async def _web(self, intent: Intent, deadline: Deadline) -> list[SourceRecord]:
        query = intent.topic
        if self.include_media_type and intent.media_type:
            query = f"{intent.topic} {intent.media_type}"
        return await with_retry(
            "search.web",
            self.web_search,
            query,
            max_results=self.pages_to_scan,
            timeout=self._provider_timeout(deadline),
        )

    async def _images(self, user_text: str, deadline: Deadline) -> list[ImageResult]:
        candidates = await with_retry(
            "search.images",
            self.image_search,
            user_text,
            timeout=self._provider_timeout(deadline),
        )
        return await self.media_filter(
            candidates,
            lambda image: image.link,
            limit=self.max_media_results,
            timeout=deadline.timeout(settings.media_validation_timeout_seconds),
        )

    async def _videos(self, user_text: str, deadline: Deadline) -> list[VideoResult]:
        candidates = await with_retry(
            "search.videos",
            self.video_search,
            user_text,
            timeout=self._provider_timeout(deadline),
        )
        return await self.media_filter(
            candidates,
            lambda video: video.image_url,
            limit=self.max_media_results,
            timeout=deadline.timeout(settings.media_validation_timeout_seconds),
        )
