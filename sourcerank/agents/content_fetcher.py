from __future__ import annotations

import asyncio
from typing import Sequence

import httpx
from loguru import logger

from sourcerank.config import settings
from sourcerank.errors import FetchTimeout
from sourcerank.models.schemas import ContentRecord, SourceRecord
from sourcerank.services.deadline import Deadline
from sourcerank.tools.content_extractor import extract_main_content

# Extra time the batch join allows on top of the per-fetch deadline for text extraction.
EXTRACTION_SLACK_SECONDS = 2.0

TEXT_CONTENT_TYPES = ("text/", "application/xhtml+xml", "application/xml")


class ContentFetcher:
    """Downloads pages under a hard per-call deadline and extracts readable text.

    A fetch that fails, times out or returns a non-2xx status yields None. Siblings in the
    same batch are never cancelled by one slow origin.
    """

    def __init__(
        self,
        *,
        timeout: float | None = None,
        extract_in_thread: bool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout if timeout is not None else settings.fetch_timeout_seconds
        self.extract_in_thread = (
            settings.extract_in_thread if extract_in_thread is None else extract_in_thread
        )
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": settings.fetch_user_agent},
            transport=self._transport,
        )

    async def fetch(
        self,
        source: SourceRecord,
        deadline: Deadline | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> ContentRecord | None:
        deadline = deadline or Deadline()
        if client is None:
            async with self._client() as own_client:
                return await self.fetch(source, deadline, client=own_client)

        budget = deadline.timeout(self.timeout) or 0.0
        try:
            raw_html = await self._download(client, source.url, budget)
        except asyncio.CancelledError:
            raise
        except FetchTimeout as exc:
            logger.warning(f"Skipping {source.url}: {exc}")
            return None
        except Exception as exc:
            logger.info(f"Skipping {source.url}: {exc!r}")
            return None
        if raw_html is None:
            return None

        try:
            if self.extract_in_thread:
                extracted = await asyncio.to_thread(extract_main_content, source.url, raw_html)
            else:
                extracted = extract_main_content(source.url, raw_html)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(f"Extraction failed for {source.url}: {exc!r}")
            return None
        logger.debug(
            f"Extracted {len(extracted.text)} of {extracted.raw_length} chars "
            f"from {source.url} via {extracted.method}"
        )
        record = source.model_dump()
        record["title"] = source.title or extracted.title
        return ContentRecord(**record, text=extracted.text)

    async def _download(self, client: httpx.AsyncClient, url: str, budget: float) -> str | None:
        if budget <= 0:
            raise FetchTimeout(url, budget)
        try:
            response = await asyncio.wait_for(client.get(url), timeout=budget)
        except TimeoutError as exc:
            raise FetchTimeout(url, budget) from exc

        if not response.is_success:
            logger.info(f"Skipping {url}: status {response.status_code}")
            return None
        content_type = response.headers.get("content-type", "").lower()
        if content_type and not content_type.startswith(TEXT_CONTENT_TYPES):
            logger.info(f"Skipping {url}: unsupported content type {content_type}")
            return None
        return response.text

    async def fetch_batch(
        self,
        sources: Sequence[SourceRecord],
        deadline: Deadline | None = None,
    ) -> list[ContentRecord]:
        """Fetch all sources concurrently; return the successful ones in input order."""
        if not sources:
            return []
        deadline = deadline or Deadline()
        # The join waits for the longest permitted child, never for a hung origin.
        batch_deadline = deadline.child(self.timeout + EXTRACTION_SLACK_SECONDS)

        async with self._client() as client:
            tasks = [
                asyncio.create_task(self.fetch(source, deadline, client=client))
                for source in sources
            ]
            try:
                _, pending = await asyncio.wait(tasks, timeout=batch_deadline.remaining())
            except asyncio.CancelledError:
                for task in tasks:
                    task.cancel()
                raise
            for task in pending:
                logger.info("Cancelling fetch still running at batch deadline")
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        records: list[ContentRecord] = []
        for source, task in zip(sources, tasks):
            if task.cancelled():
                continue
            if task.exception() is not None:
                logger.warning(f"Fetch task for {source.url} raised {task.exception()!r}")
                continue
            record = task.result()
            if record is not None:
                records.append(record)
        return records
