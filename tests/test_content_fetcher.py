from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from sourcerank.agents.content_fetcher import ContentFetcher
from sourcerank.models.schemas import SourceRecord
from sourcerank.services.deadline import Deadline

PAGE = """
<html>
  <head><title>Ignored head</title><style>body { color: red; }</style></head>
  <body>
    <nav>Home | About</nav>
    <script>var tracking = 1;</script>
    <h1>Glaciers</h1>
    <p>Glaciers   are
       retreating.</p>
    <img src="x.png">
    <footer>Copyright</footer>
  </body>
</html>
"""


def _source(path: str) -> SourceRecord:
    return SourceRecord(title=path, url=f"https://site.example/{path}", snippet=f"about {path}")


async def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.startswith("/hang"):
        await asyncio.sleep(30)
    if path.startswith("/error"):
        return httpx.Response(500, text="oops")
    if path.startswith("/pdf"):
        return httpx.Response(200, headers={"content-type": "application/pdf"}, content=b"%PDF")
    return httpx.Response(200, headers={"content-type": "text/html"}, text=PAGE)


def _fetcher(timeout: float = 0.2) -> ContentFetcher:
    return ContentFetcher(
        timeout=timeout,
        extract_in_thread=False,
        transport=httpx.MockTransport(_handler),
    )


@pytest.mark.asyncio
async def test_fetch_extracts_plain_text():
    record = await _fetcher().fetch(_source("ok"))

    assert record is not None
    assert record.url == "https://site.example/ok"
    assert record.snippet == "about ok"
    assert record.text == "Glaciers Glaciers are retreating."


@pytest.mark.asyncio
async def test_fetch_fills_missing_title_from_the_page():
    untitled = SourceRecord(title="", url="https://site.example/ok")

    record = await _fetcher().fetch(untitled)
    titled = await _fetcher().fetch(_source("ok"))

    assert record.title == "Ignored head"
    assert titled.title == "ok"


@pytest.mark.asyncio
async def test_fetch_returns_none_on_timeout_error_status_or_binary():
    fetcher = _fetcher()

    assert await fetcher.fetch(_source("hang")) is None
    assert await fetcher.fetch(_source("error")) is None
    assert await fetcher.fetch(_source("pdf")) is None


@pytest.mark.asyncio
async def test_fetch_batch_returns_successful_subsequence_in_input_order():
    sources = [_source("a"), _source("hang1"), _source("b"), _source("error"), _source("c")]

    records = await _fetcher().fetch_batch(sources)

    assert [r.url for r in records] == [
        "https://site.example/a",
        "https://site.example/b",
        "https://site.example/c",
    ]


@pytest.mark.asyncio
async def test_fetch_batch_is_bounded_when_every_origin_hangs():
    sources = [_source(f"hang{i}") for i in range(5)]

    t0 = time.monotonic()
    records = await _fetcher(timeout=0.1).fetch_batch(sources)
    elapsed = time.monotonic() - t0

    assert records == []
    assert elapsed < 2.0


@pytest.mark.asyncio
async def test_fetch_respects_an_already_expired_deadline():
    deadline = Deadline.after(0)

    assert await _fetcher().fetch(_source("ok"), deadline) is None


@pytest.mark.asyncio
async def test_fetch_batch_with_no_sources():
    assert await _fetcher().fetch_batch([]) == []
