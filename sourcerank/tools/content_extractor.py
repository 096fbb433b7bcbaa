from __future__ import annotations

from dataclasses import dataclass

from bs4 import BeautifulSoup

from sourcerank.config import settings
from sourcerank.tools import web_utils

NON_CONTENT_TAGS = (
    "script",
    "style",
    "noscript",
    "template",
    "head",
    "nav",
    "footer",
    "iframe",
    "img",
    "picture",
    "svg",
    "canvas",
    "video",
    "audio",
    "object",
    "embed",
)


@dataclass
class ExtractedContent:
    url: str
    title: str
    text: str
    method: str
    raw_length: int


def _soup(raw_html: str) -> BeautifulSoup:
    return BeautifulSoup(raw_html, "html.parser")


def _title_of(soup: BeautifulSoup) -> str:
    if soup.title and soup.title.string:
        return web_utils.collapse_whitespace(soup.title.string)
    return ""


def extract_with_soup(soup: BeautifulSoup) -> str:
    """Drop non-content elements and collapse whitespace of what remains."""
    for element in soup(list(NON_CONTENT_TAGS)):
        element.decompose()
    root = soup.body or soup
    return web_utils.collapse_whitespace(root.get_text(" "))


def extract_with_trafilatura(raw_html: str, url: str) -> str:
    import trafilatura

    extracted = trafilatura.extract(raw_html, url=url, output_format="txt", include_comments=False)
    if not isinstance(extracted, str):
        return ""
    return web_utils.collapse_whitespace(extracted)


def extract_main_content(
    url: str,
    raw_html: str,
    *,
    mode: str | None = None,
    max_chars: int | None = None,
) -> ExtractedContent:
    """Reduce raw markup to plain readable text."""
    target_chars = max_chars if max_chars is not None else int(settings.fetch_max_page_chars)
    chosen = (mode or settings.extractor_mode).lower().strip()

    soup = _soup(raw_html)
    title = _title_of(soup)

    if chosen == "trafilatura":
        text = extract_with_trafilatura(raw_html, url)
        if text:
            return ExtractedContent(
                url=url,
                title=title,
                text=web_utils.clip(text, target_chars),
                method="trafilatura",
                raw_length=len(raw_html),
            )

    text = extract_with_soup(soup)
    return ExtractedContent(
        url=url,
        title=title,
        text=web_utils.clip(text, target_chars),
        method="soup",
        raw_length=len(raw_html),
    )
