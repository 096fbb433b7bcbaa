from __future__ import annotations

import html
import re
from urllib.parse import urlparse

_TAG_RE = re.compile(r"<[^>]+>")


def is_valid_url(url: str) -> bool:
    """Basic http(s) URL validation."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except Exception:
        return False


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def clip(text: str, max_length: int) -> str:
    if max_length <= 0 or len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def strip_markup(text: str) -> str:
    """Provider snippets carry inline highlighting tags and entities."""
    return collapse_whitespace(html.unescape(_TAG_RE.sub("", text or "")))
