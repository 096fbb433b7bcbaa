"""Error taxonomy for the answer pipeline.

Backend and parse errors are fatal to the call that produced them. Provider errors and
fetch timeouts are absorbed by the pipeline and degrade a single branch or source.
"""
from __future__ import annotations


class SourceRankError(Exception):
    """Base class for all pipeline errors."""


class BackendError(SourceRankError):
    """Generation or embedding backend unreachable or returned a malformed structure."""


class InterpretationError(BackendError):
    """The intent call returned no text, non-JSON text, or JSON missing required fields."""


class ParseError(SourceRankError):
    """A backend text response is not valid structured data."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text[:500]


class ProviderError(SourceRankError):
    """A search or media provider failed or timed out."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class FetchTimeout(SourceRankError):
    """A single content fetch exceeded its deadline."""

    def __init__(self, url: str, timeout: float):
        super().__init__(f"Fetching {url} exceeded {timeout:.2f}s")
        self.url = url
        self.timeout = timeout
