from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


# --- Pipeline records ---


class Intent(BaseModel):
    """Structured interpretation of the user's query. Immutable once parsed."""

    model_config = ConfigDict(frozen=True)

    topic: str = Field(min_length=1)
    media_type: str
    desired_count: int


class SourceRecord(BaseModel):
    """One web search hit. Identity is the url; duplicates are kept."""

    title: str = ""
    url: str
    snippet: str = ""
    favicon_url: str = ""

    def to_ranking_dict(self) -> dict[str, str]:
        return {"title": self.title, "link": self.url, "snippet": self.snippet}


class ContentRecord(SourceRecord):
    text: str = ""


class Chunk(BaseModel):
    text: str
    title: str = ""
    url: str = ""


class IndexMatch(BaseModel):
    chunk: Chunk
    score: float


class ImageResult(BaseModel):
    title: str = ""
    link: str


class VideoResult(BaseModel):
    image_url: str
    link: str


class RankedResult(BaseModel):
    title: str = ""
    link: str = ""
    snippet: str = ""
    position: int = Field(ge=1)
    relevance_score: float | None = Field(default=None, ge=0.0, le=1.0)
    reasoning: str | None = None


# --- Requests / responses ---


class AnswerRequest(BaseModel):
    query: str = Field(min_length=1, max_length=2000)
