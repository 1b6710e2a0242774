"""Domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field

TITLE_FALLBACK_LENGTH = 100
SUMMARY_FALLBACK_LENGTH = 200


class ArticleOrigin(str, Enum):
    """How an article entered the store."""

    MANUAL = "manual"
    SCRAPE_USER = "scrape-user"
    SCRAPE_POST = "scrape-post"
    SCRAPE_SEARCH = "scrape-search"


class EnrichmentMode(str, Enum):
    """Which rewrite the enrichment service is asked for."""

    SUMMARIZE = "summarize"
    TRANSLATE = "translate-and-narrativize"


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    EXTERNAL_VIDEO = "external_video"


class MediaItem(BaseModel):
    kind: MediaKind
    url: str


class RawCandidate(BaseModel):
    """A post scraped from a rendered page that has not been checked against the store."""

    natural_key: str = ""
    text: str = ""
    post_id: Optional[str] = None
    author: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    published_at: Optional[datetime] = None

    def invalid_reason(self) -> str | None:
        """Return why the candidate cannot be persisted, or ``None`` when it can."""

        if not self.natural_key.strip():
            return "missing permalink"
        if not self.text.strip():
            return "missing text"
        return None

    @property
    def is_valid(self) -> bool:
        return self.invalid_reason() is None

    def media(self) -> List[MediaItem]:
        items: List[MediaItem] = []
        if self.image_url:
            items.append(MediaItem(kind=MediaKind.IMAGE, url=self.image_url))
        if self.video_url:
            items.append(MediaItem(kind=MediaKind.VIDEO, url=self.video_url))
        return items


@dataclass(slots=True)
class EnrichedContent:
    """Title and body produced by the enrichment service.

    ``body`` holds the summary in :attr:`EnrichmentMode.SUMMARIZE` and the
    localized narrative in :attr:`EnrichmentMode.TRANSLATE`.
    """

    title: str
    body: str


class PersistedArticle(BaseModel):
    """The durable record written once per natural key."""

    title: str
    summary: str
    body: str
    localized_title: Optional[str] = None
    localized_body: Optional[str] = None
    natural_key: str
    source: str
    origin: ArticleOrigin
    published_at: datetime
    media: List[MediaItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ManualArticle(BaseModel):
    """An article submitted by hand rather than scraped."""

    text: str
    url: str
    title: Optional[str] = None
    source: str = "manual"
    media: List[MediaItem] = Field(default_factory=list)
    published_at: Optional[datetime] = None


class SourceDescriptor(BaseModel):
    """What to ingest: an account timeline, search results or a single post."""

    username: Optional[str] = None
    url: Optional[str] = None
    query: Optional[str] = None

    @property
    def is_single_post(self) -> bool:
        return self.url is not None

    def label(self) -> str:
        return self.url or self.query or self.username or ""


class SkippedCandidate(BaseModel):
    natural_key: str
    reason: str


class CandidateError(BaseModel):
    natural_key: str
    error: str


class BatchReport(BaseModel):
    """Outcome of one ingestion run."""

    source: str
    origin: ArticleOrigin
    mode: Optional[EnrichmentMode] = None
    persisted: List[str] = Field(default_factory=list)
    skipped_duplicate: List[str] = Field(default_factory=list)
    skipped_invalid: List[SkippedCandidate] = Field(default_factory=list)
    errors: List[CandidateError] = Field(default_factory=list)
    error: Optional[str] = Field(default=None, description="Reason the whole batch was aborted")
    is_new: Optional[bool] = None
    articles: List[PersistedArticle] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def persisted_count(self) -> int:
        return len(self.persisted)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def duplicate_count(self) -> int:
        return len(self.skipped_duplicate)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def invalid_count(self) -> int:
        return len(self.skipped_invalid)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def failed(self) -> bool:
        """True when the source was unavailable or every commit attempt failed."""

        if self.error is not None:
            return True
        return bool(self.errors) and not self.persisted
