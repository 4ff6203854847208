"""
Core data models for the ModNote content core.

This module defines the Pydantic models shared by the acquisition and
retrieval layers for validation and serialization.
"""

import mimetypes
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Joins wrapped chunks in the model prompt
CHUNK_SEPARATOR = "\n\n"


# =============================================================================
# Enums
# =============================================================================


class SourceKind(str, Enum):
    """Shape of a source, used to pick the strategy chain."""

    VIDEO_URL = "video_url"
    WEB_URL = "web_url"
    PDF = "pdf"
    IMAGE = "image"
    AUDIO = "audio"
    UNKNOWN = "unknown"


class AttemptOutcome(str, Enum):
    """Outcome of a single strategy invocation."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


# =============================================================================
# Acquisition Models
# =============================================================================


class SourceRef(BaseModel):
    """
    Immutable reference to a piece of content to extract.

    Exactly one of ``url``, ``path`` or ``data`` identifies the content.
    ``filename`` and ``mime_type`` help classify uploads.
    """

    model_config = ConfigDict(frozen=True)

    url: Optional[str] = Field(None, description="Remote URL")
    path: Optional[Path] = Field(None, description="Local file path")
    data: Optional[bytes] = Field(None, description="Uploaded file bytes", repr=False)
    filename: Optional[str] = Field(None, description="Original filename")
    mime_type: Optional[str] = Field(None, description="Declared MIME type")
    kind: SourceKind = Field(SourceKind.UNKNOWN, description="Detected source kind")

    @model_validator(mode="after")
    def _exactly_one_locator(self) -> "SourceRef":
        given = [x for x in (self.url, self.path, self.data) if x is not None]
        if len(given) != 1:
            raise ValueError("SourceRef needs exactly one of url, path or data")
        return self

    @property
    def is_url(self) -> bool:
        return self.url is not None

    @property
    def display_name(self) -> str:
        if self.url:
            return self.url
        if self.filename:
            return self.filename
        if self.path:
            return self.path.name
        return "<upload>"

    @property
    def suffix(self) -> str:
        name = self.filename or (self.path.name if self.path else "")
        return Path(name).suffix.lower()

    @property
    def effective_mime_type(self) -> Optional[str]:
        if self.mime_type:
            return self.mime_type
        name = self.filename or (str(self.path) if self.path else None)
        if name:
            return mimetypes.guess_type(name)[0]
        return None

    def read_bytes(self) -> bytes:
        """Return the file content for path/data sources."""
        if self.data is not None:
            return self.data
        if self.path is not None:
            return self.path.read_bytes()
        raise ValueError(f"Source {self.display_name} has no local content")

    def size_bytes(self) -> Optional[int]:
        if self.data is not None:
            return len(self.data)
        if self.path is not None and self.path.exists():
            return self.path.stat().st_size
        return None


class AcquisitionOptions(BaseModel):
    """Per-call knobs for an acquisition. Unset values fall back to settings."""

    language: Optional[str] = Field(None, description="Language hint, e.g. 'en'")
    strategy_order: Optional[List[str]] = Field(None, description="Override strategy order")
    max_retries: Optional[int] = Field(None, ge=0, description="Retries per strategy")
    base_delay_seconds: Optional[float] = Field(None, ge=0.0, description="Backoff unit")
    attempt_timeout_seconds: Optional[float] = Field(None, gt=0.0)
    deadline_seconds: Optional[float] = Field(None, gt=0.0, description="Whole-call deadline")
    max_total_attempts: Optional[int] = Field(None, ge=1, description="Global attempt budget")


class ExtractionAttempt(BaseModel):
    """One strategy invocation, kept only for the duration of an acquisition."""

    strategy_name: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    outcome: AttemptOutcome
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    retryable: bool = False


class StrategyResult(BaseModel):
    """Normalized result of one strategy call."""

    success: bool
    text: Optional[str] = None
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    retryable: bool = False

    @classmethod
    def ok(cls, text: str, confidence: float, **metadata: Any) -> "StrategyResult":
        return cls(success=True, text=text, confidence=min(max(confidence, 0.0), 1.0), metadata=metadata)

    @classmethod
    def failed(cls, error_kind: str, message: str, retryable: bool) -> "StrategyResult":
        return cls(success=False, error_kind=error_kind, error_message=message, retryable=retryable)


class SourceMetadata(BaseModel):
    """Best-effort descriptive fields; lifecycle independent of extraction."""

    title: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    source_url: Optional[str] = None
    published_at: Optional[datetime] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class VideoMetadata(SourceMetadata):
    """Metadata for a hosted video."""

    video_id: Optional[str] = None
    duration: Optional[str] = Field(None, description="Formatted as H:MM:SS or M:SS")
    tags: List[str] = Field(default_factory=list)


class DocumentMetadata(SourceMetadata):
    """Metadata for an uploaded document, image or web page."""

    filename: Optional[str] = None
    page_count: Optional[int] = Field(None, ge=0)
    subject: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)


class ExtractionResult(BaseModel):
    """Terminal value of an acquisition; ownership passes to the caller."""

    success: bool
    text: Optional[str] = None
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    strategy_used: Optional[str] = None
    processing_time_ms: int = Field(0, ge=0)
    error_message: Optional[str] = None
    # Most specific type first so validated dicts keep their subclass fields
    metadata: Optional[Union[VideoMetadata, DocumentMetadata, SourceMetadata]] = None

    @model_validator(mode="after")
    def _success_has_text(self) -> "ExtractionResult":
        if self.success and not (self.text and self.text.strip()):
            raise ValueError("successful extraction must carry non-empty text")
        return self

    @property
    def is_placeholder(self) -> bool:
        """True when only metadata is available for the source."""
        return not self.success and self.metadata is not None


# =============================================================================
# Retrieval Models
# =============================================================================


class ContentItem(BaseModel):
    """A stored note or transcript; read-only to the core."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Store identifier")
    title: str = Field("", description="Note title")
    text: str = Field("", description="Note body")
    created_at: Optional[datetime] = None
    is_transcript: bool = False
    source_url: Optional[str] = None
    channel_name: Optional[str] = None

    @property
    def content_type(self) -> str:
        return "Video transcript" if self.is_transcript else "Note"


class ScoredCandidate(BaseModel):
    """A candidate plus its relevance outcome for one query."""

    item: ContentItem
    relevance_score: float = Field(..., ge=0.0, le=1.0)
    passes_threshold: bool


class ContextChunk(BaseModel):
    """One source-bounded piece of assembled context."""

    source_id: str
    ordinal: int = Field(..., ge=1)
    text: str
    approx_length: int = Field(..., ge=0)


class ProcessedContext(BaseModel):
    """Token-budgeted, source-isolated payload for a generative model."""

    chunks: List[ContextChunk] = Field(default_factory=list)
    sources: List[ContentItem] = Field(default_factory=list)
    total_length: int = Field(0, ge=0)
    summary_text: str
    fingerprint: str

    @property
    def is_empty(self) -> bool:
        return not self.chunks

    @property
    def context_text(self) -> str:
        """Chunk texts joined for the model prompt."""
        return CHUNK_SEPARATOR.join(chunk.text for chunk in self.chunks)


class SearchHit(BaseModel):
    """A search result with a query-focused snippet."""

    id: str
    title: str
    relevance: float = Field(..., ge=0.0, le=1.0)
    snippet: str
    source_type: str = Field(..., description="'video' or 'note'")
    source_url: Optional[str] = None
    created_at: Optional[datetime] = None
