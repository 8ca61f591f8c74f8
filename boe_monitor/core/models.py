"""
Data models for the BOE monitoring system.
"""

import json
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

NOTIFICATION_TITLE_MAX_LENGTH = 80
SUMMARY_MAX_LENGTH = 200


class DocumentType(str, Enum):
    """BOE document types."""
    RESOLUTION = "RESOLUTION"
    ORDER = "ORDER"
    ROYAL_DECREE = "ROYAL_DECREE"
    LAW = "LAW"
    ANNOUNCEMENT = "ANNOUNCEMENT"
    OTHER = "OTHER"


class Item(BaseModel):
    """One disposition of the bulletin summary."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    title: str
    department: str = ""
    section: str = ""
    epigraph: str = ""
    publication_date: Optional[date] = None
    html_url: str = ""
    pdf_url: str = ""
    document_type: DocumentType = DocumentType.OTHER

    def to_prompt_dict(self) -> Dict[str, Any]:
        """Compact representation sent to the analysis backend."""
        return {
            "code": self.identifier,
            "title": self.title,
            "department": self.department,
            "section": self.section,
            "epigraph": self.epigraph,
            "type": self.document_type.value,
            "publication_date": self.publication_date.isoformat() if self.publication_date else "",
            "links": {"html": self.html_url, "pdf": self.pdf_url},
        }

    def estimate_tokens(self) -> int:
        # Rough token estimation (1 token ~ 4 characters)
        serialized = json.dumps(self.to_prompt_dict(), ensure_ascii=False)
        return max(1, len(serialized) // 4)


class BulletinInfo(BaseModel):
    """Issue-level information of a bulletin summary."""

    model_config = ConfigDict(frozen=True)

    issue_number: str = ""
    publication_date: Optional[date] = None
    source_url: str = "https://www.boe.es"


class BulletinContent(BaseModel):
    """Normalized bulletin: issue info plus items in source order."""

    info: BulletinInfo
    items: List[Item] = Field(default_factory=list)


class FetchResult(BaseModel):
    """Outcome of a bulletin fetch. ``content`` is None when nothing was published."""

    target_date: date
    url: str
    status_code: int
    content: Optional[bytes] = None
    attempts: int = 1

    @property
    def not_found(self) -> bool:
        return self.content is None


class Batch(BaseModel):
    """Contiguous slice of items sent to the backend in one request."""

    model_config = ConfigDict(frozen=True)

    index: int
    items: Tuple[Item, ...]
    token_estimate: int = 0

    @property
    def item_count(self) -> int:
        return len(self.items)


class MatchLinks(BaseModel):
    html: str = ""
    pdf: str = ""


class MatchDates(BaseModel):
    document_date: str = ""
    publication_date: str = ""


class Match(BaseModel):
    """A backend-nominated item judged relevant to a prompt."""

    model_config = ConfigDict(frozen=True)

    document_type: DocumentType = DocumentType.OTHER
    issuing_body: str = ""
    title: str = ""
    notification_title: str = Field("", max_length=NOTIFICATION_TITLE_MAX_LENGTH)
    summary: str = Field("", max_length=SUMMARY_MAX_LENGTH)
    relevance_score: float = 0.0
    links: MatchLinks = Field(default_factory=MatchLinks)
    dates: Optional[MatchDates] = None
    code: str = ""
    section: str = ""
    department: str = ""


class ResponseMetadata(BaseModel):
    match_count: int = 0
    max_relevance: float = 0.0


class ValidatedResponse(BaseModel):
    """Structured backend response after validation and repair."""

    matches: List[Match] = Field(default_factory=list)
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)
    dropped_matches: int = 0
    corrections: List[str] = Field(default_factory=list)


class BatchState(str, Enum):
    PENDING = "PENDING"
    IN_FLIGHT = "IN_FLIGHT"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class BatchError(BaseModel):
    kind: str
    message: str


class BatchResult(BaseModel):
    """Tagged result of one batch: matches on success, an error descriptor on failure."""

    batch_index: int
    item_count: int = 0
    state: BatchState = BatchState.PENDING
    matches: List[Match] = Field(default_factory=list)
    error: Optional[BatchError] = None
    elapsed_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.state == BatchState.SUCCEEDED


class AnalysisMetadata(BaseModel):
    match_count: int = 0
    max_relevance: float = 0.0
    model_used: str = ""
    processing_time_ms: int = 0
    items_processed: int = 0
    batch_count: int = 0
    failed_batch_count: int = 0
    status: str = "success"  # success, partial, error, no_content
    error: Optional[Dict[str, Any]] = None
    note: Optional[str] = None


class AnalysisResult(BaseModel):
    """Merged, ranked matches for one prompt."""

    prompt: str
    matches: List[Match] = Field(default_factory=list)
    metadata: AnalysisMetadata = Field(default_factory=AnalysisMetadata)


class AnalysisResponse(BaseModel):
    """Everything one pipeline invocation produces."""

    trace_id: str
    query_date: date
    bulletin_info: Optional[BulletinInfo] = None
    results: List[AnalysisResult] = Field(default_factory=list)
    items_processed: int = 0
    processing_time_ms: int = 0
    status: str = "success"

    @property
    def prompts(self) -> List[str]:
        return [result.prompt for result in self.results]


class PublishingResult(BaseModel):
    """Result of publishing to the notification topic."""
    trace_id: str
    topic: str
    success: bool
    message_id: Optional[str] = None
    dead_lettered: bool = False
    published_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error_message: Optional[str] = None
