# civic_search/models/responses.py
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .internal import (
    CascadeResult,
    CrossReference,
    Document,
    DocumentScore,
    SearchResultItem,
    SourceType,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SearchCascadeResponse(BaseModel):
    success: bool = Field(..., description="False when no source produced a result")
    query: str = Field(..., description="Original query text")
    total_results: int = 0
    results: List[SearchResultItem] = Field(default_factory=list)
    sources_queried: List[SourceType] = Field(
        default_factory=list,
        description="Sources actually invoked, in cascade order. Sources the cascade never reached are "
                    "listed in sources_skipped and in cascade_results with status skipped"
    )
    sources_with_results: List[SourceType] = Field(default_factory=list)
    sources_skipped: List[SourceType] = Field(
        default_factory=list,
        description="Sources not queried because the cascade stopped early or ran out of time"
    )
    cascade_results: List[CascadeResult] = Field(default_factory=list)
    stopped_at: Optional[SourceType] = None
    exhausted: bool = False
    execution_time_ms: float = 0.0
    cross_references: List[CrossReference] = Field(default_factory=list)
    overall_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    warnings: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)


class ScoredDocument(BaseModel):
    document: Document
    score: DocumentScore


class DocumentListResponse(BaseModel):
    documents: List[ScoredDocument] = Field(default_factory=list)
    total: int = 0


class HealthResponse(BaseModel):
    status: str = Field(..., description="Overall system status")
    timestamp: datetime = Field(default_factory=_utcnow)
    services: Dict[str, str] = Field(..., description="Individual service statuses")
    response_time_ms: Optional[float] = Field(None, description="Health check response time")


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Error code")
    request_id: Optional[str] = Field(None, description="Request ID for tracking")
    timestamp: datetime = Field(default_factory=_utcnow)
