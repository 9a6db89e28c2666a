# civic_search/models/internal.py
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

# Score used when a source gives no natural relevance/credibility value
DEFAULT_SCORE = 0.5


def clamp_unit(value: Any, default: Optional[float] = DEFAULT_SCORE) -> Optional[float]:
    """Coerce a score into [0, 1]; missing or non-numeric values become `default`"""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return min(max(number, 0.0), 1.0)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC so ages can be compared"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SourceType(str, Enum):
    LOCAL_INDEX = "local_index"
    SESSION = "session"
    LEGAL_ACTS = "legal_acts"
    STATISTICS = "statistics"
    BUSINESS_REGISTRY = "business_registry"
    SPATIAL = "spatial"
    WEB = "web"
    DEEP_RESEARCH = "deep_research"


REGISTRY_SOURCES = (
    SourceType.LEGAL_ACTS,
    SourceType.STATISTICS,
    SourceType.BUSINESS_REGISTRY,
    SourceType.SPATIAL,
)


class StopPolicy(str, Enum):
    # min minResultsToStop over sources that already produced results
    MIN_RESPONDED = "min_responded"
    # min minResultsToStop over the group that just ran
    MIN_GROUP = "min_group"


class SourceConfig(BaseModel):
    source_type: SourceType
    priority: int = Field(ge=0, description="Lower is tried first")
    timeout_ms: int = Field(gt=0)
    min_results_to_stop: int = Field(default=1, ge=1)
    enabled: bool = True


class SearchResultItem(BaseModel):
    title: str
    content: str = ""
    url: Optional[str] = None
    source_type: SourceType
    relevance: float = DEFAULT_SCORE
    credibility: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("relevance", mode="before")
    @classmethod
    def normalize_relevance(cls, v):
        return clamp_unit(v)

    @field_validator("credibility", mode="before")
    @classmethod
    def normalize_credibility(cls, v):
        return clamp_unit(v, default=None)


class CascadeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"


class CascadeResult(BaseModel):
    source: SourceType
    status: CascadeStatus
    results: List[SearchResultItem] = Field(default_factory=list)
    execution_time_ms: float = 0.0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == CascadeStatus.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status in (CascadeStatus.FAILED, CascadeStatus.TIMED_OUT)


class FlagType(str, Enum):
    FAKE_NEWS = "fake_news"
    MISLEADING = "misleading"
    OUTDATED = "outdated"
    BIASED = "biased"
    UNVERIFIED = "unverified"
    SATIRE = "satire"
    OPINION = "opinion"


class FlagSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CredibilityFlag(BaseModel):
    type: FlagType
    severity: FlagSeverity
    reason: str = ""


class CredibilityScore(BaseModel):
    overall: float = Field(ge=0.0, le=1.0)
    domain_trust: float = Field(ge=0.0, le=1.0)
    content_quality: float = Field(ge=0.0, le=1.0)
    factual_accuracy: float = Field(ge=0.0, le=1.0)
    bias_level: float = Field(ge=0.0, le=1.0, description="0 = neutral, 1 = highly biased")
    freshness: float = Field(ge=0.0, le=1.0)
    flags: List[CredibilityFlag] = Field(default_factory=list)

    def has_flag(self, flag_type: FlagType) -> bool:
        return any(flag.type == flag_type for flag in self.flags)


class CrossReference(BaseModel):
    claim: str
    supporting_sources: int = 0
    contradicting_sources: int = 0
    confidence: float = Field(ge=0.0, le=1.0)
    verified: bool = False
    sources: List[str] = Field(default_factory=list)


class WebHit(BaseModel):
    """Raw open-web hit as returned by the search transport"""
    url: str
    title: str = ""
    snippet: str = ""
    publish_date: Optional[str] = None
    author: Optional[str] = None
    position: Optional[int] = None
    engine: str = ""

    @property
    def domain(self) -> str:
        return (urlparse(self.url).hostname or "").lower()


class Document(BaseModel):
    id: str
    title: str = ""
    content: str = ""
    document_type: str = "other"
    keywords: List[str] = Field(default_factory=list)
    publish_date: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    session_number: Optional[int] = None
    source_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class IndexedDocument(BaseModel):
    """A local-index hit: a document plus its index similarity"""
    document: Document
    similarity: float = DEFAULT_SCORE

    @field_validator("similarity", mode="before")
    @classmethod
    def normalize_similarity(cls, v):
        return clamp_unit(v)


class DocumentPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DocumentScore(BaseModel):
    relevance_score: float = Field(ge=0.0, le=1.0)
    urgency_score: float = Field(ge=0.0, le=1.0)
    type_score: float = Field(ge=0.0, le=1.0)
    recency_score: float = Field(ge=0.0, le=1.0)
    total_score: float = Field(ge=0.0, le=1.0)
    priority: DocumentPriority
    scoring_details: Dict[str, Any] = Field(default_factory=dict)
