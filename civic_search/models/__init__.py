# civic_search/models/__init__.py
"""Data models"""

from .requests import (
    SearchQuery,
    CascadeOptions,
    CascadeSearchRequest,
    DocumentScoreRequest,
    DocumentRankRequest
)
from .responses import (
    SearchCascadeResponse,
    ScoredDocument,
    DocumentListResponse,
    HealthResponse,
    ErrorResponse
)
from .internal import (
    SourceType,
    SourceConfig,
    StopPolicy,
    SearchResultItem,
    CascadeStatus,
    CascadeResult,
    CredibilityFlag,
    CredibilityScore,
    CrossReference,
    WebHit,
    Document,
    IndexedDocument,
    DocumentPriority,
    DocumentScore
)

__all__ = [
    "SearchQuery",
    "CascadeOptions",
    "CascadeSearchRequest",
    "DocumentScoreRequest",
    "DocumentRankRequest",
    "SearchCascadeResponse",
    "ScoredDocument",
    "DocumentListResponse",
    "HealthResponse",
    "ErrorResponse",
    "SourceType",
    "SourceConfig",
    "StopPolicy",
    "SearchResultItem",
    "CascadeStatus",
    "CascadeResult",
    "CredibilityFlag",
    "CredibilityScore",
    "CrossReference",
    "WebHit",
    "Document",
    "IndexedDocument",
    "DocumentPriority",
    "DocumentScore"
]
