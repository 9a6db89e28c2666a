# civic_search/models/requests.py
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from civic_search.config.settings import settings
from .internal import Document, DocumentPriority, SourceType, StopPolicy


class SearchQuery(BaseModel):
    text: str = Field(
        ...,
        min_length=1,
        max_length=1000,
        description="Free-text query"
    )
    session_number: Optional[int] = Field(
        default=None,
        ge=1,
        le=3999,
        description="Council session number hint"
    )
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    sources: Optional[List[SourceType]] = Field(
        default=None,
        description="Restrict the cascade to these sources"
    )
    exhaustive: bool = Field(
        default=False,
        description="Query every configured source, never stop early"
    )

    @field_validator("text")
    @classmethod
    def validate_text(cls, v):
        if not v.strip():
            raise ValueError("Query cannot be empty or whitespace only")
        return v.strip()

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self


class CascadeOptions(BaseModel):
    max_results: int = Field(default_factory=lambda: settings.CASCADE_MAX_RESULTS, ge=1, le=200)
    stop_after_results: Optional[int] = Field(
        default=None,
        ge=1,
        description="Stop once this many results are gathered (overrides source configs)"
    )
    deadline_ms: Optional[int] = Field(
        default=None,
        ge=0,
        description="Overall cascade deadline; 0 disables it"
    )
    stop_policy: Optional[StopPolicy] = None
    route_by_intent: bool = False


class CascadeSearchRequest(BaseModel):
    query: SearchQuery
    options: CascadeOptions = Field(default_factory=CascadeOptions)


class DocumentScoreRequest(BaseModel):
    document: Document
    query: Optional[str] = Field(default=None, max_length=1000)


class DocumentRankRequest(BaseModel):
    documents: List[Document]
    query: Optional[str] = Field(default=None, max_length=1000)
    document_type: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    priority: Optional[DocumentPriority] = None
    sort_by: str = Field(default="score", pattern="^(score|date|title)$")
    sort_order: str = Field(default="desc", pattern="^(asc|desc)$")
    limit: int = Field(default=20, ge=1, le=500)
    offset: int = Field(default=0, ge=0)
