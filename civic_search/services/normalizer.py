# civic_search/services/normalizer.py
"""Map raw hits from every source into SearchResultItem.

Scores arrive on different scales (0-1 similarities, 0-100 percentages,
nothing at all); everything leaves here in [0, 1], with DEFAULT_SCORE for
hits that carry no score of their own.
"""

import json
import logging
import re
from typing import Any, Callable, Dict, Optional

from bs4 import BeautifulSoup

from civic_search.models.internal import (
    DEFAULT_SCORE,
    DocumentScore,
    IndexedDocument,
    SearchResultItem,
    SourceType,
    WebHit,
    clamp_unit,
)

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 500

# Official registries are authoritative by construction
REGISTRY_CREDIBILITY = 0.95

_WHITESPACE = re.compile(r"\s+")


def to_unit_score(value: Any, default: Optional[float] = DEFAULT_SCORE) -> Optional[float]:
    """Like clamp_unit, but reads values in (1, 100] as percentages"""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return clamp_unit(value, default)
    if 1.0 < number <= 100.0:
        number = number / 100.0
    return clamp_unit(number, default)


def strip_markup(text: Optional[str]) -> str:
    """Drop HTML highlight tags (<strong>, <b>) search APIs put in snippets"""
    if not text:
        return ""
    if "<" in text and ">" in text:
        text = BeautifulSoup(text, "html.parser").get_text(" ")
    return _WHITESPACE.sub(" ", text).strip()


def truncate(text: str, limit: int = MAX_CONTENT_LENGTH) -> str:
    return text[:limit] if len(text) > limit else text


def keyword_relevance(query: str, title: str, snippet: str, position: Optional[int] = None) -> float:
    """Topical relevance of a web hit from query term coverage"""
    score = 0.5

    title = title.lower()
    snippet = snippet.lower()
    query_lower = query.lower().strip()

    # Whole-phrase matches
    if query_lower and query_lower in title:
        score += 0.3
    if query_lower and query_lower in snippet:
        score += 0.2

    # Query term coverage
    query_terms = query_lower.split()
    if query_terms:
        title_snippet = f"{title} {snippet}"
        matching_terms = sum(1 for term in query_terms if term in title_snippet)
        score += (matching_terms / len(query_terms)) * 0.2

    if position is not None:
        if position <= 3:
            score += 0.1
        elif position <= 5:
            score += 0.05

    return clamp_unit(score)


def normalize_web_hit(hit: WebHit, query: str) -> SearchResultItem:
    title = strip_markup(hit.title) or hit.domain or hit.url
    snippet = strip_markup(hit.snippet)
    return SearchResultItem(
        title=title,
        content=truncate(snippet),
        url=hit.url,
        source_type=SourceType.WEB,
        relevance=keyword_relevance(query, title, snippet, hit.position),
        metadata={
            "domain": hit.domain,
            "publish_date": hit.publish_date,
            "author": hit.author,
            "engine": hit.engine,
            "position": hit.position,
        },
    )


def normalize_indexed_document(
    hit: IndexedDocument,
    source_type: SourceType,
    relevance: Optional[float] = None,
    score: Optional[DocumentScore] = None,
) -> SearchResultItem:
    document = hit.document
    metadata: Dict[str, Any] = {
        "document_id": document.id,
        "document_type": document.document_type,
        "similarity": hit.similarity,
    }
    if document.session_number is not None:
        metadata["session_number"] = document.session_number
    if document.publish_date is not None:
        metadata["publish_date"] = document.publish_date.isoformat()
    if score is not None:
        metadata["priority"] = score.priority.value
        metadata["total_score"] = score.total_score

    return SearchResultItem(
        title=document.title or "Dokument",
        content=truncate(document.content or ""),
        url=document.source_url,
        source_type=source_type,
        relevance=hit.similarity if relevance is None else relevance,
        metadata=metadata,
    )


def _text(value: Any) -> str:
    """Text field as str; registry payloads may carry numbers here"""
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _record_score(record: Dict[str, Any]) -> float:
    for key in ("relevance", "score", "similarity"):
        if record.get(key) is not None:
            return to_unit_score(record[key])
    return DEFAULT_SCORE


def _legal_act(record: Dict[str, Any]) -> SearchResultItem:
    publisher = _text(record.get("publisher"))
    status = _text(record.get("status"))
    content = _text(record.get("content")) or " - ".join(part for part in (publisher, status) if part)
    return SearchResultItem(
        title=record.get("title") or "Akt prawny",
        content=truncate(strip_markup(content)),
        url=record.get("url"),
        source_type=SourceType.LEGAL_ACTS,
        relevance=_record_score(record),
        credibility=REGISTRY_CREDIBILITY,
        metadata={
            key: record[key]
            for key in ("address", "year", "position", "status", "publisher", "promulgation_date")
            if record.get(key) is not None
        },
    )


def _statistics(record: Dict[str, Any]) -> SearchResultItem:
    unit_name = record.get("unit_name") or record.get("name")
    title = record.get("title") or (f"Statystyki: {unit_name}" if unit_name else "Statystyki")
    data = record.get("content") or record.get("stats") or record.get("data") or ""
    if not isinstance(data, str):
        data = json.dumps(data, ensure_ascii=False, default=str)
    return SearchResultItem(
        title=title,
        content=truncate(data),
        url=record.get("url"),
        source_type=SourceType.STATISTICS,
        relevance=_record_score(record),
        credibility=REGISTRY_CREDIBILITY,
        metadata={
            key: record[key]
            for key in ("unit_id", "unit_name", "variable_id", "year")
            if record.get(key) is not None
        },
    )


def _business_registry(record: Dict[str, Any]) -> SearchResultItem:
    identifiers = [
        f"{label}: {record[key]}"
        for key, label in (("nip", "NIP"), ("regon", "REGON"), ("krs", "KRS"))
        if record.get(key)
    ]
    details = identifiers + [str(record[key]) for key in ("address", "status") if record.get(key)]
    return SearchResultItem(
        title=record.get("name") or record.get("title") or "Podmiot gospodarczy",
        content=truncate(_text(record.get("content")) or ", ".join(details)),
        url=record.get("url"),
        source_type=SourceType.BUSINESS_REGISTRY,
        relevance=_record_score(record),
        credibility=REGISTRY_CREDIBILITY,
        metadata={
            key: record[key]
            for key in ("nip", "regon", "krs", "status", "registry")
            if record.get(key) is not None
        },
    )


def _spatial(record: Dict[str, Any]) -> SearchResultItem:
    parcel = record.get("parcel_id")
    title = record.get("name") or record.get("title") or (f"Działka {parcel}" if parcel else "Obiekt przestrzenny")
    return SearchResultItem(
        title=title,
        content=truncate(_text(record.get("content") or record.get("description") or record.get("address"))),
        url=record.get("url"),
        source_type=SourceType.SPATIAL,
        relevance=_record_score(record),
        credibility=REGISTRY_CREDIBILITY,
        metadata={
            key: record[key]
            for key in ("parcel_id", "teryt", "lat", "lon", "layer")
            if record.get(key) is not None
        },
    )


_REGISTRY_MAPPERS: Dict[SourceType, Callable[[Dict[str, Any]], SearchResultItem]] = {
    SourceType.LEGAL_ACTS: _legal_act,
    SourceType.STATISTICS: _statistics,
    SourceType.BUSINESS_REGISTRY: _business_registry,
    SourceType.SPATIAL: _spatial,
}


def normalize_registry_record(source_type: SourceType, record: Dict[str, Any]) -> SearchResultItem:
    mapper = _REGISTRY_MAPPERS.get(source_type)
    if mapper is None:
        raise ValueError(f"{source_type.value} is not a registry source")
    return mapper(record)


def normalize_research_record(record: Dict[str, Any]) -> SearchResultItem:
    return SearchResultItem(
        title=record.get("title") or "Wynik wyszukiwania",
        content=truncate(strip_markup(_text(record.get("content") or record.get("snippet")))),
        url=record.get("url"),
        source_type=SourceType.DEEP_RESEARCH,
        relevance=_record_score(record),
        metadata={
            key: record[key]
            for key in ("provider", "publish_date", "domain")
            if record.get(key) is not None
        },
    )
