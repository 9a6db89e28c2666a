# civic_search/services/document_scorer.py
"""Relevance scoring of council documents for a councillor.

Scores are recomputed on every call and never stored; a document's priority
bucket depends on fixed thresholds only, never on what it is ranked against.
"""

import logging
import math
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from civic_search.config.settings import settings
from civic_search.models.internal import (
    Document,
    DocumentPriority,
    DocumentScore,
    as_utc,
    clamp_unit,
)
from civic_search.models.responses import DocumentListResponse, ScoredDocument
from civic_search.utils.session_numbers import extract_session_number

logger = logging.getLogger(__name__)

# Base weight per document category
TYPE_WEIGHTS: Dict[str, float] = {
    # Legal acts and decisions
    "budget_act": 1.00,
    "resolution": 0.95,
    "session_order": 0.90,
    # Session record and oversight tools
    "resolution_project": 0.85,
    "protocol": 0.80,
    "interpellation": 0.75,
    "transcription": 0.70,
    # Substantive material and opinions
    "video": 0.65,
    "committee_opinion": 0.60,
    "justification": 0.55,
    "session": 0.50,
    "session_materials": 0.50,
    # Administrative documents
    "order": 0.40,
    "announcement": 0.30,
    # Attachments and reference data
    "attachment": 0.20,
    "pdf_attachment": 0.20,
    "reference_material": 0.15,
    "other": 0.10,
    "news": 0.10,
    "article": 0.10,
}

SESSION_DOCUMENT_TYPES = {
    "session",
    "session_materials",
    "session_order",
    "protocol",
    "transcription",
    "video",
    "resolution",
    "resolution_project",
}

PRIORITY_KEYWORDS = [
    "sesja rady",
    "sesji rady",
    "posiedzenie",
    "głosowanie",
    "uchwała",
    "projekt uchwały",
    "budżet",
    "komisja",
    "interpelacja",
    "wniosek",
    "radny",
    "radnego",
    "rada miejska",
    "rada gminy",
    "burmistrz",
    "wójt",
    "zarządzenie",
    "porządek obrad",
    "terminy",
    "sesja nadzwyczajna",
    "zwołanie sesji",
]

URGENCY_KEYWORDS = [
    "pilne",
    "nadzwyczajn",
    "termin",
    "do dnia",
    "najpóźniej",
    "natychmiast",
    "bezzwłoczn",
    "deadline",
]

WEIGHTS = {
    "type": 0.30,
    "relevance": 0.35,
    "urgency": 0.20,
    "recency": 0.15,
}

PRIORITY_THRESHOLDS = [
    (0.70, DocumentPriority.CRITICAL),
    (0.50, DocumentPriority.HIGH),
    (0.30, DocumentPriority.MEDIUM),
]

KEYWORD_BONUS = 0.05
LOCATION_BONUS = 0.15
QUERY_OVERLAP_WEIGHT = 0.6
SESSION_MATCH_BONUS = 0.4
URGENCY_KEYWORD_BONUS = 0.1
URGENT_FLAG_BONUS = 0.3
MIN_RECENCY = 0.05
RECENCY_HALF_LIFE_DAYS = 30.0
MAX_SCORED_CONTENT = 5000

_WORD = re.compile(r"\w+", re.UNICODE)
_SESSION_DATE = re.compile(r"sesj[ai].*?(\d{1,2})[.\-/](\d{1,2})[.\-/](\d{2,4})", re.IGNORECASE)
_QUERY_STOPWORDS = {"i", "w", "z", "na", "do", "o", "od", "po", "za", "się", "oraz", "the", "a", "of"}

_TITLE_NOISE = [
    (re.compile(r"\s*\|.*$"), ""),
    (re.compile(r"\s*-?\s*System\s+Rada.*$", re.IGNORECASE), ""),
    (re.compile(r"\s*-?\s*BIP\b.*$", re.IGNORECASE), ""),
]
_TITLE_TRANSLATIONS = [
    (re.compile(r"\bresolution\s+nr\b", re.IGNORECASE), "Uchwała nr"),
    (re.compile(r"\bresolution\b", re.IGNORECASE), "Uchwała"),
    (re.compile(r"\bprotocol\s+nr\b", re.IGNORECASE), "Protokół nr"),
    (re.compile(r"\bprotocol\b", re.IGNORECASE), "Protokół"),
    (re.compile(r"\bdraft\s+nr\b", re.IGNORECASE), "Projekt nr"),
    (re.compile(r"\bdraft\b", re.IGNORECASE), "Projekt"),
    (re.compile(r"\battachment\b", re.IGNORECASE), "Załącznik"),
    (re.compile(r"\bsession\b", re.IGNORECASE), "Sesja"),
    (re.compile(r"\bannouncement\b", re.IGNORECASE), "Ogłoszenie"),
]


def normalize_title(title: Optional[str]) -> str:
    """Strip portal suffixes and translate English type words to Polish"""
    if not title:
        return "Bez tytułu"
    for pattern, replacement in _TITLE_NOISE + _TITLE_TRANSLATIONS:
        title = pattern.sub(replacement, title)
    return " ".join(title.split()) or "Bez tytułu"


def query_terms(text: str) -> List[str]:
    terms = []
    for word in _WORD.findall(text.lower()):
        if word not in _QUERY_STOPWORDS and word not in terms:
            terms.append(word)
    return terms


def document_session_number(document: Document) -> Optional[int]:
    if document.session_number is not None:
        return document.session_number
    return extract_session_number(document.title)


def document_date(document: Document) -> Optional[datetime]:
    return as_utc(document.publish_date or document.processed_at)


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    try:
        return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        return None


class DocumentRelevanceScorer:
    """Score and list council documents"""

    def __init__(
        self,
        council_location: Optional[str] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.council_location = (council_location or settings.COUNCIL_LOCATION).lower()
        self._now = now or (lambda: datetime.now(timezone.utc))

    def score(
        self,
        document: Document,
        query: Optional[str] = None,
        session_number: Optional[int] = None,
    ) -> DocumentScore:
        title = document.title.lower()
        content = (document.content or "").lower()[:MAX_SCORED_CONTENT]
        combined = f"{title} {content}"
        now = self._now()

        type_score = TYPE_WEIGHTS.get(document.document_type, TYPE_WEIGHTS["other"])

        details: Dict[str, Any] = {"type_bonus": type_score}
        if query and query.strip():
            relevance = self._query_relevance(document, query, session_number, details)
        else:
            relevance = self._civic_relevance(combined, details)

        urgency = self._urgency(document, combined, now, details)
        recency = self._recency(document_date(document), now)
        details["recency_bonus"] = recency

        total = clamp_unit(
            WEIGHTS["type"] * type_score
            + WEIGHTS["relevance"] * relevance
            + WEIGHTS["urgency"] * urgency
            + WEIGHTS["recency"] * recency
        )

        return DocumentScore(
            relevance_score=relevance,
            urgency_score=urgency,
            type_score=type_score,
            recency_score=recency,
            total_score=total,
            priority=self.priority_for(total),
            scoring_details=details,
        )

    @staticmethod
    def priority_for(total_score: float) -> DocumentPriority:
        for threshold, priority in PRIORITY_THRESHOLDS:
            if total_score >= threshold:
                return priority
        return DocumentPriority.LOW

    def _query_relevance(
        self,
        document: Document,
        query: str,
        session_number: Optional[int],
        details: Dict[str, Any],
    ) -> float:
        terms = query_terms(query)
        haystack = " ".join([document.title, " ".join(document.keywords), document.content or ""]).lower()
        tokens: Set[str] = set(_WORD.findall(haystack))

        matched = 0
        for term in terms:
            # Long terms match as prefixes too, so Polish inflections still count
            if term in tokens or (len(term) >= 4 and term in haystack):
                matched += 1
        overlap = matched / len(terms) if terms else 0.0

        wanted = session_number or extract_session_number(query)
        own = document_session_number(document)
        session_match = wanted is not None and own is not None and wanted == own

        details["keyword_bonus"] = round(QUERY_OVERLAP_WEIGHT * overlap, 4)
        details["session_bonus"] = SESSION_MATCH_BONUS if session_match else 0.0
        details["query_session_number"] = wanted
        details["document_session_number"] = own

        return clamp_unit(QUERY_OVERLAP_WEIGHT * overlap + (SESSION_MATCH_BONUS if session_match else 0.0))

    def _civic_relevance(self, combined: str, details: Dict[str, Any]) -> float:
        bonus = sum(KEYWORD_BONUS for keyword in PRIORITY_KEYWORDS if keyword in combined)
        if self.council_location and self.council_location in combined:
            bonus += LOCATION_BONUS
        details["keyword_bonus"] = round(bonus, 4)
        details["session_bonus"] = 0.0
        return clamp_unit(bonus)

    def _urgency(self, document: Document, combined: str, now: datetime, details: Dict[str, Any]) -> float:
        urgency = sum(URGENCY_KEYWORD_BONUS for keyword in URGENCY_KEYWORDS if keyword in combined)

        metadata = document.metadata or {}
        if metadata.get("urgent") or metadata.get("flagged"):
            urgency += URGENT_FLAG_BONUS

        deadline = _as_datetime(metadata.get("deadline"))
        deadline_bonus = self._upcoming_bonus(deadline, now)

        session_date = None
        match = _SESSION_DATE.search(combined)
        if match:
            day, month, year = (int(group) for group in match.groups())
            if year < 100:
                year += 2000
            try:
                session_date = datetime(year, month, day, tzinfo=timezone.utc)
            except ValueError:
                session_date = None
        session_bonus = self._upcoming_bonus(session_date, now)

        details["deadline_bonus"] = deadline_bonus
        details["upcoming_session_bonus"] = session_bonus
        return clamp_unit(urgency + deadline_bonus + session_bonus)

    @staticmethod
    def _upcoming_bonus(when: Optional[datetime], now: datetime) -> float:
        if when is None:
            return 0.0
        days = math.ceil((when - now).total_seconds() / 86400)
        if 0 <= days <= 7:
            return 0.3
        if 7 < days <= 14:
            return 0.2
        return 0.0

    @staticmethod
    def _recency(when: Optional[datetime], now: datetime) -> float:
        """Strictly decreasing with age; undated documents get the lowest tier"""
        if when is None:
            return MIN_RECENCY
        age_days = max(0.0, (now - when).total_seconds() / 86400)
        return MIN_RECENCY + (1.0 - MIN_RECENCY) / (1.0 + age_days / RECENCY_HALF_LIFE_DAYS)

    def rank_documents(
        self,
        documents: List[Document],
        query: Optional[str] = None,
        document_type: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        priority: Optional[DocumentPriority] = None,
        sort_by: str = "score",
        sort_order: str = "desc",
        limit: int = 20,
        offset: int = 0,
    ) -> DocumentListResponse:
        """Filter, score, sort and paginate a document list"""
        if sort_by not in ("score", "date", "title"):
            raise ValueError(f"Unsupported sort field: {sort_by}")
        if sort_order not in ("asc", "desc"):
            raise ValueError(f"Unsupported sort order: {sort_order}")

        query = (query or "").strip() or None
        wanted_session = extract_session_number(query) if query else None
        lower_bound = _as_datetime(date_from)
        upper_bound = _as_datetime(date_to) + timedelta(days=1) if date_to else None

        seen_ids: Set[str] = set()
        scored: List[ScoredDocument] = []
        for document in documents:
            if document.id in seen_ids:
                continue
            seen_ids.add(document.id)

            if document_type and document.document_type != document_type:
                continue

            when = document_date(document)
            if lower_bound and (when is None or when < lower_bound):
                continue
            if upper_bound and (when is None or when >= upper_bound):
                continue

            score = self.score(document, query)
            if query:
                if wanted_session is not None:
                    if document_session_number(document) != wanted_session:
                        continue
                elif not score.scoring_details.get("keyword_bonus"):
                    continue

            if priority and score.priority != priority:
                continue

            listed = document.model_copy(update={"title": normalize_title(document.title)})
            scored.append(ScoredDocument(document=listed, score=score))

        reverse = sort_order == "desc"
        if sort_by == "score":
            scored.sort(key=lambda entry: entry.score.total_score, reverse=reverse)
        elif sort_by == "date":
            oldest = datetime.min.replace(tzinfo=timezone.utc)
            scored.sort(key=lambda entry: document_date(entry.document) or oldest, reverse=reverse)
        else:
            scored.sort(key=lambda entry: entry.document.title.casefold(), reverse=reverse)

        logger.info(f"Ranked {len(scored)} of {len(documents)} documents by {sort_by} ({sort_order})")
        return DocumentListResponse(documents=scored[offset:offset + limit], total=len(scored))
