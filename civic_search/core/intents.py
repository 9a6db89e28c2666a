# civic_search/core/intents.py
"""Query intent classification and intent-to-source routing"""

import logging
import re
from enum import Enum
from typing import List

from civic_search.models.internal import SourceType
from civic_search.utils.session_numbers import extract_session_number

logger = logging.getLogger(__name__)


class SearchIntent(str, Enum):
    SESSION_LOOKUP = "session_lookup"
    LEGAL_QUESTION = "legal_question"
    STATISTICS = "statistics"
    COMPANY_LOOKUP = "company_lookup"
    SPATIAL = "spatial"
    CURRENT_EVENTS = "current_events"
    GENERAL = "general"


# Checked in order; first match wins
_INTENT_PATTERNS = [
    (SearchIntent.SESSION_LOOKUP, re.compile(
        r"\b(sesj\w*|posiedzeni\w*|porządek obrad|protok[oó]ł\w*|uchwał\w*|interpelacj\w*)", re.IGNORECASE)),
    (SearchIntent.LEGAL_QUESTION, re.compile(
        r"\b(ustaw\w*|rozporządzeni\w*|dz\.?\s*u\.?|kodeks\w*|przepis\w*|art\.\s*\d+|prawo\w*)", re.IGNORECASE)),
    (SearchIntent.STATISTICS, re.compile(
        r"\b(statysty\w*|gus|ludnoś\w*|mieszkańc\w*|bezroboci\w*|liczba|dochod\w*|wskaźnik\w*)", re.IGNORECASE)),
    (SearchIntent.COMPANY_LOOKUP, re.compile(
        r"\b(nip|regon|krs|ceidg|firm\w*|spółk\w*|przedsiębior\w*|działalnoś\w* gospodarcz\w*)", re.IGNORECASE)),
    (SearchIntent.SPATIAL, re.compile(
        r"\b(działk\w*|geoportal|teryt|mpzp|plan\w* zagospodarowania|obręb\w*|granic\w*)", re.IGNORECASE)),
    (SearchIntent.CURRENT_EVENTS, re.compile(
        r"\b(aktualn\w*|najnowsz\w*|dziś|dzisiaj|wczoraj|news\w*|wiadomoś\w*|ostatnio)", re.IGNORECASE)),
]


def classify_intent(text: str) -> SearchIntent:
    """Rule-based intent of a query; GENERAL when nothing specific matches"""
    if extract_session_number(text) is not None:
        return SearchIntent.SESSION_LOOKUP

    for intent, pattern in _INTENT_PATTERNS:
        if pattern.search(text or ""):
            return intent

    return SearchIntent.GENERAL


def sources_for_intent(intent: SearchIntent) -> List[SourceType]:
    """Sources worth querying for an intent"""
    if intent == SearchIntent.SESSION_LOOKUP:
        return [SourceType.LOCAL_INDEX, SourceType.SESSION]
    elif intent == SearchIntent.LEGAL_QUESTION:
        return [SourceType.LOCAL_INDEX, SourceType.LEGAL_ACTS, SourceType.WEB]
    elif intent == SearchIntent.STATISTICS:
        return [SourceType.LOCAL_INDEX, SourceType.STATISTICS, SourceType.WEB]
    elif intent == SearchIntent.COMPANY_LOOKUP:
        return [SourceType.BUSINESS_REGISTRY, SourceType.WEB]
    elif intent == SearchIntent.SPATIAL:
        return [SourceType.LOCAL_INDEX, SourceType.SPATIAL]
    elif intent == SearchIntent.CURRENT_EVENTS:
        return [SourceType.WEB, SourceType.DEEP_RESEARCH]
    elif intent == SearchIntent.GENERAL:
        return list(SourceType)
    else:
        logger.warning(f"Unhandled intent {intent!r}, querying every source")
        return list(SourceType)
