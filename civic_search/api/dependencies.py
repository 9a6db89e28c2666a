# civic_search/api/dependencies.py
import logging
import time

from fastapi import Request

from civic_search.config.settings import settings
from civic_search.core.cascade import SearchCascadeEngine
from civic_search.core.exceptions import ServiceUnavailableException
from civic_search.interfaces.sources import LocalIndexInterface
from civic_search.services.adapters import (
    LocalIndexAdapter,
    SourceAdapterRegistry,
    WebSearchAdapter,
)
from civic_search.services.credibility import CredibilityAssessor
from civic_search.services.document_scorer import DocumentRelevanceScorer
from civic_search.services.llm_client import OllamaClient
from civic_search.services.local_index import InMemoryDocumentIndex
from civic_search.services.web_search import MultiWebSearch

logger = logging.getLogger(__name__)


def build_engine(
    scorer: DocumentRelevanceScorer = None,
    index: LocalIndexInterface = None,
) -> SearchCascadeEngine:
    """Engine wired from settings.

    The host supplies the populated local index; without one an empty
    InMemoryDocumentIndex is used and the local and session sources return
    nothing. Registry and research clients are attached by the host too.
    """
    scorer = scorer or DocumentRelevanceScorer()
    if index is None:
        logger.warning("No local index supplied, local and session sources will be empty")
        index = InMemoryDocumentIndex()
    registry = SourceAdapterRegistry([
        LocalIndexAdapter(index, scorer),
        LocalIndexAdapter(index, scorer, session_only=True),
    ])

    if settings.BRAVE_SEARCH_API_KEY or settings.SERPAPI_API_KEY:
        assessor = CredibilityAssessor(llm_client=OllamaClient())
        registry.register(WebSearchAdapter(MultiWebSearch(), assessor))
    else:
        logger.warning("No web search API key configured, web source disabled")

    engine = SearchCascadeEngine(registry)
    logger.info(f"Cascade engine created with sources: {[s.value for s in registry.source_types]}")
    return engine


def get_engine(request: Request) -> SearchCascadeEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise ServiceUnavailableException("Search engine not initialized")
    return engine


def get_scorer(request: Request) -> DocumentRelevanceScorer:
    scorer = getattr(request.app.state, "scorer", None)
    if scorer is None:
        raise ServiceUnavailableException("Document scorer not initialized")
    return scorer


async def validate_request_id(request: Request) -> str:
    """Get or validate request ID"""
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = f"req_{int(time.time() * 1000)}"
        request.state.request_id = request_id
    return request_id
