# civic_search/tests/conftest.py
import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from civic_search.core.exceptions import LLMClientException, RegistryException, WebSearchException
from civic_search.interfaces.llm_client import LLMClientInterface
from civic_search.interfaces.search_client import WebSearchInterface
from civic_search.interfaces.sources import DeepResearchClientInterface, RegistryClientInterface
from civic_search.models.internal import Document, SearchResultItem, SourceType, WebHit
from civic_search.models.requests import SearchQuery
from civic_search.services.adapters import SourceAdapter
from civic_search.services.cache_service import CacheService
from civic_search.services.credibility import CredibilityAssessor
from civic_search.services.document_scorer import DocumentRelevanceScorer
from civic_search.services.local_index import InMemoryDocumentIndex

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeLLM(LLMClientInterface):
    def __init__(self, response: str = None, error: Exception = None):
        self.response = response
        self.error = error
        self.prompts: List[str] = []

    async def complete(self, prompt: str, json_mode: bool = False) -> str:
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.response


class FakeWebSearch(WebSearchInterface):
    def __init__(self, hits: List[WebHit] = None, error: Exception = None):
        self.hits = hits or []
        self.error = error
        self.calls = 0

    async def search(self, query: str, max_results: int = 10) -> List[WebHit]:
        self.calls += 1
        if self.error:
            raise self.error
        return self.hits[:max_results]


class FakeRegistry(RegistryClientInterface):
    def __init__(self, records: List[Dict[str, Any]] = None, error: Exception = None):
        self.records = records or []
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def search(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        self.calls.append(params)
        if self.error:
            raise self.error
        return self.records


class FakeDeepResearch(DeepResearchClientInterface):
    def __init__(self, records: List[Dict[str, Any]] = None):
        self.records = records or []

    async def research(self, query: str, max_results: int = 10) -> List[Dict[str, Any]]:
        return self.records[:max_results]


class StaticAdapter(SourceAdapter):
    """Adapter returning canned items, optionally after a delay or with an error"""

    def __init__(
        self,
        source_type: SourceType,
        items: List[SearchResultItem] = None,
        error: Exception = None,
        delay: float = 0.0,
    ):
        self.source_type = source_type
        self.items = items or []
        self.error = error
        self.delay = delay
        self.calls = 0

    async def search(self, query: SearchQuery, limit: int = 10) -> List[SearchResultItem]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.items[:limit])


def make_item(
    title: str,
    source_type: SourceType = SourceType.LOCAL_INDEX,
    relevance: float = 0.5,
    url: Optional[str] = None,
    content: str = "",
    credibility: Optional[float] = None,
) -> SearchResultItem:
    return SearchResultItem(
        title=title,
        content=content,
        url=url,
        source_type=source_type,
        relevance=relevance,
        credibility=credibility,
    )


def make_items(source_type: SourceType, count: int, relevance: float = 0.5) -> List[SearchResultItem]:
    return [
        make_item(f"{source_type.value} result {i}", source_type, relevance,
                  url=f"https://{source_type.value}.example.pl/{i}")
        for i in range(count)
    ]


def json_estimate(quality=80, factual=80, bias=10, flags=None) -> str:
    return json.dumps({
        "quality": quality,
        "factual_accuracy": factual,
        "bias_level": bias,
        "flags": flags or [],
    })


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def scorer():
    return DocumentRelevanceScorer(council_location="Drawno", now=lambda: FIXED_NOW)


@pytest.fixture
def session_documents():
    return [
        Document(
            id="doc-23",
            title="Sesja Nr XXIII",
            content="Porządek obrad XXIII sesji Rady Miejskiej w Drawnie.",
            document_type="session_order",
            publish_date=datetime(2024, 5, 20, tzinfo=timezone.utc),
        ),
        Document(
            id="doc-22",
            title="Sesja Nr XXII",
            content="Protokół z XXII sesji Rady Miejskiej.",
            document_type="protocol",
            publish_date=datetime(2024, 4, 20, tzinfo=timezone.utc),
        ),
        Document(
            id="doc-budget",
            title="Uchwała budżetowa na rok 2024",
            content="Rada Miejska uchwala budżet gminy Drawno.",
            document_type="budget_act",
            publish_date=datetime(2024, 1, 10, tzinfo=timezone.utc),
        ),
    ]


@pytest.fixture
def local_index(session_documents):
    return InMemoryDocumentIndex(session_documents)


@pytest.fixture
def llm_cache():
    return CacheService(ttl=60, namespace="test-credibility", redis_url="")


@pytest.fixture
def assessor(llm_cache):
    return CredibilityAssessor(
        llm_client=FakeLLM(response=json_estimate()),
        horizon_days=365,
        freshness_floor=0.2,
        cache=llm_cache,
        now=lambda: FIXED_NOW,
    )


@pytest.fixture
def failing_llm():
    return FakeLLM(error=LLMClientException("connection refused"))


@pytest.fixture
def web_error():
    return WebSearchException("all engines failed")


@pytest.fixture
def registry_error():
    return RegistryException("upstream 502")
