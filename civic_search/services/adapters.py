# civic_search/services/adapters.py
"""Source adapters: one uniform async search capability per source kind.

Adapters are registered in a lookup table keyed by SourceType. Each adapter
owns its collaborators and its own TTL cache; a failure inside an adapter is
raised as SourceAdapterException and handled by the cascade.
"""

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from civic_search.config.settings import settings
from civic_search.core.exceptions import (
    CascadeException,
    RegistryException,
    SourceAdapterException,
    WebSearchException,
)
from civic_search.interfaces.search_client import WebSearchInterface
from civic_search.interfaces.sources import (
    DeepResearchClientInterface,
    LocalIndexInterface,
    RegistryClientInterface,
)
from civic_search.models.internal import (
    REGISTRY_SOURCES,
    SearchResultItem,
    SourceType,
    WebHit,
    clamp_unit,
)
from civic_search.models.requests import SearchQuery
from civic_search.services.cache_service import CacheService
from civic_search.services.credibility import CredibilityAssessor, warnings_for
from civic_search.services.document_scorer import (
    SESSION_DOCUMENT_TYPES,
    DocumentRelevanceScorer,
    document_date,
    document_session_number,
)
from civic_search.services.normalizer import (
    normalize_indexed_document,
    normalize_registry_record,
    normalize_research_record,
    normalize_web_hit,
)
from civic_search.utils.session_numbers import extract_session_number

logger = logging.getLogger(__name__)

PREFERRED_DOMAIN_BONUS = 0.1


def _cache_key(payload: Dict[str, Any]) -> str:
    raw = json.dumps(payload, sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class SourceAdapter(ABC):
    """Uniform search capability over one source"""

    source_type: SourceType

    @abstractmethod
    async def search(self, query: SearchQuery, limit: int = 10) -> List[SearchResultItem]:
        pass

    async def close(self):
        pass


class LocalIndexAdapter(SourceAdapter):
    """Local document index; in session mode restricted to one council session"""

    def __init__(
        self,
        index: LocalIndexInterface,
        scorer: Optional[DocumentRelevanceScorer] = None,
        session_only: bool = False,
    ):
        self.index = index
        self.scorer = scorer or DocumentRelevanceScorer()
        self.session_only = session_only
        self.source_type = SourceType.SESSION if session_only else SourceType.LOCAL_INDEX

    async def search(self, query: SearchQuery, limit: int = 10) -> List[SearchResultItem]:
        session_number = query.session_number or extract_session_number(query.text)
        if self.session_only and session_number is None:
            return []

        text = query.text
        if session_number is not None and extract_session_number(text) != session_number:
            text = f"{text} sesja {session_number}"

        hits = await self.index.query(text, limit=limit)

        items = []
        for hit in hits:
            document = hit.document
            if self.session_only:
                if document_session_number(document) != session_number:
                    continue
                if document.document_type not in SESSION_DOCUMENT_TYPES and document.session_number is None:
                    continue
            if not self._in_date_range(query, document_date(document)):
                continue

            score = self.scorer.score(document, query.text, session_number)
            relevance = max(hit.similarity, score.relevance_score)
            items.append(normalize_indexed_document(hit, self.source_type, relevance=relevance, score=score))

        return items

    @staticmethod
    def _in_date_range(query: SearchQuery, when) -> bool:
        if when is None:
            return True
        if query.date_from and when.date() < query.date_from:
            return False
        if query.date_to and when.date() > query.date_to:
            return False
        return True


class RegistryAdapter(SourceAdapter):
    """Thin mapping from a public registry client to SearchResultItem"""

    def __init__(
        self,
        source_type: SourceType,
        client: RegistryClientInterface,
        cache_ttl: Optional[int] = None,
    ):
        if source_type not in REGISTRY_SOURCES:
            raise CascadeException(f"{source_type.value} is not a registry source")
        self.source_type = source_type
        self.client = client
        self.cache = CacheService(
            ttl=cache_ttl or settings.CACHE_TTL_REGISTRY,
            namespace=f"registry:{source_type.value}",
        )

    def build_params(self, query: SearchQuery, limit: int) -> Dict[str, Any]:
        params: Dict[str, Any] = {"query": query.text, "limit": limit}
        if query.session_number is not None:
            params["session_number"] = query.session_number
        if query.date_from:
            params["date_from"] = query.date_from.isoformat()
        if query.date_to:
            params["date_to"] = query.date_to.isoformat()
        return params

    async def search(self, query: SearchQuery, limit: int = 10) -> List[SearchResultItem]:
        params = self.build_params(query, limit)
        cache_key = _cache_key(params)

        records = await self.cache.get(cache_key)
        if records is None:
            try:
                records = await self.client.search(params)
            except RegistryException as e:
                raise SourceAdapterException(self.source_type, str(e))
            if not isinstance(records, list):
                raise SourceAdapterException(self.source_type, "Malformed registry response")
            await self.cache.set(cache_key, records)

        items = []
        for record in records[:limit]:
            if not isinstance(record, dict):
                logger.warning(f"Skipping malformed {self.source_type.value} record: {record!r}")
                continue
            try:
                items.append(normalize_registry_record(self.source_type, record))
            except (ValidationError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed {self.source_type.value} record: {e}")
        return items

    async def close(self):
        await self.cache.close()


class WebSearchAdapter(SourceAdapter):
    """Open-web search with credibility assessment of every hit"""

    source_type = SourceType.WEB

    def __init__(
        self,
        transport: WebSearchInterface,
        assessor: CredibilityAssessor,
        cache_ttl: Optional[int] = None,
        preferred_domains: Optional[Iterable[str]] = None,
        excluded_domains: Optional[Iterable[str]] = None,
    ):
        self.transport = transport
        self.assessor = assessor
        self.preferred_domains = [d.lower() for d in preferred_domains or []]
        self.excluded_domains = [d.lower() for d in excluded_domains or []]
        self.cache = CacheService(
            ttl=cache_ttl or settings.CACHE_TTL_WEB_SEARCH,
            namespace="web_search",
        )

    @staticmethod
    def _matches(domain: str, patterns: List[str]) -> bool:
        return any(domain == p or domain.endswith("." + p) for p in patterns)

    async def _fetch_hits(self, text: str, limit: int) -> List[WebHit]:
        cache_key = _cache_key({"query": text, "limit": limit})
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return [WebHit.model_validate(hit) for hit in cached]

        try:
            hits = await self.transport.search(text, max_results=limit)
        except WebSearchException as e:
            raise SourceAdapterException(self.source_type, str(e))

        await self.cache.set(cache_key, [hit.model_dump() for hit in hits])
        return hits

    async def search(self, query: SearchQuery, limit: int = 10) -> List[SearchResultItem]:
        hits = await self._fetch_hits(query.text, limit)
        hits = [hit for hit in hits if not self._matches(hit.domain, self.excluded_domains)]

        items = [normalize_web_hit(hit, query.text) for hit in hits[:limit]]
        scores = await self.assessor.assess_many(items, query.text)

        assessed = []
        for item, credibility in zip(items, scores):
            topical = item.relevance
            if self._matches(item.metadata.get("domain", ""), self.preferred_domains):
                topical = clamp_unit(topical + PREFERRED_DOMAIN_BONUS)

            item.credibility = credibility.overall
            item.relevance = clamp_unit(0.5 * topical + 0.5 * credibility.overall)
            item.metadata.update({
                "topical_relevance": topical,
                "credibility_details": credibility.model_dump(mode="json"),
                "flags": [flag.type.value for flag in credibility.flags],
                "warnings": warnings_for(credibility),
                "is_reliable": self.assessor.is_reliable(credibility),
            })
            assessed.append(item)

        return assessed

    async def close(self):
        await self.cache.close()
        await self.transport.close()


class DeepResearchAdapter(SourceAdapter):
    """Last-resort research across several providers"""

    source_type = SourceType.DEEP_RESEARCH

    def __init__(self, client: DeepResearchClientInterface):
        self.client = client

    async def search(self, query: SearchQuery, limit: int = 10) -> List[SearchResultItem]:
        records = await self.client.research(query.text, max_results=limit)
        if not isinstance(records, list):
            raise SourceAdapterException(self.source_type, "Malformed research response")

        items = []
        for record in records[:limit]:
            try:
                items.append(normalize_research_record(record))
            except (ValidationError, AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed research record: {e}")
        return items


class SourceAdapterRegistry:
    """Lookup table of adapters keyed by source type"""

    def __init__(self, adapters: Optional[Iterable[SourceAdapter]] = None):
        self._adapters: Dict[SourceType, SourceAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: SourceAdapter):
        if adapter.source_type in self._adapters:
            logger.warning(f"Replacing adapter for {adapter.source_type.value}")
        self._adapters[adapter.source_type] = adapter

    def get(self, source_type: SourceType) -> Optional[SourceAdapter]:
        return self._adapters.get(source_type)

    def __contains__(self, source_type: SourceType) -> bool:
        return source_type in self._adapters

    @property
    def source_types(self) -> List[SourceType]:
        return list(self._adapters)

    async def close(self):
        for adapter in self._adapters.values():
            try:
                await adapter.close()
            except Exception as e:
                logger.warning(f"Error closing {adapter.source_type.value} adapter: {e}")
