# civic_search/services/web_search.py
import asyncio
import logging
import time
from typing import List, Optional

import aiohttp

from civic_search.config.settings import settings
from civic_search.core.exceptions import WebSearchException
from civic_search.interfaces.search_client import WebSearchInterface
from civic_search.models.internal import WebHit

logger = logging.getLogger(__name__)


class MultiWebSearch(WebSearchInterface):
    """Open-web transport over Brave Search and SerpApi (Google)"""

    def __init__(
        self,
        brave_api_key: Optional[str] = None,
        serpapi_api_key: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.brave_api_key = settings.BRAVE_SEARCH_API_KEY if brave_api_key is None else brave_api_key
        self.serpapi_api_key = settings.SERPAPI_API_KEY if serpapi_api_key is None else serpapi_api_key
        self.timeout = timeout or settings.SEARCH_TIMEOUT
        self.session: Optional[aiohttp.ClientSession] = None
        self.search_engines = {
            "brave": self._brave_search,
            "serpapi": self._serpapi_search
        }

    @property
    def enabled_engines(self) -> List[str]:
        engines = []
        if self.brave_api_key:
            engines.append("brave")
        if self.serpapi_api_key:
            engines.append("serpapi")
        return engines

    async def _get_session(self) -> aiohttp.ClientSession:
        """Lazy initialization of HTTP session"""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self.session

    async def search(self, query: str, max_results: int = 10) -> List[WebHit]:
        """Query every configured engine in parallel and merge their hits in engine order"""
        engines = self.enabled_engines
        if not engines:
            raise WebSearchException("No web search engine configured")

        max_results = min(max_results, settings.MAX_SEARCH_RESULTS)
        start_time = time.time()
        results = await asyncio.gather(
            *(self.search_engines[engine](query, max_results) for engine in engines),
            return_exceptions=True
        )

        hits: List[WebHit] = []
        errors = []
        for engine, result in zip(engines, results):
            if isinstance(result, Exception):
                logger.warning(f"Web search engine {engine} failed: {result}")
                errors.append(f"{engine}: {result}")
                continue
            hits.extend(result)

        if errors and len(errors) == len(engines):
            raise WebSearchException("; ".join(errors))

        logger.info(f"Web search returned {len(hits)} hits in {time.time() - start_time:.2f}s for: {query[:30]}...")
        return hits

    async def _brave_search(self, query: str, max_results: int = 10) -> List[WebHit]:
        """Search using Brave Search API"""
        session = await self._get_session()
        url = "https://api.search.brave.com/res/v1/web/search"
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip",
            "X-Subscription-Token": self.brave_api_key
        }
        params = {
            "q": query,
            "count": min(max_results, 20),  # Brave API max is 20
            "search_lang": settings.SEARCH_LANG,
            "country": settings.SEARCH_COUNTRY,
            "safesearch": "moderate"
        }

        async with session.get(url, headers=headers, params=params) as response:
            if response.status != 200:
                raise WebSearchException(f"Brave Search API returned status {response.status}")
            data = await response.json()

        hits = []
        for position, item in enumerate(data.get("web", {}).get("results", []), start=1):
            if not item.get("url"):
                continue
            hits.append(WebHit(
                url=item["url"],
                title=item.get("title", ""),
                snippet=item.get("description", ""),
                publish_date=item.get("page_age"),
                author=(item.get("profile") or {}).get("name"),
                position=position,
                engine="brave"
            ))
        return hits

    async def _serpapi_search(self, query: str, max_results: int = 10) -> List[WebHit]:
        """Search using SerpApi (Google Search)"""
        session = await self._get_session()
        url = "https://serpapi.com/search"
        params = {
            "q": query,
            "api_key": self.serpapi_api_key,
            "engine": "google",
            "num": min(max_results, 20),
            "hl": settings.SEARCH_LANG,
            "gl": settings.SEARCH_COUNTRY.lower(),
            "safe": "active",
            "output": "json"
        }

        async with session.get(url, params=params) as response:
            if response.status != 200:
                error_text = await response.text()
                raise WebSearchException(f"SerpApi returned status {response.status}: {error_text[:200]}")
            data = await response.json()

        hits = []
        for item in data.get("organic_results", []):
            if not item.get("link"):
                continue
            hits.append(WebHit(
                url=item["link"],
                title=item.get("title", ""),
                snippet=item.get("snippet", ""),
                publish_date=item.get("date"),
                position=item.get("position"),
                engine="serpapi"
            ))
        return hits

    async def close(self):
        """Close HTTP session"""
        if self.session:
            await self.session.close()
            self.session = None
