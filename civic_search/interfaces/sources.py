"""Interfaces for the document index and public registry clients"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from civic_search.models.internal import IndexedDocument


class LocalIndexInterface(ABC):
    """Locally indexed document store"""

    @abstractmethod
    async def query(self, text: str, limit: int = 10) -> List[IndexedDocument]:
        """Return documents ranked by similarity to the text"""
        pass


class RegistryClientInterface(ABC):
    """Public registry (statistics, legal acts, business, spatial)"""

    @abstractmethod
    async def search(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Return structured records matching the params"""
        pass


class DeepResearchClientInterface(ABC):
    """Multi-provider research service used as the last cascade resort"""

    @abstractmethod
    async def research(self, query: str, max_results: int = 10) -> List[Dict[str, Any]]:
        """Return research findings with title, content, url and relevance"""
        pass
