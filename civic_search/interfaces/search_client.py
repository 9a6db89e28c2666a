"""Interface for open-web search transports"""

from abc import ABC, abstractmethod
from typing import List

from civic_search.models.internal import WebHit


class WebSearchInterface(ABC):
    """Abstract base class for web search transports"""

    @abstractmethod
    async def search(self, query: str, max_results: int = 10) -> List[WebHit]:
        """Execute search query and return raw hits"""
        pass

    async def close(self):
        """Release network resources"""
        pass
