"""Interfaces for external collaborators of the search core"""

from .llm_client import LLMClientInterface
from .search_client import WebSearchInterface
from .sources import (
    LocalIndexInterface,
    RegistryClientInterface,
    DeepResearchClientInterface
)

__all__ = [
    "LLMClientInterface",
    "WebSearchInterface",
    "LocalIndexInterface",
    "RegistryClientInterface",
    "DeepResearchClientInterface"
]
