# civic_search/core/__init__.py

# Only exceptions are re-exported; import the engine from civic_search.core.cascade
# directly to avoid circular imports with the services package.
from .exceptions import (
    CascadeException,
    SourceAdapterException,
    SourceTimeoutException,
    WebSearchException,
    RegistryException,
    LLMClientException,
    CredibilityAssessmentException
)

__all__ = [
    "CascadeException",
    "SourceAdapterException",
    "SourceTimeoutException",
    "WebSearchException",
    "RegistryException",
    "LLMClientException",
    "CredibilityAssessmentException"
]
