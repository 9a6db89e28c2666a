# civic_search/core/exceptions.py
from fastapi import HTTPException

class CustomHTTPException(HTTPException):
    def __init__(self, status_code: int, detail: str, error_code: str = None):
        super().__init__(status_code=status_code, detail=detail)
        self.error_code = error_code

class CascadeException(Exception):
    """Exception raised for invalid cascade configuration (never for source failures)"""
    pass

class SourceAdapterException(Exception):
    """Exception raised by a single search source; local to that source"""

    def __init__(self, source_type, message: str):
        super().__init__(message)
        self.source_type = source_type

class SourceTimeoutException(SourceAdapterException):
    """Exception raised when a source exceeds its configured timeout"""

    def __init__(self, source_type, timeout_ms: int):
        super().__init__(source_type, f"Timeout after {timeout_ms}ms")
        self.timeout_ms = timeout_ms

class WebSearchException(Exception):
    """Exception raised by the open-web search transport"""
    pass

class RegistryException(Exception):
    """Exception raised by a public registry client"""
    pass

class LLMClientException(Exception):
    """Exception raised when an LLM completion call fails"""
    pass

class CredibilityAssessmentException(Exception):
    """Exception raised when an LLM quality estimate is unusable"""
    pass

class ValidationException(CustomHTTPException):
    def __init__(self, detail: str = "Validation error"):
        super().__init__(status_code=400, detail=detail, error_code="VALIDATION_ERROR")

class ServiceUnavailableException(CustomHTTPException):
    def __init__(self, detail: str = "Service temporarily unavailable"):
        super().__init__(status_code=503, detail=detail, error_code="SERVICE_UNAVAILABLE")
