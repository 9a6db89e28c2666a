# civic_search/api/endpoints/__init__.py
"""API endpoints"""

from . import search, documents, health

__all__ = ["search", "documents", "health"]
