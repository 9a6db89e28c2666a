# civic_search/services/__init__.py
"""Service layer modules"""

# Services import each other; import them directly where needed
__all__ = []
