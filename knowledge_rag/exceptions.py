"""
Custom exceptions for indexing, retrieval, and persistence operations.
"""


class KnowledgeRAGError(Exception):
    """Base exception for knowledge base errors."""

    pass


class ProviderError(KnowledgeRAGError):
    """Raised when an embedding provider cannot produce a vector."""

    pass


class StoreError(KnowledgeRAGError):
    """Raised when a persistence read or write fails."""

    pass


class ConfigurationError(KnowledgeRAGError):
    """Raised when settings are missing or inconsistent."""

    pass
