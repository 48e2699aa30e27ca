"""Model exports shared by the indexer, retriever, and repositories."""

from knowledge_rag.models.config import (
    DatabaseConfig,
    EmbeddingConfig,
    IndexingConfig,
    LoggingConfig,
    RetrievalConfig,
    SettingsConfig,
)
from knowledge_rag.models.documents import (
    AutoIndexedContent,
    Chunk,
    Citation,
    Document,
    KnowledgeEntity,
    new_id,
    now_ms,
)
from knowledge_rag.models.enums import (
    POOL_SOURCE_TYPES,
    EmbeddingBackend,
    EntityType,
    SourcePool,
    SourceType,
)
from knowledge_rag.models.retrieval import (
    ContextData,
    ContextSource,
    EnrichedPrompt,
    IndexResult,
    KnowledgeGraphStats,
    RankedEntity,
    RetrievedChunk,
    SessionCitation,
    TopCitedDocument,
)

__all__ = [
    "AutoIndexedContent",
    "Chunk",
    "Citation",
    "ContextData",
    "ContextSource",
    "DatabaseConfig",
    "Document",
    "EmbeddingBackend",
    "EmbeddingConfig",
    "EnrichedPrompt",
    "EntityType",
    "IndexResult",
    "IndexingConfig",
    "KnowledgeEntity",
    "KnowledgeGraphStats",
    "LoggingConfig",
    "POOL_SOURCE_TYPES",
    "RankedEntity",
    "RetrievalConfig",
    "RetrievedChunk",
    "SessionCitation",
    "SettingsConfig",
    "SourcePool",
    "SourceType",
    "TopCitedDocument",
    "new_id",
    "now_ms",
]
