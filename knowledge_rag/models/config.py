"""Configuration models loaded from YAML."""

from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator

from knowledge_rag.models.enums import EmbeddingBackend


class DatabaseConfig(BaseModel):
    path: str = "data/knowledge.db"


class EmbeddingConfig(BaseModel):
    backend: EmbeddingBackend = EmbeddingBackend.AUTO
    openai_model: str = "text-embedding-3-small"
    openai_base_url: str = "https://api.openai.com/v1/embeddings"
    openai_dimension: int = Field(ge=1, default=1536)
    gemini_model: str = "models/text-embedding-004"
    gemini_dimension: int = Field(ge=1, default=768)
    deterministic_dimension: int = Field(ge=1, default=384)
    request_timeout: float = Field(gt=0, default=30.0)
    max_retries: int = Field(ge=1, le=10, default=3)
    verify_ssl: bool = Field(default=True, description="Verify TLS against the certifi CA bundle.")


class IndexingConfig(BaseModel):
    chunk_size: int = Field(ge=1, default=500, description="Characters per sliding window.")
    chunk_overlap: int = Field(ge=0, default=100, description="Characters shared by consecutive windows.")
    candidate_limit: int = Field(
        ge=1,
        default=1000,
        description="Most recent embedded chunks scanned per semantic search.",
    )

    @model_validator(mode="after")
    def _overlap_below_size(self) -> "IndexingConfig":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be strictly less than chunk_size")
        return self


def _default_weights() -> Dict[str, float]:
    return {
        "document": 1.0,
        "external_database": 0.9,
        "conversation": 0.85,
        "audio": 0.8,
        "screenshot": 0.75,
    }


class RetrievalConfig(BaseModel):
    max_chunks: int = Field(ge=1, default=5)
    multi_source_max_chunks: int = Field(ge=1, default=10)
    max_context_tokens: int = Field(ge=1, default=4000)
    min_relevance_score: float = Field(ge=0.0, le=1.0, default=0.7)
    source_weights: Dict[str, float] = Field(default_factory=_default_weights)


class LoggingConfig(BaseModel):
    level: str = "normal"
    log_to_file: bool = False
    log_file: str = "logs/knowledge_rag.log"
    audit_log_dir: Optional[str] = None


class SettingsConfig(BaseModel):
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    indexing: IndexingConfig = Field(default_factory=IndexingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
