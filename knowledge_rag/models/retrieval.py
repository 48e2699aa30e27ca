"""Typed results flowing through indexing and retrieval."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from knowledge_rag.models.enums import SourceType


class IndexResult(BaseModel):
    document_id: str
    chunk_count: int
    indexed: bool
    total_tokens: int


class RetrievedChunk(BaseModel):
    """A scored unit of retrieved text from any pool. Never carries an embedding."""

    id: str
    content: str
    relevance_score: float
    source_type: SourceType = SourceType.DOCUMENT
    document_id: Optional[str] = None
    chunk_index: Optional[int] = None
    char_start: Optional[int] = None
    char_end: Optional[int] = None
    token_count: int = 0
    created_at: Optional[int] = None
    source_id: Optional[str] = None
    source_title: Optional[str] = None
    importance_score: Optional[float] = None
    indexed_at: Optional[int] = None
    weighted_score: Optional[float] = None

    @property
    def rank_score(self) -> float:
        return self.weighted_score if self.weighted_score is not None else self.relevance_score


class ContextSource(BaseModel):
    """A retrieved chunk paired with the metadata needed to cite it."""

    chunk_id: str
    content: str
    relevance_score: float
    source_type: SourceType = SourceType.DOCUMENT
    document_id: Optional[str] = None
    document_title: Optional[str] = None
    document_filename: Optional[str] = None
    chunk_index: Optional[int] = None
    source_id: Optional[str] = None
    source_title: Optional[str] = None
    weighted_score: Optional[float] = None
    importance_score: Optional[float] = None
    indexed_at: Optional[int] = None

    @property
    def title(self) -> str:
        return self.document_title or self.source_title or "Unknown"


class ContextData(BaseModel):
    has_context: bool = False
    chunks: List[RetrievedChunk] = Field(default_factory=list)
    sources: List[ContextSource] = Field(default_factory=list)
    total_tokens: int = 0
    source_breakdown: Dict[str, int] = Field(default_factory=dict)


class EnrichedPrompt(BaseModel):
    prompt: str
    user_query: str
    has_context: bool = False
    sources: List[ContextSource] = Field(default_factory=list)
    context_tokens: int = 0
    related_entities: List[str] = Field(default_factory=list)


class SessionCitation(BaseModel):
    id: str
    session_id: str
    message_id: Optional[str] = None
    document_id: str
    chunk_id: Optional[str] = None
    relevance_score: float
    context_used: str
    created_at: int
    document_title: Optional[str] = None
    document_filename: Optional[str] = None


class TopCitedDocument(BaseModel):
    id: str
    title: str
    filename: str
    citation_count: int
    avg_relevance: float


class RankedEntity(BaseModel):
    name: str
    mention_count: int
    last_seen: Optional[int] = None


class KnowledgeGraphStats(BaseModel):
    total_entities: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    top_projects: List[RankedEntity] = Field(default_factory=list)
    top_people: List[RankedEntity] = Field(default_factory=list)
