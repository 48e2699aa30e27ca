"""Persisted knowledge base records: documents, chunks, citations, pool entries."""

from __future__ import annotations

import time
import uuid
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from knowledge_rag.models.enums import EntityType, SourceType


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


class Document(BaseModel):
    id: str = Field(default_factory=new_id)
    owner_id: str
    title: str
    filename: str = ""
    file_type: str = "txt"
    content: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    chunk_count: int = 0
    indexed: bool = False
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)


class Chunk(BaseModel):
    """One window of a document. char_start/char_end bound the untrimmed window."""

    id: str = Field(default_factory=new_id)
    document_id: str
    chunk_index: int = Field(ge=0)
    content: str
    char_start: int = Field(ge=0)
    char_end: int
    token_count: int = 0
    embedding: Optional[List[float]] = None
    created_at: int = Field(default_factory=now_ms)

    @model_validator(mode="after")
    def _check_bounds(self) -> "Chunk":
        if self.char_start >= self.char_end:
            raise ValueError(
                f"chunk {self.chunk_index}: char_start {self.char_start} must be < char_end {self.char_end}"
            )
        return self


class Citation(BaseModel):
    id: str = Field(default_factory=new_id)
    session_id: str
    message_id: Optional[str] = None
    document_id: str
    chunk_id: Optional[str] = None
    relevance_score: float = Field(ge=0.0, le=1.0)
    context_used: str
    created_at: int = Field(default_factory=now_ms)

    model_config = {"frozen": True}


class AutoIndexedContent(BaseModel):
    id: str = Field(default_factory=new_id)
    owner_id: str
    source_type: SourceType
    source_id: Optional[str] = None
    source_title: Optional[str] = None
    content: str
    content_summary: Optional[str] = None
    importance_score: Optional[float] = 0.5
    indexed_at: int = Field(default_factory=now_ms)


class KnowledgeEntity(BaseModel):
    id: str = Field(default_factory=new_id)
    owner_id: str
    entity_type: EntityType
    entity_name: str
    mention_count: int = 1
    first_seen: int = Field(default_factory=now_ms)
    last_seen: int = Field(default_factory=now_ms)
