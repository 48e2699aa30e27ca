"""Explicit wiring of repositories, providers, and services over one connection."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Mapping, Optional

import aiosqlite

from knowledge_rag.citation.ledger import CitationLedger
from knowledge_rag.db.database import get_db
from knowledge_rag.db.repositories import (
    ChunkRepository,
    CitationRepository,
    ContentPoolRepository,
    DocumentRepository,
    KnowledgeGraphRepository,
)
from knowledge_rag.knowledge_graph.entities import KnowledgeGraphReader
from knowledge_rag.models import SettingsConfig
from knowledge_rag.rag.embedding_provider import EmbeddingProvider, create_embedding_provider
from knowledge_rag.rag.indexer import Indexer
from knowledge_rag.rag.pools import ContentPoolSearcher
from knowledge_rag.rag.retriever import RAGService


@dataclass
class KnowledgeServices:
    db: aiosqlite.Connection
    documents: DocumentRepository
    pools: ContentPoolRepository
    knowledge_graph: KnowledgeGraphRepository
    provider: EmbeddingProvider
    indexer: Indexer
    rag: RAGService


def build_services(
    db: aiosqlite.Connection,
    settings: Optional[SettingsConfig] = None,
    provider: Optional[EmbeddingProvider] = None,
    env: Optional[Mapping[str, str]] = None,
) -> KnowledgeServices:
    """Assemble the service graph on an already-open connection."""
    settings = settings or SettingsConfig()
    provider = provider or create_embedding_provider(settings.embedding, env)

    documents = DocumentRepository(db)
    chunks = ChunkRepository(db)
    pools = ContentPoolRepository(db)
    knowledge_graph = KnowledgeGraphRepository(db)

    indexer = Indexer(chunks, documents, provider, settings.indexing)
    rag = RAGService(
        indexer=indexer,
        documents=documents,
        ledger=CitationLedger(CitationRepository(db)),
        pools=ContentPoolSearcher(pools),
        knowledge_graph=KnowledgeGraphReader(knowledge_graph),
        config=settings.retrieval,
    )
    return KnowledgeServices(
        db=db,
        documents=documents,
        pools=pools,
        knowledge_graph=knowledge_graph,
        provider=provider,
        indexer=indexer,
        rag=rag,
    )


@asynccontextmanager
async def open_services(
    settings: Optional[SettingsConfig] = None,
    db_path: Optional[str] = None,
    provider: Optional[EmbeddingProvider] = None,
) -> AsyncIterator[KnowledgeServices]:
    settings = settings or SettingsConfig()
    async with get_db(db_path or settings.database.path) as db:
        yield build_services(db, settings, provider)
