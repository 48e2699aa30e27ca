"""RAG orchestration: retrieve, weight, budget, and format context for a prompt.

Single-source retrieval searches indexed document chunks only. Multi-source
retrieval also scores the auto-indexed pools, weights every result by its
source type, and adds a knowledge-graph block to the prompt. Read paths
degrade to empty results on store failures; nothing here retries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Iterable, List, Optional, Sequence

import aiosqlite

from knowledge_rag.citation.ledger import CitationLedger
from knowledge_rag.db.repositories import DocumentRepository
from knowledge_rag.exceptions import StoreError
from knowledge_rag.knowledge_graph.entities import KnowledgeGraphReader
from knowledge_rag.models import (
    POOL_SOURCE_TYPES,
    Citation,
    ContextData,
    ContextSource,
    Document,
    EnrichedPrompt,
    RetrievalConfig,
    RetrievedChunk,
    SessionCitation,
    SourcePool,
    SourceType,
    TopCitedDocument,
)
from knowledge_rag.rag.indexer import Indexer
from knowledge_rag.rag.pools import ContentPoolSearcher, merge_weighted, pool_limit
from knowledge_rag.rag.prompt import (
    build_multi_source_prompt,
    build_single_source_prompt,
    format_related_entities,
)
from knowledge_rag.rag.tokens import estimate_tokens, filter_by_token_limit
from knowledge_rag.utils.structured_log import log_retrieval_event

logger = logging.getLogger(__name__)

ALL_POOLS: tuple[SourcePool, ...] = tuple(SourcePool)


def _base_prompt_result(query: str, base_prompt: str) -> EnrichedPrompt:
    return EnrichedPrompt(prompt=base_prompt, user_query=query, has_context=False, sources=[])


class RAGService:
    """Retrieval-augmented prompt building over documents and content pools."""

    def __init__(
        self,
        indexer: Indexer,
        documents: DocumentRepository,
        ledger: CitationLedger,
        pools: ContentPoolSearcher,
        knowledge_graph: KnowledgeGraphReader,
        config: Optional[RetrievalConfig] = None,
    ) -> None:
        self.indexer = indexer
        self.documents = documents
        self.ledger = ledger
        self.pools = pools
        self.knowledge_graph = knowledge_graph
        self.config = config or RetrievalConfig()
        self.max_context_tokens = self.config.max_context_tokens
        self.min_relevance_score = self.config.min_relevance_score

    def set_max_context_tokens(self, max_tokens: int) -> None:
        if max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {max_tokens}")
        self.max_context_tokens = max_tokens
        logger.info("Max context tokens set to %d", max_tokens)

    def set_min_relevance_score(self, min_score: float) -> None:
        if not 0.0 <= min_score <= 1.0:
            raise ValueError(f"min_score must be within [0, 1], got {min_score}")
        self.min_relevance_score = min_score
        logger.info("Min relevance score set to %.2f", min_score)

    async def _document_map(self, document_ids: Iterable[str]) -> dict[str, Document]:
        try:
            return await self.documents.get_many(document_ids)
        except aiosqlite.Error as exc:
            logger.error("Error fetching documents for context: %s", exc)
            return {}

    async def retrieve_context(
        self,
        query: str,
        max_chunks: Optional[int] = None,
        document_ids: Optional[Sequence[str]] = None,
        min_score: Optional[float] = None,
    ) -> ContextData:
        """Top document chunks for ``query`` paired with their document metadata.

        ``max_chunks`` defaults to ``retrieval.max_chunks`` from settings.
        """
        limit = self.config.max_chunks if max_chunks is None else max_chunks
        threshold = self.min_relevance_score if min_score is None else min_score
        try:
            chunks = await self.indexer.semantic_search(
                query, limit=limit, min_score=threshold, document_ids=document_ids
            )
        except (aiosqlite.Error, StoreError) as exc:
            logger.error("Error retrieving context: %s", exc)
            return ContextData()

        if not chunks:
            logger.info("No relevant context found")
            return ContextData()

        doc_map = await self._document_map(c.document_id for c in chunks if c.document_id)
        sources = []
        for chunk in chunks:
            doc = doc_map.get(chunk.document_id or "")
            sources.append(
                ContextSource(
                    chunk_id=chunk.id,
                    document_id=chunk.document_id,
                    document_title=doc.title if doc else "Unknown",
                    document_filename=doc.filename if doc else "Unknown",
                    content=chunk.content,
                    relevance_score=chunk.relevance_score,
                    chunk_index=chunk.chunk_index,
                )
            )
        total_tokens = sum(c.token_count for c in chunks)
        logger.info("Retrieved %d chunks (%d tokens)", len(chunks), total_tokens)
        return ContextData(
            has_context=True,
            chunks=chunks,
            sources=sources,
            total_tokens=total_tokens,
        )

    async def build_enriched_prompt(
        self,
        query: str,
        base_prompt: str,
        context_data: ContextData,
    ) -> EnrichedPrompt:
        """Append as many ranked sources as fit the token budget to ``base_prompt``."""
        if not context_data.has_context:
            return _base_prompt_result(query, base_prompt)

        kept = filter_by_token_limit(context_data.sources, self.max_context_tokens)
        if not kept:
            logger.info("No source fits the %d-token context budget", self.max_context_tokens)
            return _base_prompt_result(query, base_prompt)

        logger.info("Context injected: %d sources", len(kept))
        return EnrichedPrompt(
            prompt=build_single_source_prompt(base_prompt, kept),
            user_query=query,
            has_context=True,
            sources=kept,
            context_tokens=sum(estimate_tokens(s.content) for s in kept),
        )

    async def _search_pool(
        self,
        pool: SourcePool,
        query: str,
        owner_id: str,
        max_chunks: int,
        min_score: float,
    ) -> List[RetrievedChunk]:
        source_type = POOL_SOURCE_TYPES[pool]
        limit = pool_limit(source_type, max_chunks)
        try:
            if source_type == SourceType.DOCUMENT:
                return await self.indexer.semantic_search(query, limit=limit, min_score=min_score)
            return await self.pools.search(source_type, query, owner_id, limit, min_score)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # One pool (bad rows from ingestion included) never fails the whole retrieval.
            logger.error("Error searching %s: %s", pool.value, exc)
            return []

    async def retrieve_context_multi_source(
        self,
        query: str,
        owner_id: str,
        sources: Iterable[SourcePool | str] = ALL_POOLS,
        max_chunks: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> ContextData:
        """Blend document chunks with conversation, screenshot, audio, and external pools."""
        limit = self.config.multi_source_max_chunks if max_chunks is None else max_chunks
        started = time.monotonic()
        threshold = self.min_relevance_score if min_score is None else min_score
        enabled = {SourcePool(s) for s in sources}

        gathered: List[RetrievedChunk] = []
        breakdown: dict[str, int] = {}
        for pool in ALL_POOLS:
            if pool not in enabled:
                continue
            found = await self._search_pool(pool, query, owner_id, limit, threshold)
            gathered.extend(found)
            breakdown[pool.value] = len(found)

        ranked = merge_weighted(gathered, self.config.source_weights, limit)

        doc_map = await self._document_map(
            c.document_id for c in ranked if c.source_type == SourceType.DOCUMENT and c.document_id
        )
        context_sources = []
        for chunk in ranked:
            doc = doc_map.get(chunk.document_id or "")
            context_sources.append(
                ContextSource(
                    chunk_id=chunk.id,
                    content=chunk.content,
                    relevance_score=chunk.relevance_score,
                    source_type=chunk.source_type,
                    document_id=chunk.document_id,
                    document_title=doc.title if doc else None,
                    document_filename=doc.filename if doc else None,
                    chunk_index=chunk.chunk_index,
                    source_id=chunk.source_id,
                    source_title=chunk.source_title or (doc.title if doc else None),
                    weighted_score=chunk.weighted_score,
                    importance_score=chunk.importance_score,
                    indexed_at=chunk.indexed_at,
                )
            )

        total_tokens = sum(c.token_count or estimate_tokens(c.content) for c in ranked)
        logger.info("Retrieved %d chunks from %d source types", len(ranked), len(breakdown))
        log_retrieval_event(
            "multi_source",
            len(ranked),
            query_chars=len(query),
            source_breakdown=breakdown,
            latency_ms=int((time.monotonic() - started) * 1000),
        )
        return ContextData(
            has_context=bool(ranked),
            chunks=ranked,
            sources=context_sources,
            total_tokens=total_tokens,
            source_breakdown=breakdown,
        )

    async def build_enriched_prompt_multi_source(
        self,
        query: str,
        base_prompt: str,
        context_data: ContextData,
        owner_id: str,
    ) -> EnrichedPrompt:
        """Budgeted multi-source context plus a knowledge-graph block."""
        if not context_data.has_context:
            return _base_prompt_result(query, base_prompt)

        kept = filter_by_token_limit(context_data.sources, self.max_context_tokens)
        if not kept:
            logger.info("No source fits the %d-token context budget", self.max_context_tokens)
            return _base_prompt_result(query, base_prompt)

        related = self.knowledge_graph.detect_entities_in_query(query)
        stats = await self.knowledge_graph.safe_stats(owner_id)
        entities_section = format_related_entities(stats, related)

        logger.info("Multi-source context injected: %d sources", len(kept))
        return EnrichedPrompt(
            prompt=build_multi_source_prompt(
                base_prompt, kept, context_data.source_breakdown, entities_section
            ),
            user_query=query,
            has_context=True,
            sources=kept,
            context_tokens=sum(estimate_tokens(s.content) for s in kept),
            related_entities=related,
        )

    async def track_citations(
        self,
        session_id: str,
        message_id: Optional[str],
        sources: Sequence[ContextSource],
    ) -> List[Citation]:
        return await self.ledger.track(session_id, message_id, sources)

    async def get_session_citations(self, session_id: str) -> List[SessionCitation]:
        return await self.ledger.session_citations(session_id)

    async def get_top_cited_documents(self, owner_id: str, limit: int = 10) -> List[TopCitedDocument]:
        return await self.ledger.top_cited_documents(owner_id, limit)
