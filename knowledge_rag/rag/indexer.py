"""Document indexing and chunk-level search.

Indexing splits a document into overlapping windows, embeds each window, and
replaces the document's chunk rows in a single transaction. Search runs
cosine similarity over the most recent embedded chunks and falls back to a
substring match when the query cannot be embedded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence

import aiosqlite

from knowledge_rag.db.database import transaction
from knowledge_rag.db.repositories import ChunkRepository, DocumentRepository
from knowledge_rag.exceptions import StoreError
from knowledge_rag.models import (
    Chunk,
    IndexingConfig,
    IndexResult,
    RetrievedChunk,
    SourceType,
    new_id,
    now_ms,
)
from knowledge_rag.rag.chunker import chunk_text, validate_chunking
from knowledge_rag.rag.embedding_provider import EmbeddingProvider
from knowledge_rag.rag.similarity import batch_cosine_similarity
from knowledge_rag.rag.tokens import estimate_tokens
from knowledge_rag.utils.structured_log import log_index_event, log_retrieval_event

logger = logging.getLogger(__name__)

KEYWORD_MATCH_SCORE = 0.5


def _to_retrieved(chunk: Chunk, score: float) -> RetrievedChunk:
    return RetrievedChunk(
        id=chunk.id,
        content=chunk.content,
        relevance_score=score,
        source_type=SourceType.DOCUMENT,
        document_id=chunk.document_id,
        chunk_index=chunk.chunk_index,
        char_start=chunk.char_start,
        char_end=chunk.char_end,
        token_count=chunk.token_count,
        created_at=chunk.created_at,
    )


class Indexer:
    """Owns chunk rows: (re)indexing plus semantic and keyword search."""

    def __init__(
        self,
        chunks: ChunkRepository,
        documents: DocumentRepository,
        provider: EmbeddingProvider,
        config: Optional[IndexingConfig] = None,
    ) -> None:
        self.chunks = chunks
        self.documents = documents
        self.provider = provider
        self.config = config or IndexingConfig()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _document_lock(self, document_id: str) -> AsyncIterator[None]:
        """Serialize runs on one document; the entry is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(document_id, asyncio.Lock())
        self._lock_users[document_id] = self._lock_users.get(document_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[document_id] -= 1
            if self._lock_users[document_id] == 0:
                del self._lock_users[document_id]
                del self._locks[document_id]

    async def _embed(self, text: str) -> Optional[list[float]]:
        try:
            vec = await self.provider.generate_embedding(text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Embedding failed for chunk, storing without vector: %s", exc)
            return None
        if len(vec) != self.provider.dimension():
            logger.warning(
                "Discarding embedding of length %d (provider %s expects %d)",
                len(vec),
                self.provider.name(),
                self.provider.dimension(),
            )
            return None
        return vec

    async def index_document(
        self,
        document_id: str,
        content: str,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        generate_embeddings: bool = True,
    ) -> IndexResult:
        """Chunk, embed, and store ``content`` as the chunks of ``document_id``.

        Existing chunks of the document are replaced. Raises ValueError for
        invalid chunking options and StoreError when the write fails.
        """
        size = self.config.chunk_size if chunk_size is None else chunk_size
        overlap = self.config.chunk_overlap if chunk_overlap is None else chunk_overlap
        validate_chunking(size, overlap)

        async with self._document_lock(document_id):
            started = time.monotonic()
            windows = chunk_text(content or "", size, overlap)

            # All provider calls happen before the destructive replace below.
            rows: list[Chunk] = []
            embedded = 0
            for index, window in enumerate(windows):
                embedding = await self._embed(window.content) if generate_embeddings else None
                if embedding is not None:
                    embedded += 1
                rows.append(
                    Chunk(
                        id=new_id(),
                        document_id=document_id,
                        chunk_index=index,
                        content=window.content,
                        char_start=window.start,
                        char_end=window.end,
                        token_count=estimate_tokens(window.content),
                        embedding=embedding,
                        created_at=now_ms(),
                    )
                )
            total_tokens = sum(row.token_count for row in rows)

            try:
                async with transaction(self.chunks.db):
                    await self.chunks.delete_for_document(document_id)
                    await self.chunks.insert_many(rows)
                    await self.documents.update_index_status(
                        document_id, len(rows), generate_embeddings
                    )
            except aiosqlite.Error as exc:
                log_index_event(document_id, "failed", error=str(exc))
                raise StoreError(f"Failed to store chunks for document {document_id}: {exc}") from exc

            latency_ms = int((time.monotonic() - started) * 1000)
            logger.info(
                "Indexed document %s: %d chunks, %d embedded, %d tokens",
                document_id,
                len(rows),
                embedded,
                total_tokens,
            )
            log_index_event(
                document_id,
                "indexed",
                chunk_count=len(rows),
                embedded=embedded,
                total_tokens=total_tokens,
                latency_ms=latency_ms,
            )
            return IndexResult(
                document_id=document_id,
                chunk_count=len(rows),
                indexed=generate_embeddings,
                total_tokens=total_tokens,
            )

    async def reindex_document(self, document_id: str, content: Optional[str] = None) -> IndexResult:
        """Re-run indexing with embeddings. Loads stored content when none is given."""
        if content is None:
            document = await self.documents.get(document_id, include_content=True)
            if document is None:
                raise LookupError(f"Document not found: {document_id}")
            content = document.content or ""
        return await self.index_document(document_id, content, generate_embeddings=True)

    async def semantic_search(
        self,
        query: str,
        limit: int = 5,
        min_score: float = 0.7,
        document_ids: Optional[Sequence[str]] = None,
    ) -> list[RetrievedChunk]:
        """Top ``limit`` chunks with cosine similarity >= ``min_score``, best first."""
        started = time.monotonic()
        try:
            query_vec = await self.provider.generate_embedding(query)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Query embedding failed, falling back to keyword search: %s", exc)
            results = await self.keyword_search(query, limit, document_ids)
            log_retrieval_event("semantic", len(results), query_chars=len(query), fallback="keyword")
            return results

        try:
            candidates = await self.chunks.list_embedded_candidates(
                self.config.candidate_limit, document_ids
            )
        except aiosqlite.Error as exc:
            logger.warning("Candidate fetch failed, falling back to keyword search: %s", exc)
            results = await self.keyword_search(query, limit, document_ids)
            log_retrieval_event("semantic", len(results), query_chars=len(query), fallback="keyword")
            return results

        scores = batch_cosine_similarity(query_vec, [c.embedding or [] for c in candidates])
        scored = [
            (score, chunk) for score, chunk in zip(scores, candidates) if score >= min_score
        ]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        results = [_to_retrieved(chunk, score) for score, chunk in scored[:limit]]

        log_retrieval_event(
            "semantic",
            len(results),
            query_chars=len(query),
            latency_ms=int((time.monotonic() - started) * 1000),
        )
        return results

    async def keyword_search(
        self,
        query: str,
        limit: int = 5,
        document_ids: Optional[Sequence[str]] = None,
    ) -> list[RetrievedChunk]:
        """Case-insensitive substring match with a flat score. Empty on store failure."""
        try:
            matches = await self.chunks.search_content(query, limit, document_ids)
        except aiosqlite.Error as exc:
            logger.error("Keyword search failed: %s", exc)
            return []
        return [_to_retrieved(chunk, KEYWORD_MATCH_SCORE) for chunk in matches]

    async def get_document_chunks(self, document_id: str) -> list[Chunk]:
        """All chunks of a document in position order, without embeddings."""
        try:
            return await self.chunks.list_for_document(document_id)
        except aiosqlite.Error as exc:
            logger.error("Failed to load chunks for %s: %s", document_id, exc)
            return []
