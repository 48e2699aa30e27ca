"""Citation ledger: records which document chunks backed an answer."""

from __future__ import annotations

import logging
from typing import List, Sequence

import aiosqlite

from knowledge_rag.db.repositories import CitationRepository
from knowledge_rag.models import Citation, ContextSource, SessionCitation, TopCitedDocument
from knowledge_rag.utils.structured_log import log_citation_event

logger = logging.getLogger(__name__)


def _clamp_score(score: float) -> float:
    return min(max(score, 0.0), 1.0)


class CitationLedger:
    def __init__(self, repository: CitationRepository):
        self.repository = repository

    async def track(
        self,
        session_id: str,
        message_id: str | None,
        sources: Sequence[ContextSource],
    ) -> List[Citation]:
        """Append one citation per document-backed source in a single batch.

        Sources from non-document pools have no document to cite and are skipped.
        """
        citations = [
            Citation(
                session_id=session_id,
                message_id=message_id,
                document_id=source.document_id,
                chunk_id=source.chunk_id,
                relevance_score=_clamp_score(source.relevance_score),
                context_used=source.content,
            )
            for source in sources
            if source.document_id
        ]
        if not citations:
            return []
        try:
            await self.repository.insert_many(citations)
        except aiosqlite.Error as exc:
            logger.error("Error tracking citations for session %s: %s", session_id, exc)
            return []
        logger.info("Tracked %d citations for session %s", len(citations), session_id)
        log_citation_event(session_id, len(citations))
        return citations

    async def session_citations(self, session_id: str) -> List[SessionCitation]:
        try:
            return await self.repository.list_for_session(session_id)
        except aiosqlite.Error as exc:
            logger.error("Error getting citations for session %s: %s", session_id, exc)
            return []

    async def top_cited_documents(self, owner_id: str, limit: int = 10) -> List[TopCitedDocument]:
        try:
            return await self.repository.top_cited_documents(owner_id, limit)
        except aiosqlite.Error as exc:
            logger.error("Error getting top cited documents: %s", exc)
            return []
