"""Typed repositories for core persistence operations.

Repositories run raw parameterized SQL against a shared aiosqlite connection.
Writes that commit take the connection's write lock through ``transaction`` so
concurrent units of work on the shared connection cannot commit or roll back
each other's rows. Helpers that belong to a larger unit (chunk replacement,
index status updates) do not commit; the caller wraps them in one transaction.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

import aiosqlite

from knowledge_rag.db.database import transaction
from knowledge_rag.models import (
    AutoIndexedContent,
    Chunk,
    Citation,
    Document,
    KnowledgeEntity,
    RankedEntity,
    SessionCitation,
    SourceType,
    TopCitedDocument,
    now_ms,
)

logger = logging.getLogger(__name__)


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _decode_embedding(raw: Any) -> Optional[List[float]]:
    if raw is None:
        return None
    try:
        vec = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    return vec if isinstance(vec, list) else None


def _row_to_document(row: aiosqlite.Row) -> Document:
    keys = row.keys()
    tags_raw = row["tags"]
    tags = json.loads(tags_raw) if isinstance(tags_raw, str) and tags_raw else []
    return Document(
        id=str(row["id"]),
        owner_id=str(row["owner_id"]),
        title=str(row["title"]),
        filename=str(row["filename"] or ""),
        file_type=str(row["file_type"] or "txt"),
        content=row["content"] if "content" in keys else None,
        tags=tags,
        description=row["description"],
        chunk_count=int(row["chunk_count"] or 0),
        indexed=bool(row["indexed"]),
        created_at=int(row["created_at"] or 0),
        updated_at=int(row["updated_at"] or 0),
    )


def _row_to_chunk(row: aiosqlite.Row, include_embedding: bool = False) -> Chunk:
    return Chunk(
        id=str(row["id"]),
        document_id=str(row["document_id"]),
        chunk_index=int(row["chunk_index"]),
        content=str(row["content"]),
        char_start=int(row["char_start"]),
        char_end=int(row["char_end"]),
        token_count=int(row["token_count"] or 0),
        embedding=_decode_embedding(row["embedding"]) if include_embedding else None,
        created_at=int(row["created_at"] or 0),
    )


class DocumentRepository:
    _SUMMARY_COLUMNS = (
        "id, owner_id, title, filename, file_type, tags, description, "
        "chunk_count, indexed, created_at, updated_at"
    )

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create(self, document: Document) -> Document:
        async with transaction(self.db):
            await self.db.execute(
                """
                INSERT INTO documents (
                    id, owner_id, title, filename, file_type, content, tags,
                    description, chunk_count, indexed, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document.id,
                    document.owner_id,
                    document.title,
                    document.filename,
                    document.file_type,
                    document.content,
                    json.dumps(document.tags),
                    document.description,
                    document.chunk_count,
                    1 if document.indexed else 0,
                    document.created_at,
                    document.updated_at,
                ),
            )
        return document

    async def get(self, document_id: str, include_content: bool = False) -> Optional[Document]:
        columns = self._SUMMARY_COLUMNS + (", content" if include_content else "")
        cursor = await self.db.execute(
            f"SELECT {columns} FROM documents WHERE id = ?",
            (document_id,),
        )
        row = await cursor.fetchone()
        return _row_to_document(row) if row else None

    async def list_for_owner(self, owner_id: str) -> List[Document]:
        cursor = await self.db.execute(
            f"SELECT {self._SUMMARY_COLUMNS} FROM documents WHERE owner_id = ? ORDER BY updated_at DESC",
            (owner_id,),
        )
        rows = await cursor.fetchall()
        return [_row_to_document(row) for row in rows]

    async def get_many(self, document_ids: Iterable[str]) -> Dict[str, Document]:
        """Fetch documents for a set of ids in one query."""
        ids = list(dict.fromkeys(document_ids))
        if not ids:
            return {}
        cursor = await self.db.execute(
            f"SELECT {self._SUMMARY_COLUMNS} FROM documents WHERE id IN ({_placeholders(ids)})",
            ids,
        )
        rows = await cursor.fetchall()
        return {str(row["id"]): _row_to_document(row) for row in rows}

    async def update_index_status(self, document_id: str, chunk_count: int, indexed: bool) -> None:
        await self.db.execute(
            "UPDATE documents SET chunk_count = ?, indexed = ?, updated_at = ? WHERE id = ?",
            (chunk_count, 1 if indexed else 0, now_ms(), document_id),
        )

    async def delete(self, document_id: str) -> bool:
        """Delete a document together with its chunks and citations."""
        async with transaction(self.db):
            await self.db.execute("DELETE FROM document_chunks WHERE document_id = ?", (document_id,))
            await self.db.execute("DELETE FROM document_citations WHERE document_id = ?", (document_id,))
            cursor = await self.db.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        return cursor.rowcount > 0

    async def get_stats(self, owner_id: str) -> dict[str, int]:
        cursor = await self.db.execute(
            """
            SELECT
                COUNT(*),
                COALESCE(SUM(chunk_count), 0),
                COALESCE(SUM(CASE WHEN indexed = 1 THEN 1 ELSE 0 END), 0),
                COUNT(DISTINCT file_type)
            FROM documents
            WHERE owner_id = ?
            """,
            (owner_id,),
        )
        row = await cursor.fetchone()
        return {
            "total_documents": int(row[0]),
            "total_chunks": int(row[1]),
            "indexed_documents": int(row[2]),
            "file_types": int(row[3]),
        }


class ChunkRepository:
    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def delete_for_document(self, document_id: str) -> None:
        await self.db.execute("DELETE FROM document_chunks WHERE document_id = ?", (document_id,))

    async def insert_many(self, chunks: Sequence[Chunk]) -> None:
        if not chunks:
            return
        await self.db.executemany(
            """
            INSERT INTO document_chunks (
                id, document_id, chunk_index, content, char_start, char_end,
                token_count, embedding, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    chunk.id,
                    chunk.document_id,
                    chunk.chunk_index,
                    chunk.content,
                    chunk.char_start,
                    chunk.char_end,
                    chunk.token_count,
                    json.dumps(chunk.embedding) if chunk.embedding is not None else None,
                    chunk.created_at,
                )
                for chunk in chunks
            ],
        )

    async def list_for_document(self, document_id: str) -> List[Chunk]:
        cursor = await self.db.execute(
            "SELECT * FROM document_chunks WHERE document_id = ? ORDER BY chunk_index ASC",
            (document_id,),
        )
        rows = await cursor.fetchall()
        return [_row_to_chunk(row) for row in rows]

    async def list_embedded_candidates(
        self,
        limit: int,
        document_ids: Optional[Sequence[str]] = None,
    ) -> List[Chunk]:
        """Most recent chunks that carry an embedding, newest first."""
        sql = "SELECT * FROM document_chunks WHERE embedding IS NOT NULL"
        params: list[Any] = []
        if document_ids:
            sql += f" AND document_id IN ({_placeholders(document_ids)})"
            params.extend(document_ids)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        chunks: List[Chunk] = []
        async with self.db.execute(sql, params) as cursor:
            async for row in cursor:
                chunk = _row_to_chunk(row, include_embedding=True)
                if chunk.embedding is None:
                    logger.debug("Skipping chunk %s with unreadable embedding", chunk.id)
                    continue
                chunks.append(chunk)
        return chunks

    async def search_content(
        self,
        query: str,
        limit: int,
        document_ids: Optional[Sequence[str]] = None,
    ) -> List[Chunk]:
        """Case-insensitive substring match on chunk content.

        Both sides go through Unicode case folding (the ``casefold`` SQL
        function registered by ``get_db``), so accented capitals match.
        """
        sql = "SELECT * FROM document_chunks WHERE casefold(content) LIKE ? ESCAPE '\\'"
        params: list[Any] = [f"%{_escape_like(query.casefold())}%"]
        if document_ids:
            sql += f" AND document_id IN ({_placeholders(document_ids)})"
            params.extend(document_ids)
        sql += " ORDER BY created_at DESC, chunk_index ASC LIMIT ?"
        params.append(limit)
        cursor = await self.db.execute(sql, params)
        rows = await cursor.fetchall()
        return [_row_to_chunk(row) for row in rows]

    async def count_for_document(self, document_id: str) -> int:
        cursor = await self.db.execute(
            "SELECT COUNT(*) FROM document_chunks WHERE document_id = ?",
            (document_id,),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0


class CitationRepository:
    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def insert_many(self, citations: Sequence[Citation]) -> None:
        if not citations:
            return
        async with transaction(self.db):
            await self.db.executemany(
                """
                INSERT INTO document_citations (
                    id, session_id, message_id, document_id, chunk_id,
                    relevance_score, context_used, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        c.id,
                        c.session_id,
                        c.message_id,
                        c.document_id,
                        c.chunk_id,
                        c.relevance_score,
                        c.context_used,
                        c.created_at,
                    )
                    for c in citations
                ],
            )

    async def list_for_session(self, session_id: str) -> List[SessionCitation]:
        cursor = await self.db.execute(
            """
            SELECT
                c.*,
                d.title AS document_title,
                d.filename AS document_filename
            FROM document_citations c
            LEFT JOIN documents d ON c.document_id = d.id
            WHERE c.session_id = ?
            ORDER BY c.created_at DESC
            """,
            (session_id,),
        )
        rows = await cursor.fetchall()
        return [
            SessionCitation(
                id=str(row["id"]),
                session_id=str(row["session_id"]),
                message_id=row["message_id"],
                document_id=str(row["document_id"]),
                chunk_id=row["chunk_id"],
                relevance_score=float(row["relevance_score"] or 0.0),
                context_used=str(row["context_used"] or ""),
                created_at=int(row["created_at"] or 0),
                document_title=row["document_title"],
                document_filename=row["document_filename"],
            )
            for row in rows
        ]

    async def top_cited_documents(self, owner_id: str, limit: int = 10) -> List[TopCitedDocument]:
        cursor = await self.db.execute(
            """
            SELECT
                d.id,
                d.title,
                d.filename,
                COUNT(c.id) AS citation_count,
                AVG(c.relevance_score) AS avg_relevance
            FROM documents d
            INNER JOIN document_citations c ON d.id = c.document_id
            WHERE d.owner_id = ?
            GROUP BY d.id
            ORDER BY citation_count DESC, avg_relevance DESC
            LIMIT ?
            """,
            (owner_id, limit),
        )
        rows = await cursor.fetchall()
        return [
            TopCitedDocument(
                id=str(row["id"]),
                title=str(row["title"]),
                filename=str(row["filename"] or ""),
                citation_count=int(row["citation_count"]),
                avg_relevance=float(row["avg_relevance"] or 0.0),
            )
            for row in rows
        ]


class ContentPoolRepository:
    """Read access to auto-indexed conversations, screenshots, audio, and external imports."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def add(self, entry: AutoIndexedContent) -> AutoIndexedContent:
        async with transaction(self.db):
            await self.db.execute(
                """
                INSERT INTO auto_indexed_content (
                    id, owner_id, source_type, source_id, source_title, content,
                    content_summary, importance_score, indexed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.owner_id,
                    entry.source_type.value,
                    entry.source_id,
                    entry.source_title,
                    entry.content,
                    entry.content_summary,
                    entry.importance_score,
                    entry.indexed_at,
                ),
            )
        return entry

    async def list_for_owner(
        self,
        owner_id: str,
        source_type: SourceType,
        limit: int,
    ) -> List[AutoIndexedContent]:
        cursor = await self.db.execute(
            """
            SELECT id, owner_id, source_type, source_id, source_title, content,
                   content_summary, importance_score, indexed_at
            FROM auto_indexed_content
            WHERE owner_id = ? AND source_type = ?
            ORDER BY importance_score DESC, indexed_at DESC
            LIMIT ?
            """,
            (owner_id, source_type.value, limit),
        )
        rows = await cursor.fetchall()
        return [
            AutoIndexedContent(
                id=str(row["id"]),
                owner_id=str(row["owner_id"]),
                source_type=SourceType(str(row["source_type"])),
                source_id=row["source_id"],
                source_title=row["source_title"],
                content=str(row["content"] or ""),
                content_summary=row["content_summary"],
                importance_score=row["importance_score"],
                indexed_at=int(row["indexed_at"] or 0),
            )
            for row in rows
        ]


class KnowledgeGraphRepository:
    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def add(self, entity: KnowledgeEntity) -> KnowledgeEntity:
        async with transaction(self.db):
            await self.db.execute(
                """
                INSERT INTO knowledge_graph (
                    id, owner_id, entity_type, entity_name, mention_count, first_seen, last_seen
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entity.id,
                    entity.owner_id,
                    entity.entity_type.value,
                    entity.entity_name,
                    entity.mention_count,
                    entity.first_seen,
                    entity.last_seen,
                ),
            )
        return entity

    async def count_by_type(self, owner_id: str) -> dict[str, int]:
        cursor = await self.db.execute(
            """
            SELECT entity_type, COUNT(*)
            FROM knowledge_graph
            WHERE owner_id = ?
            GROUP BY entity_type
            """,
            (owner_id,),
        )
        rows = await cursor.fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    async def top_entities(
        self,
        owner_id: str,
        entity_type: str,
        limit: int = 5,
        min_mentions: int = 1,
    ) -> List[RankedEntity]:
        cursor = await self.db.execute(
            """
            SELECT entity_name, mention_count, last_seen
            FROM knowledge_graph
            WHERE owner_id = ? AND entity_type = ? AND mention_count >= ?
            ORDER BY mention_count DESC, last_seen DESC
            LIMIT ?
            """,
            (owner_id, entity_type, min_mentions, limit),
        )
        rows = await cursor.fetchall()
        return [
            RankedEntity(
                name=str(row[0]),
                mention_count=int(row[1]),
                last_seen=int(row[2]) if row[2] is not None else None,
            )
            for row in rows
        ]
