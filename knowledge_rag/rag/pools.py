"""Heuristic search over the auto-indexed content pools.

Conversations, screenshots, audio transcripts, and external imports carry no
vectors. Each pool reads its highest-importance entries and scores them as
``importance + keyword_fraction * boost``, capped at 1.0, where
``keyword_fraction`` is the share of query words (longer than three
characters) found in the pool's match text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import aiosqlite

from knowledge_rag.db.repositories import ContentPoolRepository
from knowledge_rag.models import AutoIndexedContent, RetrievedChunk, SourceType
from knowledge_rag.rag.tokens import estimate_tokens

logger = logging.getLogger(__name__)

MIN_KEYWORD_LENGTH = 4


@dataclass(frozen=True)
class PoolProfile:
    """Scoring and snippet rules for one pool."""

    source_type: SourceType
    default_importance: float
    boost: float
    match_on: str  # "content", "summary" or "either"
    snippet_chars: int
    prefer_summary: bool = True
    summary_bonus: float = 0.0


POOL_PROFILES: dict[SourceType, PoolProfile] = {
    SourceType.CONVERSATION: PoolProfile(
        source_type=SourceType.CONVERSATION,
        default_importance=0.5,
        boost=0.3,
        match_on="content",
        snippet_chars=500,
        summary_bonus=0.2,
    ),
    SourceType.SCREENSHOT: PoolProfile(
        source_type=SourceType.SCREENSHOT,
        default_importance=0.5,
        boost=0.3,
        match_on="content",
        snippet_chars=300,
        prefer_summary=False,
    ),
    SourceType.AUDIO: PoolProfile(
        source_type=SourceType.AUDIO,
        default_importance=0.5,
        boost=0.3,
        match_on="summary",
        snippet_chars=400,
    ),
    SourceType.EXTERNAL_DATABASE: PoolProfile(
        source_type=SourceType.EXTERNAL_DATABASE,
        default_importance=0.7,
        boost=0.2,
        match_on="either",
        snippet_chars=400,
    ),
}


def keyword_fraction(query: str, *texts: str) -> float:
    """Share of query words (len >= 4) that occur in any of ``texts``."""
    words = query.lower().split()
    if not words:
        return 0.0
    haystacks = [t.lower() for t in texts if t]
    matches = sum(
        1
        for word in words
        if len(word) >= MIN_KEYWORD_LENGTH and any(word in h for h in haystacks)
    )
    return matches / len(words)


def _summary_mentions(query: str, summary: str) -> bool:
    if not summary:
        return False
    query_lower = query.lower()
    summary_lower = summary.lower()
    if query_lower and query_lower in summary_lower:
        return True
    return any(
        len(word) >= MIN_KEYWORD_LENGTH and word in summary_lower for word in query_lower.split()
    )


def score_entry(entry: AutoIndexedContent, query: str, profile: PoolProfile) -> float:
    content = entry.content or ""
    summary = entry.content_summary or ""
    if profile.match_on == "summary":
        fraction = keyword_fraction(query, summary)
    elif profile.match_on == "either":
        fraction = keyword_fraction(query, content, summary)
    else:
        fraction = keyword_fraction(query, content)

    score = (entry.importance_score or profile.default_importance) + fraction * profile.boost
    if profile.summary_bonus and _summary_mentions(query, summary):
        score += profile.summary_bonus
    return min(score, 1.0)


def entry_snippet(entry: AutoIndexedContent, profile: PoolProfile) -> str:
    if profile.prefer_summary and entry.content_summary:
        return entry.content_summary
    return (entry.content or "")[: profile.snippet_chars]


class ContentPoolSearcher:
    """Scores one owner's pool entries against a query."""

    def __init__(self, pools: ContentPoolRepository) -> None:
        self.pools = pools

    async def search(
        self,
        source_type: SourceType,
        query: str,
        owner_id: str,
        limit: int,
        min_score: float,
    ) -> list[RetrievedChunk]:
        """Best ``limit`` entries scoring at least ``min_score``; empty on store failure."""
        profile = POOL_PROFILES.get(source_type)
        if profile is None:
            raise ValueError(f"No content pool for source type {source_type.value!r}")
        try:
            entries = await self.pools.list_for_owner(owner_id, source_type, limit * 2)
        except aiosqlite.Error as exc:
            logger.error("Error searching %s pool: %s", source_type.value, exc)
            return []

        scored: list[tuple[float, AutoIndexedContent]] = []
        for entry in entries:
            score = score_entry(entry, query, profile)
            if score >= min_score:
                scored.append((score, entry))
        scored.sort(key=lambda pair: pair[0], reverse=True)

        results: list[RetrievedChunk] = []
        for score, entry in scored[:limit]:
            snippet = entry_snippet(entry, profile)
            results.append(
                RetrievedChunk(
                    id=entry.id,
                    content=snippet,
                    relevance_score=score,
                    source_type=source_type,
                    source_id=entry.source_id,
                    source_title=entry.source_title,
                    importance_score=entry.importance_score,
                    indexed_at=entry.indexed_at,
                    token_count=estimate_tokens(snippet),
                )
            )
        return results


def pool_limit(source_type: SourceType, max_chunks: int) -> int:
    """Per-pool share of ``max_chunks`` for multi-source retrieval."""
    divisors = {
        SourceType.DOCUMENT: 1,
        SourceType.CONVERSATION: 2,
        SourceType.SCREENSHOT: 3,
        SourceType.AUDIO: 3,
        SourceType.EXTERNAL_DATABASE: 4,
    }
    divisor = divisors[source_type]
    return -(-max_chunks // divisor)


def merge_weighted(
    chunks: list[RetrievedChunk],
    weights: dict[str, float],
    max_chunks: int,
) -> list[RetrievedChunk]:
    """Apply source weights, sort by weighted score (stable), keep ``max_chunks``."""
    weighted = [
        chunk.model_copy(
            update={"weighted_score": chunk.relevance_score * weights.get(chunk.source_type.value, 1.0)}
        )
        for chunk in chunks
    ]
    weighted.sort(key=lambda c: c.rank_score, reverse=True)
    return weighted[:max_chunks]
