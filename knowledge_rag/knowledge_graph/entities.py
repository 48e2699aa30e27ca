"""Read-only access to the knowledge graph plus regex entity detection in queries."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

import aiosqlite

from knowledge_rag.db.repositories import KnowledgeGraphRepository
from knowledge_rag.models import EntityType, KnowledgeGraphStats

logger = logging.getLogger(__name__)

_PROJECT_PATTERN = re.compile(r"Project\s+([A-Z][a-zA-Z0-9\s]+)")
_PERSON_PATTERN = re.compile(r"[A-Z][a-z]+\s+[A-Z][a-z]+")
_MAX_PER_TYPE = 10
_TOP_ENTITIES = 5


def _extract(pattern: re.Pattern[str], text: str) -> list[str]:
    found: list[str] = []
    for match in pattern.finditer(text):
        value = (match.group(1) if match.groups() else match.group(0)).strip()
        if value and value not in found:
            found.append(value)
    return found[:_MAX_PER_TYPE]


@dataclass
class QueryEntities:
    projects: list[str] = field(default_factory=list)
    people: list[str] = field(default_factory=list)

    def flatten(self) -> list[str]:
        return [*self.projects, *self.people]


def extract_query_entities(text: str) -> QueryEntities:
    """``Project <Name>`` phrases and ``Firstname Lastname`` pairs, deduplicated."""
    return QueryEntities(
        projects=_extract(_PROJECT_PATTERN, text),
        people=_extract(_PERSON_PATTERN, text),
    )


class KnowledgeGraphReader:
    def __init__(self, repository: KnowledgeGraphRepository):
        self.repository = repository

    def detect_entities_in_query(self, query: str) -> list[str]:
        return extract_query_entities(query or "").flatten()

    async def get_stats(self, owner_id: str) -> KnowledgeGraphStats:
        """Entity totals, counts by type, and the most-mentioned projects and people.

        Raises aiosqlite.Error; callers decide how to degrade.
        """
        by_type = await self.repository.count_by_type(owner_id)
        top_projects = await self.repository.top_entities(
            owner_id, EntityType.PROJECT.value, limit=_TOP_ENTITIES
        )
        top_people = await self.repository.top_entities(
            owner_id, EntityType.PERSON.value, limit=_TOP_ENTITIES
        )
        return KnowledgeGraphStats(
            total_entities=sum(by_type.values()),
            by_type=by_type,
            top_projects=top_projects,
            top_people=top_people,
        )

    async def safe_stats(self, owner_id: str) -> KnowledgeGraphStats | None:
        try:
            return await self.get_stats(owner_id)
        except aiosqlite.Error as exc:
            logger.warning("Knowledge graph stats unavailable: %s", exc)
            return None
