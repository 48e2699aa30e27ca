"""Prompt templates and context-block formatting for retrieved sources.

Retrieved text is inserted as inert data; nothing in a source is interpreted.
"""

from __future__ import annotations

from typing import Optional, Sequence

from knowledge_rag.models import ContextSource, KnowledgeGraphStats, SourcePool

RULE = "━" * 51
BOX_BOTTOM = "└" + "─" * 53

SINGLE_SOURCE_TEMPLATE = """{base_prompt}

{rule}
KNOWLEDGE BASE CONTEXT

The following information from the knowledge base may be relevant to answer the user's question. Use this context to provide accurate, cited responses.

{context}

IMPORTANT INSTRUCTIONS FOR USING CONTEXT:
1. When using information from the context, cite the source: [Source: {{document_title}}]
2. If the context doesn't contain relevant information, rely on your general knowledge
3. Be transparent about which information comes from the knowledge base vs. your training
4. Prioritize context information over general knowledge when they conflict
{rule}"""

MULTI_SOURCE_TEMPLATE = """{base_prompt}

{rule}
MULTI-SOURCE KNOWLEDGE BASE

I have access to your personalized knowledge base containing:
- {documents} relevant documents
- {conversations} past conversations
- {screenshots} screenshots (OCR extracted)
- {audio} audio transcriptions
- {external} external database records

{context}

{entities}

IMPORTANT INSTRUCTIONS:
1. Use information from ALL sources to provide comprehensive answers
2. Cite sources with format: [Source: {{title}} - {{type}}]
3. If sources conflict, mention it and explain the differences
4. Prioritize recent information over older data
5. Leverage the knowledge graph to make connections between entities
6. Be aware of recurring topics and projects in the user's context
{rule}"""


def format_context(sources: Sequence[ContextSource]) -> str:
    """Boxed blocks with title, file, and relevance for each document source."""
    blocks = []
    for index, source in enumerate(sources, start=1):
        blocks.append(
            f"\n┌─ Source {index}: {source.document_title or 'Unknown'}\n"
            f"│  File: {source.document_filename or 'Unknown'}\n"
            f"│  Relevance: {source.relevance_score * 100:.1f}%\n"
            f"│\n"
            f"│  {source.content}\n"
            f"{BOX_BOTTOM}\n"
        )
    return "\n".join(blocks)


def format_multi_source_context(sources: Sequence[ContextSource]) -> str:
    if not sources:
        return "No relevant context found."
    blocks = []
    for index, source in enumerate(sources, start=1):
        score = source.weighted_score if source.weighted_score is not None else source.relevance_score
        percent = round(score * 100)
        blocks.append(
            f"Source {index}: {source.title} ({source.source_type.value}, relevance: {percent}%)\n"
            f"{source.content}"
        )
    return "\n\n---\n\n".join(blocks)


def format_related_entities(
    stats: Optional[KnowledgeGraphStats],
    related_entities: Sequence[str],
) -> str:
    """Knowledge-graph block; empty when the graph holds no entities."""
    if stats is None or stats.total_entities == 0:
        return ""

    lines = ["", "KNOWLEDGE GRAPH CONTEXT", ""]
    if stats.top_projects:
        lines.append("Top Projects:")
        lines.extend(
            f"  - {p.name} (mentioned {p.mention_count} times)" for p in stats.top_projects[:3]
        )
        lines.append("")
    if stats.top_people:
        lines.append("Frequent Contacts:")
        lines.extend(
            f"  - {p.name} (mentioned {p.mention_count} times)" for p in stats.top_people[:3]
        )
        lines.append("")
    if related_entities:
        lines.append(f"Entities detected in query: {', '.join(related_entities)}")
    return "\n".join(lines) + "\n"


def build_single_source_prompt(base_prompt: str, sources: Sequence[ContextSource]) -> str:
    return SINGLE_SOURCE_TEMPLATE.format(
        base_prompt=base_prompt,
        rule=RULE,
        context=format_context(sources),
    )


def build_multi_source_prompt(
    base_prompt: str,
    sources: Sequence[ContextSource],
    source_breakdown: dict[str, int],
    entities_section: str = "",
) -> str:
    counts = {pool.value: source_breakdown.get(pool.value, 0) for pool in SourcePool}
    return MULTI_SOURCE_TEMPLATE.format(
        base_prompt=base_prompt,
        rule=RULE,
        context=format_multi_source_context(sources),
        entities=entities_section,
        **counts,
    )
