"""End-to-end flow: ingest, search, build prompts, cite, and reindex over one database."""

import pytest

from knowledge_rag.models import AutoIndexedContent, Document, SettingsConfig, SourceType
from knowledge_rag.rag.embedding_provider import DeterministicEmbeddingProvider
from knowledge_rag.services import open_services

pytestmark = pytest.mark.integration

RUNBOOK = (
    "Incident runbook for the billing ledger. Step one: page the on-call engineer. "
    "Step two: freeze deploys to the ledger service. Step three: open a status page entry. "
) * 8


@pytest.mark.asyncio
async def test_ingest_ask_cite_and_reindex(tmp_path) -> None:
    settings = SettingsConfig.model_validate(
        {
            "database": {"path": str(tmp_path / "e2e.db")},
            "embedding": {"backend": "deterministic"},
            "retrieval": {"max_context_tokens": 300},
        }
    )
    async with open_services(settings, provider=DeterministicEmbeddingProvider()) as services:
        doc = await services.documents.create(
            Document(owner_id="u1", title="Ledger runbook", filename="runbook.md", content=RUNBOOK)
        )
        result = await services.indexer.index_document(doc.id, RUNBOOK)
        assert result.chunk_count == len(await services.indexer.get_document_chunks(doc.id))

        # A query identical to a chunk always matches that chunk exactly.
        first_chunk = (await services.indexer.get_document_chunks(doc.id))[0]
        context = await services.rag.retrieve_context(first_chunk.content, min_score=0.99)
        assert context.has_context is True
        assert context.sources[0].chunk_id == first_chunk.id
        assert context.sources[0].document_title == "Ledger runbook"

        enriched = await services.rag.build_enriched_prompt(first_chunk.content, "Base.", context)
        assert enriched.has_context is True
        assert enriched.context_tokens <= 300

        citations = await services.rag.track_citations("session-1", "msg-1", enriched.sources)
        assert len(citations) == len(enriched.sources)
        session = await services.rag.get_session_citations("session-1")
        assert {c.document_id for c in session} == {doc.id}
        top = await services.rag.get_top_cited_documents("u1")
        assert top[0].id == doc.id
        assert top[0].citation_count == len(citations)

        await services.pools.add(
            AutoIndexedContent(
                owner_id="u1",
                source_type=SourceType.CONVERSATION,
                source_title="Postmortem chat",
                content="We reviewed the billing ledger incident runbook together.",
                content_summary="Billing ledger incident review",
                importance_score=0.7,
            )
        )
        multi = await services.rag.retrieve_context_multi_source(
            "billing ledger incident", "u1", min_score=0.5
        )
        assert SourceType.CONVERSATION in {s.source_type for s in multi.sources}
        prompt = await services.rag.build_enriched_prompt_multi_source(
            "billing ledger incident", "Base.", multi, "u1"
        )
        assert "Postmortem chat" in prompt.prompt
        # conversation sources carry no document and are not cited
        assert await services.rag.track_citations(
            "session-2", None, [s for s in multi.sources if s.document_id is None]
        ) == []

        reindexed = await services.indexer.reindex_document(doc.id)
        assert reindexed.chunk_count == result.chunk_count
        stored = await services.documents.get(doc.id)
        assert stored.indexed is True
        assert stored.chunk_count == result.chunk_count

        assert await services.documents.delete(doc.id) is True
        assert await services.indexer.get_document_chunks(doc.id) == []
        assert await services.rag.get_session_citations("session-1") == []
