import pytest

from knowledge_rag.db.database import get_db
from knowledge_rag.db.repositories import ContentPoolRepository
from knowledge_rag.models import AutoIndexedContent, RetrievedChunk, SourceType
from knowledge_rag.rag.pools import (
    POOL_PROFILES,
    ContentPoolSearcher,
    entry_snippet,
    keyword_fraction,
    merge_weighted,
    pool_limit,
    score_entry,
)

QUERY = "atlas migration"


def _by_type(entries, source_type):
    return next(e for e in entries if e.source_type == source_type)


def test_keyword_fraction_counts_only_long_words() -> None:
    assert keyword_fraction("the atlas plan", "atlas plan") == pytest.approx(2 / 3)
    assert keyword_fraction("", "anything") == 0.0
    assert keyword_fraction("ATLAS", "the atlas project") == 1.0
    assert keyword_fraction("atlas", "") == 0.0


def test_scores_per_pool(pool_entries) -> None:
    conv = _by_type(pool_entries, SourceType.CONVERSATION)
    shot = _by_type(pool_entries, SourceType.SCREENSHOT)
    audio = _by_type(pool_entries, SourceType.AUDIO)
    external = _by_type(pool_entries, SourceType.EXTERNAL_DATABASE)

    # 0.6 + 0.3 + 0.2 summary bonus, capped
    assert score_entry(conv, QUERY, POOL_PROFILES[SourceType.CONVERSATION]) == 1.0
    assert score_entry(shot, QUERY, POOL_PROFILES[SourceType.SCREENSHOT]) == pytest.approx(0.65)
    assert score_entry(audio, QUERY, POOL_PROFILES[SourceType.AUDIO]) == pytest.approx(0.8)
    # missing importance uses the external default of 0.7
    assert score_entry(external, QUERY, POOL_PROFILES[SourceType.EXTERNAL_DATABASE]) == pytest.approx(0.9)


def test_audio_matches_on_summary_only() -> None:
    entry = AutoIndexedContent(
        owner_id="u",
        source_type=SourceType.AUDIO,
        content="atlas migration mentioned only in the transcript",
        content_summary="weekly sync",
        importance_score=0.5,
    )
    assert score_entry(entry, QUERY, POOL_PROFILES[SourceType.AUDIO]) == pytest.approx(0.5)


def test_snippets_follow_pool_rules() -> None:
    long_text = "x" * 1000
    conv = AutoIndexedContent(owner_id="u", source_type=SourceType.CONVERSATION, content=long_text)
    shot = AutoIndexedContent(
        owner_id="u", source_type=SourceType.SCREENSHOT, content=long_text, content_summary="ignored"
    )
    audio = AutoIndexedContent(
        owner_id="u", source_type=SourceType.AUDIO, content=long_text, content_summary="summary"
    )
    assert len(entry_snippet(conv, POOL_PROFILES[SourceType.CONVERSATION])) == 500
    assert len(entry_snippet(shot, POOL_PROFILES[SourceType.SCREENSHOT])) == 300
    assert entry_snippet(audio, POOL_PROFILES[SourceType.AUDIO]) == "summary"


def test_pool_limits() -> None:
    assert [pool_limit(t, 10) for t in SourceType] == [10, 5, 4, 4, 3]
    assert [pool_limit(t, 1) for t in SourceType] == [1, 1, 1, 1, 1]


def test_document_outranks_screenshot_at_equal_relevance() -> None:
    weights = {"document": 1.0, "screenshot": 0.75}
    shot = RetrievedChunk(id="s", content="s", relevance_score=0.9, source_type=SourceType.SCREENSHOT)
    doc = RetrievedChunk(id="d", content="d", relevance_score=0.9, source_type=SourceType.DOCUMENT)
    ranked = merge_weighted([shot, doc], weights, 10)
    assert [c.id for c in ranked] == ["d", "s"]
    assert ranked[1].weighted_score == pytest.approx(0.675)


def test_merge_truncates_and_keeps_order_stable() -> None:
    chunks = [
        RetrievedChunk(id=str(i), content="c", relevance_score=0.8, source_type=SourceType.DOCUMENT)
        for i in range(5)
    ]
    ranked = merge_weighted(chunks, {}, 3)
    assert [c.id for c in ranked] == ["0", "1", "2"]


@pytest.mark.asyncio
async def test_searcher_filters_sorts_and_limits(tmp_path, pool_entries) -> None:
    async with get_db(str(tmp_path / "pools.db")) as db:
        repo = ContentPoolRepository(db)
        for entry in pool_entries:
            await repo.add(entry)
        await repo.add(
            AutoIndexedContent(
                owner_id="someone-else",
                source_type=SourceType.CONVERSATION,
                content="atlas migration",
                importance_score=0.9,
            )
        )
        searcher = ContentPoolSearcher(repo)

        conv = await searcher.search(SourceType.CONVERSATION, QUERY, "user-1", limit=5, min_score=0.7)
        assert len(conv) == 1
        assert conv[0].source_title == "Atlas standup"
        assert conv[0].content == "Atlas migration timeline review"
        assert conv[0].token_count > 0

        shots = await searcher.search(SourceType.SCREENSHOT, QUERY, "user-1", limit=5, min_score=0.7)
        assert shots == []


@pytest.mark.asyncio
async def test_searcher_degrades_on_store_failure(tmp_path) -> None:
    async with get_db(str(tmp_path / "pools_broken.db")) as db:
        await db.execute("DROP TABLE auto_indexed_content")
        await db.commit()
        searcher = ContentPoolSearcher(ContentPoolRepository(db))
        assert await searcher.search(SourceType.AUDIO, QUERY, "user-1", 3, 0.1) == []
