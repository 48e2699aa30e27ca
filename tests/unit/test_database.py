import aiosqlite
import pytest

from knowledge_rag.db.database import get_db, transaction
from knowledge_rag.db.repositories import ChunkRepository, DocumentRepository
from knowledge_rag.models import Chunk, Document


@pytest.mark.asyncio
async def test_database_migrations_create_tables(tmp_path) -> None:
    db_path = tmp_path / "nested" / "knowledge.db"
    async with get_db(str(db_path)) as db:
        assert isinstance(db, aiosqlite.Connection)
        cursor = await db.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row[0] for row in await cursor.fetchall()}
        assert {
            "documents",
            "document_chunks",
            "document_citations",
            "auto_indexed_content",
            "knowledge_graph",
        } <= tables
    assert db_path.exists()


@pytest.mark.asyncio
async def test_migrations_are_repeatable(tmp_path) -> None:
    db_path = str(tmp_path / "twice.db")
    async with get_db(db_path) as db:
        await DocumentRepository(db).create(Document(id="d1", owner_id="u1", title="Kept"))
    async with get_db(db_path) as db:
        doc = await DocumentRepository(db).get("d1")
        assert doc is not None
        assert doc.title == "Kept"


@pytest.mark.asyncio
async def test_document_round_trip_and_batch_lookup(tmp_path) -> None:
    async with get_db(str(tmp_path / "docs.db")) as db:
        repo = DocumentRepository(db)
        await repo.create(
            Document(id="d1", owner_id="u1", title="Notes", filename="notes.md", content="body", tags=["a", "b"])
        )
        await repo.create(Document(id="d2", owner_id="u1", title="Other"))
        await repo.create(Document(id="d3", owner_id="u2", title="Foreign"))

        summary = await repo.get("d1")
        assert summary.content is None
        assert summary.tags == ["a", "b"]
        full = await repo.get("d1", include_content=True)
        assert full.content == "body"

        found = await repo.get_many(["d1", "d3", "missing", "d1"])
        assert set(found) == {"d1", "d3"}
        assert await repo.get_many([]) == {}
        assert {d.id for d in await repo.list_for_owner("u1")} == {"d1", "d2"}


@pytest.mark.asyncio
async def test_document_stats(tmp_path) -> None:
    async with get_db(str(tmp_path / "stats.db")) as db:
        repo = DocumentRepository(db)
        await repo.create(Document(id="d1", owner_id="u1", title="A", file_type="md"))
        await repo.create(Document(id="d2", owner_id="u1", title="B", file_type="txt"))
        await repo.update_index_status("d1", 4, True)
        await db.commit()
        stats = await repo.get_stats("u1")
        assert stats == {
            "total_documents": 2,
            "total_chunks": 4,
            "indexed_documents": 1,
            "file_types": 2,
        }


@pytest.mark.asyncio
async def test_chunk_index_is_unique_per_document(tmp_path) -> None:
    async with get_db(str(tmp_path / "unique.db")) as db:
        chunks = ChunkRepository(db)
        row = Chunk(document_id="d1", chunk_index=0, content="x", char_start=0, char_end=1)
        await chunks.insert_many([row])
        with pytest.raises(aiosqlite.IntegrityError):
            await chunks.insert_many([row.model_copy(update={"id": "another"})])


@pytest.mark.asyncio
async def test_unreadable_embeddings_are_skipped(tmp_path) -> None:
    async with get_db(str(tmp_path / "corrupt.db")) as db:
        chunks = ChunkRepository(db)
        await chunks.insert_many(
            [Chunk(document_id="d1", chunk_index=0, content="ok", char_start=0, char_end=2, embedding=[0.1, 0.2])]
        )
        await db.execute(
            "INSERT INTO document_chunks (id, document_id, chunk_index, content, char_start, char_end, embedding, created_at)"
            " VALUES ('bad', 'd1', 1, 'bad', 2, 5, 'not json', 0)"
        )
        await db.commit()
        candidates = await chunks.list_embedded_candidates(10)
        assert [c.content for c in candidates] == ["ok"]
        assert candidates[0].embedding == [0.1, 0.2]


@pytest.mark.asyncio
async def test_casefold_function_is_registered(tmp_path) -> None:
    async with get_db(str(tmp_path / "fold.db")) as db:
        cursor = await db.execute("SELECT casefold(?), casefold(NULL)", ("ÉCOLE Straße",))
        row = await cursor.fetchone()
        assert row[0] == "école strasse"
        assert row[1] is None


@pytest.mark.asyncio
async def test_transaction_rolls_back_only_its_own_writes(tmp_path) -> None:
    async with get_db(str(tmp_path / "tx.db")) as db:
        docs = DocumentRepository(db)
        await docs.create(Document(id="kept", owner_id="u1", title="Kept"))

        with pytest.raises(RuntimeError):
            async with transaction(db):
                await db.execute(
                    "UPDATE documents SET title = 'Changed' WHERE id = ?", ("kept",)
                )
                raise RuntimeError("abort unit")

        assert (await docs.get("kept")).title == "Kept"
        async with transaction(db):
            await db.execute("UPDATE documents SET title = 'Renamed' WHERE id = ?", ("kept",))
        assert (await docs.get("kept")).title == "Renamed"
