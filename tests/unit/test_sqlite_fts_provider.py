"""Unit tests for the SQLite FTS5 full-text index."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

from src.providers.fulltext.sqlite_fts_provider import SQLiteFTSIndex, _to_match_expression


@pytest_asyncio.fixture
async def index(tmp_path: Path) -> SQLiteFTSIndex:
    instance = SQLiteFTSIndex(db_path=tmp_path / "fts.db")
    await instance.initialize()
    return instance


class TestMatchExpression:
    def test_tokens_are_quoted_and_ored(self) -> None:
        assert _to_match_expression("Indemnity cap") == '"indemnity" OR "cap"'

    def test_fts_syntax_is_neutralised(self) -> None:
        assert _to_match_expression('NEAR(a b) "x" -y*') == '"near" OR "a" OR "b" OR "x" OR "y"'

    def test_duplicates_removed(self) -> None:
        assert _to_match_expression("term Term TERM") == '"term"'

    def test_blank(self) -> None:
        assert _to_match_expression("  !! ") == ""


class TestSQLiteFTSIndex:
    @pytest.mark.asyncio
    async def test_upsert_and_query(self, index: SQLiteFTSIndex) -> None:
        await index.upsert("c1", "The indemnification obligations survive termination.", {"document_id": "d1"})
        await index.upsert("c2", "Payment is due within thirty days.", {"document_id": "d1"})

        hits = await index.query("indemnification survive")

        assert [h.chunk_id for h in hits] == ["c1"]
        assert hits[0].document_id == "d1"

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, index: SQLiteFTSIndex) -> None:
        for _ in range(3):
            await index.upsert("c1", "governing law clause", {"document_id": "d1"})
        assert await index.count() == 1
        assert len(await index.query("governing")) == 1

    @pytest.mark.asyncio
    async def test_upsert_replaces_text(self, index: SQLiteFTSIndex) -> None:
        await index.upsert("c1", "old wording", {"document_id": "d1"})
        await index.upsert("c1", "new wording", {"document_id": "d1"})
        assert await index.query("old") == []
        assert [h.chunk_id for h in await index.query("new")] == ["c1"]

    @pytest.mark.asyncio
    async def test_better_match_ranks_first(self, index: SQLiteFTSIndex) -> None:
        await index.upsert("weak", "confidential", {"document_id": "d1"})
        await index.upsert("strong", "confidential information confidential obligations", {"document_id": "d1"})
        await index.upsert("other", "unrelated text", {"document_id": "d1"})

        hits = await index.query("confidential obligations")

        assert hits[0].chunk_id == "strong"
        assert hits[0].score > hits[-1].score

    @pytest.mark.asyncio
    async def test_delete_by_document(self, index: SQLiteFTSIndex) -> None:
        await index.upsert("c1", "alpha", {"document_id": "d1"})
        await index.upsert("c2", "alpha", {"document_id": "d2"})

        assert await index.delete_by_document("d1") == 1

        assert [h.chunk_id for h in await index.query("alpha")] == ["c2"]

    @pytest.mark.asyncio
    async def test_empty_query(self, index: SQLiteFTSIndex) -> None:
        assert await index.query("   ") == []

    def test_availability_follows_file(self, tmp_path: Path) -> None:
        assert SQLiteFTSIndex(db_path=tmp_path / "none.db").is_available() is False
        assert SQLiteFTSIndex(db_path=tmp_path / "none.db").get_provider_name() == "sqlite_fts"
