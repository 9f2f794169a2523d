"""Unit tests for hybrid search and reciprocal rank fusion."""

from __future__ import annotations

import pytest

from src.models.document import ExtractedText
from src.models.pipeline import ProcessingState
from src.models.rag import IndexHit
from src.services.ingestion.chunker import TextChunker
from src.services.search_service import SearchService, reciprocal_rank_fusion
from src.utils.errors import SearchError
from tests.fakes import drain, ingest_text

_LEASE = (
    "Commercial lease for the warehouse premises\n\n"
    "The tenant shall maintain insurance covering the premises"
)
_NDA = (
    "Mutual non-disclosure agreement between the parties\n\n"
    "Confidential information excludes publicly available material"
)


def _hits(*chunk_ids: str) -> list[IndexHit]:
    return [IndexHit(chunk_id=cid, score=1.0) for cid in chunk_ids]


@pytest.fixture
def search_service(ledger, embedding_provider, vector_index, fulltext_index) -> SearchService:
    return SearchService(
        ledger=ledger,
        embedding_provider=embedding_provider,
        vector_index=vector_index,
        fulltext_index=fulltext_index,
    )


class TestReciprocalRankFusion:
    def test_chunk_in_both_rankings_wins(self) -> None:
        fused = reciprocal_rank_fusion(
            {"vector": _hits("a", "b"), "fulltext": _hits("b", "c")}, k=60
        )
        assert fused[0][0] == "b"
        assert fused[0][1] == pytest.approx(1 / 62 + 1 / 61)
        assert fused[0][2] == {"vector": 2, "fulltext": 1}

    def test_ties_break_on_chunk_id(self) -> None:
        fused = reciprocal_rank_fusion({"vector": _hits("z"), "fulltext": _hits("a")})
        assert [chunk_id for chunk_id, _, _ in fused] == ["a", "z"]

    def test_duplicate_hits_counted_once_per_backend(self) -> None:
        fused = reciprocal_rank_fusion({"vector": _hits("a", "a", "b")}, k=0)
        assert dict((cid, score) for cid, score, _ in fused) == {"a": 1.0, "b": pytest.approx(1 / 3)}

    def test_empty_rankings(self) -> None:
        assert reciprocal_rank_fusion({}) == []


class TestSearchService:
    @pytest.mark.asyncio
    async def test_finds_indexed_chunks_with_page_info(
        self, orchestrator, blob_store, search_service
    ) -> None:
        document_id = await ingest_text(orchestrator, blob_store, _LEASE, filename="lease.txt")
        await ingest_text(orchestrator, blob_store, _NDA, filename="nda.txt")
        await drain(orchestrator)

        hits = await search_service.search("tenant insurance premises", top_k=3)

        assert hits
        assert hits[0].document_id == document_id
        assert hits[0].original_filename == "lease.txt"
        assert hits[0].page_start == 1
        assert hits[0].degraded is False

    @pytest.mark.asyncio
    async def test_blank_query_returns_nothing(self, search_service) -> None:
        assert await search_service.search("   ") == []
        assert await search_service.search("tenant", top_k=0) == []

    @pytest.mark.asyncio
    async def test_dead_lettered_documents_are_excluded(
        self, orchestrator, blob_store, search_service
    ) -> None:
        document_id = await ingest_text(orchestrator, blob_store, _LEASE)
        await drain(orchestrator)
        await orchestrator.cancel(document_id, reason="withdrawn")

        assert await search_service.search("tenant insurance premises") == []

    @pytest.mark.asyncio
    async def test_degraded_documents_are_flagged(
        self, orchestrator, blob_store, fulltext_index, search_service, ledger, policy
    ) -> None:
        document_id = await blob_store.put(_LEASE.encode("utf-8"), filename="lease.txt")
        chunker = TextChunker(chunk_size=policy.chunk_size, overlap=policy.chunk_overlap)
        chunks = chunker.chunk(ExtractedText.from_page_texts([_LEASE], "fake_ocr"), document_id)
        fulltext_index.always_fail.add(chunks[-1].chunk_id)
        await orchestrator.enqueue(document_id)
        await drain(orchestrator)

        assert (await ledger.get(document_id)).state is ProcessingState.DEGRADED
        hits = await search_service.search("tenant insurance premises")
        assert hits
        assert all(hit.degraded for hit in hits)

    @pytest.mark.asyncio
    async def test_survives_one_backend_failing(
        self, orchestrator, blob_store, vector_index, search_service
    ) -> None:
        await ingest_text(orchestrator, blob_store, _LEASE)
        await drain(orchestrator)
        vector_index.query_error = True

        hits = await search_service.search("tenant insurance")

        assert hits
        assert all(hit.vector_rank is None for hit in hits)

    @pytest.mark.asyncio
    async def test_both_backends_failing_raises(
        self, vector_index, fulltext_index, search_service
    ) -> None:
        vector_index.query_error = True
        fulltext_index.query_error = True
        with pytest.raises(SearchError):
            await search_service.search("tenant")
