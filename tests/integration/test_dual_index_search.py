"""Pipeline plus search against the real SQLite FTS5 and in-memory ChromaDB backends."""

from __future__ import annotations

import uuid
from pathlib import Path

import chromadb
import pytest
import pytest_asyncio

from src.models.pipeline import ProcessingState
from src.pipeline.orchestrator import IngestionOrchestrator
from src.providers.fulltext.sqlite_fts_provider import SQLiteFTSIndex
from src.providers.vector_index.chromadb_provider import ChromaDBVectorIndex
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.embedding_stage import EmbeddingStage
from src.services.ingestion.index_writer import DualIndexWriter
from src.services.ocr_service import OCRService
from src.services.search_service import SearchService
from tests.fakes import drain, ingest_text

_EMPLOYMENT = (
    "Employment agreement between the company and the employee\n\n"
    "The employee agrees to a non-compete covenant for twelve months\f"
    "Severance equals three months of base salary upon termination"
)
_SUPPLY = (
    "Supply agreement for industrial fasteners and related parts\n\n"
    "Delivery shall occur within ten business days of each purchase order"
)


@pytest_asyncio.fixture
async def stack(tmp_path: Path, ledger, blob_store, ocr_provider, embedding_provider, policy, progress_tracker, clock):
    vector_index = ChromaDBVectorIndex(
        collection_name=f"test_{uuid.uuid4().hex}", client=chromadb.EphemeralClient()
    )
    fulltext_index = SQLiteFTSIndex(db_path=tmp_path / "fulltext.db")
    await fulltext_index.initialize()
    orchestrator = IngestionOrchestrator(
        ledger=ledger,
        blob_store=blob_store,
        ocr_service=OCRService([ocr_provider]),
        chunker=TextChunker(chunk_size=policy.chunk_size, overlap=policy.chunk_overlap),
        embedding_stage=EmbeddingStage(embedding_provider, batch_size=policy.embed_batch_size),
        index_writer=DualIndexWriter(vector_index, fulltext_index),
        policy=policy,
        progress_tracker=progress_tracker,
        clock=clock,
    )
    search = SearchService(ledger, embedding_provider, vector_index, fulltext_index)
    return orchestrator, search, vector_index, fulltext_index


class TestDualIndexSearch:
    @pytest.mark.asyncio
    async def test_both_backends_receive_every_chunk(self, stack, blob_store, ledger) -> None:
        orchestrator, _, vector_index, fulltext_index = stack
        document_id = await ingest_text(orchestrator, blob_store, _EMPLOYMENT, "employment.txt")
        await ingest_text(orchestrator, blob_store, _SUPPLY, "supply.txt")

        await drain(orchestrator)

        assert (await ledger.get(document_id)).state is ProcessingState.INDEXED
        chunk_total = len(await ledger.load_chunks(document_id))
        assert await vector_index.count() == await fulltext_index.count()
        assert await vector_index.count() > chunk_total

    @pytest.mark.asyncio
    async def test_keyword_query_returns_page_of_match(self, stack, blob_store) -> None:
        orchestrator, search, _, _ = stack
        document_id = await ingest_text(orchestrator, blob_store, _EMPLOYMENT, "employment.txt")
        await ingest_text(orchestrator, blob_store, _SUPPLY, "supply.txt")
        await drain(orchestrator)

        hits = await search.search("severance salary", top_k=3)

        top = next(hit for hit in hits if hit.fulltext_rank == 1)
        assert top.document_id == document_id
        assert top.page_start == 2
        assert "Severance" in top.text

    @pytest.mark.asyncio
    async def test_cancelled_document_disappears_from_results(self, stack, blob_store) -> None:
        orchestrator, search, _, _ = stack
        document_id = await ingest_text(orchestrator, blob_store, _SUPPLY, "supply.txt")
        await drain(orchestrator)
        assert await search.search("fasteners delivery")

        await orchestrator.cancel(document_id, reason="superseded")

        assert await search.search("fasteners delivery") == []
