"""Shared pytest fixtures for the lexindex test suite."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

from src.config.policy import PipelinePolicy
from src.pipeline.orchestrator import IngestionOrchestrator
from src.pipeline.progress_tracker import ProgressTracker
from src.providers.blob.local_blob_store import LocalBlobStore
from src.providers.ledger.sqlite_job_ledger import SQLiteJobLedger
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.embedding_stage import EmbeddingStage
from src.services.ingestion.index_writer import DualIndexWriter
from src.services.ocr_service import OCRService
from tests.fakes import (
    FakeClock,
    FakeEmbeddingProvider,
    FakeFullTextIndex,
    FakeOCRProvider,
    FakeVectorIndex,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def policy() -> PipelinePolicy:
    """Small chunks, no backoff delay, short timeouts."""
    return PipelinePolicy(
        chunk_size=100,
        chunk_overlap=0,
        max_attempts=5,
        backoff_base_seconds=0.0,
        backoff_cap_seconds=0.0,
        embed_batch_size=4,
        worker_count=2,
        index_concurrency=4,
        lease_seconds=60.0,
        poll_interval_seconds=0.05,
        ocr_timeout_seconds=5.0,
        embed_timeout_seconds=0.2,
        index_timeout_seconds=0.5,
    )


@pytest_asyncio.fixture
async def ledger(tmp_path: Path) -> SQLiteJobLedger:
    instance = SQLiteJobLedger(db_path=tmp_path / "ledger.db")
    await instance.initialize()
    return instance


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(root_dir=tmp_path / "blobs")


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def vector_index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture
def fulltext_index() -> FakeFullTextIndex:
    return FakeFullTextIndex()


@pytest.fixture
def ocr_provider() -> FakeOCRProvider:
    return FakeOCRProvider()


@pytest.fixture
def progress_tracker() -> ProgressTracker:
    return ProgressTracker()


@pytest.fixture
def orchestrator(
    ledger: SQLiteJobLedger,
    blob_store: LocalBlobStore,
    ocr_provider: FakeOCRProvider,
    embedding_provider: FakeEmbeddingProvider,
    vector_index: FakeVectorIndex,
    fulltext_index: FakeFullTextIndex,
    policy: PipelinePolicy,
    progress_tracker: ProgressTracker,
    clock: FakeClock,
) -> IngestionOrchestrator:
    return IngestionOrchestrator(
        ledger=ledger,
        blob_store=blob_store,
        ocr_service=OCRService([ocr_provider], timeout_seconds=policy.ocr_timeout_seconds),
        chunker=TextChunker(chunk_size=policy.chunk_size, overlap=policy.chunk_overlap),
        embedding_stage=EmbeddingStage(
            embedding_provider,
            batch_size=policy.embed_batch_size,
            timeout_seconds=policy.embed_timeout_seconds,
        ),
        index_writer=DualIndexWriter(
            vector_index,
            fulltext_index,
            concurrency=policy.index_concurrency,
            timeout_seconds=policy.index_timeout_seconds,
        ),
        policy=policy,
        progress_tracker=progress_tracker,
        clock=clock,
    )
