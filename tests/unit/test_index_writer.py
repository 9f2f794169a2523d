"""Unit tests for the dual index writer."""

from __future__ import annotations

import pytest

from src.models.pipeline import LedgerEntry
from src.models.rag import Chunk, IndexBackend, IndexWriteStatus
from src.services.ingestion.index_writer import DualIndexWriter
from src.utils.errors import ClaimLostError, IndexWriteError, PipelineError
from tests.fakes import FakeFullTextIndex, FakeVectorIndex

ENTRY = LedgerEntry(document_id="doc-1", blob_ref="blob://doc-1", original_filename="nda.pdf")


def _chunks(
    n: int,
    vector_written: set[int] | None = None,
    fulltext_written: set[int] | None = None,
) -> list[Chunk]:
    vector_written = vector_written or set()
    fulltext_written = fulltext_written or set()
    return [
        Chunk(
            chunk_id=f"c{i}",
            document_id="doc-1",
            ordinal=i,
            char_start=0,
            char_end=8,
            text=f"clause {i}",
            embedding=[float(i), 1.0],
            vector_status=IndexWriteStatus.WRITTEN if i in vector_written else IndexWriteStatus.PENDING,
            fulltext_status=IndexWriteStatus.WRITTEN if i in fulltext_written else IndexWriteStatus.PENDING,
        )
        for i in range(n)
    ]


class _Recorder:
    def __init__(self) -> None:
        self.records: list[tuple[str, IndexBackend, IndexWriteStatus]] = []

    async def __call__(self, chunk_id: str, backend: IndexBackend, status: IndexWriteStatus) -> None:
        self.records.append((chunk_id, backend, status))


class TestDualWrite:
    @pytest.mark.asyncio
    async def test_writes_every_chunk_to_both_backends(
        self, vector_index: FakeVectorIndex, fulltext_index: FakeFullTextIndex
    ) -> None:
        writer = DualIndexWriter(vector_index, fulltext_index, concurrency=2)
        recorder = _Recorder()

        report = await writer.write(ENTRY, _chunks(3), recorder)

        assert report.complete
        assert sorted(report.written[IndexBackend.VECTOR]) == ["c0", "c1", "c2"]
        assert sorted(report.written[IndexBackend.FULLTEXT]) == ["c0", "c1", "c2"]
        assert set(vector_index.vectors) == {"c0", "c1", "c2"}
        assert fulltext_index.texts["c1"] == "clause 1"
        assert fulltext_index.metadata["c1"]["filename"] == "nda.pdf"
        assert len(recorder.records) == 6
        assert all(status is IndexWriteStatus.WRITTEN for _, _, status in recorder.records)

    @pytest.mark.asyncio
    async def test_written_chunks_are_skipped(
        self, vector_index: FakeVectorIndex, fulltext_index: FakeFullTextIndex
    ) -> None:
        writer = DualIndexWriter(vector_index, fulltext_index)

        report = await writer.write(
            ENTRY, _chunks(3, vector_written={0, 1, 2}, fulltext_written={0}), _Recorder()
        )

        assert vector_index.upsert_calls == []
        assert sorted(fulltext_index.upsert_calls) == ["c1", "c2"]
        assert sorted(report.skipped[IndexBackend.VECTOR]) == ["c0", "c1", "c2"]
        assert report.skipped[IndexBackend.FULLTEXT] == ["c0"]

    @pytest.mark.asyncio
    async def test_failures_are_reported_not_raised(
        self, vector_index: FakeVectorIndex, fulltext_index: FakeFullTextIndex
    ) -> None:
        fulltext_index.always_fail = {"c1"}
        writer = DualIndexWriter(vector_index, fulltext_index)
        recorder = _Recorder()

        report = await writer.write(ENTRY, _chunks(3), recorder)

        assert not report.complete
        assert report.failed_count == 1
        assert report.failed[IndexBackend.FULLTEXT] == ["c1"]
        assert len(report.written[IndexBackend.VECTOR]) == 3
        assert ("c1", IndexBackend.FULLTEXT, IndexWriteStatus.FAILED) in recorder.records

    @pytest.mark.asyncio
    async def test_slow_upsert_times_out(
        self, vector_index: FakeVectorIndex, fulltext_index: FakeFullTextIndex
    ) -> None:
        import asyncio

        original = vector_index.upsert

        async def _slow(chunk_id, vector, metadata):  # noqa: ANN001, ANN202
            if chunk_id == "c0":
                await asyncio.sleep(5)
            await original(chunk_id, vector, metadata)

        vector_index.upsert = _slow  # type: ignore[method-assign]
        writer = DualIndexWriter(vector_index, fulltext_index, timeout_seconds=0.05)

        report = await writer.write(ENTRY, _chunks(2), _Recorder())

        assert report.failed[IndexBackend.VECTOR] == ["c0"]
        assert report.written[IndexBackend.VECTOR] == ["c1"]

    @pytest.mark.asyncio
    async def test_missing_embedding_is_an_error(
        self, vector_index: FakeVectorIndex, fulltext_index: FakeFullTextIndex
    ) -> None:
        chunks = [_chunks(1)[0].model_copy(update={"embedding": None})]
        writer = DualIndexWriter(vector_index, fulltext_index)
        with pytest.raises(PipelineError):
            await writer.write(ENTRY, chunks, _Recorder())

    @pytest.mark.asyncio
    async def test_recorder_errors_abort(
        self, vector_index: FakeVectorIndex, fulltext_index: FakeFullTextIndex
    ) -> None:
        async def _lost(chunk_id: str, backend: IndexBackend, status: IndexWriteStatus) -> None:
            raise ClaimLostError("gone")

        writer = DualIndexWriter(vector_index, fulltext_index)
        with pytest.raises(ClaimLostError):
            await writer.write(ENTRY, _chunks(2), _lost)


class TestDeleteDocument:
    @pytest.mark.asyncio
    async def test_removes_only_that_document(
        self, vector_index: FakeVectorIndex, fulltext_index: FakeFullTextIndex
    ) -> None:
        writer = DualIndexWriter(vector_index, fulltext_index)
        await writer.write(ENTRY, _chunks(3), _Recorder())
        await vector_index.upsert("other-c0", [0.0, 1.0], {"document_id": "doc-2"})
        await fulltext_index.upsert("other-c0", "indemnity", {"document_id": "doc-2"})

        removed = await writer.delete_document("doc-1")

        assert removed == {IndexBackend.VECTOR: 3, IndexBackend.FULLTEXT: 3}
        assert set(vector_index.vectors) == {"other-c0"}
        assert set(fulltext_index.texts) == {"other-c0"}

    @pytest.mark.asyncio
    async def test_backend_failure_is_raised_after_both_run(
        self, vector_index: FakeVectorIndex, fulltext_index: FakeFullTextIndex
    ) -> None:
        writer = DualIndexWriter(vector_index, fulltext_index)
        await writer.write(ENTRY, _chunks(2), _Recorder())

        async def _broken(document_id: str) -> int:
            raise IndexWriteError("fulltext unreachable", provider_name="fake_fulltext")

        fulltext_index.delete_by_document = _broken

        with pytest.raises(IndexWriteError):
            await writer.delete_document("doc-1")
        assert vector_index.vectors == {}
