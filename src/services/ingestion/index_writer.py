"""INDEX stage: write every chunk to both index backends.

The two backends fail independently and share no transaction, so
consistency is tracked per chunk and per backend in the job ledger:

* chunks already ``WRITTEN`` for a backend are skipped;
* every attempted write is recorded immediately, ``WRITTEN`` or ``FAILED``,
  so a crash mid-stage loses at most the writes in flight;
* the two backends are written concurrently, each with its own bounded
  number of in-flight upserts.

A failed write is not raised.  The caller gets an :class:`IndexWriteReport`
and decides between retrying the stage and giving up.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from src.interfaces.fulltext_index_provider import IFullTextIndexProvider
from src.interfaces.vector_index_provider import IVectorIndexProvider
from src.models.pipeline import LedgerEntry
from src.models.rag import Chunk, IndexBackend, IndexWriteReport, IndexWriteStatus
from src.utils.concurrency import throttled_gather
from src.utils.errors import IndexWriteError, PipelineError

logger = structlog.get_logger(logger_name=__name__)

WriteRecorder = Callable[[str, IndexBackend, IndexWriteStatus], Awaitable[None]]


class DualIndexWriter:
    """Upserts chunks into the vector and full-text indexes.

    Parameters
    ----------
    vector_index, fulltext_index:
        The two backends.
    concurrency:
        Maximum in-flight upserts per backend.
    timeout_seconds:
        Budget for a single upsert call.
    """

    def __init__(
        self,
        vector_index: IVectorIndexProvider,
        fulltext_index: IFullTextIndexProvider,
        concurrency: int = 8,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._vector_index = vector_index
        self._fulltext_index = fulltext_index
        self._concurrency = concurrency
        self._timeout = timeout_seconds

    async def write(
        self,
        entry: LedgerEntry,
        chunks: list[Chunk],
        recorder: WriteRecorder,
    ) -> IndexWriteReport:
        """Write the not-yet-written chunks of *entry* to both backends.

        Parameters
        ----------
        entry:
            Ledger entry of the document (supplies the filename metadata).
        chunks:
            The document's chunks with their current write statuses.
        recorder:
            Called once per attempted write with the outcome.  Exceptions
            it raises (e.g. a lost claim) abort the stage.

        Raises
        ------
        PipelineError
            If a chunk still needing a vector write has no embedding.
        """
        missing = [
            c.chunk_id
            for c in chunks
            if c.embedding is None and c.vector_status is not IndexWriteStatus.WRITTEN
        ]
        if missing:
            raise PipelineError(
                f"{len(missing)} chunks of {entry.document_id} reached indexing without embeddings"
            )

        outcomes = await asyncio.gather(
            self._write_backend(IndexBackend.VECTOR, entry, chunks, recorder),
            self._write_backend(IndexBackend.FULLTEXT, entry, chunks, recorder),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        written: dict[IndexBackend, list[str]] = {}
        failed: dict[IndexBackend, list[str]] = {}
        skipped: dict[IndexBackend, list[str]] = {}
        for backend, (ok, bad, skip) in zip(
            (IndexBackend.VECTOR, IndexBackend.FULLTEXT), outcomes, strict=True
        ):
            written[backend], failed[backend], skipped[backend] = ok, bad, skip

        report = IndexWriteReport(
            document_id=entry.document_id, written=written, failed=failed, skipped=skipped
        )
        logger.info(
            "index_write_complete",
            document_id=entry.document_id,
            written={b.value: len(ids) for b, ids in written.items()},
            failed={b.value: len(ids) for b, ids in failed.items()},
            skipped={b.value: len(ids) for b, ids in skipped.items()},
        )
        return report

    async def delete_document(self, document_id: str) -> dict[IndexBackend, int]:
        """Remove every entry of *document_id* from both backends.

        Returns the number of entries each backend removed.

        Raises
        ------
        IndexWriteError
            If either backend fails; the other backend's delete still runs.
        """
        outcomes = await asyncio.gather(
            self._vector_index.delete_by_document(document_id),
            self._fulltext_index.delete_by_document(document_id),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        removed = dict(zip((IndexBackend.VECTOR, IndexBackend.FULLTEXT), outcomes, strict=True))
        logger.info(
            "index_entries_deleted",
            document_id=document_id,
            removed={b.value: n for b, n in removed.items()},
        )
        return removed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _write_backend(
        self,
        backend: IndexBackend,
        entry: LedgerEntry,
        chunks: list[Chunk],
        recorder: WriteRecorder,
    ) -> tuple[list[str], list[str], list[str]]:
        skipped = [c.chunk_id for c in chunks if c.status_for(backend) is IndexWriteStatus.WRITTEN]
        pending = [c for c in chunks if c.status_for(backend) is not IndexWriteStatus.WRITTEN]

        async def _write_one(chunk: Chunk) -> bool:
            metadata = chunk.index_metadata(entry.original_filename)
            try:
                if backend is IndexBackend.VECTOR:
                    upsert = self._vector_index.upsert(chunk.chunk_id, chunk.embedding or [], metadata)
                else:
                    upsert = self._fulltext_index.upsert(chunk.chunk_id, chunk.text, metadata)
                await asyncio.wait_for(upsert, timeout=self._timeout)
            except (IndexWriteError, asyncio.TimeoutError) as exc:
                logger.warning(
                    "index_write_failed",
                    document_id=chunk.document_id,
                    chunk_id=chunk.chunk_id,
                    backend=backend.value,
                    error=str(exc) or type(exc).__name__,
                )
                await recorder(chunk.chunk_id, backend, IndexWriteStatus.FAILED)
                return False
            await recorder(chunk.chunk_id, backend, IndexWriteStatus.WRITTEN)
            return True

        results = await throttled_gather(
            [_write_one(c) for c in pending],
            semaphore=asyncio.Semaphore(self._concurrency),
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

        written = [c.chunk_id for c, ok in zip(pending, results, strict=True) if ok]
        failed = [c.chunk_id for c, ok in zip(pending, results, strict=True) if not ok]
        return written, failed, skipped
