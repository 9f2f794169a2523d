"""Ingestion orchestrator: drives one document through OCR → CHUNK → EMBED → INDEX.

The orchestrator holds no state of its own between calls.  A worker gets a
:class:`Claim` from :meth:`IngestionOrchestrator.claim_next` and hands it to
:meth:`IngestionOrchestrator.advance`, which runs exactly one stage and
writes the outcome back to the job ledger:

    success        → ``<stage>_DONE`` and, unless the stage was INDEX, the
                     running state of the next stage under the same claim
    transient      → ``FAILED`` with ``next_eligible_at`` from the backoff
                     policy, or a terminal state once retries run out
    permanent      → ``DEAD_LETTERED`` with the error's reason code
    claim lost     → nothing; the stage results are discarded

ARCHITECTURE NOTE:
    Every ledger write carries the claim token, so a document cancelled
    (or taken over after a lease expiry) while a stage is in flight cannot
    have that stage's results committed.  Stage outputs (extracted text,
    chunks, vectors, per-chunk write status) are persisted as they are
    produced, so a retry or a restart after a crash resumes from the last
    committed artefact instead of from scratch.

    When INDEX exhausts its retries after at least one chunk reached one of
    the backends, the document becomes ``DEGRADED`` rather than
    ``DEAD_LETTERED``: it is partially searchable, and that is reported as
    a partial-index alert through the progress tracker.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from src.config.policy import PipelinePolicy
from src.interfaces.blob_store import IBlobStore
from src.interfaces.job_ledger import IJobLedger
from src.models.pipeline import (
    Claim,
    LedgerEntry,
    PipelineStage,
    ProcessingState,
    Transition,
)
from src.models.rag import Chunk, IndexBackend, IndexWriteReport, IndexWriteStatus
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.state_machine import done_state, next_stage, running_state
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.embedding_stage import EmbeddingStage
from src.services.ingestion.index_writer import DualIndexWriter
from src.services.ocr_service import OCRService
from src.utils.backoff import compute_backoff_delay
from src.utils.errors import (
    ClaimLostError,
    ConsistencyError,
    EmptyDocumentError,
    IndexWriteError,
    LexIndexError,
    PermanentError,
    PipelineError,
    TransientError,
)
from src.utils.logging import bound_context, get_logger

_RETRIES_EXHAUSTED = "retries_exhausted"
_INTERNAL_ERROR = "internal_error"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class _LeaseKeeper:
    """Renews a claim's lease once less than half of it is left.

    Touched after every embedding batch and every index write, so a long
    EMBED or INDEX stage keeps its claim while it makes progress.
    """

    def __init__(
        self,
        ledger: IJobLedger,
        claim: Claim,
        lease_seconds: float,
        clock: Callable[[], datetime],
    ) -> None:
        self._ledger = ledger
        self._claim = claim
        self._lease = timedelta(seconds=lease_seconds)
        self._clock = clock
        self._expires_at = claim.lease_expires_at
        self._lock = asyncio.Lock()

    def _due(self) -> bool:
        return self._expires_at - self._clock() < self._lease / 2

    async def touch(self) -> None:
        if not self._due():
            return
        async with self._lock:
            if not self._due():
                return
            expires_at = self._clock() + self._lease
            await self._ledger.renew_lease(
                self._claim.document_id, self._claim.claim_token, expires_at
            )
            self._expires_at = expires_at


class IngestionOrchestrator:
    """Advances documents through the ingestion state machine.

    Parameters
    ----------
    ledger:
        Durable source of truth for every document's state.
    blob_store:
        Where the raw uploads live.
    ocr_service, chunker, embedding_stage, index_writer:
        The four stage implementations.
    policy:
        Retry, backoff and lease settings.
    progress_tracker:
        Optional observer notified on every state change.
    clock:
        Returns the current UTC time; injected by tests.
    """

    def __init__(
        self,
        ledger: IJobLedger,
        blob_store: IBlobStore,
        ocr_service: OCRService,
        chunker: TextChunker,
        embedding_stage: EmbeddingStage,
        index_writer: DualIndexWriter,
        policy: PipelinePolicy,
        progress_tracker: ProgressTracker | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._ledger = ledger
        self._blob_store = blob_store
        self._ocr_service = ocr_service
        self._chunker = chunker
        self._embedding_stage = embedding_stage
        self._index_writer = index_writer
        self._policy = policy
        self._progress = progress_tracker or ProgressTracker()
        self._clock = clock or _utcnow
        self._logger = get_logger(__name__)

    @property
    def policy(self) -> PipelinePolicy:
        return self._policy

    @property
    def progress_tracker(self) -> ProgressTracker:
        return self._progress

    # ------------------------------------------------------------------
    # Queue management
    # ------------------------------------------------------------------

    async def enqueue(self, document_id: str) -> LedgerEntry:
        """Put a stored document on the queue.

        Idempotent for documents already in flight or indexed.  A
        ``DEAD_LETTERED`` or ``DEGRADED`` document is reset to ``QUEUED``.

        Raises
        ------
        BlobNotFoundError
            If the blob store has nothing under *document_id*.
        """
        info = await self._blob_store.stat(document_id)
        entry, changed = await self._ledger.enqueue(
            document_id,
            info.blob_ref,
            self._clock(),
            original_filename=info.original_filename,
            content_type=info.content_type,
            content_hash=info.content_hash,
        )
        if changed:
            await self._progress.update(document_id, ProcessingState.QUEUED, "enqueued")
        return entry

    async def requeue(self, document_id: str) -> LedgerEntry | None:
        """Re-enqueue a terminal document from its ledger entry; ``None`` if unknown."""
        entry = await self._ledger.get(document_id)
        if entry is None:
            return None
        requeued, changed = await self._ledger.enqueue(
            document_id,
            entry.blob_ref,
            self._clock(),
            original_filename=entry.original_filename,
            content_type=entry.content_type,
            content_hash=entry.content_hash,
        )
        if changed:
            await self._progress.update(document_id, ProcessingState.QUEUED, "requeued")
        return requeued

    async def cancel(self, document_id: str, reason: str = "cancelled") -> LedgerEntry | None:
        """Dead-letter *document_id*; in-flight stage results will be discarded."""
        entry = await self._ledger.cancel(document_id, reason, self._clock())
        if entry is not None:
            await self._progress.update(document_id, entry.state, reason)
        return entry

    async def delete(self, document_id: str) -> LedgerEntry | None:
        """Cancel *document_id*, then remove its index entries and its blob.

        The ledger entry is kept, dead-lettered with reason ``deleted``, so
        the document's history stays queryable.  An index write already in
        flight when the claim is revoked can still land after the delete;
        search drops it because the document is dead-lettered.  Returns
        ``None`` for unknown ids.
        """
        entry = await self.cancel(document_id, reason="deleted")
        if entry is None:
            return None
        removed = await self._index_writer.delete_document(document_id)
        blob_removed = await self._blob_store.delete(document_id)
        self._logger.info(
            "document_deleted",
            document_id=document_id,
            removed={backend.value: count for backend, count in removed.items()},
            blob_removed=blob_removed,
        )
        return entry

    async def recover(self, worker_prefix: str | None = None) -> int:
        """Release claims left behind by a previous process.

        Expired leases are always released.  Claims whose worker id starts
        with *worker_prefix* are released even with time left on the lease,
        so this must run before any worker using that prefix starts claiming.
        """
        released = await self._ledger.release_orphaned_claims(self._clock(), worker_prefix)
        self._logger.info("recovery_complete", released_claims=released, worker_prefix=worker_prefix)
        return released

    async def get_status(self, document_id: str) -> LedgerEntry | None:
        return await self._ledger.get(document_id)

    # ------------------------------------------------------------------
    # Claim / advance
    # ------------------------------------------------------------------

    async def claim_next(self, worker_id: str) -> Claim | None:
        return await self._ledger.claim_next(worker_id, self._clock(), self._policy.lease_seconds)

    async def process(self, claim: Claim) -> LedgerEntry | None:
        """Advance *claim* until the document leaves this worker's hands."""
        current: Claim | None = claim
        while current is not None:
            current = await self.advance(current)
        return await self._ledger.get(claim.document_id)

    async def advance(self, claim: Claim) -> Claim | None:
        """Run the claimed stage once and record its outcome.

        Returns
        -------
        Claim | None
            The claim on the next stage when this one succeeded and more
            work remains; ``None`` once the document is released (indexed,
            failed, dead-lettered, degraded, or no longer ours).
        """
        with bound_context(document_id=claim.document_id, stage=claim.stage.value):
            entry = await self._ledger.get(claim.document_id)
            if entry is None or entry.claim_token != claim.claim_token or entry.state is not claim.state:
                self._logger.info("claim_not_held", worker_id=claim.worker_id)
                return None

            await self._progress.update(claim.document_id, claim.state, f"{claim.stage.value} started")
            try:
                await self._run_stage(claim, entry)
                return await self._commit_stage(claim)
            except ClaimLostError:
                self._logger.info("stage_result_discarded", worker_id=claim.worker_id)
                return None
            except TransientError as exc:
                await self._on_transient(claim, entry, exc)
            except PermanentError as exc:
                self._logger.warning(
                    "permanent_stage_failure", reason=exc.reason_code, error=str(exc)
                )
                await self._dead_letter(
                    claim, exc.reason_code, str(exc), review_required=exc.review_required
                )
            except LexIndexError as exc:
                self._logger.error("stage_failed", reason=exc.reason_code, error=str(exc))
                await self._dead_letter(claim, exc.reason_code, str(exc))
            except Exception as exc:
                self._logger.exception("stage_crashed", error=str(exc))
                await self._dead_letter(claim, _INTERNAL_ERROR, f"{type(exc).__name__}: {exc}")
            return None

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run_stage(self, claim: Claim, entry: LedgerEntry) -> None:
        if claim.stage is PipelineStage.OCR:
            await self._run_ocr(claim, entry)
        elif claim.stage is PipelineStage.CHUNK:
            await self._run_chunk(claim)
        elif claim.stage is PipelineStage.EMBED:
            await self._run_embed(claim)
        else:
            await self._run_index(claim, entry)

    async def _run_ocr(self, claim: Claim, entry: LedgerEntry) -> None:
        data = await self._blob_store.get(claim.document_id)
        extracted = await self._ocr_service.extract(data, entry.content_type)
        await self._ledger.save_extracted_text(claim.document_id, claim.claim_token, extracted)

    async def _run_chunk(self, claim: Claim) -> None:
        extracted = await self._ledger.load_extracted_text(claim.document_id)
        if extracted is None:
            raise PipelineError(f"No extracted text stored for {claim.document_id}")
        chunks = self._chunker.chunk(extracted, claim.document_id)
        if not chunks:
            raise EmptyDocumentError("Chunking produced no chunks")
        stored = await self._ledger.save_chunks(claim.document_id, claim.claim_token, chunks)
        self._logger.info("chunks_stored", chunk_count=len(stored))

    async def _run_embed(self, claim: Claim) -> None:
        chunks = await self._load_chunks(claim.document_id)
        lease = self._lease_keeper(claim)

        async def _store(vectors: dict[str, list[float]]) -> None:
            await self._ledger.save_embeddings(claim.document_id, claim.claim_token, vectors)
            await lease.touch()

        embedded = await self._embedding_stage.embed_chunks(chunks, on_batch=_store)
        self._logger.info("chunks_embedded", embedded=embedded, chunk_count=len(chunks))

    async def _run_index(self, claim: Claim, entry: LedgerEntry) -> None:
        chunks = await self._load_chunks(claim.document_id)
        lease = self._lease_keeper(claim)

        async def _record(chunk_id: str, backend: IndexBackend, status: IndexWriteStatus) -> None:
            await self._ledger.record_chunk_write(
                claim.document_id, claim.claim_token, chunk_id, backend, status
            )
            await lease.touch()

        report = await self._index_writer.write(entry, chunks, recorder=_record)
        if not report.complete:
            raise IndexWriteError(
                f"{report.failed_count} chunk writes failed for {claim.document_id}"
            )

    def _lease_keeper(self, claim: Claim) -> _LeaseKeeper:
        return _LeaseKeeper(self._ledger, claim, self._policy.lease_seconds, self._clock)

    async def _load_chunks(self, document_id: str) -> list[Chunk]:
        chunks = await self._ledger.load_chunks(document_id)
        if not chunks:
            raise PipelineError(f"No chunks stored for {document_id}")
        return chunks

    # ------------------------------------------------------------------
    # Outcome recording
    # ------------------------------------------------------------------

    async def _commit_stage(self, claim: Claim) -> Claim | None:
        done = done_state(claim.stage)
        final = claim.stage is PipelineStage.INDEX
        await self._ledger.record_transition(
            Transition(
                document_id=claim.document_id,
                from_state=claim.state,
                to_state=done,
                claim_token=claim.claim_token,
                release_claim=final,
            ),
            self._clock(),
        )
        await self._progress.update(claim.document_id, done, f"{claim.stage.value} complete")
        if final:
            self._logger.info("document_indexed")
            return None

        stage = next_stage(done)
        state = running_state(stage)
        lease_expires_at = self._clock() + timedelta(seconds=self._policy.lease_seconds)
        await self._ledger.record_transition(
            Transition(
                document_id=claim.document_id,
                from_state=done,
                to_state=state,
                claim_token=claim.claim_token,
                lease_expires_at=lease_expires_at,
            ),
            self._clock(),
        )
        return claim.model_copy(
            update={"stage": stage, "state": state, "lease_expires_at": lease_expires_at}
        )

    async def _on_transient(self, claim: Claim, entry: LedgerEntry, exc: TransientError) -> None:
        retry_count = entry.retry_count + 1
        if retry_count < self._policy.max_attempts:
            delay = compute_backoff_delay(
                retry_count - 1,
                self._policy.backoff_base_seconds,
                self._policy.backoff_cap_seconds,
            )
            now = self._clock()
            self._logger.warning(
                "stage_failed_will_retry",
                error=str(exc),
                retry_count=retry_count,
                delay_seconds=delay,
            )
            await self._record_or_discard(
                Transition(
                    document_id=claim.document_id,
                    from_state=claim.state,
                    to_state=ProcessingState.FAILED,
                    claim_token=claim.claim_token,
                    retry_count=retry_count,
                    failed_stage=claim.stage,
                    next_eligible_at=now + timedelta(seconds=delay),
                    last_error=str(exc),
                ),
                f"retry {retry_count} in {delay:.1f}s: {exc}",
            )
            return

        if claim.stage is PipelineStage.INDEX:
            report = self._report_from_chunks(
                claim.document_id, await self._ledger.load_chunks(claim.document_id)
            )
            if any(report.written.values()):
                await self._degrade(claim, retry_count, report, exc)
                return

        self._logger.error("retries_exhausted", error=str(exc), retry_count=retry_count)
        await self._dead_letter(claim, _RETRIES_EXHAUSTED, str(exc), retry_count=retry_count)

    async def _degrade(
        self,
        claim: Claim,
        retry_count: int,
        report: IndexWriteReport,
        cause: TransientError,
    ) -> None:
        error = ConsistencyError(
            f"Document {claim.document_id} is partially indexed: "
            + ", ".join(f"{len(ids)} {b.value} writes failed" for b, ids in report.failed.items() if ids)
            + f" (last error: {cause})"
        )
        recorded = await self._record_or_discard(
            Transition(
                document_id=claim.document_id,
                from_state=claim.state,
                to_state=ProcessingState.DEGRADED,
                claim_token=claim.claim_token,
                retry_count=retry_count,
                failed_stage=claim.stage,
                last_error=str(error),
            ),
            None,
        )
        if recorded:
            await self._progress.report_partial_index(claim.document_id, error, report)

    async def _dead_letter(
        self,
        claim: Claim,
        reason: str,
        message: str,
        review_required: bool = False,
        retry_count: int | None = None,
    ) -> None:
        await self._record_or_discard(
            Transition(
                document_id=claim.document_id,
                from_state=claim.state,
                to_state=ProcessingState.DEAD_LETTERED,
                claim_token=claim.claim_token,
                retry_count=retry_count,
                failed_stage=claim.stage,
                last_error=message,
                dead_letter_reason=reason,
                review_required=review_required,
            ),
            reason,
        )

    async def _record_or_discard(self, transition: Transition, message: str | None) -> bool:
        """Record a failure transition; a lost claim means someone else owns the outcome."""
        try:
            await self._ledger.record_transition(transition, self._clock())
        except ClaimLostError:
            self._logger.info("failure_transition_discarded", to_state=transition.to_state.value)
            return False
        if message is not None:
            await self._progress.update(transition.document_id, transition.to_state, message)
        return True

    @staticmethod
    def _report_from_chunks(document_id: str, chunks: list[Chunk]) -> IndexWriteReport:
        written: dict[IndexBackend, list[str]] = {}
        failed: dict[IndexBackend, list[str]] = {}
        for backend in IndexBackend:
            written[backend] = [
                c.chunk_id for c in chunks if c.status_for(backend) is IndexWriteStatus.WRITTEN
            ]
            failed[backend] = [
                c.chunk_id for c in chunks if c.status_for(backend) is not IndexWriteStatus.WRITTEN
            ]
        return IndexWriteReport(document_id=document_id, written=written, failed=failed)
