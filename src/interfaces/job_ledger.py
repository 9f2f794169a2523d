"""Abstract base class for the durable job ledger.

The ledger is the single source of truth for ingestion progress: one entry
per document (state, retry metadata, claim) plus per-chunk embedding and
per-backend write status.  It must survive a process crash; after a
restart every non-terminal document is claimable again and chunks already
marked ``WRITTEN`` are not written a second time.

Every write that belongs to a stage carries the caller's claim token.  A
token that no longer matches the entry raises
:class:`~src.utils.errors.ClaimLostError`, which is how cancellation and
lease takeover reach in-flight work.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from src.models.document import ExtractedText
from src.models.pipeline import Claim, LedgerEntry, ProcessingState, Transition
from src.models.rag import Chunk, IndexBackend, IndexWriteStatus


# Concrete implementation: SQLiteJobLedger (src/providers/ledger/)
class IJobLedger(ABC):
    """Contract for durable, compare-and-set guarded pipeline state."""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    async def initialize(self) -> None:
        """Create storage structures if they do not exist."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return ``True`` if the backing store answers a trivial query."""

    # ------------------------------------------------------------------
    # Document entries
    # ------------------------------------------------------------------

    @abstractmethod
    async def enqueue(
        self,
        document_id: str,
        blob_ref: str,
        now: datetime,
        original_filename: str = "",
        content_type: str = "application/octet-stream",
        content_hash: str = "",
    ) -> tuple[LedgerEntry, bool]:
        """Insert a ``QUEUED`` entry for *document_id* if none exists.

        An existing entry is returned untouched unless it is
        ``DEAD_LETTERED`` or ``DEGRADED``, in which case it is reset to
        ``QUEUED`` with retry metadata cleared (manual re-enqueue).

        Returns
        -------
        tuple[LedgerEntry, bool]
            The entry and whether this call changed it.
        """

    @abstractmethod
    async def get(self, document_id: str) -> LedgerEntry | None:
        """Return the entry for *document_id*, or ``None``."""

    @abstractmethod
    async def get_many(self, document_ids: list[str]) -> dict[str, LedgerEntry]:
        """Return entries for the given ids, keyed by id; unknown ids are omitted."""

    @abstractmethod
    async def find_by_content_hash(self, content_hash: str) -> LedgerEntry | None:
        """Return the oldest entry whose document has *content_hash*, or ``None``."""

    @abstractmethod
    async def list_entries(
        self,
        state: ProcessingState | None = None,
        limit: int = 100,
    ) -> list[LedgerEntry]:
        """Return entries, newest first, optionally filtered by state."""

    @abstractmethod
    async def count_by_state(self) -> dict[ProcessingState, int]:
        """Return the number of entries in each state that has any."""

    # ------------------------------------------------------------------
    # Claims and transitions
    # ------------------------------------------------------------------

    @abstractmethod
    async def claim_next(
        self,
        worker_id: str,
        now: datetime,
        lease_seconds: float,
    ) -> Claim | None:
        """Atomically claim one eligible document for *worker_id*.

        Eligible: unclaimed entries in ``QUEUED`` or a ``*_DONE`` state,
        ``FAILED`` entries whose ``next_eligible_at`` has passed, and any
        non-terminal entry whose lease expired.  The entry moves into the
        running state of its next stage under a fresh claim token.

        Returns ``None`` when nothing is eligible.  No two callers ever
        receive a claim on the same document at the same time.
        """

    @abstractmethod
    async def record_transition(self, transition: Transition, now: datetime) -> LedgerEntry:
        """Apply *transition* as a compare-and-set on state and claim token.

        Raises
        ------
        src.utils.errors.ClaimLostError
            If the entry is no longer in ``transition.from_state`` or no
            longer held under ``transition.claim_token``.
        src.utils.errors.PipelineError
            If the transition is not permitted by the state machine.
        """

    @abstractmethod
    async def renew_lease(
        self,
        document_id: str,
        claim_token: str,
        lease_expires_at: datetime,
    ) -> None:
        """Extend the lease of a held claim.

        Raises
        ------
        src.utils.errors.ClaimLostError
            If the claim is no longer held.
        """

    @abstractmethod
    async def cancel(self, document_id: str, reason: str, now: datetime) -> LedgerEntry | None:
        """Dead-letter *document_id* and revoke any claim on it.

        Returns ``None`` for unknown ids.  Already dead-lettered entries are
        returned unchanged.
        """

    @abstractmethod
    async def release_orphaned_claims(self, now: datetime, worker_prefix: str | None = None) -> int:
        """Drop orphaned claims on non-terminal entries; return how many were dropped.

        A claim is orphaned when its lease has expired, or when its
        ``claimed_by`` starts with *worker_prefix*.  Start-up passes this
        process's worker id prefix, before any of its workers run, so
        documents held by this host's crashed previous run are claimable
        immediately.  Live claims held by other processes are never touched.
        """

    # ------------------------------------------------------------------
    # Stage artefacts
    # ------------------------------------------------------------------

    @abstractmethod
    async def save_extracted_text(
        self,
        document_id: str,
        claim_token: str,
        extracted: ExtractedText,
    ) -> None:
        """Persist OCR output for *document_id*, replacing any previous output."""

    @abstractmethod
    async def load_extracted_text(self, document_id: str) -> ExtractedText | None:
        """Return the persisted OCR output, or ``None``."""

    @abstractmethod
    async def save_chunks(
        self,
        document_id: str,
        claim_token: str,
        chunks: list[Chunk],
    ) -> list[Chunk]:
        """Persist *chunks*, keeping embeddings and statuses of ids already stored.

        Chunks of *document_id* whose ids are not in *chunks* are removed.

        Returns
        -------
        list[Chunk]
            The stored chunks in ordinal order, with their current status.
        """

    @abstractmethod
    async def load_chunks(self, document_id: str) -> list[Chunk]:
        """Return the chunks of *document_id* in ordinal order."""

    @abstractmethod
    async def get_chunks(self, chunk_ids: list[str]) -> dict[str, Chunk]:
        """Return chunks by id; unknown ids are omitted."""

    @abstractmethod
    async def save_embeddings(
        self,
        document_id: str,
        claim_token: str,
        vectors: dict[str, list[float]],
    ) -> None:
        """Store vectors for the given chunk ids of *document_id*."""

    @abstractmethod
    async def record_chunk_write(
        self,
        document_id: str,
        claim_token: str,
        chunk_id: str,
        backend: IndexBackend,
        status: IndexWriteStatus,
    ) -> None:
        """Record the outcome of one index write for one chunk."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"sqlite_ledger"``."""
