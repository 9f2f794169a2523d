"""Ingestion state models for the lexindex pipeline.

Defines Pydantic v2 models for the per-document state machine, the ledger
row that persists it, and the claim a worker holds while it advances a
document.  All models use frozen config; the ledger returns a fresh
:class:`LedgerEntry` after every transition instead of mutating one.

Architecture note:
    The ledger (src/providers/ledger/) is the single source of truth.  The
    orchestrator (src/pipeline/orchestrator.py) never keeps state of its
    own between stages; every decision is taken from the latest entry and
    every outcome is written back as a :class:`Transition`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# ProcessingState -- the per-document state machine.
# ---------------------------------------------------------------------------
class ProcessingState(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """Processing states of a document.

    Happy path:
        QUEUED → OCR_RUNNING → OCR_DONE → CHUNKING → CHUNKING_DONE →
        EMBEDDING → EMBEDDING_DONE → INDEXING → INDEXED

    Off the happy path:
        FAILED         -- a stage hit a transient error; retried after backoff
        DEAD_LETTERED  -- permanent error, retries exhausted, or cancelled
        DEGRADED       -- index retries exhausted after a partial write; the
                          document stays searchable through the backend
                          that succeeded
    """

    QUEUED = "QUEUED"
    OCR_RUNNING = "OCR_RUNNING"
    OCR_DONE = "OCR_DONE"
    CHUNKING = "CHUNKING"
    CHUNKING_DONE = "CHUNKING_DONE"
    EMBEDDING = "EMBEDDING"
    EMBEDDING_DONE = "EMBEDDING_DONE"
    INDEXING = "INDEXING"
    INDEXED = "INDEXED"
    FAILED = "FAILED"
    DEAD_LETTERED = "DEAD_LETTERED"
    DEGRADED = "DEGRADED"


class PipelineStage(str, Enum):  # noqa: UP042
    """The four units of work a document goes through, in order."""

    OCR = "OCR"
    CHUNK = "CHUNK"
    EMBED = "EMBED"
    INDEX = "INDEX"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# LedgerEntry -- one persisted row per document.
# ---------------------------------------------------------------------------
class LedgerEntry(BaseModel):
    """Durable processing record for one uploaded document."""

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(description="Blob store id of the document.")
    blob_ref: str = Field(description="Opaque reference used to fetch the raw bytes.")
    original_filename: str = ""
    content_type: str = "application/octet-stream"
    content_hash: str = Field(default="", description="SHA-256 hex digest of the raw bytes.")
    state: ProcessingState = ProcessingState.QUEUED
    # Cumulative count of transient failures across all stages.
    retry_count: int = Field(default=0, ge=0)
    # Number of times each stage has been entered (claims and re-claims).
    stage_attempts: dict[PipelineStage, int] = Field(default_factory=dict)
    # Stage to resume when the entry is in FAILED.
    failed_stage: PipelineStage | None = None
    next_eligible_at: datetime | None = None
    claim_token: str | None = None
    claimed_by: str | None = None
    lease_expires_at: datetime | None = None
    last_error: str | None = None
    dead_letter_reason: str | None = None
    review_required: bool = False
    # Bumped on every transition; used as the compare-and-set guard.
    version: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def attempts_for(self, stage: PipelineStage) -> int:
        return self.stage_attempts.get(stage, 0)


# ---------------------------------------------------------------------------
# Claim -- what a worker holds while it owns a document.
# ---------------------------------------------------------------------------
class Claim(BaseModel):
    """An exclusive, leased right to advance one document.

    ``state`` is always the running state of ``stage``.  Every ledger write
    the holder makes carries ``claim_token``; once the token stops matching
    (cancellation, lease takeover) the writes are rejected.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    claim_token: str
    worker_id: str
    stage: PipelineStage
    state: ProcessingState
    lease_expires_at: datetime


# ---------------------------------------------------------------------------
# Transition -- the only way ledger state changes.
# ---------------------------------------------------------------------------
class Transition(BaseModel):
    """A requested compare-and-set on a ledger entry's state.

    The ledger applies it only when the row is still in ``from_state`` and
    still held under ``claim_token``.  Optional fields left as ``None`` keep
    their current value unless ``release_claim`` / the target state clears
    them.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    from_state: ProcessingState
    to_state: ProcessingState
    claim_token: str | None = None
    retry_count: int | None = None
    failed_stage: PipelineStage | None = None
    next_eligible_at: datetime | None = None
    lease_expires_at: datetime | None = None
    release_claim: bool = False
    last_error: str | None = None
    dead_letter_reason: str | None = None
    review_required: bool | None = None
