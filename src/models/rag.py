"""Chunk and retrieval models for the dual index.

A :class:`Chunk` is the unit of embedding and indexing.  Its text and
offsets are fixed by the chunker; the embedding and the two per-backend
write statuses are filled in later by the embedding and index stages, and
only ever through the job ledger.

Retrieval overview:
    1. CHUNKING: extracted text is split into overlapping, paragraph-aligned
       chunks with deterministic ids.
    2. EMBEDDING: each chunk's text becomes a fixed-dimension vector.
    3. INDEXING: the vector goes to the vector index and the text goes to
       the full-text index, both keyed by chunk id.
    4. SEARCH: both indexes are queried and their rankings fused (see
       src/services/search_service.py).
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class IndexBackend(str, Enum):  # noqa: UP042
    """The two independently failing retrieval backends."""

    VECTOR = "vector"
    FULLTEXT = "fulltext"


class IndexWriteStatus(str, Enum):  # noqa: UP042
    """Write status of one chunk in one backend."""

    PENDING = "PENDING"
    WRITTEN = "WRITTEN"
    FAILED = "FAILED"


# ---------------------------------------------------------------------------
# Chunk -- the fundamental unit of the index.
# ---------------------------------------------------------------------------
class Chunk(BaseModel):
    """A bounded segment of a document's extracted text."""

    model_config = ConfigDict(frozen=True)

    # Deterministic UUIDv5; re-chunking identical text yields the same id.
    chunk_id: str = Field(description="Deterministic identifier for this chunk.")
    document_id: str = Field(description="Id of the parent document.")
    ordinal: int = Field(ge=0, description="Zero-based position within the document.")
    # Half-open span [char_start, char_end) in the document's extracted text.
    char_start: int = Field(ge=0)
    char_end: int = Field(ge=0)
    page_start: int = Field(default=1, ge=1)
    page_end: int = Field(default=1, ge=1)
    text: str
    embedding: list[float] | None = Field(
        default=None, description="Vector for this chunk; None until embedded."
    )
    vector_status: IndexWriteStatus = IndexWriteStatus.PENDING
    fulltext_status: IndexWriteStatus = IndexWriteStatus.PENDING

    def status_for(self, backend: IndexBackend) -> IndexWriteStatus:
        if backend is IndexBackend.VECTOR:
            return self.vector_status
        return self.fulltext_status

    def index_metadata(self, original_filename: str = "") -> dict[str, str | int]:
        """Metadata stored alongside the chunk in both index backends."""
        return {
            "document_id": self.document_id,
            "ordinal": self.ordinal,
            "page_start": self.page_start,
            "page_end": self.page_end,
            "filename": original_filename,
        }


# ---------------------------------------------------------------------------
# Index write / query results
# ---------------------------------------------------------------------------
class IndexHit(BaseModel):
    """One ranked result from a single index backend."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    score: float
    document_id: str | None = None


class IndexWriteReport(BaseModel):
    """Outcome of one dual-write pass over a document's chunks."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    written: dict[IndexBackend, list[str]] = Field(default_factory=dict)
    failed: dict[IndexBackend, list[str]] = Field(default_factory=dict)
    # Chunks skipped because the ledger already had them as WRITTEN.
    skipped: dict[IndexBackend, list[str]] = Field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not any(self.failed.values())

    @property
    def failed_count(self) -> int:
        return sum(len(ids) for ids in self.failed.values())


class SearchHit(BaseModel):
    """A fused search result returned to RAG callers."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    document_id: str
    ordinal: int
    text: str
    page_start: int = 1
    page_end: int = 1
    original_filename: str = ""
    score: float = Field(description="Reciprocal-rank-fusion score; higher is better.")
    vector_rank: int | None = None
    fulltext_rank: int | None = None
    # True when the parent document is only partially indexed.
    degraded: bool = False
