"""lexindex domain models — re-exports all public model classes.

The models are organized by concern:
    - document.py   — stored blobs and OCR output (pages with offsets)
    - pipeline.py   — processing states, ledger entries, claims, transitions
    - rag.py        — chunks, index write statuses, search hits
    - health.py     — component health reports
"""

from __future__ import annotations

from src.models.document import PAGE_SEPARATOR, BlobInfo, ExtractedText, PageText
from src.models.health import ComponentHealth, HealthReport
from src.models.pipeline import (
    Claim,
    LedgerEntry,
    PipelineStage,
    ProcessingState,
    Transition,
)
from src.models.rag import (
    Chunk,
    IndexBackend,
    IndexHit,
    IndexWriteReport,
    IndexWriteStatus,
    SearchHit,
)

__all__ = [
    "PAGE_SEPARATOR",
    "BlobInfo",
    "Chunk",
    "Claim",
    "ComponentHealth",
    "ExtractedText",
    "HealthReport",
    "IndexBackend",
    "IndexHit",
    "IndexWriteReport",
    "IndexWriteStatus",
    "LedgerEntry",
    "PageText",
    "PipelineStage",
    "ProcessingState",
    "SearchHit",
    "Transition",
]
