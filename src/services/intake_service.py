"""Upload intake: store raw bytes and put the document on the queue.

Identical uploads are deduplicated by SHA-256 content hash: a second
upload of the same bytes returns the existing document instead of storing
and processing it again.
"""

from __future__ import annotations

import hashlib

import structlog

from src.interfaces.blob_store import IBlobStore
from src.interfaces.job_ledger import IJobLedger
from src.models.pipeline import LedgerEntry
from src.pipeline.orchestrator import IngestionOrchestrator
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)


class IntakeService:
    """Accepts uploads for the ingestion pipeline."""

    def __init__(
        self,
        blob_store: IBlobStore,
        ledger: IJobLedger,
        orchestrator: IngestionOrchestrator,
    ) -> None:
        self._blob_store = blob_store
        self._ledger = ledger
        self._orchestrator = orchestrator

    async def submit(
        self,
        data: bytes,
        filename: str,
        content_type: str | None = None,
        dedupe: bool = True,
    ) -> tuple[LedgerEntry, bool]:
        """Store *data* and enqueue it.

        Returns
        -------
        tuple[LedgerEntry, bool]
            The ledger entry and ``True`` if a new document was created,
            ``False`` if an existing one with the same content was reused.
        """
        if dedupe:
            existing = await self._ledger.find_by_content_hash(hashlib.sha256(data).hexdigest())
            if existing is not None:
                logger.info(
                    "duplicate_upload",
                    document_id=existing.document_id,
                    filename=filename,
                    state=existing.state.value,
                )
                return existing, False

        document_id = await self._blob_store.put(data, filename=filename, content_type=content_type)
        entry = await self._orchestrator.enqueue(document_id)
        return entry, True
