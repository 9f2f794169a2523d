"""Unit tests for IntakeService."""

from __future__ import annotations

import pytest

from src.models.pipeline import ProcessingState
from src.services.intake_service import IntakeService


@pytest.fixture
def intake_service(blob_store, ledger, orchestrator) -> IntakeService:
    return IntakeService(blob_store=blob_store, ledger=ledger, orchestrator=orchestrator)


class TestIntakeService:
    @pytest.mark.asyncio
    async def test_submit_stores_and_queues(self, intake_service, blob_store) -> None:
        entry, created = await intake_service.submit(b"Deed of trust", filename="deed.txt")

        assert created is True
        assert entry.state is ProcessingState.QUEUED
        assert entry.original_filename == "deed.txt"
        assert entry.content_type == "text/plain"
        assert await blob_store.get(entry.document_id) == b"Deed of trust"

    @pytest.mark.asyncio
    async def test_duplicate_content_reuses_document(self, intake_service) -> None:
        first, _ = await intake_service.submit(b"Deed of trust", filename="deed.txt")
        second, created = await intake_service.submit(b"Deed of trust", filename="copy.txt")

        assert created is False
        assert second.document_id == first.document_id

    @pytest.mark.asyncio
    async def test_dedupe_can_be_disabled(self, intake_service) -> None:
        first, _ = await intake_service.submit(b"Deed of trust", filename="deed.txt")
        second, created = await intake_service.submit(
            b"Deed of trust", filename="deed.txt", dedupe=False
        )

        assert created is True
        assert second.document_id != first.document_id

    @pytest.mark.asyncio
    async def test_explicit_content_type(self, intake_service) -> None:
        entry, _ = await intake_service.submit(
            b"%PDF-1.7", filename="upload", content_type="application/pdf"
        )
        assert entry.content_type == "application/pdf"
