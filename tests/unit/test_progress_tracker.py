"""Unit tests for ProgressTracker listeners and partial-index alerts."""

from __future__ import annotations

import pytest

from src.models.pipeline import ProcessingState
from src.models.rag import IndexBackend, IndexWriteReport
from src.pipeline.progress_tracker import ProgressTracker
from src.utils.errors import ConsistencyError


def _report(document_id: str = "doc-1") -> IndexWriteReport:
    return IndexWriteReport(
        document_id=document_id,
        written={IndexBackend.VECTOR: ["c1", "c2"], IndexBackend.FULLTEXT: ["c1"]},
        failed={IndexBackend.FULLTEXT: ["c2"]},
    )


class TestListeners:
    @pytest.mark.asyncio
    async def test_sync_and_async_listeners_are_notified(self) -> None:
        tracker = ProgressTracker()
        seen: list[tuple] = []

        def sync_listener(document_id, state, message):
            seen.append(("sync", document_id, state))

        async def async_listener(document_id, state, message):
            seen.append(("async", document_id, state))

        tracker.register_listener(sync_listener)
        tracker.register_listener(async_listener)

        await tracker.update("doc-1", ProcessingState.INDEXED)
        await tracker.update("doc-2", ProcessingState.CHUNKING, "splitting")

        assert seen == [
            ("sync", "doc-1", ProcessingState.INDEXED),
            ("async", "doc-1", ProcessingState.INDEXED),
            ("sync", "doc-2", ProcessingState.CHUNKING),
            ("async", "doc-2", ProcessingState.CHUNKING),
        ]

    @pytest.mark.asyncio
    async def test_duplicate_registration_and_unregister(self) -> None:
        tracker = ProgressTracker()
        calls: list[str] = []

        def listener(document_id, state, message):
            calls.append(document_id)

        tracker.register_listener(listener)
        tracker.register_listener(listener)
        await tracker.update("doc-1", ProcessingState.QUEUED)
        tracker.unregister_listener(listener)
        await tracker.update("doc-1", ProcessingState.OCR_RUNNING)

        assert calls == ["doc-1"]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self) -> None:
        tracker = ProgressTracker()
        received: list[str] = []

        def broken(document_id, state, message):
            raise RuntimeError("listener bug")

        def healthy(document_id, state, message):
            received.append(document_id)

        tracker.register_listener(broken)
        tracker.register_listener(healthy)
        await tracker.update("doc-1", ProcessingState.EMBEDDING)

        assert received == ["doc-1"]


class TestPartialIndexAlerts:
    @pytest.mark.asyncio
    async def test_alert_is_kept_and_broadcast(self) -> None:
        tracker = ProgressTracker()
        seen: list[ProcessingState] = []
        tracker.register_listener(lambda doc, state, msg: seen.append(state))

        await tracker.report_partial_index(
            "doc-1", ConsistencyError("fulltext missing 1 chunk"), _report()
        )

        alerts = tracker.get_alerts()
        assert len(alerts) == 1
        assert alerts[0].document_id == "doc-1"
        assert alerts[0].failed_chunks == {"fulltext": 1}
        assert seen == [ProcessingState.DEGRADED]

    @pytest.mark.asyncio
    async def test_only_recent_alerts_are_retained(self) -> None:
        tracker = ProgressTracker(max_alerts=2)

        for i in range(5):
            await tracker.report_partial_index(
                f"doc-{i}", ConsistencyError("partial"), _report(f"doc-{i}")
            )

        assert [a.document_id for a in tracker.get_alerts()] == ["doc-3", "doc-4"]
