"""Pipeline progress tracking with callback-based listener notification.

Broadcasts every state change the orchestrator makes to registered
listener callbacks (the CLI's ``run --follow`` printer, alerting hooks).
The tracker keeps no per-document state; the job ledger is the record of
where each document is.

Partial-index alerts get their own channel: when a document ends up
``DEGRADED`` the orchestrator calls :meth:`ProgressTracker.report_partial_index`,
which keeps the alert for operators and logs it at WARNING, so partial
success is never mistaken for full success or full failure.  Only the most
recent ``max_alerts`` alerts are kept in memory.

# ─── HOW PROGRESS TRACKING WORKS ──────────────────────────────────────
#
# This implements the Observer pattern:
#
#   Orchestrator ──update()──→ ProgressTracker ──callback()──→ CLI printer
#                                                ──→ (any other listener)
#
#   - Listener errors are caught and logged; one broken listener can't
#     block the pipeline or the other listeners.
#   - Both sync and async callbacks are supported.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from src.models.pipeline import ProcessingState
from src.models.rag import IndexWriteReport
from src.utils.errors import ConsistencyError
from src.utils.logging import get_logger


@dataclass(frozen=True)
class PartialIndexAlert:
    """A document that is searchable through only one index backend."""

    document_id: str
    reason: str
    failed_chunks: dict[str, int]
    raised_at: datetime


class ProgressTracker:
    """Broadcasts per-document pipeline progress via callbacks."""

    def __init__(self, max_alerts: int = 1000) -> None:
        self._listeners: list[Callable] = []
        self._alerts: deque[PartialIndexAlert] = deque(maxlen=max_alerts)
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(self, document_id: str, state: ProcessingState, message: str = "") -> None:
        """Notify all registered listeners of a state change.

        Parameters
        ----------
        document_id:
            The document that changed.
        state:
            Its new processing state.
        message:
            Human-readable status message.
        """
        self._logger.debug(
            "progress_update",
            document_id=document_id,
            state=state.value,
            message=message,
        )
        await self._notify_listeners(document_id, state, message)

    async def report_partial_index(
        self,
        document_id: str,
        error: ConsistencyError,
        report: IndexWriteReport | None = None,
    ) -> None:
        """Raise a partial-index alert for *document_id*."""
        failed = {b.value: len(ids) for b, ids in report.failed.items()} if report else {}
        alert = PartialIndexAlert(
            document_id=document_id,
            reason=str(error),
            failed_chunks=failed,
            raised_at=datetime.now(tz=timezone.utc),  # noqa: UP017
        )
        self._alerts.append(alert)
        self._logger.warning(
            "partial_index_alert",
            document_id=document_id,
            reason=alert.reason,
            failed_chunks=failed,
        )
        await self.update(document_id, ProcessingState.DEGRADED, alert.reason)

    def get_alerts(self) -> list[PartialIndexAlert]:
        """Return the retained partial-index alerts, oldest first."""
        return list(self._alerts)

    def register_listener(self, callback: Callable) -> None:
        """Register a callback that receives every update.

        Parameters
        ----------
        callback:
            An async or sync callable accepting
            ``(document_id, state, message)``.
        """
        if callback not in self._listeners:
            self._listeners.append(callback)
            self._logger.debug("listener_registered", total_listeners=len(self._listeners))

    def unregister_listener(self, callback: Callable) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(
        self,
        document_id: str,
        state: ProcessingState,
        message: str,
    ) -> None:
        """Invoke every listener; log and skip the ones that raise."""
        for callback in list(self._listeners):
            try:
                result = callback(document_id, state, message)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    document_id=document_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
