"""Fixed-size pool of ingestion workers.

Each worker is an independent asyncio task running the same loop:

    claim_next → process (advance until released) → repeat

There is no lock over the pipeline as a whole; workers only contend on
individual ledger rows, and the ledger guarantees no two of them hold the
same document at once.  An idle worker sleeps for ``poll_interval_seconds``
before asking for work again.
"""

from __future__ import annotations

import asyncio
import contextlib

from src.pipeline.orchestrator import IngestionOrchestrator
from src.utils.logging import bound_context, get_logger


class WorkerPool:
    """Runs ``worker_count`` claim→advance loops against one orchestrator.

    Parameters
    ----------
    orchestrator:
        Shared orchestrator; it holds no per-document state.
    worker_count:
        Number of concurrent workers.
    poll_interval_seconds:
        Idle sleep between empty claim attempts.
    name:
        Prefix for worker ids, e.g. ``"worker"`` → ``worker-0``.
    """

    def __init__(
        self,
        orchestrator: IngestionOrchestrator,
        worker_count: int = 4,
        poll_interval_seconds: float = 2.0,
        name: str = "worker",
    ) -> None:
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")
        self._orchestrator = orchestrator
        self._worker_count = worker_count
        self._poll_interval = poll_interval_seconds
        self._name = name
        self._stop_event = asyncio.Event()
        self._processed = 0
        self._logger = get_logger(__name__)

    @property
    def name(self) -> str:
        return self._name

    @property
    def worker_prefix(self) -> str:
        """Prefix shared by the ids of every worker in this pool."""
        return f"{self._name}-"

    @property
    def processed(self) -> int:
        """Number of claims taken to completion (any outcome) so far."""
        return self._processed

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Run all workers until :meth:`stop` is called or *stop_event* is set."""
        if stop_event is not None:
            self._stop_event = stop_event
        self._logger.info("worker_pool_started", worker_count=self._worker_count)
        await asyncio.gather(
            *(self._worker_loop(f"{self._name}-{i}", until_idle=False) for i in range(self._worker_count))
        )
        self._logger.info("worker_pool_stopped", processed=self._processed)

    async def run_until_idle(self) -> int:
        """Run workers until none of them can claim anything; return claims processed.

        Documents waiting out a backoff delay are not waited for.
        """
        before = self._processed
        await asyncio.gather(
            *(self._worker_loop(f"{self._name}-{i}", until_idle=True) for i in range(self._worker_count))
        )
        return self._processed - before

    def stop(self) -> None:
        """Ask every worker to exit after its current claim."""
        self._stop_event.set()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _worker_loop(self, worker_id: str, until_idle: bool) -> None:
        with bound_context(worker_id=worker_id):
            while not self._stop_event.is_set():
                try:
                    claim = await self._orchestrator.claim_next(worker_id)
                    if claim is None:
                        if until_idle:
                            return
                        await self._idle()
                        continue
                    await self._orchestrator.process(claim)
                    self._processed += 1
                except Exception as exc:
                    # Keeps the worker alive; the document stays claimable
                    # once its lease expires.
                    self._logger.exception("worker_loop_error", error=str(exc))
                    await self._idle()

    async def _idle(self) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval)
