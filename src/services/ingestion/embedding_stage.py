"""EMBED stage: turn chunk text into vectors in bounded batches.

Chunks that already carry an embedding (from an earlier, interrupted
attempt) are skipped, so a retry only pays for the batches that never
reached the ledger.  Each batch is handed to ``on_batch`` as soon as it
returns, which is how the orchestrator persists progress between batches.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.rag import Chunk
from src.utils.concurrency import batched
from src.utils.errors import EmbeddingDimensionError, EmbeddingServiceError

logger = structlog.get_logger(logger_name=__name__)

BatchCallback = Callable[[dict[str, list[float]]], Awaitable[None]]


class EmbeddingStage:
    """Embeds chunks through an :class:`IEmbeddingProvider`.

    Parameters
    ----------
    provider:
        The embedding backend.
    batch_size:
        Maximum texts per provider call.
    timeout_seconds:
        Budget for a single provider call.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        batch_size: int = 64,
        timeout_seconds: float = 60.0,
    ) -> None:
        self._provider = provider
        self._batch_size = batch_size
        self._timeout = timeout_seconds

    @property
    def provider(self) -> IEmbeddingProvider:
        return self._provider

    async def embed_chunks(self, chunks: list[Chunk], on_batch: BatchCallback) -> int:
        """Embed every chunk without a vector, in ordinal order.

        Returns
        -------
        int
            Number of chunks embedded by this call.

        Raises
        ------
        EmbeddingServiceError
            On timeout, provider failure, or a response with the wrong
            number of vectors.
        EmbeddingDimensionError
            When the vectors do not have the provider's configured dimension.
        InputTooLargeError
            Propagated from the provider.
        """
        pending = sorted((c for c in chunks if c.embedding is None), key=lambda c: c.ordinal)
        if not pending:
            return 0

        provider_name = self._provider.get_provider_name()
        dimension = self._provider.get_dimension()
        embedded = 0
        for batch in batched(pending, self._batch_size):
            try:
                vectors = await asyncio.wait_for(
                    self._provider.embed([c.text for c in batch]), timeout=self._timeout
                )
            except asyncio.TimeoutError as exc:
                raise EmbeddingServiceError(
                    f"Embedding batch of {len(batch)} timed out after {self._timeout}s",
                    provider_name=provider_name,
                ) from exc

            if len(vectors) != len(batch):
                raise EmbeddingServiceError(
                    f"Expected {len(batch)} vectors, got {len(vectors)}",
                    provider_name=provider_name,
                )
            bad = [i for i, vector in enumerate(vectors) if len(vector) != dimension]
            if bad:
                raise EmbeddingDimensionError(
                    f"{len(bad)} vectors do not have dimension {dimension}",
                    provider_name=provider_name,
                )

            await on_batch(
                {chunk.chunk_id: vector for chunk, vector in zip(batch, vectors, strict=True)}
            )
            embedded += len(batch)
            logger.debug(
                "embedding_batch_stored",
                document_id=batch[0].document_id,
                batch_size=len(batch),
                embedded=embedded,
                remaining=len(pending) - embedded,
            )

        return embedded
