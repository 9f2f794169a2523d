"""Hybrid retrieval over the dual index.

Queries the vector index and the full-text index concurrently and fuses
the two rankings with Reciprocal Rank Fusion (RRF):

    score(chunk) = Σ over backends of 1 / (k + rank_in_backend)

RRF needs no score normalisation, so cosine similarities and bm25 scores
can be combined directly.  Either backend failing degrades the search to
the other one instead of failing the query.

Hits are resolved against the job ledger rather than trusted as-is:

* chunks of ``DEAD_LETTERED`` or unknown documents are dropped (covers
  cancelled uploads and stale index entries);
* chunks of ``DEGRADED`` documents are kept but flagged, since the
  document is only partially searchable.
"""

from __future__ import annotations

import asyncio

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.fulltext_index_provider import IFullTextIndexProvider
from src.interfaces.job_ledger import IJobLedger
from src.interfaces.vector_index_provider import IVectorIndexProvider
from src.models.pipeline import ProcessingState
from src.models.rag import IndexHit, SearchHit
from src.utils.errors import LexIndexError, SearchError
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

_DEFAULT_RRF_K = 60

# Each backend is asked for more candidates than requested so that fusion
# and ledger filtering still leave top_k results.
_CANDIDATE_MULTIPLIER = 3


def reciprocal_rank_fusion(
    rankings: dict[str, list[IndexHit]],
    k: int = _DEFAULT_RRF_K,
) -> list[tuple[str, float, dict[str, int]]]:
    """Fuse ranked hit lists into one ranking.

    Returns
    -------
    list[tuple[str, float, dict[str, int]]]
        ``(chunk_id, fused_score, {backend: 1-based rank})`` sorted by
        score, best first.  Ties break on chunk id for determinism.
    """
    scores: dict[str, float] = {}
    ranks: dict[str, dict[str, int]] = {}
    for backend, hits in rankings.items():
        seen: set[str] = set()
        for rank, hit in enumerate(hits, start=1):
            if hit.chunk_id in seen:
                continue
            seen.add(hit.chunk_id)
            scores[hit.chunk_id] = scores.get(hit.chunk_id, 0.0) + 1.0 / (k + rank)
            ranks.setdefault(hit.chunk_id, {})[backend] = rank
    fused = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
    return [(chunk_id, score, ranks[chunk_id]) for chunk_id, score in fused]


class SearchService:
    """Answers RAG retrieval queries against both indexes.

    Parameters
    ----------
    ledger:
        Source of chunk text and document state.
    embedding_provider:
        Embeds the query for the vector index.
    vector_index, fulltext_index:
        The two backends.
    rrf_k:
        RRF damping constant.
    """

    def __init__(
        self,
        ledger: IJobLedger,
        embedding_provider: IEmbeddingProvider,
        vector_index: IVectorIndexProvider,
        fulltext_index: IFullTextIndexProvider,
        rrf_k: int = _DEFAULT_RRF_K,
    ) -> None:
        self._ledger = ledger
        self._embedding_provider = embedding_provider
        self._vector_index = vector_index
        self._fulltext_index = fulltext_index
        self._rrf_k = rrf_k

    async def search(self, query: str, top_k: int = 10) -> list[SearchHit]:
        """Return up to *top_k* fused hits for *query*.

        Raises
        ------
        SearchError
            Only when both backends fail.
        """
        if not query.strip() or top_k < 1:
            return []

        candidates = top_k * _CANDIDATE_MULTIPLIER
        vector_hits, fulltext_hits = await asyncio.gather(
            self._query_vector(query, candidates),
            self._query_fulltext(query, candidates),
        )
        if vector_hits is None and fulltext_hits is None:
            raise SearchError("Both index backends failed")

        rankings: dict[str, list[IndexHit]] = {}
        if vector_hits is not None:
            rankings["vector"] = vector_hits
        if fulltext_hits is not None:
            rankings["fulltext"] = fulltext_hits
        fused = reciprocal_rank_fusion(rankings, k=self._rrf_k)

        chunks = await self._ledger.get_chunks([chunk_id for chunk_id, _, _ in fused])
        entries = await self._ledger.get_many(list({c.document_id for c in chunks.values()}))

        results: list[SearchHit] = []
        dropped = 0
        for chunk_id, score, ranks in fused:
            chunk = chunks.get(chunk_id)
            entry = entries.get(chunk.document_id) if chunk else None
            if chunk is None or entry is None or entry.state is ProcessingState.DEAD_LETTERED:
                dropped += 1
                continue
            results.append(
                SearchHit(
                    chunk_id=chunk_id,
                    document_id=chunk.document_id,
                    ordinal=chunk.ordinal,
                    text=chunk.text,
                    page_start=chunk.page_start,
                    page_end=chunk.page_end,
                    original_filename=entry.original_filename,
                    score=score,
                    vector_rank=ranks.get("vector"),
                    fulltext_rank=ranks.get("fulltext"),
                    degraded=entry.state is ProcessingState.DEGRADED,
                )
            )
            if len(results) >= top_k:
                break

        logger.info(
            "search_complete",
            query_length=len(query),
            vector_hits=len(vector_hits) if vector_hits is not None else None,
            fulltext_hits=len(fulltext_hits) if fulltext_hits is not None else None,
            dropped=dropped,
            results_count=len(results),
        )
        return results

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _query_vector(self, query: str, top_k: int) -> list[IndexHit] | None:
        try:
            vector = await self._embedding_provider.embed_single(query)
            return await self._vector_index.query(vector, top_k=top_k)
        except LexIndexError as exc:
            logger.warning("vector_search_failed", error=str(exc))
            return None

    async def _query_fulltext(self, query: str, top_k: int) -> list[IndexHit] | None:
        try:
            return await self._fulltext_index.query(query, top_k=top_k)
        except SearchError as exc:
            logger.warning("fulltext_search_failed", error=str(exc))
            return None
