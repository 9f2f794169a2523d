"""ChromaDB vector index adapter.

Wraps `chromadb.PersistentClient` to implement :class:`IVectorIndexProvider`.
Uses cosine distance for similarity search.  Fully local and
Python-native, no external service required.

Vectors are always supplied by the embedding stage; the collection never
embeds text itself.  The ChromaDB client is synchronous, so every call
runs in a worker thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

# Disable ChromaDB telemetry completely before importing chromadb.
# A version mismatch between ChromaDB's bundled PostHog client and the
# installed one makes every telemetry call raise.  Three layers:
#   1. ANONYMIZED_TELEMETRY env var, respected by some ChromaDB versions
#   2. posthog.disabled = True, disables the PostHog SDK directly
#   3. Settings(anonymized_telemetry=False), passed to PersistentClient
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog

from src.interfaces.vector_index_provider import IVectorIndexProvider
from src.models.rag import IndexHit
from src.utils.errors import IndexWriteError, SearchError

logger = structlog.get_logger(logger_name=__name__)


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that prevents ChromaDB from loading a model.

    Without it ChromaDB downloads its default ONNX model on collection
    creation even though every upsert carries a pre-computed vector.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "lexindex supplies pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDBVectorIndex(IVectorIndexProvider):
    """Vector index backed by a persistent ChromaDB collection.

    Parameters
    ----------
    persist_directory:
        Directory ChromaDB persists to.
    collection_name:
        Name of the collection holding chunk vectors.
    client:
        Optional pre-built client (tests pass ``chromadb.EphemeralClient()``).
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "lexindex_chunks",
        client: Any | None = None,
    ) -> None:
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        # Collections created by an older ChromaDB with the default
        # embedding function reject a different one; open those as-is.
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )

    async def upsert(
        self,
        chunk_id: str,
        vector: list[float],
        metadata: dict[str, Any],
    ) -> None:
        try:
            await asyncio.to_thread(
                self._collection.upsert,
                ids=[chunk_id],
                embeddings=[vector],
                metadatas=[self._clean_metadata(metadata)],
            )
        except Exception as exc:
            raise IndexWriteError(
                message=f"ChromaDB upsert failed for {chunk_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def query(self, vector: list[float], top_k: int = 10) -> list[IndexHit]:
        try:
            results = await asyncio.to_thread(self._query_sync, vector, top_k)
        except Exception as exc:
            raise SearchError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not results or not results["ids"] or not results["ids"][0]:
            return []

        ids = results["ids"][0]
        metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
        distances = results["distances"][0] if results.get("distances") else [0.0] * len(ids)

        hits = [
            IndexHit(
                chunk_id=chunk_id,
                score=1.0 - distance,
                document_id=(meta or {}).get("document_id"),
            )
            for chunk_id, meta, distance in zip(ids, metadatas, distances, strict=True)
        ]
        logger.debug("chromadb_query", results_count=len(hits), top_k=top_k)
        return hits

    async def delete_by_document(self, document_id: str) -> int:
        """Delete every vector whose metadata names *document_id*."""
        try:
            count = await asyncio.to_thread(self._delete_sync, document_id)
        except Exception as exc:
            raise IndexWriteError(
                message=f"ChromaDB delete_by_document failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_delete_by_document", document_id=document_id, deleted_count=count)
        return count

    async def count(self) -> int:
        return await asyncio.to_thread(self._collection.count)

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB collection is accessible."""
        try:
            self._collection.count()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Private helpers (run in a worker thread)
    # ------------------------------------------------------------------

    def _query_sync(self, vector: list[float], top_k: int) -> dict[str, Any] | None:
        total = self._collection.count()
        if total == 0:
            return None
        return self._collection.query(
            query_embeddings=[vector],
            n_results=min(top_k, total),
            include=["metadatas", "distances"],
        )

    def _delete_sync(self, document_id: str) -> int:
        existing = self._collection.get(where={"document_id": document_id})
        count = len(existing["ids"]) if existing["ids"] else 0
        if count > 0:
            self._collection.delete(where={"document_id": document_id})
        return count

    @staticmethod
    def _clean_metadata(metadata: dict[str, Any]) -> dict[str, str | int | float | bool]:
        """ChromaDB metadata values must be str, int, float or bool; drop ``None``."""
        return {key: value for key, value in metadata.items() if value is not None}
