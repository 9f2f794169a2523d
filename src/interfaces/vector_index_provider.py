"""Abstract base class for vector-similarity index providers.

Defines the contract for storing chunk vectors keyed by chunk id and
searching them by similarity.  Implementations may wrap ChromaDB, Qdrant,
or any other vector database.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.rag import IndexHit


# Concrete implementation: ChromaDBVectorIndex (src/providers/vector_index/)
class IVectorIndexProvider(ABC):
    """Contract for the vector half of the dual index.

    :meth:`upsert` must be idempotent: writing the same chunk id and payload
    any number of times leaves the index as if it had been written once.
    """

    @abstractmethod
    async def upsert(
        self,
        chunk_id: str,
        vector: list[float],
        metadata: dict[str, Any],
    ) -> None:
        """Insert or replace the vector stored under *chunk_id*.

        Raises
        ------
        src.utils.errors.IndexWriteError
            If the write fails for any reason.
        """

    @abstractmethod
    async def query(self, vector: list[float], top_k: int = 10) -> list[IndexHit]:
        """Return up to *top_k* chunk ids ranked by similarity (best first).

        Raises
        ------
        src.utils.errors.SearchError
            If the query fails.
        """

    @abstractmethod
    async def delete_by_document(self, document_id: str) -> int:
        """Delete every vector whose metadata names *document_id*; return the count."""

    @abstractmethod
    async def count(self) -> int:
        """Return the number of vectors stored."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the index can be reached."""
