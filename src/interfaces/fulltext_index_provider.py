"""Abstract base class for full-text search index providers.

Defines the contract for storing chunk text keyed by chunk id and searching
it by keywords.  Implementations may wrap SQLite FTS5, OpenSearch, or any
other full-text engine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.rag import IndexHit


# Concrete implementations: SQLiteFTSIndex, OpenSearchIndex
# Located in: src/providers/fulltext/
class IFullTextIndexProvider(ABC):
    """Contract for the full-text half of the dual index.

    :meth:`upsert` must be idempotent: writing the same chunk id and payload
    any number of times leaves the index as if it had been written once.
    """

    async def initialize(self) -> None:  # noqa: B027
        """Create tables / index mappings if needed.  Default: nothing to do."""

    @abstractmethod
    async def upsert(
        self,
        chunk_id: str,
        text: str,
        metadata: dict[str, Any],
    ) -> None:
        """Insert or replace the text stored under *chunk_id*.

        Raises
        ------
        src.utils.errors.IndexWriteError
            If the write fails for any reason.
        """

    @abstractmethod
    async def query(self, text: str, top_k: int = 10) -> list[IndexHit]:
        """Return up to *top_k* chunk ids ranked by relevance (best first).

        Raises
        ------
        src.utils.errors.SearchError
            If the query fails.
        """

    @abstractmethod
    async def delete_by_document(self, document_id: str) -> int:
        """Delete every entry belonging to *document_id*; return the count."""

    @abstractmethod
    async def count(self) -> int:
        """Return the number of entries stored."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"sqlite_fts"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the index can be reached."""
