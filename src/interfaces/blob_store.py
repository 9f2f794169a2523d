"""Abstract base class for raw-document blob storage.

The blob store is the durable home of uploaded bytes.  It is addressed by
document id and is only read by the OCR stage; the rest of the pipeline
works from the ledger.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.document import BlobInfo


# Concrete implementation: LocalBlobStore (src/providers/blob/)
class IBlobStore(ABC):
    """Contract for blob storage used by intake and the OCR stage."""

    @abstractmethod
    async def put(
        self,
        data: bytes,
        filename: str = "",
        content_type: str | None = None,
    ) -> str:
        """Store *data* and return the new document id.

        Parameters
        ----------
        data:
            Raw document bytes.
        filename:
            Original filename, kept as metadata.
        content_type:
            MIME type.  Implementations may guess it from *filename* when
            omitted.
        """

    @abstractmethod
    async def get(self, document_id: str) -> bytes:
        """Return the bytes stored for *document_id*.

        Raises
        ------
        src.utils.errors.BlobNotFoundError
            If nothing is stored under *document_id*.
        """

    @abstractmethod
    async def stat(self, document_id: str) -> BlobInfo:
        """Return metadata for *document_id* without reading the bytes.

        Raises
        ------
        src.utils.errors.BlobNotFoundError
            If nothing is stored under *document_id*.
        """

    @abstractmethod
    async def delete(self, document_id: str) -> bool:
        """Remove the blob; return ``False`` if it did not exist."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"local_blob_store"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store can currently accept reads and writes."""
