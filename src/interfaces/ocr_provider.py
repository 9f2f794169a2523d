"""Abstract base class for text-extraction providers.

Defines the contract for any engine that turns stored document bytes into
page-aware text.  Implementations may wrap PyMuPDF, Tesseract, a cloud OCR
API, or a plain-text decoder.  Swapping providers requires only a new
concrete class registered in ``src/main.py``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.document import ExtractedText


# Concrete implementations: PyMuPDFOCRProvider, TesseractOCRProvider,
# PlainTextProvider.  Located in: src/providers/ocr/
# The OCR service (src/services/ocr_service.py) dispatches on content type.
class IOCRProvider(ABC):
    """Contract for services that extract text from stored documents.

    Every concrete provider must be able to:
    * Accept raw bytes plus a content type and return :class:`ExtractedText`.
    * Declare which content types it handles.
    * Report its availability (binary installed, credentials present).
    """

    @abstractmethod
    async def extract_text(self, data: bytes, content_type: str) -> ExtractedText:
        """Extract text from *data*.

        Parameters
        ----------
        data:
            Raw document bytes as stored in the blob store.
        content_type:
            Normalised MIME type, e.g. ``"application/pdf"``.

        Returns
        -------
        ExtractedText
            One :class:`~src.models.document.PageText` per page, in order.

        Raises
        ------
        src.utils.errors.CorruptDocumentError
            If the bytes cannot be parsed.
        src.utils.errors.ExtractionError
            If the engine itself fails.
        """

    @abstractmethod
    def supported_content_types(self) -> frozenset[str]:
        """Return the MIME types this provider can extract."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"tesseract"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and usable.

        Implementations should check for required binaries or credentials
        without performing a full extraction.
        """
