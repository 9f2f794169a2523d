"""Text extraction service with content-type dispatch and provider fallback.

Holds a priority-ordered list of OCR providers.  For each document the
providers that declare the document's content type and report themselves
available are tried in turn:

    1. A provider that succeeds wins; its :class:`ExtractedText` is returned.
    2. A permanent failure (corrupt or encrypted file) ends the chain at
       once, since every other engine would hit the same bytes.
    3. Any other extraction failure moves on to the next provider.

The whole chain runs under one timeout.  A document whose extraction
yields no text at all is rejected as :class:`EmptyDocumentError`.
"""

from __future__ import annotations

import asyncio

from src.interfaces.ocr_provider import IOCRProvider
from src.models.document import ExtractedText
from src.utils.errors import (
    EmptyDocumentError,
    ExtractionError,
    ExtractionTimeoutError,
    PermanentError,
    UnsupportedFormatError,
)
from src.utils.logging import get_logger

_OCTET_STREAM = "application/octet-stream"

_CONTENT_TYPE_ALIASES: dict[str, str] = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/tif": "image/tiff",
    "application/x-pdf": "application/pdf",
}

# (magic prefix, content type) checked in order for untyped uploads.
_MAGIC_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"%PDF-", "application/pdf"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
)


def normalize_content_type(content_type: str | None, data: bytes = b"") -> str:
    """Lower-case *content_type*, drop parameters, resolve aliases.

    Missing or ``application/octet-stream`` types are sniffed from the
    leading bytes of *data*.
    """
    normalized = (content_type or "").split(";", 1)[0].strip().lower()
    normalized = _CONTENT_TYPE_ALIASES.get(normalized, normalized)
    if normalized and normalized != _OCTET_STREAM:
        return normalized
    for signature, sniffed in _MAGIC_SIGNATURES:
        if data.startswith(signature):
            return sniffed
    return _OCTET_STREAM


class OCRService:
    """Extracts page-aware text from stored document bytes.

    Parameters
    ----------
    providers:
        OCR providers in priority order.
    timeout_seconds:
        Budget for the whole extraction of one document.
    """

    def __init__(self, providers: list[IOCRProvider], timeout_seconds: float = 180.0) -> None:
        self._providers = providers
        self._timeout = timeout_seconds
        self._logger = get_logger(__name__)

    def supported_content_types(self) -> frozenset[str]:
        types: set[str] = set()
        for provider in self._providers:
            types |= provider.supported_content_types()
        return frozenset(types)

    async def extract(self, data: bytes, content_type: str | None) -> ExtractedText:
        """Extract text from *data*.

        Raises
        ------
        UnsupportedFormatError
            If no available provider handles the content type.
        ExtractionTimeoutError
            If extraction exceeds the timeout.
        EmptyDocumentError
            If extraction finds no text on any page.
        ExtractionError
            If every eligible provider failed.
        """
        resolved = normalize_content_type(content_type, data)
        candidates = [
            p
            for p in self._providers
            if resolved in p.supported_content_types() and p.is_available()
        ]
        if not candidates:
            raise UnsupportedFormatError(f"No extractor available for content type {resolved!r}")

        try:
            extracted = await asyncio.wait_for(
                self._run_chain(candidates, data, resolved), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            self._logger.warning(
                "ocr_timeout", content_type=resolved, timeout_seconds=self._timeout
            )
            raise ExtractionTimeoutError(
                f"Extraction exceeded {self._timeout}s for {resolved}"
            ) from exc

        if not extracted.text.strip():
            raise EmptyDocumentError(provider_name=extracted.provider_used or None)

        self._logger.info(
            "ocr_complete",
            provider=extracted.provider_used,
            content_type=resolved,
            page_count=extracted.page_count,
            char_count=len(extracted.text),
        )
        return extracted

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_chain(
        self,
        candidates: list[IOCRProvider],
        data: bytes,
        content_type: str,
    ) -> ExtractedText:
        errors: list[str] = []
        for provider in candidates:
            name = provider.get_provider_name()
            try:
                return await provider.extract_text(data, content_type)
            except PermanentError:
                raise
            except ExtractionError as exc:
                self._logger.warning("ocr_provider_failed", provider=name, error=str(exc))
                errors.append(f"{name}: {exc}")

        raise ExtractionError(f"All extractors failed: {'; '.join(errors)}")
