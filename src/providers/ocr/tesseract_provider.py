"""Tesseract OCR provider for scanned document images.

Wraps pytesseract to read PNG, JPEG and TIFF scans.  Multi-page TIFFs (the
usual output of office scanners) yield one page per frame.
"""

from __future__ import annotations

import asyncio
import io
import time

import pytesseract
from PIL import Image, ImageSequence, UnidentifiedImageError

from src.interfaces.ocr_provider import IOCRProvider
from src.models.document import ExtractedText
from src.utils.errors import CorruptDocumentError, ExtractionError
from src.utils.logging import get_logger

_SUPPORTED = frozenset({"image/png", "image/jpeg", "image/tiff"})


class TesseractOCRProvider(IOCRProvider):
    """OCR provider backed by Google Tesseract via pytesseract.

    Parameters
    ----------
    lang:
        Tesseract language code(s).
    tesseract_cmd:
        Path to the ``tesseract`` binary when it is not on ``PATH``.
    """

    def __init__(self, lang: str = "eng", tesseract_cmd: str = "") -> None:
        self._lang = lang
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # IOCRProvider interface
    # ------------------------------------------------------------------

    async def extract_text(self, data: bytes, content_type: str) -> ExtractedText:
        start = time.perf_counter()
        page_texts = await asyncio.to_thread(self._ocr_frames, data)
        self._logger.info(
            "ocr_extraction_complete",
            provider="tesseract",
            page_count=len(page_texts),
            processing_time=round(time.perf_counter() - start, 3),
        )
        return ExtractedText.from_page_texts(page_texts, provider_used=self.get_provider_name())

    def supported_content_types(self) -> frozenset[str]:
        return _SUPPORTED

    def get_provider_name(self) -> str:
        return "tesseract"

    def is_available(self) -> bool:
        """Check that the Tesseract binary can be found."""
        try:
            pytesseract.get_tesseract_version()
            return True
        except pytesseract.TesseractNotFoundError:
            return False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ocr_frames(self, data: bytes) -> list[str]:
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise CorruptDocumentError(
                f"Unreadable image: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        page_texts: list[str] = []
        try:
            for frame in ImageSequence.Iterator(image):
                page_texts.append(
                    pytesseract.image_to_string(frame.convert("RGB"), lang=self._lang).strip()
                )
        except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError) as exc:
            raise ExtractionError(
                f"Tesseract OCR failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        finally:
            image.close()
        return page_texts
