"""PyMuPDF text extraction provider for PDF documents.

Reads the embedded text layer page by page with PyMuPDF (``fitz``).  Pages
without a text layer (scanned pages) are rendered to an image and run
through Tesseract, so mixed born-digital / scanned filings come out as one
page-ordered :class:`ExtractedText`.
"""

from __future__ import annotations

import asyncio
import io

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import pytesseract
import structlog
from PIL import Image

from src.interfaces.ocr_provider import IOCRProvider
from src.models.document import ExtractedText
from src.utils.errors import CorruptDocumentError, ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_SUPPORTED = frozenset({"application/pdf"})

# Render resolution for scanned pages; 300 dpi is Tesseract's sweet spot.
_OCR_DPI = 300


class PyMuPDFOCRProvider(IOCRProvider):
    """Extracts text from PDFs, falling back to Tesseract for image-only pages.

    Parameters
    ----------
    ocr_fallback:
        Run Tesseract on pages whose text layer is empty.
    tesseract_lang:
        Tesseract language code(s), e.g. ``"eng"`` or ``"eng+deu"``.
    """

    def __init__(self, ocr_fallback: bool = True, tesseract_lang: str = "eng") -> None:
        self._ocr_fallback = ocr_fallback
        self._lang = tesseract_lang

    async def extract_text(self, data: bytes, content_type: str) -> ExtractedText:
        return await asyncio.to_thread(self._extract_sync, data)

    def supported_content_types(self) -> frozenset[str]:
        return _SUPPORTED

    def get_provider_name(self) -> str:
        return "pymupdf"

    def is_available(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _extract_sync(self, data: bytes) -> ExtractedText:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except (RuntimeError, ValueError) as exc:
            raise CorruptDocumentError(
                f"Unreadable PDF: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        try:
            if doc.needs_pass:
                raise CorruptDocumentError(
                    "PDF is encrypted",
                    provider_name=self.get_provider_name(),
                )

            page_texts: list[str] = []
            ocr_pages = 0
            for page in doc:
                text = page.get_text("text").strip()
                if not text and self._ocr_fallback:
                    text = self._ocr_page(page)
                    ocr_pages += 1
                page_texts.append(text)
        finally:
            doc.close()

        logger.info(
            "pdf_text_extracted",
            provider=self.get_provider_name(),
            page_count=len(page_texts),
            ocr_pages=ocr_pages,
        )
        return ExtractedText.from_page_texts(page_texts, provider_used=self.get_provider_name())

    def _ocr_page(self, page: fitz.Page) -> str:
        """Render *page* and OCR it with Tesseract."""
        pixmap = page.get_pixmap(dpi=_OCR_DPI)
        image = Image.open(io.BytesIO(pixmap.tobytes("png")))
        try:
            return pytesseract.image_to_string(image, lang=self._lang).strip()
        except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError) as exc:
            raise ExtractionError(
                f"Tesseract failed on page {page.number + 1}: {exc}",
                provider_name="tesseract",
            ) from exc
