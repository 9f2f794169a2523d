"""Text extraction provider implementations.

Three implementations of IOCRProvider, dispatched by content type in
ocr_service.py:
    1. PyMuPDFOCRProvider   -- PDFs.  Reads the text layer and OCRs
       image-only pages with Tesseract.
    2. TesseractOCRProvider -- PNG, JPEG and (multi-page) TIFF scans.
    3. PlainTextProvider    -- UTF-8 text, pages split on form feeds.
"""

from src.providers.ocr.pdf_ocr_provider import PyMuPDFOCRProvider
from src.providers.ocr.plain_text_provider import PlainTextProvider
from src.providers.ocr.tesseract_provider import TesseractOCRProvider

__all__ = ["PlainTextProvider", "PyMuPDFOCRProvider", "TesseractOCRProvider"]
