"""Plain-text "OCR" provider.

Decodes UTF-8 text uploads.  A form feed (``\\f``) starts a new page, which
is how text exports of paginated filings usually mark page breaks.
"""

from __future__ import annotations

from src.interfaces.ocr_provider import IOCRProvider
from src.models.document import ExtractedText
from src.utils.errors import CorruptDocumentError

_SUPPORTED = frozenset({"text/plain", "text/markdown"})


class PlainTextProvider(IOCRProvider):
    """Decodes text files into pages split on form feeds."""

    async def extract_text(self, data: bytes, content_type: str) -> ExtractedText:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise CorruptDocumentError(
                f"Text file is not valid UTF-8: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        text = text.replace("\r\n", "\n")
        return ExtractedText.from_page_texts(text.split("\f"), provider_used=self.get_provider_name())

    def supported_content_types(self) -> frozenset[str]:
        return _SUPPORTED

    def get_provider_name(self) -> str:
        return "plain_text"

    def is_available(self) -> bool:
        return True
