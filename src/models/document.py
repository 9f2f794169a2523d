"""Document-level models: stored blobs and extracted text.

:class:`BlobInfo` is the sidecar metadata the blob store keeps next to the
raw bytes.  :class:`ExtractedText` is what the OCR stage produces: the text
of every page, joined with a blank line, with each page's character span in
the joined text so chunks can be traced back to pages.
"""

from __future__ import annotations

import bisect
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

# Pages are joined with a paragraph break so a page boundary is always a
# chunk boundary candidate.
PAGE_SEPARATOR = "\n\n"


class BlobInfo(BaseModel):
    """Metadata recorded when raw document bytes are stored."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    blob_ref: str
    original_filename: str = ""
    content_type: str = "application/octet-stream"
    content_hash: str = Field(description="SHA-256 hex digest of the stored bytes.")
    size_bytes: int = Field(ge=0)
    stored_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )


class PageText(BaseModel):
    """Text of a single page and its span within :attr:`ExtractedText.text`."""

    model_config = ConfigDict(frozen=True)

    page_number: int = Field(ge=1)
    text: str
    char_start: int = Field(ge=0)
    char_end: int = Field(ge=0)


class ExtractedText(BaseModel):
    """OCR output for one document: ordered pages with offset markers."""

    model_config = ConfigDict(frozen=True)

    pages: list[PageText] = Field(default_factory=list)
    provider_used: str = ""

    @classmethod
    def from_page_texts(cls, page_texts: list[str], provider_used: str) -> ExtractedText:
        """Build an instance from raw per-page strings, computing offsets.

        Trailing whitespace is stripped from each page so the separator is
        the only thing between two pages.
        """
        pages: list[PageText] = []
        cursor = 0
        for number, raw in enumerate(page_texts, start=1):
            text = raw.rstrip()
            if pages:
                cursor += len(PAGE_SEPARATOR)
            pages.append(
                PageText(
                    page_number=number,
                    text=text,
                    char_start=cursor,
                    char_end=cursor + len(text),
                )
            )
            cursor += len(text)
        return cls(pages=pages, provider_used=provider_used)

    @property
    def text(self) -> str:
        return PAGE_SEPARATOR.join(page.text for page in self.pages)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def page_at(self, offset: int) -> int:
        """Return the 1-based page number containing character *offset*.

        Offsets that fall on a separator belong to the preceding page.
        """
        if not self.pages:
            return 1
        starts = [page.char_start for page in self.pages]
        index = bisect.bisect_right(starts, offset) - 1
        return self.pages[max(index, 0)].page_number
