"""Text chunking with overlapping windows and paragraph boundary preservation.

Splits a document's extracted text into :class:`~src.models.rag.Chunk`
records sized for embedding models (1200 characters with 200 characters of
overlap by default, both configurable).

The chunking strategy has three design goals:

1. **Paragraph-preserving** -- Chunk boundaries align with paragraph breaks
   (double newlines, which include page breaks) so no chunk starts or ends
   mid-thought when it can be avoided.

2. **Overlapping windows** -- Consecutive chunks share trailing paragraphs
   or sentences (up to ``overlap`` characters) so that a clause spanning a
   boundary is captured whole in at least one chunk.

3. **Deterministic** -- Chunks are spans ``[char_start, char_end)`` of the
   extracted text, and the chunk text is exactly that slice.  The same text
   always yields the same boundaries, ordinals and chunk ids, which is what
   makes re-running the CHUNK stage after a crash safe.

When a single paragraph exceeds the chunk budget (long contract clauses,
OCR output without blank lines) it is split at sentence boundaries using an
abbreviation-aware splitter that avoids breaking on "Inc.", "v.", "No.",
etc.  A sentence that is still too long is cut at the last whitespace
before the budget.
"""

from __future__ import annotations

import hashlib
import re
import uuid

import structlog

from src.models.document import ExtractedText
from src.models.rag import Chunk

logger = structlog.get_logger(logger_name=__name__)

_PARAGRAPH_BREAK_RE = re.compile(r"\n\s*\n")
_SENTENCE_END_RE = re.compile(r"[.!?](?:\s|$)")
_WHITESPACE_RE = re.compile(r"\s")

_CHUNK_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "lexindex:chunk")

# Common abbreviations that should NOT trigger a sentence split.
# Legal text is full of them: "Smith v. Jones", "Acme Inc.", "Art. 5".
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "No",
        "Nos",
        "Art",
        "Sec",
        "Para",
        "Ch",
        "Vol",
        "Inc",
        "Ltd",
        "Corp",
        "Co",
        "LLC",
        "Cir",
        "Cal",
        "Supp",
        "App",
        "Rev",
        "Stat",
        "U.S",
        "v",
        "vs",
        "etc",
        "e.g",
        "i.e",
        "cf",
        "approx",
        "dept",
        "govt",
    }
)

Span = tuple[int, int]


def chunk_id_for(document_id: str, ordinal: int, text: str) -> str:
    """Return the deterministic id of the chunk at *ordinal* with *text*."""
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]
    return str(uuid.uuid5(_CHUNK_NAMESPACE, f"{document_id}:{ordinal}:{digest}"))


class TextChunker:
    """Splits extracted text into overlapping, paragraph-aligned chunks.

    The algorithm works in two phases:
    1. Split the text into units: paragraphs, or the sentences of any
       paragraph longer than the budget.
    2. Accumulate consecutive units into a chunk until the next one would
       push the span past ``chunk_size``, then start a new chunk seeded
       with tail units of the previous one (up to ``overlap`` characters).

    Parameters
    ----------
    chunk_size:
        Maximum characters per chunk (default 1200).
    overlap:
        Maximum characters shared by consecutive chunks (default 200).
    """

    def __init__(self, chunk_size: int = 1200, overlap: int = 200) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        if not 0 <= overlap < chunk_size:
            raise ValueError(f"overlap must be in [0, chunk_size), got {overlap}")
        self._chunk_size = chunk_size
        self._overlap = overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, extracted: ExtractedText, document_id: str) -> list[Chunk]:
        """Split *extracted* into ordered :class:`Chunk` records.

        Returns an empty list when the text is blank.
        """
        text = extracted.text
        if not text.strip():
            return []

        units: list[Span] = []
        for paragraph in self._split_paragraphs(text):
            if paragraph[1] - paragraph[0] <= self._chunk_size:
                units.append(paragraph)
            else:
                for sentence in self._split_sentences(text, paragraph):
                    units.extend(self._hard_split(text, sentence))

        chunks: list[Chunk] = []
        for ordinal, (start, end) in enumerate(self._accumulate(units)):
            chunk_text = text[start:end]
            chunks.append(
                Chunk(
                    chunk_id=chunk_id_for(document_id, ordinal, chunk_text),
                    document_id=document_id,
                    ordinal=ordinal,
                    char_start=start,
                    char_end=end,
                    page_start=extracted.page_at(start),
                    page_end=extracted.page_at(end - 1),
                    text=chunk_text,
                )
            )

        logger.debug(
            "chunking_complete",
            document_id=document_id,
            num_chunks=len(chunks),
            avg_chars=sum(len(c.text) for c in chunks) // len(chunks) if chunks else 0,
        )
        return chunks

    # ------------------------------------------------------------------
    # Paragraph / sentence splitting
    # ------------------------------------------------------------------

    @staticmethod
    def _strip_span(text: str, start: int, end: int) -> Span | None:
        """Shrink ``[start, end)`` past surrounding whitespace; ``None`` if blank."""
        while start < end and text[start].isspace():
            start += 1
        while end > start and text[end - 1].isspace():
            end -= 1
        return (start, end) if start < end else None

    def _split_paragraphs(self, text: str) -> list[Span]:
        """Split *text* on blank lines, discarding blank paragraphs."""
        spans: list[Span] = []
        last = 0
        for match in _PARAGRAPH_BREAK_RE.finditer(text):
            span = self._strip_span(text, last, match.start())
            if span:
                spans.append(span)
            last = match.end()
        span = self._strip_span(text, last, len(text))
        if span:
            spans.append(span)
        return spans

    def _split_sentences(self, text: str, paragraph: Span) -> list[Span]:
        """Split a paragraph span at sentence boundaries, respecting abbreviations.

        Periods after known abbreviations are masked with ``\\x00`` (same
        length, so indices stay aligned with the original text).
        """
        start, end = paragraph
        masked = text[start:end]
        for abbr in _ABBREVIATIONS:
            masked = re.sub(rf"\b{re.escape(abbr)}\.", f"{abbr}\x00", masked)

        spans: list[Span] = []
        last = 0
        for match in _SENTENCE_END_RE.finditer(masked):
            span = self._strip_span(text, start + last, start + match.end())
            if span:
                spans.append(span)
            last = match.end()
        span = self._strip_span(text, start + last, end)
        if span:
            spans.append(span)
        return spans or [paragraph]

    def _hard_split(self, text: str, span: Span) -> list[Span]:
        """Cut an over-long span at whitespace so every piece fits the budget."""
        start, end = span
        pieces: list[Span] = []
        while end - start > self._chunk_size:
            limit = start + self._chunk_size
            cut = limit
            for match in _WHITESPACE_RE.finditer(text, start + 1, limit + 1):
                cut = match.start()
            piece = self._strip_span(text, start, cut)
            if piece:
                pieces.append(piece)
            rest = self._strip_span(text, cut, end)
            if rest is None:
                return pieces
            start = rest[0]
        pieces.append((start, end))
        return pieces

    # ------------------------------------------------------------------
    # Chunk accumulation
    # ------------------------------------------------------------------

    def _accumulate(self, units: list[Span]) -> list[Span]:
        """Greedily pack consecutive units into chunk spans with overlap."""
        chunks: list[Span] = []
        current: list[Span] = []

        for unit in units:
            if current and unit[1] - current[0][0] > self._chunk_size:
                chunks.append((current[0][0], current[-1][1]))
                current = self._overlap_tail(current)
                # Overlap never pushes the next chunk past the budget.
                while current and unit[1] - current[0][0] > self._chunk_size:
                    current.pop(0)
            current.append(unit)

        if current:
            chunks.append((current[0][0], current[-1][1]))
        return chunks

    def _overlap_tail(self, units: list[Span]) -> list[Span]:
        """Return trailing units whose combined span is at most ``overlap`` chars."""
        if self._overlap == 0:
            return []
        end = units[-1][1]
        tail: list[Span] = []
        for unit in reversed(units):
            if end - unit[0] > self._overlap:
                break
            tail.insert(0, unit)
        return tail
