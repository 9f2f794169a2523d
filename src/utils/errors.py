"""Custom exception hierarchy for lexindex.

All application exceptions inherit from :class:`LexIndexError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "tesseract", "chromadb") caused the failure.

Errors are grouped by *category* first and by pipeline stage second.  The
category is what the ingestion orchestrator looks at when deciding between
a retry and a terminal failure:

    LexIndexError  (base -- catch-all for any lexindex error)
    +-- TransientError           (network / timeout / quota -- retried with backoff)
    |   +-- ExtractionTimeoutError
    |   +-- EmbeddingServiceError
    |   +-- IndexWriteError
    +-- PermanentError           (malformed input -- dead-lettered, never retried)
    |   +-- UnsupportedFormatError
    |   +-- CorruptDocumentError
    |   +-- EmptyDocumentError
    |   +-- InputTooLargeError   (also flags the document for operator review)
    |   +-- EmbeddingDimensionError  (model / dimension misconfiguration, flagged)
    |   +-- BlobNotFoundError
    +-- ExtractionError          (stage base for every OCR failure)
    +-- ConsistencyError         (one index written, the other not)
    +-- PipelineError            (orchestration / invalid state transitions)
    |   +-- ClaimLostError       (claim token no longer matches the ledger)
    +-- SearchError              (query-time failure against an index)
    +-- ConfigurationError       (startup / missing config)

Stage-specific errors inherit from both their stage base and their category,
so callers can catch ``ExtractionError`` in the OCR layer and the
orchestrator can still branch on ``TransientError`` / ``PermanentError``.
"""


class LexIndexError(Exception):
    """Base exception for all lexindex errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.

    ``reason_code`` is a short machine-readable label recorded on the
    ledger entry when the error dead-letters a document.
    """

    reason_code = "error"
    review_required = False

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

class TransientError(LexIndexError):
    """A failure that is expected to clear on its own (timeouts, 5xx, quota)."""

    reason_code = "transient_error"

    def __init__(
        self,
        message: str = "Transient external-service failure",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PermanentError(LexIndexError):
    """A failure that will recur on every attempt (bad input, unsupported format)."""

    reason_code = "permanent_error"

    def __init__(
        self,
        message: str = "Permanent processing failure",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# OCR / extraction errors
# ---------------------------------------------------------------------------

class ExtractionError(LexIndexError):
    """Raised when text extraction from a stored document fails."""

    reason_code = "extraction_failed"

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionTimeoutError(ExtractionError, TransientError):
    """Raised when an OCR engine does not finish within the stage timeout."""

    reason_code = "extraction_timeout"

    def __init__(
        self,
        message: str = "Text extraction timed out",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnsupportedFormatError(ExtractionError, PermanentError):
    """Raised when no extractor handles the document's content type."""

    reason_code = "unsupported_format"

    def __init__(
        self,
        message: str = "Unsupported document format",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class CorruptDocumentError(ExtractionError, PermanentError):
    """Raised when the document bytes cannot be parsed (truncated, encrypted, garbage)."""

    reason_code = "corrupt_document"

    def __init__(
        self,
        message: str = "Document is corrupt or unreadable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmptyDocumentError(ExtractionError, PermanentError):
    """Raised when extraction succeeds but yields no text at all."""

    reason_code = "no_text"

    def __init__(
        self,
        message: str = "Document contains no extractable text",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Embedding errors
# ---------------------------------------------------------------------------

class EmbeddingServiceError(TransientError):
    """Raised when the embedding API times out, is rate limited, or returns 5xx.

    Also raised when the API returns the wrong number of vectors for a
    batch, which is treated as a transient glitch.
    """

    reason_code = "embedding_unavailable"

    def __init__(
        self,
        message: str = "Embedding service failure",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InputTooLargeError(PermanentError):
    """Raised when a chunk exceeds the embedding model's context window.

    Retrying cannot help; the document needs a different chunking policy,
    so the ledger entry is flagged for operator review.
    """

    reason_code = "input_too_large"
    review_required = True

    def __init__(
        self,
        message: str = "Embedding input exceeds the model limit",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingDimensionError(PermanentError):
    """Raised when returned vectors do not have the configured dimension.

    This means the embedding model and the configured dimension disagree,
    so every retry fails the same way; the entry is flagged for review.
    """

    reason_code = "embedding_dimension_mismatch"
    review_required = True

    def __init__(
        self,
        message: str = "Embedding dimension does not match the configured model",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Index / storage errors
# ---------------------------------------------------------------------------

class IndexWriteError(TransientError):
    """Raised when an upsert into the vector or full-text index fails."""

    reason_code = "index_write_failed"

    def __init__(
        self,
        message: str = "Index write failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class BlobNotFoundError(PermanentError):
    """Raised when the blob store has no object for a document id."""

    reason_code = "blob_missing"

    def __init__(
        self,
        message: str = "Blob not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConsistencyError(LexIndexError):
    """One index backend holds a document's chunks and the other does not.

    Never raised through the pipeline; built by the orchestrator when index
    retries are exhausted after a partial write, and handed to the progress
    tracker as a partial-index alert.
    """

    reason_code = "partial_index"

    def __init__(
        self,
        message: str = "Index backends are inconsistent",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class SearchError(LexIndexError):
    """Raised when querying an index backend fails."""

    reason_code = "search_failed"

    def __init__(
        self,
        message: str = "Index query failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class PipelineError(LexIndexError):
    """Raised when pipeline orchestration fails (invalid state transition, etc.)."""

    reason_code = "internal_error"

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ClaimLostError(PipelineError):
    """Raised by the ledger when a write carries a stale claim token.

    Happens after a document is cancelled or its lease is taken over by
    another worker.  The holder must discard its stage results.
    """

    reason_code = "claim_lost"

    def __init__(
        self,
        message: str = "Claim is no longer held",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(LexIndexError):
    """Raised when configuration is invalid or missing at startup."""

    reason_code = "configuration_error"

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
