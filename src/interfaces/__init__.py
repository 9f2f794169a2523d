"""Public interface definitions for all external service providers.

Every external system the ingestion pipeline touches (blob storage, OCR
engines, the embedding API, both index backends and the job ledger) is
accessed exclusively through the abstract base classes defined in this
package.  Concrete adapters implement these interfaces and are injected at
runtime, following the adapter pattern.

ADAPTER PATTERN EXPLAINED:
    The orchestrator calls ``vector_index.upsert(...)`` rather than
    ``collection.upsert(...)`` on a ChromaDB handle.  This means:
        - Swapping SQLite FTS5 for OpenSearch changes ONE line (the provider
          instantiation in main.py) instead of every caller.
        - Unit and integration tests inject in-memory fakes that can be
          scripted to fail, time out, or count calls.

    The concrete providers live in ``src/providers/`` and are wired together
    in ``src/main.py``.

CONCRETE PROVIDER MAP:
    Interface                  →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────────
    IBlobStore                 →  LocalBlobStore
    IOCRProvider               →  PyMuPDFOCRProvider, TesseractOCRProvider,
                                  PlainTextProvider
    IEmbeddingProvider         →  OpenAIEmbeddingProvider,
                                  NomicEmbeddingProvider
    IVectorIndexProvider       →  ChromaDBVectorIndex
    IFullTextIndexProvider     →  SQLiteFTSIndex, OpenSearchIndex
    IJobLedger                 →  SQLiteJobLedger
"""

from src.interfaces.blob_store import IBlobStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.fulltext_index_provider import IFullTextIndexProvider
from src.interfaces.job_ledger import IJobLedger
from src.interfaces.ocr_provider import IOCRProvider
from src.interfaces.vector_index_provider import IVectorIndexProvider

__all__ = [
    "IBlobStore",
    "IEmbeddingProvider",
    "IFullTextIndexProvider",
    "IJobLedger",
    "IOCRProvider",
    "IVectorIndexProvider",
]
