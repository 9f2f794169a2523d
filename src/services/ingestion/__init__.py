"""Stage implementations for the document ingestion pipeline.

Pipeline stages overview (driven by src/pipeline/orchestrator.py):

1. **OCR** (src/services/ocr_service.py) -- raw bytes become page-aware text.

2. **Chunk** (chunker.py / TextChunker) -- extracted text is split into
   overlapping, paragraph-aligned character windows with deterministic ids.

3. **Embed** (embedding_stage.py / EmbeddingStage) -- chunk text becomes
   fixed-dimension vectors in bounded batches.

4. **Index** (index_writer.py / DualIndexWriter) -- every chunk is written
   to the vector index and the full-text index, with per-chunk,
   per-backend status kept in the job ledger.
"""

from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.embedding_stage import EmbeddingStage
from src.services.ingestion.index_writer import DualIndexWriter

__all__ = [
    "DualIndexWriter",
    "EmbeddingStage",
    "TextChunker",
]
