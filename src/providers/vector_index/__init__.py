"""Vector index provider implementations.

ChromaDB is the sole vector index implementation.  It stores chunk vectors
on disk and answers cosine-similarity queries.  Data persists at
CHROMADB_PERSIST_DIR (default: ./data/chromadb).

To swap ChromaDB for another vector database, create a new class
implementing IVectorIndexProvider and register it in main.py.
"""

from src.providers.vector_index.chromadb_provider import ChromaDBVectorIndex

__all__ = ["ChromaDBVectorIndex"]
