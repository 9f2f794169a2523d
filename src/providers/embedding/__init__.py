"""Embedding provider implementations.

Embeddings convert chunk text into fixed-dimension vectors for the vector
index and turn search queries into vectors at query time.

Two implementations of IEmbeddingProvider (in "auto" priority order):
    1. OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims), or any
       OpenAI-compatible API via OPENAI_BASE_URL.  Requires an API key.
    2. NomicEmbeddingProvider  -- nomic-embed-text via Ollama (768 dims).
       Free and local, but requires a running Ollama server.

Both share the request loop in openai_compatible.py.
"""

from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["NomicEmbeddingProvider", "OpenAIEmbeddingProvider"]
