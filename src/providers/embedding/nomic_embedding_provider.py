"""Local embedding provider: ``nomic-embed-text`` served by Ollama.

Ollama exposes an OpenAI-compatible ``/v1`` endpoint, so requests go
through the shared OpenAI-compatible base.  No API key is needed.
"""

from __future__ import annotations

import httpx
import openai

from src.config.settings import Settings
from src.providers.embedding.openai_compatible import OpenAICompatibleEmbeddingProvider


class NomicEmbeddingProvider(OpenAICompatibleEmbeddingProvider):
    """768-dimensional embeddings from a local Ollama server."""

    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            api_key="ollama",  # ignored by Ollama, required by the client
        )
        self._model = "nomic-embed-text"
        self._dimension = 768

    def get_provider_name(self) -> str:
        return "nomic_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server answers ``/api/tags``."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
        return response.status_code == 200
