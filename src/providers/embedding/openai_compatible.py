"""Shared base for embedding providers that speak the OpenAI embeddings API.

Both the hosted OpenAI provider and the local Ollama (nomic) provider send
``embeddings.create`` requests through an ``openai.AsyncOpenAI`` client.
The request loop, response ordering and SDK error translation live here;
subclasses only build the client and describe the model.

SDK exceptions are translated into the pipeline's error categories, so the
orchestrator never sees an ``openai`` type:

    RateLimitError / APITimeoutError / APIConnectionError / 5xx
        → EmbeddingServiceError  (transient, retried)
    BadRequestError naming the context length
        → InputTooLargeError     (permanent, flagged for review)
    any other APIError
        → EmbeddingServiceError
"""

from __future__ import annotations

import openai
import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import EmbeddingServiceError, InputTooLargeError, LexIndexError

logger = structlog.get_logger(logger_name=__name__)

# Phrases the API uses when an input exceeds the model's context window.
_TOO_LARGE_MARKERS = ("maximum context length", "context_length_exceeded", "maximum tokens", "too many tokens")


def translate_openai_error(exc: openai.APIError, provider_name: str) -> LexIndexError:
    """Map an ``openai`` SDK exception onto a transient or permanent pipeline error."""
    if isinstance(exc, openai.BadRequestError):
        text = str(exc).lower()
        if any(marker in text for marker in _TOO_LARGE_MARKERS):
            return InputTooLargeError(
                message=f"Embedding input too large: {exc}",
                provider_name=provider_name,
            )
    if isinstance(exc, openai.RateLimitError):
        detail = "rate limited"
    elif isinstance(exc, openai.APITimeoutError):
        detail = "request timed out"
    elif isinstance(exc, openai.APIConnectionError):
        detail = "connection failed"
    elif isinstance(exc, openai.InternalServerError):
        detail = "server error"
    else:
        detail = "API error"
    return EmbeddingServiceError(
        message=f"Embedding {detail}: {exc}",
        provider_name=provider_name,
    )


class OpenAICompatibleEmbeddingProvider(IEmbeddingProvider):
    """Embeds text through any server exposing ``POST /embeddings``.

    Subclasses set ``_client``, ``_model`` and ``_dimension`` in their
    constructor and implement the naming and availability hooks.
    ``max_inputs_per_request`` is the server's per-call input cap; ``None``
    sends each :meth:`embed` call as a single request, leaving batch sizing
    to the embedding stage.
    """

    max_inputs_per_request: int | None = None

    _client: openai.AsyncOpenAI
    _model: str
    _dimension: int

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per text, in input order.

        Raises
        ------
        EmbeddingServiceError
            On transient API failures, or when the response does not hold
            exactly one vector per input.
        InputTooLargeError
            When an input exceeds the model's context window.
        """
        if not texts:
            return []

        step = self.max_inputs_per_request or len(texts)
        vectors: list[list[float]] = []
        for start in range(0, len(texts), step):
            vectors.extend(await self._request(texts[start : start + step]))
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    async def _request(self, batch: list[str]) -> list[list[float]]:
        try:
            response = await self._client.embeddings.create(input=batch, model=self._model)
        except openai.APIError as exc:
            raise translate_openai_error(exc, self.get_provider_name()) from exc

        if len(response.data) != len(batch):
            raise EmbeddingServiceError(
                message=f"Expected {len(batch)} embeddings, got {len(response.data)}",
                provider_name=self.get_provider_name(),
            )
        ordered = sorted(response.data, key=lambda item: item.index)
        logger.info(
            "embedding_request",
            provider=self.get_provider_name(),
            model=self._model,
            batch_size=len(batch),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return [item.embedding for item in ordered]
