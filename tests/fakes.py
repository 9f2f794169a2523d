"""In-memory fakes of the provider interfaces, shared by unit and integration tests.

The orchestrator, stages and services run against these without
Tesseract, an embedding API, ChromaDB or OpenSearch.  Each fake can be
scripted to fail a number of times, which is how retry and partial-write
behaviour is tested.
"""

from __future__ import annotations

import asyncio
import hashlib
import math
from datetime import datetime, timedelta, timezone
from typing import Any

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.fulltext_index_provider import IFullTextIndexProvider
from src.interfaces.ocr_provider import IOCRProvider
from src.interfaces.vector_index_provider import IVectorIndexProvider
from src.models.document import ExtractedText
from src.models.rag import IndexHit
from src.utils.errors import EmbeddingServiceError, IndexWriteError, SearchError

_DIMENSION = 16

# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)  # noqa: UP017

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Embedding
# ---------------------------------------------------------------------------


def _hash_to_vector(text: str, dimension: int = _DIMENSION) -> list[float]:
    """Deterministic bag-of-words vector; shared words give similar vectors."""
    vector = [0.0] * dimension
    for word in text.lower().split():
        digest = hashlib.sha256(word.encode("utf-8")).digest()
        vector[digest[0] % dimension] += 1.0
    norm = math.sqrt(sum(v * v for v in vector)) or 1.0
    return [v / norm for v in vector]


class FakeEmbeddingProvider(IEmbeddingProvider):
    """Hash-based embeddings with scriptable failures.

    ``fail_times`` calls raise ``failure`` (default: EmbeddingServiceError)
    before the provider starts answering; ``hang_times`` calls sleep past
    any reasonable stage timeout instead.
    """

    def __init__(self, dimension: int = _DIMENSION) -> None:
        self.dimension = dimension
        self.calls: list[list[str]] = []
        self.fail_times = 0
        self.hang_times = 0
        self.failure: Exception = EmbeddingServiceError("scripted failure", provider_name="fake")

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.hang_times > 0:
            self.hang_times -= 1
            await asyncio.sleep(10)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise self.failure
        return [_hash_to_vector(t, self.dimension) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return self.dimension

    def get_provider_name(self) -> str:
        return "fake_embedding"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Indexes
# ---------------------------------------------------------------------------


class _ScriptedFailures:
    def __init__(self) -> None:
        self.upsert_calls: list[str] = []
        # chunk ids that fail on every attempt
        self.always_fail: set[str] = set()
        # number of upserts (any chunk) that fail before succeeding
        self.fail_times = 0
        self.query_error = False

    def _maybe_fail(self, chunk_id: str, backend: str) -> None:
        self.upsert_calls.append(chunk_id)
        if chunk_id in self.always_fail:
            raise IndexWriteError(f"scripted {backend} failure", provider_name=backend)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise IndexWriteError(f"scripted {backend} failure", provider_name=backend)


class FakeVectorIndex(_ScriptedFailures, IVectorIndexProvider):
    """Brute-force cosine index held in a dict."""

    def __init__(self) -> None:
        super().__init__()
        self.vectors: dict[str, list[float]] = {}
        self.metadata: dict[str, dict[str, Any]] = {}

    async def upsert(self, chunk_id: str, vector: list[float], metadata: dict[str, Any]) -> None:
        self._maybe_fail(chunk_id, "fake_vector")
        self.vectors[chunk_id] = vector
        self.metadata[chunk_id] = metadata

    async def query(self, vector: list[float], top_k: int = 10) -> list[IndexHit]:
        if self.query_error:
            raise SearchError("scripted vector query failure", provider_name="fake_vector")
        scored = [
            (sum(a * b for a, b in zip(vector, stored, strict=True)), chunk_id)
            for chunk_id, stored in self.vectors.items()
        ]
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [
            IndexHit(chunk_id=cid, score=score, document_id=self.metadata[cid].get("document_id"))
            for score, cid in scored[:top_k]
        ]

    async def delete_by_document(self, document_id: str) -> int:
        doomed = [cid for cid, meta in self.metadata.items() if meta.get("document_id") == document_id]
        for cid in doomed:
            self.vectors.pop(cid, None)
            self.metadata.pop(cid, None)
        return len(doomed)

    async def count(self) -> int:
        return len(self.vectors)

    def get_provider_name(self) -> str:
        return "fake_vector"

    def is_available(self) -> bool:
        return True


class FakeFullTextIndex(_ScriptedFailures, IFullTextIndexProvider):
    """Term-overlap index held in a dict."""

    def __init__(self) -> None:
        super().__init__()
        self.texts: dict[str, str] = {}
        self.metadata: dict[str, dict[str, Any]] = {}

    async def upsert(self, chunk_id: str, text: str, metadata: dict[str, Any]) -> None:
        self._maybe_fail(chunk_id, "fake_fulltext")
        self.texts[chunk_id] = text
        self.metadata[chunk_id] = metadata

    async def query(self, text: str, top_k: int = 10) -> list[IndexHit]:
        if self.query_error:
            raise SearchError("scripted fulltext query failure", provider_name="fake_fulltext")
        terms = set(text.lower().split())
        scored = []
        for chunk_id, body in self.texts.items():
            overlap = len(terms & set(body.lower().split()))
            if overlap:
                scored.append((float(overlap), chunk_id))
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [
            IndexHit(chunk_id=cid, score=score, document_id=self.metadata[cid].get("document_id"))
            for score, cid in scored[:top_k]
        ]

    async def delete_by_document(self, document_id: str) -> int:
        doomed = [cid for cid, meta in self.metadata.items() if meta.get("document_id") == document_id]
        for cid in doomed:
            self.texts.pop(cid, None)
            self.metadata.pop(cid, None)
        return len(doomed)

    async def count(self) -> int:
        return len(self.texts)

    def get_provider_name(self) -> str:
        return "fake_fulltext"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# OCR
# ---------------------------------------------------------------------------


class FakeOCRProvider(IOCRProvider):
    """Decodes UTF-8 and splits pages on form feeds; failures are scripted."""

    def __init__(self) -> None:
        self.calls = 0
        self.failures: list[Exception] = []

    async def extract_text(self, data: bytes, content_type: str) -> ExtractedText:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return ExtractedText.from_page_texts(data.decode("utf-8").split("\f"), "fake_ocr")

    def supported_content_types(self) -> frozenset[str]:
        return frozenset({"text/plain"})

    def get_provider_name(self) -> str:
        return "fake_ocr"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Sample text
# ---------------------------------------------------------------------------


def make_paragraph(index: int) -> str:
    """Return a distinct clause of roughly 80 characters."""
    base = f"Clause {index}. The licensee shall pay the licensor royalties within thirty days"
    return base[:80]


def make_three_page_text(paragraphs: int = 7) -> str:
    """Seven paragraphs spread over three form-feed separated pages."""
    paras = [make_paragraph(i) for i in range(1, paragraphs + 1)]
    pages = [paras[0:3], paras[3:5], paras[5:]]
    return "\f".join("\n\n".join(page) for page in pages)




# ---------------------------------------------------------------------------
# Pipeline helpers
# ---------------------------------------------------------------------------


async def drain(orchestrator, worker_id: str = "test-worker", max_claims: int = 100) -> int:
    """Claim and process documents on one worker until nothing is claimable."""
    processed = 0
    while processed < max_claims:
        claim = await orchestrator.claim_next(worker_id)
        if claim is None:
            break
        await orchestrator.process(claim)
        processed += 1
    return processed


async def ingest_text(orchestrator, blob_store, text: str, filename: str = "doc.txt") -> str:
    """Store *text* as a plain-text upload, enqueue it and return its id."""
    document_id = await blob_store.put(text.encode("utf-8"), filename=filename)
    await orchestrator.enqueue(document_id)
    return document_id
