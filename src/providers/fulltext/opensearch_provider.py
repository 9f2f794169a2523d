"""OpenSearch full-text index adapter.

Talks to OpenSearch over its REST API with ``httpx`` rather than a
dedicated client library: the adapter needs five endpoints (index create,
document PUT, search, delete-by-query, count) and ``httpx`` is already
the project's HTTP client.

Every chunk is stored as one document whose ``_id`` is the chunk id, so
``PUT /{index}/_doc/{chunk_id}`` is naturally idempotent.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.interfaces.fulltext_index_provider import IFullTextIndexProvider
from src.models.rag import IndexHit
from src.utils.errors import IndexWriteError, SearchError

logger = structlog.get_logger(logger_name=__name__)

_INDEX_MAPPINGS: dict[str, Any] = {
    "mappings": {
        "properties": {
            "chunk_id": {"type": "keyword"},
            "document_id": {"type": "keyword"},
            "ordinal": {"type": "integer"},
            "page_start": {"type": "integer"},
            "page_end": {"type": "integer"},
            "filename": {"type": "keyword"},
            "text": {"type": "text", "analyzer": "english"},
        }
    }
}


class OpenSearchIndex(IFullTextIndexProvider):
    """Full-text index backed by an OpenSearch cluster.

    Parameters
    ----------
    base_url:
        Cluster URL, e.g. ``http://localhost:9200``.
    index_name:
        Index holding chunk documents.
    username, password:
        Basic-auth credentials; leave empty for an unsecured cluster.
    verify_ssl:
        Whether to verify the cluster's TLS certificate.
    client:
        Optional pre-built ``httpx.AsyncClient`` (tests inject one backed by
        ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:9200",
        index_name: str = "lexindex-chunks",
        username: str = "",
        password: str = "",
        verify_ssl: bool = True,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._index = index_name
        self._auth = httpx.BasicAuth(username, password) if username else None
        self._verify_ssl = verify_ssl
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            auth=self._auth,
            verify=verify_ssl,
            timeout=timeout,
        )

    async def initialize(self) -> None:
        """Create the index with its mappings if it does not exist yet."""
        response = await self._client.head(f"/{self._index}")
        if response.status_code == 200:
            return
        response = await self._client.put(f"/{self._index}", json=_INDEX_MAPPINGS)
        # A concurrent creator wins with 400 resource_already_exists_exception.
        if response.status_code == 400 and "resource_already_exists" in response.text:
            return
        response.raise_for_status()
        logger.info("opensearch_index_created", index=self._index)

    async def upsert(self, chunk_id: str, text: str, metadata: dict[str, Any]) -> None:
        body = {**metadata, "chunk_id": chunk_id, "text": text}
        try:
            response = await self._client.put(f"/{self._index}/_doc/{chunk_id}", json=body)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise IndexWriteError(
                message=f"OpenSearch upsert failed for {chunk_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def query(self, text: str, top_k: int = 10) -> list[IndexHit]:
        if not text.strip():
            return []
        body = {
            "size": top_k,
            "_source": ["document_id"],
            "query": {"match": {"text": {"query": text}}},
        }
        try:
            response = await self._client.post(f"/{self._index}/_search", json=body)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SearchError(
                message=f"OpenSearch query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        hits = payload.get("hits", {}).get("hits", [])
        return [
            IndexHit(
                chunk_id=hit["_id"],
                score=float(hit.get("_score") or 0.0),
                document_id=(hit.get("_source") or {}).get("document_id"),
            )
            for hit in hits
        ]

    async def delete_by_document(self, document_id: str) -> int:
        body = {"query": {"term": {"document_id": document_id}}}
        try:
            response = await self._client.post(
                f"/{self._index}/_delete_by_query",
                params={"refresh": "true"},
                json=body,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise IndexWriteError(
                message=f"OpenSearch delete failed for {document_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        deleted = int(response.json().get("deleted", 0))
        logger.info("opensearch_delete_by_document", document_id=document_id, deleted_count=deleted)
        return deleted

    async def count(self) -> int:
        response = await self._client.get(f"/{self._index}/_count")
        response.raise_for_status()
        return int(response.json().get("count", 0))

    async def aclose(self) -> None:
        await self._client.aclose()

    def get_provider_name(self) -> str:
        return "opensearch"

    def is_available(self) -> bool:
        """Check whether the cluster answers a health request."""
        try:
            response = httpx.get(
                f"{self._base_url}/_cluster/health",
                auth=self._auth,
                verify=self._verify_ssl,
                timeout=3.0,
            )
            return response.status_code == 200
        except httpx.HTTPError:
            return False
