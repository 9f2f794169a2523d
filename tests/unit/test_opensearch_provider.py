"""Unit tests for the OpenSearch adapter, driven through httpx.MockTransport."""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from src.providers.fulltext.opensearch_provider import OpenSearchIndex
from src.utils.errors import IndexWriteError, SearchError

_BASE = "http://opensearch.test:9200"


def _index(handler: Callable[[httpx.Request], httpx.Response]) -> OpenSearchIndex:
    client = httpx.AsyncClient(base_url=_BASE, transport=httpx.MockTransport(handler))
    return OpenSearchIndex(base_url=_BASE, index_name="chunks", client=client)


class TestOpenSearchIndex:
    @pytest.mark.asyncio
    async def test_initialize_creates_missing_index(self) -> None:
        requests: list[tuple[str, str]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append((request.method, request.url.path))
            if request.method == "HEAD":
                return httpx.Response(404)
            body = json.loads(request.content)
            assert body["mappings"]["properties"]["text"]["type"] == "text"
            return httpx.Response(200, json={"acknowledged": True})

        await _index(handler).initialize()
        assert requests == [("HEAD", "/chunks"), ("PUT", "/chunks")]

    @pytest.mark.asyncio
    async def test_initialize_skips_existing_index(self) -> None:
        methods: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            return httpx.Response(200)

        await _index(handler).initialize()
        assert methods == ["HEAD"]

    @pytest.mark.asyncio
    async def test_initialize_tolerates_concurrent_creation(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "HEAD":
                return httpx.Response(404)
            return httpx.Response(
                400, json={"error": {"type": "resource_already_exists_exception"}}
            )

        await _index(handler).initialize()

    @pytest.mark.asyncio
    async def test_upsert_puts_document_under_chunk_id(self) -> None:
        captured: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            return httpx.Response(201, json={"result": "created"})

        await _index(handler).upsert("c-1", "Governing law", {"document_id": "d-1", "ordinal": 0})

        assert captured["method"] == "PUT"
        assert captured["path"] == "/chunks/_doc/c-1"
        assert captured["body"] == {
            "document_id": "d-1",
            "ordinal": 0,
            "chunk_id": "c-1",
            "text": "Governing law",
        }

    @pytest.mark.asyncio
    async def test_upsert_server_error_is_index_write_error(self) -> None:
        index = _index(lambda request: httpx.Response(503, text="cluster_block_exception"))
        with pytest.raises(IndexWriteError) as exc_info:
            await index.upsert("c-1", "text", {})
        assert exc_info.value.provider_name == "opensearch"

    @pytest.mark.asyncio
    async def test_query_maps_hits(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert request.url.path == "/chunks/_search"
            assert body["size"] == 5
            assert body["query"]["match"]["text"]["query"] == "force majeure"
            return httpx.Response(
                200,
                json={
                    "hits": {
                        "hits": [
                            {"_id": "c-2", "_score": 3.5, "_source": {"document_id": "d-1"}},
                            {"_id": "c-9", "_score": 1.25, "_source": {"document_id": "d-4"}},
                        ]
                    }
                },
            )

        hits = await _index(handler).query("force majeure", top_k=5)

        assert [h.chunk_id for h in hits] == ["c-2", "c-9"]
        assert hits[0].score == 3.5
        assert hits[1].document_id == "d-4"

    @pytest.mark.asyncio
    async def test_blank_query_skips_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert await _index(handler).query("  ") == []

    @pytest.mark.asyncio
    async def test_query_failure_is_search_error(self) -> None:
        index = _index(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(SearchError):
            await index.query("indemnity")

    @pytest.mark.asyncio
    async def test_delete_by_document(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/chunks/_delete_by_query"
            assert request.url.params["refresh"] == "true"
            assert json.loads(request.content) == {"query": {"term": {"document_id": "d-1"}}}
            return httpx.Response(200, json={"deleted": 4})

        assert await _index(handler).delete_by_document("d-1") == 4

    @pytest.mark.asyncio
    async def test_count(self) -> None:
        index = _index(lambda request: httpx.Response(200, json={"count": 12}))
        assert await index.count() == 12

    def test_provider_name(self) -> None:
        assert _index(lambda request: httpx.Response(200)).get_provider_name() == "opensearch"
