"""Unit tests for provider selection and component wiring in src.main."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from src.config.policy import PipelinePolicy
from src.config.settings import Settings
from src.main import (
    _build_embedding_provider,
    _build_fulltext_index,
    build_components,
    initialize_components,
    shutdown_components,
)
from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.fulltext.opensearch_provider import OpenSearchIndex
from src.providers.fulltext.sqlite_fts_provider import SQLiteFTSIndex
from src.utils.errors import ConfigurationError


def _settings(tmp_path: Path, **overrides) -> Settings:
    fields = {
        "openai_api_key": "sk-test",
        "embedding_provider": "openai",
        "blob_store_dir": str(tmp_path / "blobs"),
        "ledger_db_path": str(tmp_path / "ledger.db"),
        "chromadb_persist_dir": str(tmp_path / "chroma"),
        "fulltext_db_path": str(tmp_path / "fulltext.db"),
    }
    fields.update(overrides)
    return Settings(_env_file=None, **fields)


class TestEmbeddingProviderSelection:
    def test_forced_openai(self, tmp_path: Path) -> None:
        assert isinstance(_build_embedding_provider(_settings(tmp_path)), OpenAIEmbeddingProvider)

    def test_forced_nomic(self, tmp_path: Path) -> None:
        provider = _build_embedding_provider(_settings(tmp_path, embedding_provider="nomic"))
        assert isinstance(provider, NomicEmbeddingProvider)

    def test_auto_prefers_openai_with_key(self, tmp_path: Path) -> None:
        provider = _build_embedding_provider(_settings(tmp_path, embedding_provider="auto"))
        assert isinstance(provider, OpenAIEmbeddingProvider)

    def test_auto_falls_back_to_nomic(self, tmp_path: Path) -> None:
        settings = _settings(tmp_path, embedding_provider="auto", openai_api_key="")
        with patch(
            "src.providers.embedding.nomic_embedding_provider.httpx.get",
            return_value=httpx.Response(200, json={"models": []}),
        ):
            provider = _build_embedding_provider(settings)
        assert isinstance(provider, NomicEmbeddingProvider)

    def test_auto_without_any_provider_fails(self, tmp_path: Path) -> None:
        settings = _settings(tmp_path, embedding_provider="auto", openai_api_key="")
        with patch(
            "src.providers.embedding.nomic_embedding_provider.httpx.get",
            side_effect=httpx.ConnectError("refused"),
        ), pytest.raises(ConfigurationError):
            _build_embedding_provider(settings)

    def test_unknown_provider(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            _build_embedding_provider(_settings(tmp_path, embedding_provider="word2vec"))


class TestFullTextSelection:
    def test_sqlite(self, tmp_path: Path) -> None:
        assert isinstance(_build_fulltext_index(_settings(tmp_path)), SQLiteFTSIndex)

    def test_opensearch(self, tmp_path: Path) -> None:
        index = _build_fulltext_index(_settings(tmp_path, fulltext_backend="opensearch"))
        assert isinstance(index, OpenSearchIndex)

    def test_unknown_backend(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            _build_fulltext_index(_settings(tmp_path, fulltext_backend="solr"))


class TestBuildComponents:
    @pytest.mark.asyncio
    async def test_wires_every_component(self, tmp_path: Path) -> None:
        policy = PipelinePolicy(worker_count=3)
        components = build_components(
            _settings(tmp_path), policy, {"search": {"default_top_k": 7, "rrf_k": 30}}
        )

        for key in (
            "blob_store",
            "ledger",
            "ocr_service",
            "embedding_provider",
            "vector_index",
            "fulltext_index",
            "orchestrator",
            "worker_pool",
            "intake_service",
            "search_service",
            "health_service",
        ):
            assert components[key] is not None, key
        assert components["default_top_k"] == 7
        assert components["orchestrator"].policy is policy
        assert {"application/pdf", "image/png", "text/plain"} <= (
            components["ocr_service"].supported_content_types()
        )

        await initialize_components(components)
        assert await components["ledger"].ping() is True
        await shutdown_components(components)
