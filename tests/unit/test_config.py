"""Unit tests for Settings, PipelinePolicy and the YAML config loader."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from src.config.loader import load_config, load_policy
from src.config.policy import PipelinePolicy
from src.config.settings import Settings
from src.utils.errors import ConfigurationError


def _settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)


class TestPipelinePolicy:
    def test_defaults_are_valid(self) -> None:
        policy = PipelinePolicy()
        assert policy.max_attempts == 5
        assert policy.chunk_overlap < policy.chunk_size

    def test_overlap_must_be_below_chunk_size(self) -> None:
        with pytest.raises(ValidationError, match="chunk_overlap"):
            PipelinePolicy(chunk_size=100, chunk_overlap=100)

    def test_backoff_cap_below_base_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PipelinePolicy(backoff_base_seconds=10.0, backoff_cap_seconds=1.0)

    def test_policy_is_frozen(self) -> None:
        policy = PipelinePolicy()
        with pytest.raises(ValidationError):
            policy.max_attempts = 9  # type: ignore[misc]

    def test_unknown_keys_ignored(self) -> None:
        policy = PipelinePolicy(max_attempts=3, not_a_setting=True)
        assert policy.max_attempts == 3


class TestSettings:
    def test_available_embedding_providers(self) -> None:
        assert _settings(openai_api_key="", ollama_base_url="").get_available_embedding_providers() == []
        settings = _settings(openai_api_key="sk-test")
        assert settings.get_available_embedding_providers() == ["openai", "nomic"]

    def test_pipeline_overrides_only_include_set_values(self) -> None:
        settings = _settings(pipeline_worker_count=8, pipeline_chunk_size=500)
        assert settings.pipeline_overrides() == {"worker_count": 8, "chunk_size": 500}


class TestLoadConfig:
    def test_reads_yaml_and_applies_env_overrides(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "pipeline:\n  max_attempts: 7\n  worker_count: 2\nsearch:\n  rrf_k: 30\n"
        )
        settings = _settings(pipeline_worker_count=6, fulltext_backend="opensearch")

        config = load_config(str(config_file), settings=settings)

        assert config["pipeline"]["max_attempts"] == 7
        assert config["pipeline"]["worker_count"] == 6
        assert config["search"]["rrf_k"] == 30
        assert config["fulltext"]["backend"] == "opensearch"

    def test_missing_file_yields_env_only_config(self, tmp_path: Path) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), settings=_settings())
        assert config["pipeline"] == {}
        assert config["app"]["env"] == "development"

    def test_malformed_yaml_raises_configuration_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("pipeline: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(str(config_file), settings=_settings())

    def test_repository_config_produces_valid_policy(self) -> None:
        repo_config = Path(__file__).resolve().parents[2] / "config" / "config.yaml"
        policy = load_policy(load_config(str(repo_config), settings=_settings()))
        assert policy.chunk_size == 1200
        assert policy.max_attempts == 5


class TestLoadPolicy:
    def test_empty_section_uses_defaults(self) -> None:
        assert load_policy({}) == PipelinePolicy()

    def test_invalid_values_raise_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid pipeline configuration"):
            load_policy({"pipeline": {"max_attempts": 0}})
