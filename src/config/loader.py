"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  — Static defaults checked into the repo
#   2. .env file           — Local developer overrides (not committed)
#   3. Environment vars    — Set at deploy time
#
# load_config() reads the YAML file first, then deep-merges the
# environment-based values on top.  load_policy() turns the merged
# ``pipeline`` section into a validated PipelinePolicy.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml
from pydantic import ValidationError

from src.config.policy import PipelinePolicy
from src.config.settings import Settings
from src.utils.errors import ConfigurationError


def load_config(path: str | None = None, settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.  Defaults to
              ``settings.config_path``.
        settings: Settings instance to take overrides from.  A fresh one is
                  built from the environment when omitted.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the YAML file exists but cannot be parsed.
    """
    settings = settings or Settings()
    config_path = Path(path or settings.config_path)
    if config_path.exists():
        try:
            with open(config_path) as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Cannot parse {config_path}: {exc}") from exc
    else:
        yaml_config = {}

    env_overrides = {
        "app": {
            "env": settings.app_env,
        },
        "embedding": {
            "provider": settings.embedding_provider,
            "available_providers": settings.get_available_embedding_providers(),
        },
        "fulltext": {
            "backend": settings.fulltext_backend,
        },
        "pipeline": settings.pipeline_overrides(),
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def load_policy(config: dict) -> PipelinePolicy:
    """Validate the ``pipeline`` section of *config* into a PipelinePolicy.

    Raises:
        ConfigurationError: If any value is out of range.
    """
    try:
        return PipelinePolicy(**(config.get("pipeline") or {}))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid pipeline configuration: {exc}") from exc


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
