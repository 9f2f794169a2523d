"""Configuration module — exports Settings, PipelinePolicy, the loaders, and a module-level singleton."""

from src.config.loader import load_config, load_policy
from src.config.policy import PipelinePolicy
from src.config.settings import Settings

settings = Settings()

__all__ = ["PipelinePolicy", "Settings", "load_config", "load_policy", "settings"]
