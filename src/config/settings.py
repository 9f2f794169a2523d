"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from TWO sources (in priority order):
#
#   1. **Environment variables** — e.g. OPENAI_API_KEY=sk-abc123
#   2. **.env file** — key=value lines in the project root .env file
#
# Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``.
#
# Settings holds secrets, filesystem paths and backend choices.  Tunable
# pipeline behaviour (chunk sizes, retry limits, timeouts) lives in
# config/config.yaml and is validated into PipelinePolicy; the
# ``pipeline_*`` fields below override individual YAML values when set.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """lexindex application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Embedding providers ===
    # "auto" tries OpenAI (when a key is set) and then Nomic via Ollama.
    embedding_provider: str = "auto"
    openai_api_key: str = ""
    openai_base_url: str = ""  # Custom base URL for OpenAI-compatible APIs
    openai_embedding_model: str = ""  # Defaults to text-embedding-3-small
    ollama_base_url: str = "http://localhost:11434"

    # === OCR ===
    tesseract_cmd: str = ""  # Path to the tesseract binary when not on PATH
    tesseract_lang: str = "eng"

    # === Storage ===
    blob_store_dir: str = "data/blobs"
    ledger_db_path: str = "data/ledger.db"

    # === Vector index ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "lexindex_chunks"

    # === Full-text index ===
    fulltext_backend: str = "sqlite"  # "sqlite" or "opensearch"
    fulltext_db_path: str = "data/fulltext.db"
    opensearch_url: str = "http://localhost:9200"
    opensearch_index: str = "lexindex-chunks"
    opensearch_username: str = ""
    opensearch_password: str = ""
    opensearch_verify_ssl: bool = True

    # === Pipeline overrides (None = use config.yaml) ===
    pipeline_worker_count: int | None = None
    pipeline_max_attempts: int | None = None
    pipeline_chunk_size: int | None = None
    pipeline_chunk_overlap: int | None = None

    # === Workers ===
    # Worker ids are "<worker_name>-<n>"; defaults to "<hostname>-worker".
    # Give each process on one host its own name.
    worker_name: str = ""

    # === App Config ===
    config_path: str = "config/config.yaml"
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_embedding_providers(self) -> list[str]:
        """Return embedding provider names that have the configuration they need."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("nomic")
        return providers

    def pipeline_overrides(self) -> dict[str, int]:
        """Return the ``pipeline_*`` overrides that are set, keyed by policy field."""
        overrides = {
            "worker_count": self.pipeline_worker_count,
            "max_attempts": self.pipeline_max_attempts,
            "chunk_size": self.pipeline_chunk_size,
            "chunk_overlap": self.pipeline_chunk_overlap,
        }
        return {key: value for key, value in overrides.items() if value is not None}
