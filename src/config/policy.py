"""Operational parameters of the ingestion pipeline.

Chunk sizing, retry limits, backoff constants, batch sizes and timeouts are
configuration, not behaviour.  They are read from the ``pipeline`` section
of config/config.yaml and validated here once at startup.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PipelinePolicy(BaseModel):
    """Validated, immutable pipeline tuning."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    # --- Chunking (characters) ---
    chunk_size: int = Field(default=1200, ge=50, description="Max characters per chunk.")
    chunk_overlap: int = Field(default=200, ge=0, description="Max characters shared by neighbours.")

    # --- Retries ---
    max_attempts: int = Field(
        default=5,
        ge=1,
        description=(
            "Transient failures a document may accumulate before it is dead-lettered. "
            "The count is cumulative across all stages and is not reset when a stage "
            "succeeds; only a manual requeue clears it."
        ),
    )
    backoff_base_seconds: float = Field(default=2.0, ge=0.0)
    backoff_cap_seconds: float = Field(default=300.0, ge=0.0)

    # --- Embedding ---
    embed_batch_size: int = Field(default=64, ge=1)

    # --- Concurrency ---
    worker_count: int = Field(default=4, ge=1)
    index_concurrency: int = Field(default=8, ge=1, description="In-flight upserts per backend.")
    lease_seconds: float = Field(default=600.0, gt=0.0)
    poll_interval_seconds: float = Field(default=2.0, gt=0.0)

    # --- Per-stage timeouts (seconds) ---
    ocr_timeout_seconds: float = Field(default=180.0, gt=0.0)
    embed_timeout_seconds: float = Field(default=60.0, gt=0.0)
    index_timeout_seconds: float = Field(default=30.0, gt=0.0)

    @model_validator(mode="after")
    def _check_relations(self) -> PipelinePolicy:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"chunk_size ({self.chunk_size})"
            )
        if self.backoff_cap_seconds < self.backoff_base_seconds:
            raise ValueError("backoff_cap_seconds must be >= backoff_base_seconds")
        return self
