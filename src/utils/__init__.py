"""Utility modules for lexindex.

Available utility modules (re-exported here for convenience):

- **errors** -- Domain exception hierarchy rooted at LexIndexError; errors
  are grouped into transient and permanent categories so the orchestrator
  can decide between retrying and dead-lettering.
- **backoff** -- Pure exponential backoff schedule for failed stages.
- **concurrency** -- asyncio semaphore throttling and batching helpers that
  keep index writes and embedding calls under backend limits.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ConfigurationError,
    LexIndexError,
    PermanentError,
    PipelineError,
    TransientError,
)

# -- Retry schedule ----------------------------------------------------------
from src.utils.backoff import compute_backoff_delay

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import batched, throttled_gather

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import bound_context, configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "LexIndexError",
    "PermanentError",
    "PipelineError",
    "TransientError",
    "batched",
    "bound_context",
    "compute_backoff_delay",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
