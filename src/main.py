"""lexindex service entry point.

Wires together all providers and services via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, releases claims left over from a previous process and
then runs the ingestion worker pool until SIGINT/SIGTERM.

``build_components`` and ``initialize_components`` are also used by the
CLI (``python -m src.cli.ingest``) so both entry points share one wiring.
"""

from __future__ import annotations

import asyncio
import signal
import socket
from typing import Any

import structlog

from src.config.loader import load_config, load_policy
from src.config.policy import PipelinePolicy
from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.fulltext_index_provider import IFullTextIndexProvider
from src.pipeline.orchestrator import IngestionOrchestrator
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.worker_pool import WorkerPool
from src.providers.blob.local_blob_store import LocalBlobStore
from src.providers.fulltext.opensearch_provider import OpenSearchIndex
from src.providers.fulltext.sqlite_fts_provider import SQLiteFTSIndex
from src.providers.ledger.sqlite_job_ledger import SQLiteJobLedger
from src.providers.ocr.pdf_ocr_provider import PyMuPDFOCRProvider
from src.providers.ocr.plain_text_provider import PlainTextProvider
from src.providers.ocr.tesseract_provider import TesseractOCRProvider
from src.providers.vector_index.chromadb_provider import ChromaDBVectorIndex
from src.services.health_service import HealthService
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.embedding_stage import EmbeddingStage
from src.services.ingestion.index_writer import DualIndexWriter
from src.services.intake_service import IntakeService
from src.services.ocr_service import OCRService
from src.services.search_service import SearchService
from src.utils.errors import ConfigurationError
from src.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding provider.

    ``EMBEDDING_PROVIDER=openai`` or ``nomic`` forces one; ``auto`` tries
    OpenAI (if an API key is set) and then Nomic via Ollama.

    Raises
    ------
    ConfigurationError
        If no provider is configured and reachable.
    """
    from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
    from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

    choice = app_settings.embedding_provider.lower()
    if choice == "openai":
        return OpenAIEmbeddingProvider(settings=app_settings)
    if choice == "nomic":
        return NomicEmbeddingProvider(settings=app_settings)
    if choice != "auto":
        raise ConfigurationError(f"Unknown embedding provider {app_settings.embedding_provider!r}")

    if app_settings.openai_api_key:
        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider

    provider = NomicEmbeddingProvider(settings=app_settings)
    if provider.is_available():
        return provider

    raise ConfigurationError(
        "No embedding provider available. Set OPENAI_API_KEY or run Ollama at OLLAMA_BASE_URL."
    )


def _build_fulltext_index(app_settings: Settings) -> IFullTextIndexProvider:
    backend = app_settings.fulltext_backend.lower()
    if backend == "sqlite":
        return SQLiteFTSIndex(db_path=app_settings.fulltext_db_path)
    if backend == "opensearch":
        return OpenSearchIndex(
            base_url=app_settings.opensearch_url,
            index_name=app_settings.opensearch_index,
            username=app_settings.opensearch_username,
            password=app_settings.opensearch_password,
            verify_ssl=app_settings.opensearch_verify_ssl,
        )
    raise ConfigurationError(f"Unknown full-text backend {app_settings.fulltext_backend!r}")


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(
    app_settings: Settings,
    policy: PipelinePolicy,
    config: dict | None = None,
) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components.  Nothing touches disk or the
    network beyond provider availability checks; call
    :func:`initialize_components` before use.
    """
    config = config or {}
    search_config = config.get("search") or {}

    # -- Storage --
    blob_store = LocalBlobStore(root_dir=app_settings.blob_store_dir)
    ledger = SQLiteJobLedger(db_path=app_settings.ledger_db_path)

    # -- Text extraction (ordered by priority) --
    ocr_providers = [
        PyMuPDFOCRProvider(tesseract_lang=app_settings.tesseract_lang),
        TesseractOCRProvider(
            lang=app_settings.tesseract_lang,
            tesseract_cmd=app_settings.tesseract_cmd,
        ),
        PlainTextProvider(),
    ]
    ocr_service = OCRService(providers=ocr_providers, timeout_seconds=policy.ocr_timeout_seconds)

    # -- Embedding + indexes --
    embedding_provider = _build_embedding_provider(app_settings)
    vector_index = ChromaDBVectorIndex(
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.chromadb_collection,
    )
    fulltext_index = _build_fulltext_index(app_settings)

    # -- Stages --
    chunker = TextChunker(chunk_size=policy.chunk_size, overlap=policy.chunk_overlap)
    embedding_stage = EmbeddingStage(
        provider=embedding_provider,
        batch_size=policy.embed_batch_size,
        timeout_seconds=policy.embed_timeout_seconds,
    )
    index_writer = DualIndexWriter(
        vector_index=vector_index,
        fulltext_index=fulltext_index,
        concurrency=policy.index_concurrency,
        timeout_seconds=policy.index_timeout_seconds,
    )

    # -- Orchestration --
    progress_tracker = ProgressTracker()
    orchestrator = IngestionOrchestrator(
        ledger=ledger,
        blob_store=blob_store,
        ocr_service=ocr_service,
        chunker=chunker,
        embedding_stage=embedding_stage,
        index_writer=index_writer,
        policy=policy,
        progress_tracker=progress_tracker,
    )
    worker_pool = WorkerPool(
        orchestrator=orchestrator,
        worker_count=policy.worker_count,
        poll_interval_seconds=policy.poll_interval_seconds,
        name=app_settings.worker_name or f"{socket.gethostname()}-worker",
    )

    # -- Outer services --
    intake_service = IntakeService(blob_store=blob_store, ledger=ledger, orchestrator=orchestrator)
    search_service = SearchService(
        ledger=ledger,
        embedding_provider=embedding_provider,
        vector_index=vector_index,
        fulltext_index=fulltext_index,
        rrf_k=int(search_config.get("rrf_k", 60)),
    )
    health_service = HealthService(
        ledger=ledger,
        blob_store=blob_store,
        vector_index=vector_index,
        fulltext_index=fulltext_index,
        embedding_provider=embedding_provider,
    )

    return {
        "settings": app_settings,
        "policy": policy,
        "blob_store": blob_store,
        "ledger": ledger,
        "ocr_service": ocr_service,
        "embedding_provider": embedding_provider,
        "vector_index": vector_index,
        "fulltext_index": fulltext_index,
        "progress_tracker": progress_tracker,
        "orchestrator": orchestrator,
        "worker_pool": worker_pool,
        "intake_service": intake_service,
        "search_service": search_service,
        "health_service": health_service,
        "default_top_k": int(search_config.get("default_top_k", 10)),
    }


async def initialize_components(components: dict[str, Any]) -> None:
    """Create schemas and indexes; safe to call on every start."""
    await components["ledger"].initialize()
    await components["fulltext_index"].initialize()


async def shutdown_components(components: dict[str, Any]) -> None:
    fulltext_index = components["fulltext_index"]
    if isinstance(fulltext_index, OpenSearchIndex):
        await fulltext_index.aclose()


def bootstrap(app_settings: Settings | None = None) -> dict[str, Any]:
    """Load settings/config, configure logging and build all components."""
    app_settings = app_settings or Settings()
    config = load_config(settings=app_settings)
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )
    policy = load_policy(config)
    return build_components(app_settings, policy, config)


# ---------------------------------------------------------------------------
# Service loop
# ---------------------------------------------------------------------------


async def serve(components: dict[str, Any]) -> None:
    """Recover, then run the worker pool until a termination signal arrives."""
    await initialize_components(components)
    orchestrator: IngestionOrchestrator = components["orchestrator"]
    worker_pool: WorkerPool = components["worker_pool"]

    # Claims from a crashed previous run of this pool must be released
    # before any of its workers starts claiming.
    await orchestrator.recover(worker_prefix=worker_pool.worker_prefix)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    _logger.info(
        "app_startup",
        environment=components["settings"].app_env,
        embedding=components["embedding_provider"].get_provider_name(),
        fulltext=components["fulltext_index"].get_provider_name(),
        workers=components["policy"].worker_count,
    )
    try:
        await worker_pool.run(stop_event=stop_event)
    finally:
        await shutdown_components(components)
        _logger.info("app_shutdown", processed=worker_pool.processed)


def main() -> None:
    asyncio.run(serve(bootstrap()))


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
