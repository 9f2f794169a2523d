"""Ingestion pipeline: state machine, orchestrator, worker pool and progress tracking."""

from src.pipeline.orchestrator import IngestionOrchestrator
from src.pipeline.progress_tracker import PartialIndexAlert, ProgressTracker
from src.pipeline.worker_pool import WorkerPool

__all__ = ["IngestionOrchestrator", "PartialIndexAlert", "ProgressTracker", "WorkerPool"]
