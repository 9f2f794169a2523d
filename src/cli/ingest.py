# =============================================================================
# src/cli/ingest.py — CLI for the Document Ingestion Pipeline
# =============================================================================
#
# Operator tool for the lexindex ingestion pipeline.  Uploads documents,
# drives the worker pool, inspects the job ledger and queries the dual
# (vector + full-text) index.
#
# Supported subcommands:
#
#   upload    — Store one or more files and queue them for ingestion
#   enqueue   — Queue an already-stored document id
#   run       — Run the worker pool (forever, or --until-idle)
#   status    — Show the ledger entry of one document
#   list      — List ledger entries, optionally filtered by --state
#   requeue   — Reset a DEAD_LETTERED / DEGRADED document to QUEUED
#   cancel    — Dead-letter a document; in-flight results are discarded
#   delete    — Cancel a document and remove its index entries and blob
#   search    — Hybrid search over the indexed chunks
#   health    — Check every backend the pipeline depends on
#   recover   — Release expired claims (or those of a stopped worker pool)
#
# Every command builds the same component graph as src/main.py.
#
# Usage examples:
#   python -m src.cli.ingest upload contracts/*.pdf
#   python -m src.cli.ingest run --until-idle
#   python -m src.cli.ingest list --state DEAD_LETTERED
#   python -m src.cli.ingest search "termination for convenience" --top-k 5
# =============================================================================

"""Standalone CLI for the lexindex ingestion pipeline.

Usage::

    python -m src.cli.ingest upload /path/to/contract.pdf

    python -m src.cli.ingest run --until-idle

    python -m src.cli.ingest search "indemnification cap"
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

from src.config.settings import Settings
from src.models.pipeline import LedgerEntry, ProcessingState
from src.utils.errors import LexIndexError


def _print_entry(entry: LedgerEntry) -> None:
    print(f"  Document:   {entry.document_id}")
    print(f"  File:       {entry.original_filename or '-'} ({entry.content_type})")
    print(f"  State:      {entry.state.value}")
    print(f"  Retries:    {entry.retry_count}")
    if entry.stage_attempts:
        attempts = ", ".join(f"{stage.value}={n}" for stage, n in entry.stage_attempts.items())
        print(f"  Attempts:   {attempts}")
    if entry.failed_stage is not None:
        print(f"  Failed at:  {entry.failed_stage.value}")
    if entry.next_eligible_at is not None:
        print(f"  Retry at:   {entry.next_eligible_at.isoformat()}")
    if entry.last_error:
        print(f"  Last error: {entry.last_error}")
    if entry.dead_letter_reason:
        print(f"  Reason:     {entry.dead_letter_reason}")
    if entry.review_required:
        print("  Review:     REQUIRED")


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_upload(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Store each file and queue it."""
    intake = components["intake_service"]
    exit_code = 0
    for raw_path in args.files:
        path = Path(raw_path)
        if not path.is_file():
            print(f"Error: {path} is not a file", file=sys.stderr)
            exit_code = 1
            continue
        entry, created = await intake.submit(
            path.read_bytes(),
            filename=path.name,
            content_type=args.content_type,
            dedupe=not args.no_dedupe,
        )
        label = "Queued" if created else "Already known"
        print(f"{label}: {path.name} -> {entry.document_id} [{entry.state.value}]")
    return exit_code


async def _handle_enqueue(args: argparse.Namespace, components: dict[str, Any]) -> int:
    entry = await components["orchestrator"].enqueue(args.document_id)
    print(f"{entry.document_id}: {entry.state.value}")
    return 0


async def _handle_run(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Drain the queue once and print the resulting state counts."""
    orchestrator = components["orchestrator"]
    tracker = orchestrator.progress_tracker
    pool = components["worker_pool"]
    await orchestrator.recover(worker_prefix=pool.worker_prefix)

    def _print_update(document_id: str, state: ProcessingState, message: str) -> None:
        print(f"  {document_id}  {state.value:<15} {message}")

    if args.follow:
        tracker.register_listener(_print_update)
    try:
        processed = await pool.run_until_idle()
    finally:
        tracker.unregister_listener(_print_update)

    print(f"Processed {processed} claims.")
    counts = await components["ledger"].count_by_state()
    for state, count in sorted(counts.items(), key=lambda item: item[0].value):
        print(f"  {state.value:<15} {count}")
    alerts = tracker.get_alerts()
    if alerts:
        print(f"Partial-index alerts ({len(alerts)}):")
        for alert in alerts:
            print(f"  {alert.document_id}  {alert.reason}")
    return 0


async def _handle_status(args: argparse.Namespace, components: dict[str, Any]) -> int:
    entry = await components["orchestrator"].get_status(args.document_id)
    if entry is None:
        print(f"Unknown document: {args.document_id}", file=sys.stderr)
        return 1
    _print_entry(entry)
    return 0


async def _handle_list(args: argparse.Namespace, components: dict[str, Any]) -> int:
    state = ProcessingState(args.state) if args.state else None
    entries = await components["ledger"].list_entries(state=state, limit=args.limit)
    if not entries:
        print("No documents.")
        return 0
    for entry in entries:
        name = entry.original_filename or "-"
        print(f"{entry.document_id}  {entry.state.value:<15} retries={entry.retry_count}  {name}")
    return 0


async def _handle_requeue(args: argparse.Namespace, components: dict[str, Any]) -> int:
    entry = await components["orchestrator"].requeue(args.document_id)
    if entry is None:
        print(f"Unknown document: {args.document_id}", file=sys.stderr)
        return 1
    print(f"{entry.document_id}: {entry.state.value}")
    return 0


async def _handle_cancel(args: argparse.Namespace, components: dict[str, Any]) -> int:
    entry = await components["orchestrator"].cancel(args.document_id, reason=args.reason)
    if entry is None:
        print(f"Unknown document: {args.document_id}", file=sys.stderr)
        return 1
    print(f"{entry.document_id}: {entry.state.value} ({entry.dead_letter_reason})")
    return 0


async def _handle_delete(args: argparse.Namespace, components: dict[str, Any]) -> int:
    entry = await components["orchestrator"].delete(args.document_id)
    if entry is None:
        print(f"Unknown document: {args.document_id}", file=sys.stderr)
        return 1
    print(f"{entry.document_id}: deleted from both indexes and the blob store")
    return 0


async def _handle_search(args: argparse.Namespace, components: dict[str, Any]) -> int:
    top_k = args.top_k or components["default_top_k"]
    hits = await components["search_service"].search(args.query, top_k=top_k)
    if not hits:
        print("No results.")
        return 0
    for rank, hit in enumerate(hits, start=1):
        pages = f"p.{hit.page_start}" if hit.page_start == hit.page_end else f"pp.{hit.page_start}-{hit.page_end}"
        flag = "  [partially indexed]" if hit.degraded else ""
        print(f"{rank:>2}. {hit.original_filename or hit.document_id} {pages} (score {hit.score:.4f}){flag}")
        snippet = " ".join(hit.text.split())
        print(f"    {snippet[:200]}{'...' if len(snippet) > 200 else ''}")
    return 0


async def _handle_health(args: argparse.Namespace, components: dict[str, Any]) -> int:
    report = await components["health_service"].check()
    for component in report.components:
        status = "ok" if component.healthy else "UNAVAILABLE"
        detail = f" ({component.detail})" if component.detail else ""
        if component.entry_count is not None:
            detail += f" [{component.entry_count} entries]"
        print(f"  {component.name:<15} {component.provider:<28} {status}{detail}")
    return 0 if report.healthy else 1


async def _handle_recover(args: argparse.Namespace, components: dict[str, Any]) -> int:
    released = await components["orchestrator"].recover(worker_prefix=args.worker_prefix)
    print(f"Released {released} orphaned claims.")
    return 0


async def _dispatch(args: argparse.Namespace, components: dict[str, Any]) -> int:
    from src.main import initialize_components, serve, shutdown_components

    if args.command == "run" and not args.until_idle:
        # serve() owns initialisation, recovery and shutdown.
        await serve(components)
        return 0

    handlers = {
        "upload": _handle_upload,
        "enqueue": _handle_enqueue,
        "run": _handle_run,
        "status": _handle_status,
        "list": _handle_list,
        "requeue": _handle_requeue,
        "cancel": _handle_cancel,
        "delete": _handle_delete,
        "search": _handle_search,
        "health": _handle_health,
        "recover": _handle_recover,
    }
    await initialize_components(components)
    try:
        return await handlers[args.command](args, components)
    finally:
        await shutdown_components(components)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ingestion CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.ingest",
        description="Manage the lexindex document ingestion pipeline.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Pipeline commands")

    # -- upload --
    upload_parser = subparsers.add_parser("upload", help="Store files and queue them")
    upload_parser.add_argument("files", nargs="+", help="Paths of the documents to upload")
    upload_parser.add_argument(
        "--content-type",
        dest="content_type",
        default=None,
        help="MIME type (default: guessed from the filename)",
    )
    upload_parser.add_argument(
        "--no-dedupe",
        action="store_true",
        dest="no_dedupe",
        help="Store the file even if identical content was uploaded before",
    )

    # -- enqueue --
    enqueue_parser = subparsers.add_parser("enqueue", help="Queue a stored document id")
    enqueue_parser.add_argument("document_id", help="Document id from the blob store")

    # -- run --
    run_parser = subparsers.add_parser("run", help="Run the ingestion worker pool")
    run_parser.add_argument("--workers", type=int, default=None, help="Worker count override")
    run_parser.add_argument(
        "--until-idle",
        action="store_true",
        dest="until_idle",
        help="Exit once no document can be claimed",
    )
    run_parser.add_argument(
        "--follow",
        action="store_true",
        help="Print every state change (with --until-idle)",
    )

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show one document's ledger entry")
    status_parser.add_argument("document_id")

    # -- list --
    list_parser = subparsers.add_parser("list", help="List ledger entries")
    list_parser.add_argument(
        "--state",
        choices=[state.value for state in ProcessingState],
        default=None,
        help="Only show documents in this state",
    )
    list_parser.add_argument("--limit", type=int, default=50)

    # -- requeue --
    requeue_parser = subparsers.add_parser(
        "requeue", help="Reset a dead-lettered or degraded document"
    )
    requeue_parser.add_argument("document_id")

    # -- cancel --
    cancel_parser = subparsers.add_parser("cancel", help="Cancel a document")
    cancel_parser.add_argument("document_id")
    cancel_parser.add_argument("--reason", default="cancelled", help="Dead-letter reason")

    # -- delete --
    delete_parser = subparsers.add_parser(
        "delete", help="Cancel a document and remove its index entries and blob"
    )
    delete_parser.add_argument("document_id")

    # -- search --
    search_parser = subparsers.add_parser("search", help="Search the indexed chunks")
    search_parser.add_argument("query")
    search_parser.add_argument("--top-k", type=int, dest="top_k", default=None)

    # -- health --
    subparsers.add_parser("health", help="Check backend availability")

    # -- recover --
    recover_parser = subparsers.add_parser("recover", help="Release orphaned claims")
    recover_parser.add_argument(
        "--worker-prefix",
        dest="worker_prefix",
        default=None,
        help="Also release live claims of workers with this id prefix (a stopped pool)",
    )

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """CLI entry point for the ingestion tool.

    Parses the subcommand, builds the component graph from environment
    settings and config.yaml, and dispatches to the handler.
    """
    parser = _build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    from src.main import bootstrap

    try:
        overrides = {}
        if args.command == "run" and args.workers:
            overrides["pipeline_worker_count"] = args.workers
        components = bootstrap(Settings(**overrides))
        exit_code = asyncio.run(_dispatch(args, components))
    except LexIndexError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
