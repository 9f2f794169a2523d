# =============================================================================
# src/cli/__init__.py — CLI Module Overview
# =============================================================================
#
# Command-line tools for operating the lexindex ingestion pipeline outside
# of the long-running service (src/main.py).
#
#   INGESTION (ingest.py)
#      Upload documents, run workers, inspect and repair the job ledger,
#      and search the dual index.
#
# Architecture Notes:
#   - argparse for argument parsing (not Click/Typer).
#   - Component wiring is shared with src/main.py (bootstrap()) so the CLI
#     and the service always use the same providers and policy.
# =============================================================================

"""CLI tools for the lexindex pipeline.

- ``python -m src.cli.ingest`` — upload, run, inspect and search.
"""
