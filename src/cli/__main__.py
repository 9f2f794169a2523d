# =============================================================================
# src/cli/__main__.py — Package Entry Point
# =============================================================================
#
# Enables `python -m src.cli` as a shortcut for `python -m src.cli.ingest`.
# =============================================================================

"""Allow ``python -m src.cli`` execution."""

from src.cli.ingest import main

main()
