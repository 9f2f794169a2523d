"""Job ledger implementations.

SQLiteJobLedger keeps every document's processing state, OCR output,
chunks and per-backend write status in one local SQLite database.
"""

from src.providers.ledger.sqlite_job_ledger import SQLiteJobLedger

__all__ = ["SQLiteJobLedger"]
