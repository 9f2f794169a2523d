"""SQLite FTS5 full-text index adapter.

Stores chunk text in a plain content table and mirrors it into an
external-content FTS5 table through triggers, so an upsert is a single
``INSERT ... ON CONFLICT DO UPDATE`` and the FTS index can never drift from
the stored text.  Queries are ranked with the built-in ``bm25`` function.

Uses ``aiosqlite`` with one connection per operation, like the job ledger.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.interfaces.fulltext_index_provider import IFullTextIndexProvider
from src.models.rag import IndexHit
from src.utils.errors import IndexWriteError, SearchError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/fulltext.db")

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

_CREATE_SQL = [
    """\
CREATE TABLE IF NOT EXISTS fts_chunks (
    id             INTEGER PRIMARY KEY,
    chunk_id       TEXT    NOT NULL UNIQUE,
    document_id    TEXT    NOT NULL,
    text           TEXT    NOT NULL,
    metadata_json  TEXT    NOT NULL DEFAULT '{}'
);
""",
    "CREATE INDEX IF NOT EXISTS idx_fts_chunks_document ON fts_chunks(document_id);",
    """\
CREATE VIRTUAL TABLE IF NOT EXISTS fts_chunks_idx USING fts5(
    text,
    content='fts_chunks',
    content_rowid='id'
);
""",
    """\
CREATE TRIGGER IF NOT EXISTS fts_chunks_ai AFTER INSERT ON fts_chunks BEGIN
    INSERT INTO fts_chunks_idx(rowid, text) VALUES (new.id, new.text);
END;
""",
    """\
CREATE TRIGGER IF NOT EXISTS fts_chunks_ad AFTER DELETE ON fts_chunks BEGIN
    INSERT INTO fts_chunks_idx(fts_chunks_idx, rowid, text) VALUES ('delete', old.id, old.text);
END;
""",
    """\
CREATE TRIGGER IF NOT EXISTS fts_chunks_au AFTER UPDATE ON fts_chunks BEGIN
    INSERT INTO fts_chunks_idx(fts_chunks_idx, rowid, text) VALUES ('delete', old.id, old.text);
    INSERT INTO fts_chunks_idx(rowid, text) VALUES (new.id, new.text);
END;
""",
]

_UPSERT_SQL = """\
INSERT INTO fts_chunks (chunk_id, document_id, text, metadata_json)
VALUES (?, ?, ?, ?)
ON CONFLICT(chunk_id)
DO UPDATE SET document_id   = excluded.document_id,
              text          = excluded.text,
              metadata_json = excluded.metadata_json;
"""

_QUERY_SQL = """\
SELECT c.chunk_id, c.document_id, bm25(fts_chunks_idx) AS rank
FROM fts_chunks_idx
JOIN fts_chunks c ON c.id = fts_chunks_idx.rowid
WHERE fts_chunks_idx MATCH ?
ORDER BY rank
LIMIT ?;
"""


def _to_match_expression(text: str) -> str:
    """Turn free text into an FTS5 query: every word quoted, OR-ed together.

    Quoting keeps user input from being parsed as FTS5 syntax.
    """
    tokens = dict.fromkeys(token.lower() for token in _TOKEN_RE.findall(text))
    return " OR ".join(f'"{token}"' for token in tokens)


class SQLiteFTSIndex(IFullTextIndexProvider):
    """Full-text index stored in a local SQLite database with FTS5.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the content table, FTS5 index and sync triggers."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            for statement in _CREATE_SQL:
                await db.execute(statement)
            await db.commit()
        logger.info("fulltext_db_initialized", path=str(self._db_path))

    async def upsert(self, chunk_id: str, text: str, metadata: dict[str, Any]) -> None:
        document_id = str(metadata.get("document_id", ""))
        try:
            async with aiosqlite.connect(str(self._db_path), timeout=30.0) as db:
                await db.execute(
                    _UPSERT_SQL,
                    (chunk_id, document_id, text, json.dumps(metadata, sort_keys=True)),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise IndexWriteError(
                message=f"FTS upsert failed for {chunk_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def query(self, text: str, top_k: int = 10) -> list[IndexHit]:
        expression = _to_match_expression(text)
        if not expression:
            return []
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(_QUERY_SQL, (expression, top_k))
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise SearchError(
                message=f"FTS query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        # bm25() is lower-is-better; negate so higher scores rank first.
        return [
            IndexHit(chunk_id=chunk_id, score=-rank, document_id=document_id)
            for chunk_id, document_id, rank in rows
        ]

    async def delete_by_document(self, document_id: str) -> int:
        try:
            async with aiosqlite.connect(str(self._db_path), timeout=30.0) as db:
                cursor = await db.execute(
                    "DELETE FROM fts_chunks WHERE document_id = ?;", (document_id,)
                )
                deleted = cursor.rowcount
                await db.commit()
        except aiosqlite.Error as exc:
            raise IndexWriteError(
                message=f"FTS delete failed for {document_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("fts_delete_by_document", document_id=document_id, deleted_count=deleted)
        return deleted

    async def count(self) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM fts_chunks;")
            row = await cursor.fetchone()
        return row[0] if row else 0

    def get_provider_name(self) -> str:
        return "sqlite_fts"

    def is_available(self) -> bool:
        """Return ``True`` once the database file exists."""
        return self._db_path.exists()
