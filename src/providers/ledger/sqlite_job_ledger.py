"""SQLite-backed job ledger.

Persists document processing state, OCR output, chunks, embeddings and
per-backend chunk write status to a local SQLite database at
``data/ledger.db``.  Uses ``aiosqlite`` for async I/O with one connection
per operation.

Concurrency model:
    * The database runs in WAL mode so readers never block the writer.
    * Every mutation runs inside ``BEGIN IMMEDIATE``, which takes SQLite's
      write lock up front.  Claim selection and the claim update therefore
      happen atomically; two workers can never both see a row as free.
    * Each document row carries a ``version`` column.  Updates are issued
      as ``... WHERE document_id = ? AND version = ?`` and must touch
      exactly one row (compare-and-set).
    * Stage artefact writes check the caller's claim token first, so a
      cancelled or taken-over claim cannot leak results into the ledger.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.interfaces.job_ledger import IJobLedger
from src.models.document import ExtractedText
from src.models.pipeline import (
    Claim,
    LedgerEntry,
    PipelineStage,
    ProcessingState,
    Transition,
)
from src.models.rag import Chunk, IndexBackend, IndexWriteStatus
from src.pipeline.state_machine import (
    RUNNING_STATES,
    TERMINAL_STATES,
    next_stage,
    running_state,
    validate_transition,
)
from src.utils.errors import ClaimLostError, PipelineError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/ledger.db")

# Fixed-width UTC timestamps so string comparison in SQL orders correctly.
_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# SQLite caps bound parameters per statement; stay well under the limit.
_IN_CLAUSE_BATCH = 500

_TERMINAL_SQL_LIST = ", ".join(f"'{state.value}'" for state in sorted(TERMINAL_STATES))

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS documents (
    document_id        TEXT    PRIMARY KEY,
    blob_ref           TEXT    NOT NULL,
    original_filename  TEXT    NOT NULL DEFAULT '',
    content_type       TEXT    NOT NULL DEFAULT 'application/octet-stream',
    content_hash       TEXT    NOT NULL DEFAULT '',
    state              TEXT    NOT NULL,
    retry_count        INTEGER NOT NULL DEFAULT 0,
    stage_attempts     TEXT    NOT NULL DEFAULT '{}',
    failed_stage       TEXT,
    next_eligible_at   TEXT,
    claim_token        TEXT,
    claimed_by         TEXT,
    lease_expires_at   TEXT,
    last_error         TEXT,
    dead_letter_reason TEXT,
    review_required    INTEGER NOT NULL DEFAULT 0,
    version            INTEGER NOT NULL DEFAULT 0,
    created_at         TEXT    NOT NULL,
    updated_at         TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS document_texts (
    document_id    TEXT PRIMARY KEY REFERENCES documents(document_id),
    provider_used  TEXT NOT NULL DEFAULT '',
    pages_json     TEXT NOT NULL,
    updated_at     TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS chunks (
    chunk_id         TEXT    PRIMARY KEY,
    document_id      TEXT    NOT NULL REFERENCES documents(document_id),
    ordinal          INTEGER NOT NULL,
    char_start       INTEGER NOT NULL,
    char_end         INTEGER NOT NULL,
    page_start       INTEGER NOT NULL,
    page_end         INTEGER NOT NULL,
    text             TEXT    NOT NULL,
    embedding        TEXT,
    vector_status    TEXT    NOT NULL DEFAULT 'PENDING',
    fulltext_status  TEXT    NOT NULL DEFAULT 'PENDING',
    updated_at       TEXT    NOT NULL
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_state ON documents(state);",
    "CREATE INDEX IF NOT EXISTS idx_documents_hash ON documents(content_hash);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id, ordinal);",
]

_DOCUMENT_COLUMNS = (
    "document_id, blob_ref, original_filename, content_type, content_hash, state, "
    "retry_count, stage_attempts, failed_stage, next_eligible_at, claim_token, "
    "claimed_by, lease_expires_at, last_error, dead_letter_reason, review_required, "
    "version, created_at, updated_at"
)

_INSERT_DOCUMENT_SQL = f"""\
INSERT INTO documents ({_DOCUMENT_COLUMNS})
VALUES (:document_id, :blob_ref, :original_filename, :content_type, :content_hash,
        :state, :retry_count, :stage_attempts, :failed_stage, :next_eligible_at,
        :claim_token, :claimed_by, :lease_expires_at, :last_error,
        :dead_letter_reason, :review_required, :version, :created_at, :updated_at);
"""

# Compare-and-set on version: a concurrent writer makes rowcount 0.
_CAS_UPDATE_DOCUMENT_SQL = """\
UPDATE documents
SET state              = :state,
    retry_count        = :retry_count,
    stage_attempts     = :stage_attempts,
    failed_stage       = :failed_stage,
    next_eligible_at   = :next_eligible_at,
    claim_token        = :claim_token,
    claimed_by         = :claimed_by,
    lease_expires_at   = :lease_expires_at,
    last_error         = :last_error,
    dead_letter_reason = :dead_letter_reason,
    review_required    = :review_required,
    version            = :version,
    updated_at         = :updated_at
WHERE document_id = :document_id AND version = :expected_version;
"""

_SELECT_DOCUMENT_SQL = f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE document_id = ?;"

_SELECT_CLAIMABLE_SQL = f"""\
SELECT {_DOCUMENT_COLUMNS}
FROM documents
WHERE state NOT IN ({_TERMINAL_SQL_LIST})
  AND (claim_token IS NULL OR lease_expires_at <= :now)
  AND (state != 'FAILED' OR next_eligible_at IS NULL OR next_eligible_at <= :now)
ORDER BY COALESCE(next_eligible_at, created_at), created_at
LIMIT 1;
"""

# A claim is orphaned when its lease ran out, or when it belongs to a worker
# of this host's previous run (matched by worker id prefix).
_RELEASE_ORPHANS_SQL = f"""\
UPDATE documents
SET claim_token = NULL,
    claimed_by = NULL,
    lease_expires_at = NULL,
    version = version + 1,
    updated_at = :now
WHERE claim_token IS NOT NULL
  AND state NOT IN ({_TERMINAL_SQL_LIST})
  AND (
      lease_expires_at IS NULL
      OR lease_expires_at <= :now
      OR (:prefix IS NOT NULL AND substr(claimed_by, 1, length(:prefix)) = :prefix)
  );
"""

_UPSERT_TEXT_SQL = """\
INSERT INTO document_texts (document_id, provider_used, pages_json, updated_at)
VALUES (?, ?, ?, ?)
ON CONFLICT(document_id)
DO UPDATE SET provider_used = excluded.provider_used,
              pages_json    = excluded.pages_json,
              updated_at    = excluded.updated_at;
"""

_CHUNK_COLUMNS = (
    "chunk_id, document_id, ordinal, char_start, char_end, page_start, page_end, "
    "text, embedding, vector_status, fulltext_status"
)

# Existing rows keep their embedding and write statuses.
_INSERT_CHUNK_SQL = """\
INSERT INTO chunks (chunk_id, document_id, ordinal, char_start, char_end,
                    page_start, page_end, text, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(chunk_id) DO NOTHING;
"""

_STATUS_COLUMNS: dict[IndexBackend, str] = {
    IndexBackend.VECTOR: "vector_status",
    IndexBackend.FULLTEXT: "fulltext_status",
}


# ---------------------------------------------------------------------------
# Row (de)serialisation helpers
# ---------------------------------------------------------------------------

def _fmt_ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)  # noqa: UP017
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)  # noqa: UP017


def _parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)  # noqa: UP017


def _row_to_entry(row: aiosqlite.Row) -> LedgerEntry:
    attempts = {PipelineStage(k): int(v) for k, v in json.loads(row["stage_attempts"]).items()}
    return LedgerEntry(
        document_id=row["document_id"],
        blob_ref=row["blob_ref"],
        original_filename=row["original_filename"],
        content_type=row["content_type"],
        content_hash=row["content_hash"],
        state=ProcessingState(row["state"]),
        retry_count=row["retry_count"],
        stage_attempts=attempts,
        failed_stage=PipelineStage(row["failed_stage"]) if row["failed_stage"] else None,
        next_eligible_at=_parse_ts(row["next_eligible_at"]),
        claim_token=row["claim_token"],
        claimed_by=row["claimed_by"],
        lease_expires_at=_parse_ts(row["lease_expires_at"]),
        last_error=row["last_error"],
        dead_letter_reason=row["dead_letter_reason"],
        review_required=bool(row["review_required"]),
        version=row["version"],
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


def _entry_params(entry: LedgerEntry) -> dict[str, Any]:
    return {
        "document_id": entry.document_id,
        "blob_ref": entry.blob_ref,
        "original_filename": entry.original_filename,
        "content_type": entry.content_type,
        "content_hash": entry.content_hash,
        "state": entry.state.value,
        "retry_count": entry.retry_count,
        "stage_attempts": json.dumps(
            {stage.value: count for stage, count in entry.stage_attempts.items()},
            sort_keys=True,
        ),
        "failed_stage": entry.failed_stage.value if entry.failed_stage else None,
        "next_eligible_at": _fmt_ts(entry.next_eligible_at),
        "claim_token": entry.claim_token,
        "claimed_by": entry.claimed_by,
        "lease_expires_at": _fmt_ts(entry.lease_expires_at),
        "last_error": entry.last_error,
        "dead_letter_reason": entry.dead_letter_reason,
        "review_required": int(entry.review_required),
        "version": entry.version,
        "created_at": _fmt_ts(entry.created_at),
        "updated_at": _fmt_ts(entry.updated_at),
    }


def _row_to_chunk(row: aiosqlite.Row) -> Chunk:
    embedding = json.loads(row["embedding"]) if row["embedding"] else None
    return Chunk(
        chunk_id=row["chunk_id"],
        document_id=row["document_id"],
        ordinal=row["ordinal"],
        char_start=row["char_start"],
        char_end=row["char_end"],
        page_start=row["page_start"],
        page_end=row["page_end"],
        text=row["text"],
        embedding=embedding,
        vector_status=IndexWriteStatus(row["vector_status"]),
        fulltext_status=IndexWriteStatus(row["fulltext_status"]),
    )


class SQLiteJobLedger(IJobLedger):
    """SQLite-backed ledger with compare-and-set state transitions.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    busy_timeout:
        Seconds a connection waits for SQLite's write lock before failing.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH, busy_timeout: float = 30.0) -> None:
        self._db_path = Path(db_path)
        self._busy_timeout = busy_timeout

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        # isolation_level=None: transactions are opened explicitly below.
        async with aiosqlite.connect(
            str(self._db_path),
            timeout=self._busy_timeout,
            isolation_level=None,
        ) as db:
            db.row_factory = aiosqlite.Row
            yield db

    @asynccontextmanager
    async def _write_txn(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                yield db
            except BaseException:
                await db.execute("ROLLBACK")
                raise
            await db.execute("COMMIT")

    async def _fetch_entry(self, db: aiosqlite.Connection, document_id: str) -> LedgerEntry | None:
        cursor = await db.execute(_SELECT_DOCUMENT_SQL, (document_id,))
        row = await cursor.fetchone()
        return _row_to_entry(row) if row is not None else None

    async def _commit_entry(
        self,
        db: aiosqlite.Connection,
        current: LedgerEntry,
        updated: LedgerEntry,
    ) -> LedgerEntry:
        """Write *updated* over *current* if the row still has *current*'s version."""
        if updated.state is not current.state or updated.state in RUNNING_STATES:
            validate_transition(current.state, updated.state, current.failed_stage)
        params = _entry_params(updated)
        params["expected_version"] = current.version
        cursor = await db.execute(_CAS_UPDATE_DOCUMENT_SQL, params)
        if cursor.rowcount != 1:
            raise ClaimLostError(
                f"Document {current.document_id} changed concurrently "
                f"(expected version {current.version})",
                provider_name=self.get_provider_name(),
            )
        return updated

    async def _assert_claim(
        self,
        db: aiosqlite.Connection,
        document_id: str,
        claim_token: str,
    ) -> LedgerEntry:
        entry = await self._fetch_entry(db, document_id)
        if entry is None or entry.claim_token is None or entry.claim_token != claim_token:
            raise ClaimLostError(
                f"Claim on document {document_id} is no longer held",
                provider_name=self.get_provider_name(),
            )
        return entry

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create tables and indices, and switch the database to WAL mode."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
        logger.info("ledger_db_initialized", path=str(self._db_path))

    async def ping(self) -> bool:
        async with self._connect() as db:
            cursor = await db.execute("SELECT 1;")
            row = await cursor.fetchone()
        return row is not None and row[0] == 1

    # ------------------------------------------------------------------
    # Document entries
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        document_id: str,
        blob_ref: str,
        now: datetime,
        original_filename: str = "",
        content_type: str = "application/octet-stream",
        content_hash: str = "",
    ) -> tuple[LedgerEntry, bool]:
        async with self._write_txn() as db:
            current = await self._fetch_entry(db, document_id)
            if current is None:
                entry = LedgerEntry(
                    document_id=document_id,
                    blob_ref=blob_ref,
                    original_filename=original_filename,
                    content_type=content_type,
                    content_hash=content_hash,
                    state=ProcessingState.QUEUED,
                    created_at=now,
                    updated_at=now,
                )
                await db.execute(_INSERT_DOCUMENT_SQL, _entry_params(entry))
                logger.info("document_enqueued", document_id=document_id)
                return entry, True

            if current.state not in (ProcessingState.DEAD_LETTERED, ProcessingState.DEGRADED):
                return current, False

            requeued = current.model_copy(
                update={
                    "state": ProcessingState.QUEUED,
                    "retry_count": 0,
                    "stage_attempts": {},
                    "failed_stage": None,
                    "next_eligible_at": None,
                    "claim_token": None,
                    "claimed_by": None,
                    "lease_expires_at": None,
                    "last_error": None,
                    "dead_letter_reason": None,
                    "review_required": False,
                    "version": current.version + 1,
                    "updated_at": now,
                }
            )
            await self._commit_entry(db, current, requeued)

        logger.info(
            "document_requeued",
            document_id=document_id,
            previous_state=current.state.value,
        )
        return requeued, True

    async def get(self, document_id: str) -> LedgerEntry | None:
        async with self._connect() as db:
            return await self._fetch_entry(db, document_id)

    async def get_many(self, document_ids: list[str]) -> dict[str, LedgerEntry]:
        unique_ids = list(dict.fromkeys(document_ids))
        entries: dict[str, LedgerEntry] = {}
        async with self._connect() as db:
            for start in range(0, len(unique_ids), _IN_CLAUSE_BATCH):
                batch = unique_ids[start : start + _IN_CLAUSE_BATCH]
                placeholders = ", ".join("?" for _ in batch)
                cursor = await db.execute(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM documents "
                    f"WHERE document_id IN ({placeholders});",
                    batch,
                )
                for row in await cursor.fetchall():
                    entry = _row_to_entry(row)
                    entries[entry.document_id] = entry
        return entries

    async def find_by_content_hash(self, content_hash: str) -> LedgerEntry | None:
        if not content_hash:
            return None
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents "
                "WHERE content_hash = ? ORDER BY created_at LIMIT 1;",
                (content_hash,),
            )
            row = await cursor.fetchone()
        return _row_to_entry(row) if row is not None else None

    async def list_entries(
        self,
        state: ProcessingState | None = None,
        limit: int = 100,
    ) -> list[LedgerEntry]:
        async with self._connect() as db:
            if state is not None:
                cursor = await db.execute(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM documents "
                    "WHERE state = ? ORDER BY created_at DESC LIMIT ?;",
                    (state.value, limit),
                )
            else:
                cursor = await db.execute(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM documents "
                    "ORDER BY created_at DESC LIMIT ?;",
                    (limit,),
                )
            rows = await cursor.fetchall()
        return [_row_to_entry(r) for r in rows]

    async def count_by_state(self) -> dict[ProcessingState, int]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT state, COUNT(*) AS total FROM documents GROUP BY state;"
            )
            rows = await cursor.fetchall()
        return {ProcessingState(r["state"]): r["total"] for r in rows}

    # ------------------------------------------------------------------
    # Claims and transitions
    # ------------------------------------------------------------------

    async def claim_next(
        self,
        worker_id: str,
        now: datetime,
        lease_seconds: float,
    ) -> Claim | None:
        async with self._write_txn() as db:
            while True:
                cursor = await db.execute(_SELECT_CLAIMABLE_SQL, {"now": _fmt_ts(now)})
                row = await cursor.fetchone()
                if row is None:
                    return None
                current = _row_to_entry(row)

                try:
                    stage = next_stage(current.state, current.failed_stage)
                except PipelineError as exc:
                    # A FAILED row without a stage cannot be resumed.
                    await self._commit_entry(
                        db,
                        current,
                        current.model_copy(
                            update={
                                "state": ProcessingState.DEAD_LETTERED,
                                "claim_token": None,
                                "claimed_by": None,
                                "lease_expires_at": None,
                                "dead_letter_reason": exc.reason_code,
                                "last_error": str(exc),
                                "version": current.version + 1,
                                "updated_at": now,
                            }
                        ),
                    )
                    logger.error(
                        "unresumable_entry_dead_lettered",
                        document_id=current.document_id,
                        error=str(exc),
                    )
                    continue
                if stage is None:
                    return None

                attempts = dict(current.stage_attempts)
                attempts[stage] = attempts.get(stage, 0) + 1
                token = uuid.uuid4().hex
                lease_expires_at = now + timedelta(seconds=lease_seconds)
                claimed = current.model_copy(
                    update={
                        "state": running_state(stage),
                        "stage_attempts": attempts,
                        "failed_stage": None,
                        "next_eligible_at": None,
                        "claim_token": token,
                        "claimed_by": worker_id,
                        "lease_expires_at": lease_expires_at,
                        "version": current.version + 1,
                        "updated_at": now,
                    }
                )
                await self._commit_entry(db, current, claimed)
                break

        logger.info(
            "document_claimed",
            document_id=claimed.document_id,
            worker_id=worker_id,
            stage=stage.value,
            previous_state=current.state.value,
            attempt=attempts[stage],
        )
        return Claim(
            document_id=claimed.document_id,
            claim_token=token,
            worker_id=worker_id,
            stage=stage,
            state=claimed.state,
            lease_expires_at=lease_expires_at,
        )

    async def record_transition(self, transition: Transition, now: datetime) -> LedgerEntry:
        async with self._write_txn() as db:
            current = await self._fetch_entry(db, transition.document_id)
            if current is None:
                raise PipelineError(
                    f"Unknown document {transition.document_id}",
                    provider_name=self.get_provider_name(),
                )
            if current.state is not transition.from_state or (
                current.claim_token != transition.claim_token
            ):
                raise ClaimLostError(
                    f"Document {transition.document_id} is {current.state.value}, "
                    f"expected {transition.from_state.value} under the caller's claim",
                    provider_name=self.get_provider_name(),
                )

            to_state = transition.to_state
            update: dict[str, Any] = {
                "state": to_state,
                "version": current.version + 1,
                "updated_at": now,
            }
            if transition.retry_count is not None:
                update["retry_count"] = transition.retry_count
            if transition.last_error is not None:
                update["last_error"] = transition.last_error
            if transition.review_required is not None:
                update["review_required"] = transition.review_required

            if to_state in RUNNING_STATES:
                stage = next_stage(to_state)
                attempts = dict(current.stage_attempts)
                attempts[stage] = attempts.get(stage, 0) + 1
                update["stage_attempts"] = attempts
            if to_state is ProcessingState.FAILED:
                update["failed_stage"] = transition.failed_stage
                update["next_eligible_at"] = transition.next_eligible_at
            elif to_state in (ProcessingState.DEAD_LETTERED, ProcessingState.DEGRADED):
                update["failed_stage"] = transition.failed_stage or current.failed_stage
                update["next_eligible_at"] = None
            else:
                update["failed_stage"] = None
                update["next_eligible_at"] = None
            if to_state is ProcessingState.DEAD_LETTERED:
                update["dead_letter_reason"] = transition.dead_letter_reason

            releases = (
                transition.release_claim
                or to_state in TERMINAL_STATES
                or to_state is ProcessingState.FAILED
            )
            if releases:
                update.update(claim_token=None, claimed_by=None, lease_expires_at=None)
            elif transition.lease_expires_at is not None:
                update["lease_expires_at"] = transition.lease_expires_at

            updated = await self._commit_entry(db, current, current.model_copy(update=update))

        logger.debug(
            "transition_recorded",
            document_id=transition.document_id,
            from_state=transition.from_state.value,
            to_state=to_state.value,
        )
        return updated

    async def renew_lease(
        self,
        document_id: str,
        claim_token: str,
        lease_expires_at: datetime,
    ) -> None:
        async with self._write_txn() as db:
            current = await self._assert_claim(db, document_id, claim_token)
            await self._commit_entry(
                db,
                current,
                current.model_copy(
                    update={
                        "lease_expires_at": lease_expires_at,
                        "version": current.version + 1,
                    }
                ),
            )

    async def cancel(self, document_id: str, reason: str, now: datetime) -> LedgerEntry | None:
        async with self._write_txn() as db:
            current = await self._fetch_entry(db, document_id)
            if current is None or current.state is ProcessingState.DEAD_LETTERED:
                return current
            cancelled = await self._commit_entry(
                db,
                current,
                current.model_copy(
                    update={
                        "state": ProcessingState.DEAD_LETTERED,
                        "claim_token": None,
                        "claimed_by": None,
                        "lease_expires_at": None,
                        "next_eligible_at": None,
                        "dead_letter_reason": reason,
                        "version": current.version + 1,
                        "updated_at": now,
                    }
                ),
            )
        logger.info(
            "document_cancelled",
            document_id=document_id,
            previous_state=current.state.value,
            reason=reason,
        )
        return cancelled

    async def release_orphaned_claims(self, now: datetime, worker_prefix: str | None = None) -> int:
        async with self._write_txn() as db:
            cursor = await db.execute(
                _RELEASE_ORPHANS_SQL,
                {"now": _fmt_ts(now), "prefix": worker_prefix or None},
            )
            released = cursor.rowcount
        if released:
            logger.warning("orphaned_claims_released", count=released)
        return released

    # ------------------------------------------------------------------
    # Stage artefacts
    # ------------------------------------------------------------------

    async def save_extracted_text(
        self,
        document_id: str,
        claim_token: str,
        extracted: ExtractedText,
    ) -> None:
        pages_json = json.dumps([page.model_dump() for page in extracted.pages])
        async with self._write_txn() as db:
            await self._assert_claim(db, document_id, claim_token)
            await db.execute(
                _UPSERT_TEXT_SQL,
                (document_id, extracted.provider_used, pages_json, _fmt_ts(datetime.now(tz=timezone.utc))),  # noqa: UP017
            )

    async def load_extracted_text(self, document_id: str) -> ExtractedText | None:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT provider_used, pages_json FROM document_texts WHERE document_id = ?;",
                (document_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return ExtractedText(
            pages=json.loads(row["pages_json"]),
            provider_used=row["provider_used"],
        )

    async def save_chunks(
        self,
        document_id: str,
        claim_token: str,
        chunks: list[Chunk],
    ) -> list[Chunk]:
        now_s = _fmt_ts(datetime.now(tz=timezone.utc))  # noqa: UP017
        wanted = {chunk.chunk_id for chunk in chunks}
        async with self._write_txn() as db:
            await self._assert_claim(db, document_id, claim_token)

            cursor = await db.execute(
                "SELECT chunk_id FROM chunks WHERE document_id = ?;", (document_id,)
            )
            stale = [row["chunk_id"] for row in await cursor.fetchall() if row["chunk_id"] not in wanted]
            if stale:
                await db.executemany(
                    "DELETE FROM chunks WHERE chunk_id = ?;", [(cid,) for cid in stale]
                )

            await db.executemany(
                _INSERT_CHUNK_SQL,
                [
                    (
                        c.chunk_id,
                        document_id,
                        c.ordinal,
                        c.char_start,
                        c.char_end,
                        c.page_start,
                        c.page_end,
                        c.text,
                        now_s,
                    )
                    for c in chunks
                ],
            )
            cursor = await db.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE document_id = ? ORDER BY ordinal;",
                (document_id,),
            )
            rows = await cursor.fetchall()

        if stale:
            logger.info("stale_chunks_removed", document_id=document_id, count=len(stale))
        return [_row_to_chunk(r) for r in rows]

    async def load_chunks(self, document_id: str) -> list[Chunk]:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE document_id = ? ORDER BY ordinal;",
                (document_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_chunk(r) for r in rows]

    async def get_chunks(self, chunk_ids: list[str]) -> dict[str, Chunk]:
        unique_ids = list(dict.fromkeys(chunk_ids))
        found: dict[str, Chunk] = {}
        async with self._connect() as db:
            for start in range(0, len(unique_ids), _IN_CLAUSE_BATCH):
                batch = unique_ids[start : start + _IN_CLAUSE_BATCH]
                placeholders = ", ".join("?" for _ in batch)
                cursor = await db.execute(
                    f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE chunk_id IN ({placeholders});",
                    batch,
                )
                for row in await cursor.fetchall():
                    chunk = _row_to_chunk(row)
                    found[chunk.chunk_id] = chunk
        return found

    async def save_embeddings(
        self,
        document_id: str,
        claim_token: str,
        vectors: dict[str, list[float]],
    ) -> None:
        if not vectors:
            return
        now_s = _fmt_ts(datetime.now(tz=timezone.utc))  # noqa: UP017
        async with self._write_txn() as db:
            await self._assert_claim(db, document_id, claim_token)
            await db.executemany(
                "UPDATE chunks SET embedding = ?, updated_at = ? "
                "WHERE chunk_id = ? AND document_id = ?;",
                [
                    (json.dumps(vector), now_s, chunk_id, document_id)
                    for chunk_id, vector in vectors.items()
                ],
            )

    async def record_chunk_write(
        self,
        document_id: str,
        claim_token: str,
        chunk_id: str,
        backend: IndexBackend,
        status: IndexWriteStatus,
    ) -> None:
        column = _STATUS_COLUMNS[backend]
        async with self._write_txn() as db:
            await self._assert_claim(db, document_id, claim_token)
            await db.execute(
                f"UPDATE chunks SET {column} = ?, updated_at = ? "
                "WHERE chunk_id = ? AND document_id = ?;",
                (status.value, _fmt_ts(datetime.now(tz=timezone.utc)), chunk_id, document_id),  # noqa: UP017
            )

    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
        return "sqlite_ledger"
