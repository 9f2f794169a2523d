"""Local filesystem blob store.

Each document is stored as two files under the store directory:

    {document_id}.bin   -- the raw bytes, exactly as uploaded
    {document_id}.json  -- a :class:`BlobInfo` sidecar

Files are written to a temporary name and moved into place with
``os.replace``, so a reader never sees a half-written blob.  Blocking file
I/O runs in a worker thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import hashlib
import mimetypes
import os
import tempfile
import uuid
from pathlib import Path

import structlog

from src.interfaces.blob_store import IBlobStore
from src.models.document import BlobInfo
from src.utils.errors import BlobNotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _atomic_write(path: Path, data: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class LocalBlobStore(IBlobStore):
    """Blob store rooted at a local directory.

    Parameters
    ----------
    root_dir:
        Directory holding blob and sidecar files; created if missing.
    """

    def __init__(self, root_dir: str | Path = "data/blobs") -> None:
        self._root = Path(root_dir)
        self._root.mkdir(parents=True, exist_ok=True)

    async def put(
        self,
        data: bytes,
        filename: str = "",
        content_type: str | None = None,
    ) -> str:
        document_id = uuid.uuid4().hex
        resolved_type = content_type or mimetypes.guess_type(filename)[0] or _DEFAULT_CONTENT_TYPE
        info = BlobInfo(
            document_id=document_id,
            blob_ref=str(self._blob_path(document_id)),
            original_filename=filename,
            content_type=resolved_type,
            content_hash=hashlib.sha256(data).hexdigest(),
            size_bytes=len(data),
        )
        await asyncio.to_thread(self._write, document_id, data, info)
        logger.info(
            "blob_stored",
            document_id=document_id,
            filename=filename,
            content_type=resolved_type,
            size_bytes=len(data),
        )
        return document_id

    async def get(self, document_id: str) -> bytes:
        path = self._blob_path(document_id)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise BlobNotFoundError(
                f"No blob stored for document {document_id}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def stat(self, document_id: str) -> BlobInfo:
        path = self._info_path(document_id)
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError as exc:
            raise BlobNotFoundError(
                f"No blob stored for document {document_id}",
                provider_name=self.get_provider_name(),
            ) from exc
        return BlobInfo.model_validate_json(raw)

    async def delete(self, document_id: str) -> bool:
        return await asyncio.to_thread(self._delete, document_id)

    def get_provider_name(self) -> str:
        return "local_blob_store"

    def is_available(self) -> bool:
        """Return ``True`` if the root directory exists and is writable."""
        return self._root.is_dir() and os.access(self._root, os.W_OK)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _blob_path(self, document_id: str) -> Path:
        return self._root / f"{Path(document_id).name}.bin"

    def _info_path(self, document_id: str) -> Path:
        return self._root / f"{Path(document_id).name}.json"

    def _write(self, document_id: str, data: bytes, info: BlobInfo) -> None:
        _atomic_write(self._blob_path(document_id), data)
        # Sidecar last: a blob without a sidecar is invisible to stat().
        _atomic_write(self._info_path(document_id), info.model_dump_json().encode("utf-8"))

    def _delete(self, document_id: str) -> bool:
        existed = self._blob_path(document_id).exists()
        self._info_path(document_id).unlink(missing_ok=True)
        self._blob_path(document_id).unlink(missing_ok=True)
        if existed:
            logger.info("blob_deleted", document_id=document_id)
        return existed
