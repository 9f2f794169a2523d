"""Blob store implementations.

LocalBlobStore keeps raw uploads on the local filesystem at BLOB_STORE_DIR
(default: data/blobs).
"""

from src.providers.blob.local_blob_store import LocalBlobStore

__all__ = ["LocalBlobStore"]
