"""Content-addressed blob storage backends."""
from __future__ import annotations

from capshare.storage.blob_store import (
    BlobStore,
    FilesystemBlobStore,
    InMemoryBlobStore,
    RetrievedBlob,
    StoredBlob,
    content_id,
)

__all__ = [
    "BlobStore",
    "FilesystemBlobStore",
    "InMemoryBlobStore",
    "RetrievedBlob",
    "StoredBlob",
    "content_id",
]
