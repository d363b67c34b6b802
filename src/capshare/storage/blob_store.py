"""Blob storage: the content-addressed storage collaborator.

BlobStore defines the contract the object registry relies on. Two
implementations are provided: an in-memory store for tests and demos, and
a filesystem store that persists each blob under its content identifier.

Content identifiers are CIDv1 strings (raw codec, sha2-256 multihash)
rendered in lowercase base32 with the ``b`` multibase prefix, so the same
bytes always yield the same identifier.
"""
from __future__ import annotations

import base64
import datetime
import json
import logging
import mimetypes
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from multiformats import CID, multihash

from capshare.errors import InvalidRequestError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def content_id(data: bytes) -> str:
    """Return the CIDv1 (raw, sha2-256) of *data* in base32 multibase form."""
    digest = multihash.digest(data, "sha2-256")
    return str(CID("base32", 1, "raw", digest))


def guess_content_type(filename: str) -> str:
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or DEFAULT_CONTENT_TYPE


@dataclass(frozen=True)
class StoredBlob:
    """Result of a successful :meth:`BlobStore.store` call."""

    id: str
    stored_at: datetime.datetime
    size: int


@dataclass(frozen=True)
class RetrievedBlob:
    """Bytes and content type returned by :meth:`BlobStore.retrieve`."""

    data: bytes
    content_type: str


class BlobStore(ABC):
    """Abstract base class for content-addressed blob storage backends."""

    @abstractmethod
    def store(self, data: bytes, filename: str) -> StoredBlob:
        """Persist *data* and return its content identifier.

        Raises
        ------
        StorageError
            On any transport or capacity failure.
        """

    @abstractmethod
    def retrieve(self, blob_id: str) -> RetrievedBlob:
        """Return the stored bytes for *blob_id*.

        Raises
        ------
        NotFoundError
            If no blob is stored under *blob_id*.
        StorageError
            On transport failure.
        """

    @abstractmethod
    def locate(self, blob_id: str) -> str | None:
        """Return a URL or handle for *blob_id*, or None if unknown."""


class InMemoryBlobStore(BlobStore):
    """Thread-safe in-memory blob store.

    :meth:`locate` returns a ``data:`` URL carrying the blob itself.

    Parameters
    ----------
    max_bytes:
        Optional total capacity. A store that would exceed it raises
        :class:`~capshare.errors.StorageError`.
    """

    def __init__(self, max_bytes: int | None = None) -> None:
        self._blobs: dict[str, RetrievedBlob] = {}
        self._max_bytes = max_bytes
        self._used = 0
        self._lock = threading.Lock()

    def store(self, data: bytes, filename: str) -> StoredBlob:
        if not isinstance(data, (bytes, bytearray)):
            raise InvalidRequestError("Blob data must be bytes.")
        data = bytes(data)
        blob_id = content_id(data)
        with self._lock:
            if blob_id not in self._blobs:
                if self._max_bytes is not None and self._used + len(data) > self._max_bytes:
                    raise StorageError(
                        f"Storing {len(data)} bytes would exceed capacity of {self._max_bytes} bytes."
                    )
                self._blobs[blob_id] = RetrievedBlob(data=data, content_type=guess_content_type(filename))
                self._used += len(data)
        return StoredBlob(
            id=blob_id,
            stored_at=datetime.datetime.now(datetime.timezone.utc),
            size=len(data),
        )

    def retrieve(self, blob_id: str) -> RetrievedBlob:
        with self._lock:
            blob = self._blobs.get(blob_id)
        if blob is None:
            raise NotFoundError("Blob", blob_id)
        return blob

    def locate(self, blob_id: str) -> str | None:
        with self._lock:
            blob = self._blobs.get(blob_id)
        if blob is None:
            return None
        encoded = base64.b64encode(blob.data).decode("ascii")
        return f"data:{blob.content_type};base64,{encoded}"


class FilesystemBlobStore(BlobStore):
    """Filesystem-backed blob store.

    Each blob is stored under *base_dir* as a directory named by its content
    identifier, holding ``blob`` (the bytes) and ``meta.json``.

    Parameters
    ----------
    base_dir:
        Root directory for blob storage. Created if missing.
    """

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = base_dir
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create storage directory {base_dir}: {exc}") from exc

    def store(self, data: bytes, filename: str) -> StoredBlob:
        if not isinstance(data, (bytes, bytearray)):
            raise InvalidRequestError("Blob data must be bytes.")
        data = bytes(data)
        blob_id = content_id(data)
        blob_dir = self._blob_dir(blob_id)
        stored_at = datetime.datetime.now(datetime.timezone.utc)
        meta = {
            "id": blob_id,
            "filename": filename,
            "content_type": guess_content_type(filename),
            "size": len(data),
            "stored_at": stored_at.isoformat(),
        }
        try:
            blob_dir.mkdir(parents=True, exist_ok=True)
            (blob_dir / "blob").write_bytes(data)
            (blob_dir / "meta.json").write_text(json.dumps(meta, indent=2), encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Failed to write blob {blob_id}: {exc}") from exc
        logger.debug("Stored blob %s (%d bytes) under %s", blob_id, len(data), blob_dir)
        return StoredBlob(id=blob_id, stored_at=stored_at, size=len(data))

    def retrieve(self, blob_id: str) -> RetrievedBlob:
        blob_dir = self._blob_dir(blob_id)
        if not (blob_dir / "blob").exists():
            raise NotFoundError("Blob", blob_id)
        try:
            data = (blob_dir / "blob").read_bytes()
            meta = json.loads((blob_dir / "meta.json").read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Failed to read blob {blob_id}: {exc}") from exc
        return RetrievedBlob(data=data, content_type=str(meta.get("content_type", DEFAULT_CONTENT_TYPE)))

    def locate(self, blob_id: str) -> str | None:
        blob_path = self._blob_dir(blob_id) / "blob"
        if not blob_path.exists():
            return None
        return blob_path.resolve().as_uri()

    def _blob_dir(self, blob_id: str) -> Path:
        # Content ids are base32; anything else could escape base_dir.
        if not blob_id or not blob_id.isalnum():
            raise NotFoundError("Blob", blob_id)
        return self._base_dir / blob_id


__all__ = [
    "BlobStore",
    "DEFAULT_CONTENT_TYPE",
    "FilesystemBlobStore",
    "InMemoryBlobStore",
    "RetrievedBlob",
    "StoredBlob",
    "content_id",
    "guess_content_type",
]
