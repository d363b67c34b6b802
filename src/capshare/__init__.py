"""capshare: scoped, time-bounded capability delegation for content-addressed objects.

An object owner delegates a subset of operations (``view``, ``download``)
on one object to another identity for a bounded period. The grantee
receives a signed proof; presenting it later is checked against the live
delegation state, so revocation and expiry always take effect.

Public API
----------
The stable public surface is everything exported from this module.

Quick start
-----------
::

    from capshare import ShareService

    service = ShareService.in_memory()
    obj = service.upload(b"...", owner_id="alice", filename="cat.jpg")
    shared = service.share(obj.id, "alice", "bob", ["view"], ttl_days=30)
    assert service.access(obj.id, shared.encoded_proof, "view").granted
    service.revoke(obj.id, "alice", "bob")
    print(service.access(obj.id, shared.encoded_proof, "view").reason)  # revoked
"""
from __future__ import annotations

__version__: str = "0.1.0"

from capshare.audit import AuditEvent, ShareAuditLogger
from capshare.capabilities import Capability, parse_capabilities, parse_capability
from capshare.config import CapShareConfig
from capshare.delegation import (
    CapabilityAuthority,
    Delegation,
    DelegationProof,
    DelegationStore,
    Denied,
    DenialReason,
    Granted,
    InMemoryDelegationStore,
    IssuerKey,
    RevocationResult,
)
from capshare.errors import (
    AuthorizationError,
    CapShareError,
    DuplicateObjectError,
    InvalidRequestError,
    MalformedProofError,
    NotFoundError,
    StorageError,
)
from capshare.registry import (
    AccessGrant,
    ContentObject,
    ObjectRegistry,
    ObjectSummary,
    ShareResult,
)
from capshare.service import ShareService
from capshare.storage import BlobStore, FilesystemBlobStore, InMemoryBlobStore

__all__ = [
    "__version__",
    # service
    "ShareService",
    "CapShareConfig",
    # capabilities
    "Capability",
    "parse_capabilities",
    "parse_capability",
    # delegation
    "CapabilityAuthority",
    "Delegation",
    "DelegationProof",
    "DelegationStore",
    "Denied",
    "DenialReason",
    "Granted",
    "InMemoryDelegationStore",
    "IssuerKey",
    "RevocationResult",
    # registry
    "AccessGrant",
    "ContentObject",
    "ObjectRegistry",
    "ObjectSummary",
    "ShareResult",
    # storage
    "BlobStore",
    "FilesystemBlobStore",
    "InMemoryBlobStore",
    # audit
    "AuditEvent",
    "ShareAuditLogger",
    # errors
    "AuthorizationError",
    "CapShareError",
    "DuplicateObjectError",
    "InvalidRequestError",
    "MalformedProofError",
    "NotFoundError",
    "StorageError",
]
