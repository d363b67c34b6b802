"""ShareService: composition root and request-facing operations.

Builds the delegation store, capability authority, blob store and object
registry once, wires them together explicitly, and exposes the
operations a transport layer calls (upload, share, access, download,
revoke, list). Nothing here is a module-level singleton: construct one
service at process start and pass it to whatever handles requests.

Example
-------
::

    from capshare import ShareService

    service = ShareService.in_memory()
    obj = service.upload(b"...jpeg bytes...", owner_id="did:key:alice", filename="cat.jpg")
    shared = service.share(obj.id, "did:key:alice", "did:key:bob", ["view"], ttl_days=7)
    result = service.access(obj.id, shared.encoded_proof, "view")
    print(result.granted)
"""
from __future__ import annotations

import logging
from collections.abc import Iterable

from capshare.audit import ShareAuditLogger
from capshare.capabilities.capability import Capability
from capshare.config import CapShareConfig
from capshare.delegation.authority import (
    CapabilityAuthority,
    Clock,
    Denied,
    RevocationResult,
)
from capshare.delegation.proof import DelegationProof
from capshare.delegation.record import Delegation
from capshare.delegation.signing import IssuerKey
from capshare.delegation.store import DelegationStore, InMemoryDelegationStore
from capshare.errors import InvalidRequestError
from capshare.registry.object_registry import (
    AccessGrant,
    AccessResult,
    ContentObject,
    ObjectRegistry,
    ObjectSummary,
    ShareResult,
)
from capshare.storage.blob_store import (
    BlobStore,
    FilesystemBlobStore,
    InMemoryBlobStore,
    RetrievedBlob,
)

logger = logging.getLogger(__name__)


class ShareService:
    """Facade over the object registry for transport layers and scripts.

    Parameters
    ----------
    registry:
        The object registry (already wired to an authority and blob store).
    audit:
        The audit logger shared by the components.
    max_upload_bytes:
        Largest accepted upload.
    """

    def __init__(
        self,
        registry: ObjectRegistry,
        audit: ShareAuditLogger,
        max_upload_bytes: int = 10 * 1024 * 1024,
    ) -> None:
        self._registry = registry
        self._audit = audit
        self._max_upload_bytes = max_upload_bytes

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        key: IssuerKey,
        store: DelegationStore | None = None,
        blob_store: BlobStore | None = None,
        config: CapShareConfig | None = None,
        clock: Clock | None = None,
    ) -> "ShareService":
        """Wire a service from explicit components, defaulting to in-memory backends."""
        config = config or CapShareConfig()
        audit = ShareAuditLogger(config.audit_log_path, buffer_size=config.audit_buffer_size)
        authority = CapabilityAuthority(
            store=store or InMemoryDelegationStore(),
            key=key,
            clock=clock,
            audit=audit,
        )
        registry = ObjectRegistry(
            authority=authority,
            blob_store=blob_store or InMemoryBlobStore(),
            base_url=config.base_url,
            default_ttl_days=config.default_ttl_days,
            audit=audit,
        )
        return cls(registry=registry, audit=audit, max_upload_bytes=config.max_upload_bytes)

    @classmethod
    def from_config(cls, config: CapShareConfig, clock: Clock | None = None) -> "ShareService":
        """Build a service as described by *config*."""
        if config.issuer_key_path is not None and config.issuer_key_path.exists():
            key = IssuerKey.from_file(config.issuer_key_path)
        else:
            key = IssuerKey.generate()
            if config.issuer_key_path is not None:
                key.to_file(config.issuer_key_path)
                logger.info("Generated new issuer key at %s", config.issuer_key_path)
            else:
                logger.warning(
                    "No issuer key configured; proofs will not survive a restart (issuer %s)",
                    key.did,
                )

        blob_store: BlobStore
        if config.storage_dir is not None:
            blob_store = FilesystemBlobStore(config.storage_dir)
        else:
            blob_store = InMemoryBlobStore()
        return cls.build(key=key, blob_store=blob_store, config=config, clock=clock)

    @classmethod
    def in_memory(cls, clock: Clock | None = None, base_url: str = "http://localhost:5173") -> "ShareService":
        """Zero-config service with a fresh key and in-memory storage."""
        return cls.build(
            key=IssuerKey.generate(),
            config=CapShareConfig(base_url=base_url),
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def registry(self) -> ObjectRegistry:
        return self._registry

    @property
    def authority(self) -> CapabilityAuthority:
        return self._registry.authority

    @property
    def audit(self) -> ShareAuditLogger:
        return self._audit

    @property
    def issuer(self) -> str:
        return self.authority.issuer

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def upload(self, file: bytes, owner_id: str, filename: str) -> ContentObject:
        """Store *file* and register it as owned by *owner_id*."""
        if len(file) > self._max_upload_bytes:
            raise InvalidRequestError(
                f"Upload of {len(file)} bytes exceeds the limit of {self._max_upload_bytes} bytes."
            )
        return self._registry.upload(owner_id, file, filename)

    def share(
        self,
        subject_id: str,
        owner_id: str,
        grantee_id: str,
        capabilities: Iterable[str | Capability],
        ttl_days: float | None = None,
    ) -> ShareResult:
        return self._registry.share(owner_id, subject_id, grantee_id, capabilities, ttl_days)

    def access(
        self,
        subject_id: str,
        proof: str | DelegationProof,
        action: str | Capability = Capability.VIEW,
    ) -> AccessResult:
        return self._registry.access(subject_id, proof, action)

    def download(
        self,
        subject_id: str,
        proof: str | DelegationProof,
    ) -> tuple[AccessGrant, RetrievedBlob] | Denied:
        """Authorise a download and, if granted, fetch the bytes."""
        result = self._registry.access(subject_id, proof, Capability.DOWNLOAD)
        if isinstance(result, Denied):
            return result
        return result, self._registry.fetch(result)

    def revoke(self, subject_id: str, owner_id: str, grantee_id: str) -> RevocationResult:
        return self._registry.revoke(owner_id, subject_id, grantee_id)

    def list_by_owner(self, owner_id: str) -> list[ObjectSummary]:
        return self._registry.list_by_owner(owner_id)

    def list_delegations(
        self,
        subject_id: str,
        owner_id: str,
        include_inactive: bool = False,
    ) -> list[Delegation]:
        return self._registry.list_delegations(subject_id, owner_id, include_inactive)


__all__ = ["ShareService"]
