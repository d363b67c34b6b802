"""ObjectRegistry: catalog of content objects and gate for capability-checked access.

The registry records who owns each content identifier and mediates every
share, access and revoke request. It asks the
:class:`~capshare.delegation.authority.CapabilityAuthority` for decisions
and is the only component that talks to the blob store.
"""
from __future__ import annotations

import datetime
import logging
import threading
import urllib.parse
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Union

from capshare.audit import ShareAuditLogger
from capshare.capabilities.capability import Capability, parse_capability
from capshare.delegation.authority import (
    CapabilityAuthority,
    Denied,
    Granted,
    RevocationResult,
)
from capshare.delegation.proof import DelegationProof
from capshare.delegation.record import Delegation
from capshare.errors import (
    AuthorizationError,
    DuplicateObjectError,
    InvalidRequestError,
    NotFoundError,
)
from capshare.storage.blob_store import BlobStore, RetrievedBlob

logger = logging.getLogger(__name__)

DEFAULT_TTL_DAYS: int = 30


@dataclass(frozen=True)
class ContentObject:
    """A stored artifact. Never mutated after registration.

    Parameters
    ----------
    id:
        Content identifier assigned by the blob store.
    owner:
        Identity of the uploader.
    filename:
        Original filename.
    created_at:
        UTC datetime the upload was stored.
    """

    id: str
    owner: str
    filename: str
    created_at: datetime.datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "owner": self.owner,
            "filename": self.filename,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class AccessGrant:
    """Everything a caller needs to fetch an object after a granted access."""

    subject_id: str
    grantee: str
    owner: str
    filename: str
    capability: Capability
    created_at: datetime.datetime
    retrieval_url: str | None

    @property
    def granted(self) -> bool:
        return True

    def to_dict(self) -> dict[str, object]:
        return {
            "granted": True,
            "subject_id": self.subject_id,
            "grantee": self.grantee,
            "filename": self.filename,
            "capability": self.capability.value,
            "url": self.retrieval_url,
            "metadata": {
                "uploaded_at": self.created_at.isoformat(),
                "shared_by": self.owner,
            },
        }


AccessResult = Union[AccessGrant, Denied]


@dataclass(frozen=True)
class ShareResult:
    """Outcome of a share request: the proof in both forms plus a share link."""

    proof: DelegationProof
    encoded_proof: str
    share_url: str

    @property
    def expires_at(self) -> datetime.datetime:
        return self.proof.expires_at

    def to_dict(self) -> dict[str, object]:
        return {
            "subject_id": self.proof.subject_id,
            "grantee": self.proof.grantee,
            "capabilities": sorted(c.value for c in self.proof.capabilities),
            "expires_at": self.expires_at.isoformat(),
            "proof": self.encoded_proof,
            "share_url": self.share_url,
        }


@dataclass(frozen=True)
class ObjectSummary:
    """An owned object together with its currently active delegations."""

    object: ContentObject
    retrieval_url: str | None
    active_delegations: list[Delegation] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        data = self.object.to_dict()
        data["url"] = self.retrieval_url
        data["shared_with"] = len(self.active_delegations)
        data["delegations"] = [d.to_dict() for d in self.active_delegations]
        return data


class ObjectRegistry:
    """Owns the content object catalog and mediates capability-gated access.

    Thread-safe.

    Parameters
    ----------
    authority:
        The capability authority making issue/verify/revoke decisions.
    blob_store:
        Storage collaborator holding the object bytes.
    base_url:
        Public base URL used to build share links.
    default_ttl_days:
        Lifetime used by :meth:`share` when no ``ttl_days`` is given.
    audit:
        Optional audit logger for upload events.
    """

    def __init__(
        self,
        authority: CapabilityAuthority,
        blob_store: BlobStore,
        base_url: str = "http://localhost:5173",
        default_ttl_days: float = DEFAULT_TTL_DAYS,
        audit: ShareAuditLogger | None = None,
    ) -> None:
        self._authority = authority
        self._blob_store = blob_store
        self._base_url = base_url.rstrip("/")
        self._default_ttl_days = default_ttl_days
        self._audit = audit
        self._objects: dict[str, ContentObject] = {}
        self._lock = threading.Lock()

    @property
    def authority(self) -> CapabilityAuthority:
        return self._authority

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def register_upload(
        self,
        owner: str,
        storage_id: str,
        filename: str,
        uploaded_at: datetime.datetime,
    ) -> ContentObject:
        """Record a stored object as owned by *owner*.

        Raises
        ------
        InvalidRequestError
            If *owner*, *storage_id* or *filename* is empty.
        DuplicateObjectError
            If *storage_id* is already registered.
        """
        if not owner:
            raise InvalidRequestError("Owner identity must not be empty.")
        if not storage_id:
            raise InvalidRequestError("Storage identifier must not be empty.")
        if not filename:
            raise InvalidRequestError("Filename must not be empty.")

        obj = ContentObject(id=storage_id, owner=owner, filename=filename, created_at=uploaded_at)
        with self._lock:
            if storage_id in self._objects:
                raise DuplicateObjectError(storage_id)
            self._objects[storage_id] = obj

        logger.info("Registered object %s (%s) for owner=%s", storage_id, filename, owner)
        if self._audit is not None:
            self._audit.log_upload(storage_id, owner=owner, filename=filename)
        return obj

    def upload(self, owner: str, data: bytes, filename: str) -> ContentObject:
        """Store *data* with the blob store and register it for *owner*.

        Nothing is registered if the blob store fails.

        Raises
        ------
        StorageError
            Propagated from the blob store.
        DuplicateObjectError
            If identical content was already registered.
        """
        if not owner:
            raise InvalidRequestError("Owner identity must not be empty.")
        if not filename:
            raise InvalidRequestError("Filename must not be empty.")
        stored = self._blob_store.store(data, filename)
        return self.register_upload(owner, stored.id, filename, stored.stored_at)

    def get(self, subject_id: str) -> ContentObject:
        """Return the object registered under *subject_id*.

        Raises
        ------
        NotFoundError
            If *subject_id* is not registered.
        """
        with self._lock:
            obj = self._objects.get(subject_id)
        if obj is None:
            raise NotFoundError("Object", subject_id)
        return obj

    def count(self) -> int:
        with self._lock:
            return len(self._objects)

    def locate(self, subject_id: str) -> str | None:
        """Return the blob store's retrieval handle for *subject_id*, if any."""
        return self._blob_store.locate(subject_id)

    # ------------------------------------------------------------------
    # Sharing
    # ------------------------------------------------------------------

    def share(
        self,
        owner: str,
        subject_id: str,
        grantee: str,
        capabilities: Iterable[str | Capability],
        ttl_days: float | None = None,
    ) -> ShareResult:
        """Delegate *capabilities* on *subject_id* to *grantee*.

        Raises
        ------
        NotFoundError
            If *subject_id* is not registered.
        AuthorizationError
            If *owner* does not own the object.
        InvalidRequestError
            For empty capability sets or non-positive lifetimes.
        """
        obj = self.get(subject_id)
        ttl = _ttl_from_days(self._default_ttl_days if ttl_days is None else ttl_days)
        proof = self._authority.issue(
            subject_owner=owner,
            subject_id=subject_id,
            current_owner=obj.owner,
            grantee=grantee,
            capabilities=capabilities,
            ttl=ttl,
        )
        encoded = proof.encode()
        return ShareResult(
            proof=proof,
            encoded_proof=encoded,
            share_url=self.share_url(subject_id, encoded),
        )

    def share_url(self, subject_id: str, encoded_proof: str) -> str:
        """Build the link a grantee follows to view *subject_id*."""
        query = urllib.parse.urlencode({"proof": encoded_proof})
        return f"{self._base_url}/photo/{urllib.parse.quote(subject_id, safe='')}?{query}"

    def access(
        self,
        subject_id: str,
        proof: str | DelegationProof,
        capability: str | Capability = Capability.VIEW,
    ) -> AccessResult:
        """Authorise an operation on *subject_id* with a presented proof.

        Returns
        -------
        AccessGrant | Denied
            A grant carrying the retrieval handle, or the denial reason.

        Raises
        ------
        NotFoundError
            If *subject_id* is not registered.
        InvalidRequestError
            If *capability* is not a known operation.
        """
        obj = self.get(subject_id)
        required = parse_capability(capability)
        result = self._authority.verify(proof, subject_id, required)
        if not isinstance(result, Granted):
            return result
        return AccessGrant(
            subject_id=obj.id,
            grantee=result.grantee,
            owner=obj.owner,
            filename=obj.filename,
            capability=required,
            created_at=obj.created_at,
            retrieval_url=self._blob_store.locate(obj.id),
        )

    def fetch(self, grant: AccessGrant) -> RetrievedBlob:
        """Retrieve the bytes for a download grant.

        Raises
        ------
        InvalidRequestError
            If *grant* was not issued for :attr:`Capability.DOWNLOAD`.
        NotFoundError
            If the blob store no longer holds the object.
        """
        if grant.capability is not Capability.DOWNLOAD:
            raise InvalidRequestError("Fetching object bytes requires a download grant.")
        return self._blob_store.retrieve(grant.subject_id)

    def revoke(self, owner: str, subject_id: str, grantee: str) -> RevocationResult:
        """Revoke *grantee*'s delegation on *subject_id*.

        Raises
        ------
        NotFoundError
            If *subject_id* is not registered.
        AuthorizationError
            If *owner* does not own the object.
        """
        obj = self.get(subject_id)
        return self._authority.revoke(
            owner_claim=owner,
            subject_id=subject_id,
            current_owner=obj.owner,
            grantee=grantee,
        )

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    def list_by_owner(self, owner: str) -> list[ObjectSummary]:
        """Return the objects owned by *owner* with their active delegations."""
        with self._lock:
            owned = [obj for obj in self._objects.values() if obj.owner == owner]
        owned.sort(key=lambda obj: obj.created_at)
        return [
            ObjectSummary(
                object=obj,
                retrieval_url=self._blob_store.locate(obj.id),
                active_delegations=self._authority.list_delegations(obj.id),
            )
            for obj in owned
        ]

    def list_delegations(
        self,
        subject_id: str,
        owner: str,
        include_inactive: bool = False,
    ) -> list[Delegation]:
        """Return delegations on *subject_id*, visible to its owner only.

        Raises
        ------
        NotFoundError
            If *subject_id* is not registered.
        AuthorizationError
            If *owner* does not own the object.
        """
        obj = self.get(subject_id)
        if obj.owner != owner:
            raise AuthorizationError(subject_id, owner)
        return self._authority.list_delegations(subject_id, include_inactive=include_inactive)


def _ttl_from_days(ttl_days: float) -> datetime.timedelta:
    if isinstance(ttl_days, bool) or not isinstance(ttl_days, (int, float)):
        raise InvalidRequestError(f"ttl_days must be a number, got {ttl_days!r}.")
    try:
        return datetime.timedelta(days=ttl_days)
    except (OverflowError, ValueError) as exc:
        raise InvalidRequestError(f"ttl_days {ttl_days!r} is out of range.") from exc


__all__ = [
    "AccessGrant",
    "AccessResult",
    "ContentObject",
    "DEFAULT_TTL_DAYS",
    "ObjectRegistry",
    "ObjectSummary",
    "ShareResult",
]
