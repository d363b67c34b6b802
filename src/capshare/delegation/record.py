"""Delegation: the authoritative record of a grant over one content object.

Records are immutable. Revocation produces a new record with ``revoked``
set, which the store swaps in atomically, so a reader always sees a
consistent snapshot.
"""
from __future__ import annotations

import dataclasses
import datetime
from dataclasses import dataclass

from capshare.capabilities.capability import Capability, parse_capabilities, sorted_values
from capshare.errors import InvalidRequestError


@dataclass(frozen=True)
class Delegation:
    """A grant of capabilities over ``subject_id`` from ``granter`` to ``grantee``.

    Parameters
    ----------
    subject_id:
        Content identifier of the object this delegation applies to.
    granter:
        Identity of the object's owner at issuance time.
    grantee:
        Identity receiving the capabilities.
    capabilities:
        Non-empty set of granted capabilities.
    issued_at:
        UTC datetime when the delegation was created.
    expires_at:
        UTC datetime at which the delegation stops being honoured.
        Must be strictly later than ``issued_at``.
    revoked:
        Whether the owner has revoked the delegation. Only ever goes from
        False to True.
    """

    subject_id: str
    granter: str
    grantee: str
    capabilities: frozenset[Capability]
    issued_at: datetime.datetime
    expires_at: datetime.datetime
    revoked: bool = False

    def __post_init__(self) -> None:
        if not self.subject_id:
            raise InvalidRequestError("Delegation.subject_id must not be empty.")
        if not self.grantee:
            raise InvalidRequestError("Delegation.grantee must not be empty.")
        if not self.capabilities:
            raise InvalidRequestError("A delegation must grant at least one capability.")
        if self.expires_at <= self.issued_at:
            raise InvalidRequestError("Delegation.expires_at must be later than issued_at.")

    @property
    def key(self) -> tuple[str, str]:
        """The ``(subject_id, grantee)`` identity key."""
        return (self.subject_id, self.grantee)

    def is_expired(self, now: datetime.datetime) -> bool:
        """Return True once *now* has reached ``expires_at``."""
        return now >= self.expires_at

    def is_active(self, now: datetime.datetime) -> bool:
        """Return True if the delegation is neither revoked nor expired."""
        return not self.revoked and not self.is_expired(now)

    def allows(self, capability: Capability) -> bool:
        """Return True if *capability* was granted. Ignores expiry and revocation."""
        return capability in self.capabilities

    def as_revoked(self) -> "Delegation":
        """Return a copy of this delegation with ``revoked`` set."""
        if self.revoked:
            return self
        return dataclasses.replace(self, revoked=True)

    def to_dict(self) -> dict[str, object]:
        """Serialise to a plain dictionary."""
        return {
            "subject_id": self.subject_id,
            "granter": self.granter,
            "grantee": self.grantee,
            "capabilities": sorted_values(self.capabilities),
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "revoked": self.revoked,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "Delegation":
        """Reconstruct a Delegation from :meth:`to_dict` output."""
        return cls(
            subject_id=str(data["subject_id"]),
            granter=str(data["granter"]),
            grantee=str(data["grantee"]),
            capabilities=parse_capabilities(data.get("capabilities") or []),  # type: ignore[arg-type]
            issued_at=datetime.datetime.fromisoformat(str(data["issued_at"])),
            expires_at=datetime.datetime.fromisoformat(str(data["expires_at"])),
            revoked=bool(data.get("revoked", False)),
        )
