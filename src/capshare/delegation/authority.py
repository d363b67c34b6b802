"""CapabilityAuthority: issues, verifies and revokes delegations.

The authority is the trust boundary. It signs proofs with its
:class:`~capshare.delegation.signing.IssuerKey` and, at access time,
evaluates a presented proof against the live delegation store.

Verification order
------------------
Each step has its own denial reason; the first failing step wins.

1. The proof does not decode, its signature fails, or it was issued by a
   different authority: ``malformed proof``.
2. The proof names a different subject than the one requested:
   ``subject mismatch``.
3. No delegation exists for ``(subject_id, proof.grantee)``: ``not found``.
4. The live delegation is revoked: ``revoked``.
5. The live delegation has reached its expiry: ``expired``.
6. The live delegation does not grant the capability:
   ``capability not granted``.

The proof only selects which record to check. Capabilities and expiry
always come from the live record, so a revocation or re-issue takes effect
against proofs that were already handed out.
"""
from __future__ import annotations

import datetime
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Union

from capshare.audit import ShareAuditLogger
from capshare.capabilities.capability import (
    Capability,
    parse_capabilities,
    parse_capability,
    sorted_values,
)
from capshare.delegation.proof import DelegationProof
from capshare.delegation.record import Delegation
from capshare.delegation.signing import IssuerKey
from capshare.delegation.store import DelegationStore
from capshare.errors import AuthorizationError, InvalidRequestError, MalformedProofError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class DenialReason(str, Enum):
    """Why a verification was denied. Values are shown to the caller verbatim."""

    MALFORMED_PROOF = "malformed proof"
    SUBJECT_MISMATCH = "subject mismatch"
    NOT_FOUND = "not found"
    REVOKED = "revoked"
    EXPIRED = "expired"
    CAPABILITY_NOT_GRANTED = "capability not granted"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Granted:
    """Successful verification.

    Parameters
    ----------
    grantee:
        Identity of the authenticated accessor, taken from the live record.
    delegation:
        The live delegation that authorised the access.
    """

    grantee: str
    delegation: Delegation

    @property
    def granted(self) -> bool:
        return True


@dataclass(frozen=True)
class Denied:
    """Failed verification, carrying the reason."""

    reason: DenialReason

    @property
    def granted(self) -> bool:
        return False

    def to_dict(self) -> dict[str, object]:
        return {"granted": False, "reason": self.reason.value}


VerificationResult = Union[Granted, Denied]


@dataclass(frozen=True)
class RevocationResult:
    """Outcome of a revocation request.

    ``revoked`` reports whether a delegation existed for the key, not
    whether this call changed it, so repeated revocations agree.
    """

    revoked: bool
    message: str

    def to_dict(self) -> dict[str, object]:
        return {"success": self.revoked, "message": self.message}


class CapabilityAuthority:
    """Issues and verifies delegation proofs against a delegation store.

    Parameters
    ----------
    store:
        Authoritative delegation storage.
    key:
        Signing key; its ``did:key`` identifier is the proof issuer.
    clock:
        Callable returning the current UTC datetime. Injected for tests.
    audit:
        Optional audit logger for issue, access and revoke events.

    Example
    -------
    ::

        authority = CapabilityAuthority(InMemoryDelegationStore(), IssuerKey.generate())
        proof = authority.issue(
            "alice", "bafk...", "alice", "bob", ["view"], datetime.timedelta(days=30)
        )
        result = authority.verify(proof.encode(), "bafk...", Capability.VIEW)
        assert result.granted
    """

    def __init__(
        self,
        store: DelegationStore,
        key: IssuerKey,
        clock: Clock | None = None,
        audit: ShareAuditLogger | None = None,
    ) -> None:
        self._store = store
        self._key = key
        self._clock: Clock = clock or utcnow
        self._audit = audit

    @property
    def issuer(self) -> str:
        """``did:key`` identifier placed in every issued proof."""
        return self._key.did

    @property
    def store(self) -> DelegationStore:
        return self._store

    def now(self) -> datetime.datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue(
        self,
        subject_owner: str,
        subject_id: str,
        current_owner: str,
        grantee: str,
        capabilities: Iterable[str | Capability],
        ttl: datetime.timedelta,
    ) -> DelegationProof:
        """Create a delegation and return its signed proof.

        Parameters
        ----------
        subject_owner:
            Identity claiming ownership of the object (the caller).
        subject_id:
            Content identifier being shared.
        current_owner:
            The object's actual owner, as recorded by the object registry.
        grantee:
            Identity receiving access.
        capabilities:
            Capabilities to grant; must not be empty.
        ttl:
            Lifetime of the delegation; must be positive.

        Returns
        -------
        DelegationProof
            Signed proof for the new delegation. The delegation is committed
            to the store before this returns.

        Raises
        ------
        AuthorizationError
            If *subject_owner* is not *current_owner*.
        InvalidRequestError
            If *capabilities* is empty or unknown, *ttl* is not positive or
            runs past the latest representable datetime, or *grantee* is empty.
        """
        if subject_owner != current_owner:
            raise AuthorizationError(subject_id, subject_owner)
        granted = parse_capabilities(capabilities)
        if not granted:
            raise InvalidRequestError("At least one capability must be granted.")
        if not isinstance(ttl, datetime.timedelta) or ttl <= datetime.timedelta(0):
            raise InvalidRequestError(f"Delegation lifetime must be positive, got {ttl!r}.")
        if not grantee:
            raise InvalidRequestError("Grantee identity must not be empty.")

        issued_at = self._clock()
        try:
            expires_at = issued_at + ttl
        except OverflowError as exc:
            raise InvalidRequestError(f"Delegation lifetime {ttl!r} is out of range.") from exc
        delegation = Delegation(
            subject_id=subject_id,
            granter=subject_owner,
            grantee=grantee,
            capabilities=granted,
            issued_at=issued_at,
            expires_at=expires_at,
        )
        # Sign first: a signing failure must leave no record behind.
        proof = DelegationProof.issue(delegation, self._key)
        self._store.put(delegation)

        logger.info(
            "Issued delegation subject=%s grantee=%s capabilities=%s expires_at=%s",
            subject_id,
            grantee,
            ",".join(sorted_values(granted)),
            delegation.expires_at.isoformat(),
        )
        if self._audit is not None:
            self._audit.log_delegation(
                subject_id,
                owner=subject_owner,
                grantee=grantee,
                capabilities=sorted_values(granted),
                expires_at=delegation.expires_at.isoformat(),
            )
        return proof

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(
        self,
        proof: str | DelegationProof,
        subject_id: str,
        required_capability: str | Capability,
    ) -> VerificationResult:
        """Decide whether *proof* authorises *required_capability* on *subject_id*.

        Parameters
        ----------
        proof:
            Encoded proof string, or a decoded :class:`DelegationProof`
            (whose signature is checked again).
        subject_id:
            The object being accessed.
        required_capability:
            The operation being attempted.

        Returns
        -------
        Granted | Denied

        Raises
        ------
        InvalidRequestError
            If *required_capability* is not a known capability name.
        """
        capability = parse_capability(required_capability)
        result = self._evaluate(proof, subject_id, capability)

        if isinstance(result, Denied):
            logger.info(
                "Denied %s on subject=%s: %s", capability.value, subject_id, result.reason.value
            )
        else:
            logger.debug(
                "Granted %s on subject=%s to grantee=%s",
                capability.value,
                subject_id,
                result.grantee,
            )
        if self._audit is not None:
            self._audit.log_access(
                subject_id,
                grantee=result.grantee if isinstance(result, Granted) else None,
                capability=capability.value,
                granted=result.granted,
                reason=result.reason.value if isinstance(result, Denied) else None,
            )
        return result

    def _evaluate(
        self,
        proof: str | DelegationProof,
        subject_id: str,
        capability: Capability,
    ) -> VerificationResult:
        try:
            claim = self._decode(proof)
        except MalformedProofError as exc:
            logger.debug("Rejected proof for subject=%s: %s", subject_id, exc.reason)
            return Denied(DenialReason.MALFORMED_PROOF)
        if claim.issuer != self.issuer:
            return Denied(DenialReason.MALFORMED_PROOF)
        if claim.subject_id != subject_id:
            return Denied(DenialReason.SUBJECT_MISMATCH)

        live = self._store.get(subject_id, claim.grantee)
        if live is None:
            return Denied(DenialReason.NOT_FOUND)
        if live.revoked:
            return Denied(DenialReason.REVOKED)
        if live.is_expired(self._clock()):
            return Denied(DenialReason.EXPIRED)
        if not live.allows(capability):
            return Denied(DenialReason.CAPABILITY_NOT_GRANTED)
        return Granted(grantee=live.grantee, delegation=live)

    @staticmethod
    def _decode(proof: str | DelegationProof) -> DelegationProof:
        if isinstance(proof, DelegationProof):
            try:
                encoded = proof.encode()
            except ValueError as exc:
                raise MalformedProofError(str(exc)) from exc
            return DelegationProof.decode(encoded)
        return DelegationProof.decode(proof)

    # ------------------------------------------------------------------
    # Revoke
    # ------------------------------------------------------------------

    def revoke(
        self,
        owner_claim: str,
        subject_id: str,
        current_owner: str,
        grantee: str,
    ) -> RevocationResult:
        """Revoke the delegation for ``(subject_id, grantee)``.

        Raises
        ------
        AuthorizationError
            If *owner_claim* is not *current_owner*.
        """
        if owner_claim != current_owner:
            raise AuthorizationError(subject_id, owner_claim)

        found = self._store.revoke(subject_id, grantee)
        if found:
            logger.info("Revoked delegation subject=%s grantee=%s", subject_id, grantee)
        else:
            logger.info("No delegation to revoke for subject=%s grantee=%s", subject_id, grantee)
        if self._audit is not None:
            self._audit.log_revocation(subject_id, owner=owner_claim, grantee=grantee, found=found)
        return RevocationResult(
            revoked=found,
            message="Access revoked" if found else "Delegation not found",
        )

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def list_delegations(self, subject_id: str, include_inactive: bool = False) -> list[Delegation]:
        """Return delegations for *subject_id*, active only unless *include_inactive*."""
        if include_inactive:
            return self._store.list_for_subject(subject_id)
        return self._store.list_active(subject_id, self._clock())


__all__ = [
    "CapabilityAuthority",
    "Clock",
    "Denied",
    "DenialReason",
    "Granted",
    "RevocationResult",
    "VerificationResult",
    "utcnow",
]
