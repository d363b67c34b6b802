"""Capability delegation: records, signed proofs, storage and the authority.

Quick start
-----------
::

    import datetime

    from capshare.delegation import (
        CapabilityAuthority,
        InMemoryDelegationStore,
        IssuerKey,
    )

    authority = CapabilityAuthority(InMemoryDelegationStore(), IssuerKey.generate())
    proof = authority.issue(
        subject_owner="alice",
        subject_id="bafkreia...",
        current_owner="alice",
        grantee="bob",
        capabilities=["view"],
        ttl=datetime.timedelta(days=30),
    )
    print(authority.verify(proof.encode(), "bafkreia...", "view").granted)  # True
"""
from __future__ import annotations

from capshare.delegation.authority import (
    CapabilityAuthority,
    Denied,
    DenialReason,
    Granted,
    RevocationResult,
    VerificationResult,
)
from capshare.delegation.proof import PROOF_VERSION, DelegationProof
from capshare.delegation.record import Delegation
from capshare.delegation.signing import IssuerKey, verify_signature
from capshare.delegation.store import DelegationStore, InMemoryDelegationStore

__all__ = [
    "PROOF_VERSION",
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
    "VerificationResult",
    "verify_signature",
]
