"""DelegationProof: transmissible, signed claim referencing a delegation.

A proof is a detached copy of a delegation's public grant parameters at
the moment of issuance. Verification uses it only to locate the live
delegation record; the record's own fields decide the outcome.

Wire format
-----------
The proof is a canonical JSON object (sorted keys, compact separators)::

    {"capabilities": ["download", "view"], "expires_at": "...",
     "grantee": "...", "issued_at": "...", "issuer": "did:key:z...",
     "signature": "<base64url>", "subject_id": "...", "version": 1}

encoded as unpadded base64url so it can travel in a ``proof`` URL query
parameter. The signature is an Ed25519 signature, made with the issuer's
key, over the canonical JSON of every other field.

Decoding is strict: anything that is not exactly a well-formed, correctly
signed proof raises :class:`~capshare.errors.MalformedProofError`.
"""
from __future__ import annotations

import base64
import binascii
import dataclasses
import datetime
import json
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, ValidationError

from capshare.capabilities.capability import Capability, parse_capability, sorted_values
from capshare.delegation.record import Delegation
from capshare.delegation.signing import IssuerKey, verify_signature
from capshare.errors import InvalidRequestError, MalformedProofError

PROOF_VERSION: int = 1


class _ProofWire(BaseModel):
    """Schema of the decoded JSON object. Extra or mistyped fields are rejected."""

    model_config = ConfigDict(extra="forbid", strict=True)

    version: int
    subject_id: str
    grantee: str
    capabilities: list[str]
    issued_at: str
    expires_at: str
    issuer: str
    signature: str


@dataclass(frozen=True)
class DelegationProof:
    """Signed claim of a grant, as handed to the grantee.

    Parameters
    ----------
    subject_id:
        Content identifier the grant applies to.
    grantee:
        Identity the grant was issued to.
    capabilities:
        Capabilities claimed at issuance time.
    issued_at:
        UTC datetime the grant was issued.
    expires_at:
        UTC datetime the grant was set to expire.
    issuer:
        ``did:key`` identifier of the signing authority.
    signature:
        Base64url Ed25519 signature over :meth:`signing_payload`. Empty
        until the proof is signed.
    version:
        Wire format version.
    """

    subject_id: str
    grantee: str
    capabilities: frozenset[Capability]
    issued_at: datetime.datetime
    expires_at: datetime.datetime
    issuer: str
    signature: str = ""
    version: int = PROOF_VERSION

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    def issue(cls, delegation: Delegation, key: IssuerKey) -> "DelegationProof":
        """Build and sign a proof for *delegation* with *key*."""
        unsigned = cls(
            subject_id=delegation.subject_id,
            grantee=delegation.grantee,
            capabilities=delegation.capabilities,
            issued_at=delegation.issued_at,
            expires_at=delegation.expires_at,
            issuer=key.did,
        )
        signature = key.sign(unsigned.signing_payload())
        return dataclasses.replace(unsigned, signature=_b64encode(signature))

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, object]:
        """Serialise to the wire dictionary, including the signature."""
        return {
            "version": self.version,
            "subject_id": self.subject_id,
            "grantee": self.grantee,
            "capabilities": sorted_values(self.capabilities),
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "issuer": self.issuer,
            "signature": self.signature,
        }

    def signing_payload(self) -> bytes:
        """Canonical bytes covered by the signature."""
        payload = self.to_dict()
        del payload["signature"]
        return _canonical_json(payload)

    def encode(self) -> str:
        """Encode the proof as an unpadded base64url string.

        Raises
        ------
        ValueError
            If the proof has not been signed.
        """
        if not self.signature:
            raise ValueError("Cannot encode an unsigned delegation proof.")
        return _b64encode(_canonical_json(self.to_dict()))

    @classmethod
    def decode(cls, encoded: str) -> "DelegationProof":
        """Parse and signature-check an encoded proof.

        Parameters
        ----------
        encoded:
            A string produced by :meth:`encode`.

        Returns
        -------
        DelegationProof

        Raises
        ------
        MalformedProofError
            If the input is truncated, tampered with, not canonical base64url
            or canonical JSON, structurally invalid, or carries a bad signature.
        """
        if not isinstance(encoded, str) or not encoded:
            raise MalformedProofError("proof is empty")

        raw = _b64decode(encoded, what="proof")
        try:
            document = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MalformedProofError(f"proof is not JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise MalformedProofError("proof is not a JSON object")

        try:
            wire = _ProofWire.model_validate(document)
        except ValidationError as exc:
            raise MalformedProofError(
                f"proof has invalid fields ({exc.error_count()} error(s))"
            ) from exc

        if wire.version != PROOF_VERSION:
            raise MalformedProofError(f"unsupported proof version {wire.version}")
        if not wire.subject_id or not wire.grantee:
            raise MalformedProofError("subject_id and grantee must not be empty")
        if not wire.capabilities or len(set(wire.capabilities)) != len(wire.capabilities):
            raise MalformedProofError("capabilities must be a non-empty list without duplicates")

        try:
            capabilities = frozenset(parse_capability(c) for c in wire.capabilities)
        except InvalidRequestError as exc:
            raise MalformedProofError(str(exc)) from exc

        proof = cls(
            subject_id=wire.subject_id,
            grantee=wire.grantee,
            capabilities=capabilities,
            issued_at=_parse_timestamp(wire.issued_at, "issued_at"),
            expires_at=_parse_timestamp(wire.expires_at, "expires_at"),
            issuer=wire.issuer,
            signature=wire.signature,
            version=wire.version,
        )
        # Only the exact bytes encode() produces are accepted.
        if raw != _canonical_json(proof.to_dict()):
            raise MalformedProofError("proof is not canonically encoded")

        signature = _b64decode(wire.signature, what="signature")
        if not verify_signature(proof.issuer, signature, proof.signing_payload()):
            raise MalformedProofError("signature verification failed")
        return proof


# ------------------------------------------------------------------
# Encoding helpers
# ------------------------------------------------------------------


def _canonical_json(payload: dict[str, object]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(encoded: str, what: str) -> bytes:
    """Decode unpadded base64url, rejecting any non-canonical input."""
    try:
        decoded = base64.b64decode(
            encoded + "=" * (-len(encoded) % 4), altchars=b"-_", validate=True
        )
    except (binascii.Error, ValueError) as exc:
        raise MalformedProofError(f"{what} is not valid base64url") from exc
    # Rejects stray padding, '+' and '/' and non-zero trailing bits.
    if _b64encode(decoded) != encoded:
        raise MalformedProofError(f"{what} is not canonical base64url")
    return decoded


def _parse_timestamp(value: str, field_name: str) -> datetime.datetime:
    try:
        parsed = datetime.datetime.fromisoformat(value)
    except ValueError as exc:
        raise MalformedProofError(f"{field_name} is not an ISO-8601 timestamp") from exc
    if parsed.tzinfo is None:
        raise MalformedProofError(f"{field_name} must carry a UTC offset")
    return parsed


__all__ = ["PROOF_VERSION", "DelegationProof"]
