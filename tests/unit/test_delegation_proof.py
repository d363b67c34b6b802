"""Tests for capshare.delegation.proof: DelegationProof encode/decode."""
from __future__ import annotations

import base64
import dataclasses
import datetime
import json

import pytest

from capshare.capabilities import Capability
from capshare.delegation.proof import PROOF_VERSION, DelegationProof
from capshare.delegation.record import Delegation
from capshare.delegation.signing import IssuerKey
from capshare.errors import InvalidRequestError, MalformedProofError

T0 = datetime.datetime(2026, 1, 1, tzinfo=datetime.timezone.utc)


# ---------------------------------------------------------------------------
# Fixtures and helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def key() -> IssuerKey:
    return IssuerKey.generate()


@pytest.fixture()
def delegation() -> Delegation:
    return Delegation(
        subject_id="bafkreisubject",
        granter="alice",
        grantee="bob",
        capabilities=frozenset({Capability.VIEW, Capability.DOWNLOAD}),
        issued_at=T0,
        expires_at=T0 + datetime.timedelta(days=30),
    )


@pytest.fixture()
def proof(delegation: Delegation, key: IssuerKey) -> DelegationProof:
    return DelegationProof.issue(delegation, key)


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _encode_document(document: dict[str, object]) -> str:
    return _b64(json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8"))


def _resigned(proof: DelegationProof, key: IssuerKey, **changes: object) -> str:
    """Encode *proof* with *changes* applied to its wire dict and a fresh valid signature."""
    document = proof.to_dict()
    document.update(changes)
    del document["signature"]
    payload = json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8")
    document["signature"] = _b64(key.sign(payload))
    return _encode_document(document)


# ---------------------------------------------------------------------------
# Issue / encode
# ---------------------------------------------------------------------------


class TestIssue:
    def test_copies_delegation_fields(self, proof: DelegationProof, delegation: Delegation) -> None:
        assert proof.subject_id == delegation.subject_id
        assert proof.grantee == delegation.grantee
        assert proof.capabilities == delegation.capabilities
        assert proof.expires_at == delegation.expires_at

    def test_issuer_is_key_did(self, proof: DelegationProof, key: IssuerKey) -> None:
        assert proof.issuer == key.did

    def test_is_signed(self, proof: DelegationProof) -> None:
        assert proof.signature
        assert proof.version == PROOF_VERSION

    def test_encoded_is_url_safe(self, proof: DelegationProof) -> None:
        encoded = proof.encode()
        assert "=" not in encoded
        assert "+" not in encoded
        assert "/" not in encoded

    def test_unsigned_proof_cannot_be_encoded(self, proof: DelegationProof) -> None:
        with pytest.raises(ValueError, match="unsigned"):
            dataclasses.replace(proof, signature="").encode()

    def test_encoding_is_deterministic(self, proof: DelegationProof) -> None:
        assert proof.encode() == proof.encode()


class TestDecode:
    def test_round_trip(self, proof: DelegationProof) -> None:
        assert DelegationProof.decode(proof.encode()) == proof

    def test_preserves_timezone(self, proof: DelegationProof) -> None:
        decoded = DelegationProof.decode(proof.encode())
        assert decoded.issued_at.utcoffset() == datetime.timedelta(0)


# ---------------------------------------------------------------------------
# Malformed input
# ---------------------------------------------------------------------------


class TestMalformed:
    def test_is_an_invalid_request(self) -> None:
        assert issubclass(MalformedProofError, InvalidRequestError)

    @pytest.mark.parametrize("encoded", ["", "!!!!", "abc$", "not base64 at all"])
    def test_garbage(self, encoded: str) -> None:
        with pytest.raises(MalformedProofError):
            DelegationProof.decode(encoded)

    def test_truncated(self, proof: DelegationProof) -> None:
        encoded = proof.encode()
        with pytest.raises(MalformedProofError):
            DelegationProof.decode(encoded[: len(encoded) // 2])

    def test_padding_rejected(self, proof: DelegationProof) -> None:
        encoded = proof.encode()
        padded = encoded + "=" * (-len(encoded) % 4 or 4)
        with pytest.raises(MalformedProofError):
            DelegationProof.decode(padded)

    def test_not_json(self) -> None:
        with pytest.raises(MalformedProofError, match="not JSON"):
            DelegationProof.decode(_b64(b"hello world"))

    def test_json_array(self) -> None:
        with pytest.raises(MalformedProofError, match="not a JSON object"):
            DelegationProof.decode(_b64(b"[1,2,3]"))

    def test_missing_field(self, proof: DelegationProof) -> None:
        document = proof.to_dict()
        del document["grantee"]
        with pytest.raises(MalformedProofError, match="invalid fields"):
            DelegationProof.decode(_encode_document(document))

    def test_extra_field(self, proof: DelegationProof) -> None:
        document = proof.to_dict()
        document["admin"] = True
        with pytest.raises(MalformedProofError, match="invalid fields"):
            DelegationProof.decode(_encode_document(document))

    def test_mistyped_field(self, proof: DelegationProof) -> None:
        document = proof.to_dict()
        document["version"] = "1"
        with pytest.raises(MalformedProofError):
            DelegationProof.decode(_encode_document(document))

    def test_unknown_version(self, proof: DelegationProof, key: IssuerKey) -> None:
        with pytest.raises(MalformedProofError, match="version"):
            DelegationProof.decode(_resigned(proof, key, version=2))

    def test_empty_capabilities(self, proof: DelegationProof, key: IssuerKey) -> None:
        with pytest.raises(MalformedProofError, match="capabilities"):
            DelegationProof.decode(_resigned(proof, key, capabilities=[]))

    def test_duplicate_capabilities(self, proof: DelegationProof, key: IssuerKey) -> None:
        with pytest.raises(MalformedProofError, match="capabilities"):
            DelegationProof.decode(_resigned(proof, key, capabilities=["view", "view"]))

    def test_unknown_capability(self, proof: DelegationProof, key: IssuerKey) -> None:
        with pytest.raises(MalformedProofError, match="Unknown capability"):
            DelegationProof.decode(_resigned(proof, key, capabilities=["admin"]))

    def test_naive_timestamp(self, proof: DelegationProof, key: IssuerKey) -> None:
        with pytest.raises(MalformedProofError, match="UTC offset"):
            DelegationProof.decode(_resigned(proof, key, expires_at="2026-02-01T00:00:00"))

    def test_bad_timestamp(self, proof: DelegationProof, key: IssuerKey) -> None:
        with pytest.raises(MalformedProofError, match="ISO-8601"):
            DelegationProof.decode(_resigned(proof, key, issued_at="yesterday"))


class TestTampering:
    def test_altered_capabilities_fail_signature(self, delegation: Delegation, key: IssuerKey) -> None:
        view_only = dataclasses.replace(delegation, capabilities=frozenset({Capability.VIEW}))
        document = DelegationProof.issue(view_only, key).to_dict()
        document["capabilities"] = ["download", "view"]
        with pytest.raises(MalformedProofError, match="signature"):
            DelegationProof.decode(_encode_document(document))

    def test_altered_expiry_fails_signature(self, proof: DelegationProof) -> None:
        document = proof.to_dict()
        document["expires_at"] = (proof.expires_at + datetime.timedelta(days=365)).isoformat()
        with pytest.raises(MalformedProofError, match="signature"):
            DelegationProof.decode(_encode_document(document))

    def test_swapped_issuer_fails_signature(self, proof: DelegationProof) -> None:
        document = proof.to_dict()
        document["issuer"] = IssuerKey.generate().did
        with pytest.raises(MalformedProofError, match="signature"):
            DelegationProof.decode(_encode_document(document))

    def test_signature_not_base64(self, proof: DelegationProof) -> None:
        document = proof.to_dict()
        document["signature"] = "***"
        with pytest.raises(MalformedProofError, match="signature"):
            DelegationProof.decode(_encode_document(document))

    def test_proof_signed_by_other_key_still_decodes(self, proof: DelegationProof) -> None:
        # Decoding checks the signature against the embedded issuer only;
        # whether that issuer is trusted is the authority's decision.
        other = IssuerKey.generate()
        resigned = _resigned(proof, other, issuer=other.did)
        assert DelegationProof.decode(resigned).issuer == other.did

    def test_reindented_json_rejected(self, proof: DelegationProof) -> None:
        encoded = proof.encode()
        document = json.loads(base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4)))
        reindented = _b64(json.dumps(document, sort_keys=True, indent=2).encode("utf-8"))
        with pytest.raises(MalformedProofError, match="canonical"):
            DelegationProof.decode(reindented)

    def test_reordered_keys_rejected(self, proof: DelegationProof) -> None:
        document = proof.to_dict()
        reordered = dict(reversed(list(document.items())))
        encoded = _b64(json.dumps(reordered, separators=(",", ":")).encode("utf-8"))
        with pytest.raises(MalformedProofError, match="canonical"):
            DelegationProof.decode(encoded)

    def test_duplicate_key_rejected(self, proof: DelegationProof) -> None:
        canonical = json.dumps(proof.to_dict(), sort_keys=True, separators=(",", ":"))
        duplicated = '{"grantee":"mallory",' + canonical[1:]
        with pytest.raises(MalformedProofError, match="canonical"):
            DelegationProof.decode(_b64(duplicated.encode("utf-8")))
