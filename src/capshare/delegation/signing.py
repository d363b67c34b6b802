"""IssuerKey: Ed25519 signing key identified by a ``did:key`` string.

A delegation proof carries the issuer's ``did:key`` identifier. Because
the public key is encoded in the identifier itself, anyone holding a proof
can check its signature without contacting the issuer.

did:key encoding
----------------
1. Take the 32-byte raw Ed25519 public key.
2. Wrap it with the ``ed25519-pub`` multicodec (varint prefix ``0xed 0x01``).
3. Multibase-encode the result as base58btc, which starts with ``z``.
4. Assemble: ``did:key:z<base58btc>``.
"""
from __future__ import annotations

import re
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)
from multiformats import multibase, multicodec

_DID_KEY_PREFIX = "did:key:"
_ED25519_CODEC = "ed25519-pub"
_ED25519_KEY_SIZE = 32
_BASE58BTC_MULTIBASE = re.compile(r"z[1-9A-HJ-NP-Za-km-z]+")


def did_from_public_key(public_key: bytes) -> str:
    """Encode a 32-byte raw Ed25519 public key as a ``did:key`` string."""
    wrapped = multicodec.wrap(_ED25519_CODEC, public_key)
    return _DID_KEY_PREFIX + multibase.encode(wrapped, "base58btc")


def public_key_from_did(did: str) -> bytes:
    """Decode the raw Ed25519 public key embedded in a ``did:key`` string.

    Raises
    ------
    ValueError
        If *did* is not an Ed25519 ``did:key`` identifier.
    """
    if not did.startswith(_DID_KEY_PREFIX):
        raise ValueError(f"Not a did:key identifier: {did!r}")
    encoded = did[len(_DID_KEY_PREFIX):]
    if not _BASE58BTC_MULTIBASE.fullmatch(encoded):
        raise ValueError(f"did:key {did!r} is not base58btc multibase")
    try:
        codec, public_key = multicodec.unwrap(multibase.decode(encoded))
    except (KeyError, ValueError) as exc:
        raise ValueError(f"did:key {did!r} has no valid multicodec prefix") from exc
    if codec.name != _ED25519_CODEC or len(public_key) != _ED25519_KEY_SIZE:
        raise ValueError(f"did:key {did!r} does not encode an Ed25519 public key")
    return bytes(public_key)


def verify_signature(did: str, signature: bytes, data: bytes) -> bool:
    """Return True if *signature* over *data* verifies under the key in *did*.

    Malformed identifiers and signatures return False rather than raising.
    """
    try:
        public_key = Ed25519PublicKey.from_public_bytes(public_key_from_did(did))
        public_key.verify(signature, data)
    except (ValueError, InvalidSignature):
        return False
    return True


class IssuerKey:
    """An Ed25519 private key used to sign delegation proofs.

    Example
    -------
    ::

        key = IssuerKey.generate()
        signature = key.sign(b"payload")
        assert verify_signature(key.did, signature, b"payload")
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        public_bytes = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        self._did = did_from_public_key(public_bytes)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def generate(cls) -> "IssuerKey":
        """Create a new random issuer key."""
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_private_bytes(cls, private_bytes: bytes) -> "IssuerKey":
        """Load a key from its 32-byte raw private representation."""
        return cls(Ed25519PrivateKey.from_private_bytes(private_bytes))

    @classmethod
    def from_file(cls, path: Path) -> "IssuerKey":
        """Load a key from a file holding the hex-encoded raw private key."""
        return cls.from_private_bytes(bytes.fromhex(path.read_text(encoding="utf-8").strip()))

    def to_file(self, path: Path) -> None:
        """Write the hex-encoded raw private key to *path*."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.private_bytes().hex() + "\n", encoding="utf-8")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def did(self) -> str:
        """The ``did:key`` identifier of this key's public half."""
        return self._did

    def private_bytes(self) -> bytes:
        """Return the 32-byte raw private key."""
        return self._private_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())

    def sign(self, data: bytes) -> bytes:
        """Sign *data* and return the 64-byte Ed25519 signature."""
        return self._private_key.sign(data)

    def __repr__(self) -> str:
        return f"IssuerKey(did={self._did!r})"


__all__ = [
    "IssuerKey",
    "did_from_public_key",
    "public_key_from_did",
    "verify_signature",
]
