"""
cw_sdk.wallet.signer
====================

secp256k1 signing capability for transactions.

The rest of the SDK only ever talks to the `Signer` protocol:

    signature, public_key = signer.sign(sign_bytes)

so hardware wallets, remote signers or test doubles can be dropped in without
touching the builder. `SigningKey` is the in-process implementation backed by
`cryptography`.

Format
------
- signature : 64 bytes, r || s (big-endian), s normalised to the lower half
  of the curve order so every signature has exactly one valid encoding
- public key: 33 bytes, compressed SEC1 point
- digest    : SHA-256 of the sign bytes

Notes
-----
- ECDSA here is randomised; two signatures over the same bytes differ but
  both verify against the same public key.
- Secret material never appears in `repr()` and is never logged.
"""

from __future__ import annotations

import hashlib
from typing import Protocol, Tuple, runtime_checkable

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature, encode_dss_signature)

from ..errors import SigningError
from ..utils.bytes import BytesLike

__all__ = [
    "Signer",
    "SigningKey",
    "verify",
    "SIGNATURE_LEN",
    "PUBLIC_KEY_LEN",
]

SIGNATURE_LEN = 64
PUBLIC_KEY_LEN = 33

# secp256k1 group order
_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_HALF_N = _N // 2


@runtime_checkable
class Signer(Protocol):
    """Anything that can sign transaction bytes."""

    @property
    def public_key(self) -> bytes: ...

    def sign(self, data: bytes) -> Tuple[bytes, bytes]:
        """Return (signature, public_key) over `data`."""
        ...


class SigningKey:
    """
    An in-memory secp256k1 private key.

    Create instances via:
        - SigningKey.generate()
        - SigningKey.from_secret_bytes(b32)
        - SigningKey.from_mnemonic_seed(phrase)
        - cw_sdk.wallet.keystore.load(path, password)
    """

    __slots__ = ("_key", "_pk")

    def __init__(self, private_key: ec.EllipticCurvePrivateKey) -> None:
        if not isinstance(private_key, ec.EllipticCurvePrivateKey) or not isinstance(
            private_key.curve, ec.SECP256K1
        ):
            raise SigningError("expected a secp256k1 private key")
        self._key = private_key
        self._pk = private_key.public_key().public_bytes(
            serialization.Encoding.X962, serialization.PublicFormat.CompressedPoint
        )

    # ---- Constructors ----

    @classmethod
    def generate(cls) -> "SigningKey":
        return cls(ec.generate_private_key(ec.SECP256K1()))

    @classmethod
    def from_secret_bytes(cls, secret: BytesLike) -> "SigningKey":
        secret = bytes(secret)
        if len(secret) != 32:
            raise SigningError("secret key must be 32 bytes")
        scalar = int.from_bytes(secret, "big")
        if not 0 < scalar < _N:
            raise SigningError("secret key out of range for secp256k1")
        try:
            return cls(ec.derive_private_key(scalar, ec.SECP256K1()))
        except (ValueError, UnsupportedAlgorithm) as e:
            raise SigningError(f"cannot load secret key: {e}") from e

    @classmethod
    def from_mnemonic_seed(cls, phrase: str) -> "SigningKey":
        """
        Deterministic key from a seed phrase (sha256 of the normalised words).

        Handy for devnets and tests; not a BIP-39 derivation.
        """
        words = " ".join(phrase.strip().lower().split())
        if not words:
            raise SigningError("empty seed phrase")
        return cls.from_secret_bytes(hashlib.sha256(words.encode("utf-8")).digest())

    # ---- Properties ----

    @property
    def public_key(self) -> bytes:
        return self._pk

    def secret_bytes(self) -> bytes:
        """Raw 32-byte scalar. Only the keystore should need this."""
        return self._key.private_numbers().private_value.to_bytes(32, "big")

    # ---- Operations ----

    def sign(self, data: bytes) -> Tuple[bytes, bytes]:
        try:
            der = self._key.sign(bytes(data), ec.ECDSA(hashes.SHA256()))
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise SigningError(f"signing failed: {e}") from e
        r, s = decode_dss_signature(der)
        if s > _HALF_N:
            s = _N - s
        return r.to_bytes(32, "big") + s.to_bytes(32, "big"), self._pk

    def verify(self, data: bytes, signature: bytes) -> bool:
        return verify(data, signature, self._pk)

    def __repr__(self) -> str:
        return f"SigningKey(public_key=0x{self._pk.hex()})"


def verify(data: bytes, signature: bytes, public_key: bytes) -> bool:
    """True if `signature` (64-byte r||s, low-S) is valid for `data` under `public_key`."""
    if len(signature) != SIGNATURE_LEN:
        return False
    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:], "big")
    if not (0 < r < _N and 0 < s <= _HALF_N):
        return False
    try:
        pub = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), bytes(public_key))
        pub.verify(encode_dss_signature(r, s), bytes(data), ec.ECDSA(hashes.SHA256()))
    except (InvalidSignature, ValueError):
        return False
    return True
