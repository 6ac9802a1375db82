from __future__ import annotations

import hashlib

from .bytes import BytesLike, ensure_bytes, to_hex


def sha256(data: BytesLike) -> bytes:
    """Return the SHA-256 digest of *data*."""
    return hashlib.sha256(ensure_bytes(data)).digest()


def sha256_hex(data: BytesLike, *, prefix: bool = False) -> str:
    """Lowercase hex SHA-256 digest (unprefixed by default)."""
    return to_hex(sha256(data), prefix=prefix)


def tx_hash_hex(raw_tx: BytesLike) -> str:
    """
    Transaction hash as the node reports it: uppercase hex of sha256(raw bytes),
    no prefix.
    """
    return sha256(raw_tx).hex().upper()


__all__ = ["sha256", "sha256_hex", "tx_hash_hex"]
