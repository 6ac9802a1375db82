"""
cw_sdk.utils
------------

Small helpers shared across the SDK:

- bytes: hex / base64 conversions
- cbor : deterministic CBOR (cbor2, canonical mode)
- hash : sha256 and transaction-hash helpers
- retry: async exponential backoff with jitter
"""

from __future__ import annotations

from .bytes import ensure_bytes, from_b64, from_hex, to_b64, to_hex
from .cbor import CBORDecodeError, CBOREncodeError
from .hash import sha256, sha256_hex, tx_hash_hex
from .retry import RetryError, aretry_call, backoff_delay

__all__ = [
    "ensure_bytes",
    "from_hex",
    "to_hex",
    "from_b64",
    "to_b64",
    "CBORDecodeError",
    "CBOREncodeError",
    "sha256",
    "sha256_hex",
    "tx_hash_hex",
    "RetryError",
    "aretry_call",
    "backoff_delay",
]
