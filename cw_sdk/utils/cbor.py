"""
Deterministic (canonical) CBOR encoding.

Thin wrapper over `cbor2` in canonical mode (RFC 8949 deterministic
encoding: minimal integers, definite lengths, map keys sorted by their
encoded bytes). Signatures are computed over this output, so every encode
path in the SDK goes through `dumps`.

API
---
- dumps(obj) -> bytes
- loads(data) -> object
- dump_hex(obj, prefix=True) -> str
- CBOREncodeError / CBORDecodeError
"""

from __future__ import annotations

from typing import Any

import cbor2

from .bytes import BytesLike, ensure_bytes, to_hex


class CBOREncodeError(ValueError):
    pass


class CBORDecodeError(ValueError):
    pass


def dumps(obj: Any) -> bytes:
    """Encode *obj* to deterministic CBOR bytes."""
    try:
        return cbor2.dumps(obj, canonical=True)
    except (cbor2.CBOREncodeError, TypeError, ValueError) as e:
        raise CBOREncodeError(str(e)) from e


def loads(data: BytesLike) -> Any:
    """Decode CBOR *data* (bytes-like) into Python objects."""
    buf = ensure_bytes(data)
    try:
        return cbor2.loads(buf)
    except (cbor2.CBORDecodeError, ValueError, TypeError, EOFError) as e:
        raise CBORDecodeError(str(e)) from e


def dump_hex(obj: Any, *, prefix: bool = True) -> str:
    return to_hex(dumps(obj), prefix=prefix)


__all__ = ["dumps", "loads", "dump_hex", "CBOREncodeError", "CBORDecodeError"]
