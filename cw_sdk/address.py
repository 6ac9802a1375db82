"""
cw_sdk.address
==============

Account and contract addresses.

Format
------
An address is 32 raw bytes. Its text form is `0x` followed by 64 lowercase
hex characters. Parsing is case-insensitive and tolerates a missing prefix.

Contract addresses are assigned by the node at instantiation time as

    address = sha256(deployer || code_hash || salt)

`Addr.compute` reproduces that derivation so callers can predict a contract
address before the instantiate transaction settles (and so the admin option
`SetToSelf` can be resolved client-side).

This module provides:
- Addr (frozen value type)
- Addr.parse(text) / Addr.compute(deployer, code_hash, salt)
- validate(text) -> bool, is_valid (alias)
- AddressError
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

from .utils.bytes import BytesLike
from .utils.hash import sha256

ADDR_LEN = 32

__all__ = [
    "ADDR_LEN",
    "Addr",
    "AddrLike",
    "AddressError",
    "validate",
    "is_valid",
]


class AddressError(ValueError):
    """Raised for malformed or invalid addresses."""


_HEX_ADDR_RE = re.compile(r"^(0[xX])?[0-9a-fA-F]{64}$")


@dataclass(frozen=True, slots=True)
class Addr:
    raw: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.raw, (bytes, bytearray)):
            raise AddressError(f"address must be bytes, got {type(self.raw).__name__}")
        if len(self.raw) != ADDR_LEN:
            raise AddressError(f"address must be {ADDR_LEN} bytes, got {len(self.raw)}")
        object.__setattr__(self, "raw", bytes(self.raw))

    @classmethod
    def parse(cls, value: "AddrLike") -> "Addr":
        """Accept an Addr, 32 raw bytes, or a (0x-)hex string."""
        if isinstance(value, Addr):
            return value
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(bytes(value))
        if isinstance(value, str):
            s = value.strip()
            if not _HEX_ADDR_RE.match(s):
                raise AddressError(f"invalid address: {value!r}")
            return cls(bytes.fromhex(s[2:] if s[:2].lower() == "0x" else s))
        raise AddressError(f"unsupported address type: {type(value).__name__}")

    @classmethod
    def compute(cls, deployer: "AddrLike", code_hash: BytesLike, salt: BytesLike) -> "Addr":
        """Derive the address the node assigns to an instantiated contract."""
        code_hash = bytes(code_hash)
        if len(code_hash) != 32:
            raise AddressError("code_hash must be 32 bytes")
        return cls(sha256(cls.parse(deployer).raw + code_hash + bytes(salt)))

    def __str__(self) -> str:
        return "0x" + self.raw.hex()

    def __repr__(self) -> str:
        return f"Addr({self})"


AddrLike = Union[Addr, str, bytes, bytearray, memoryview]


def validate(address: str) -> bool:
    """True if `address` is a well-formed text address."""
    return isinstance(address, str) and bool(_HEX_ADDR_RE.match(address.strip()))


is_valid = validate
