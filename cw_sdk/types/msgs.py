"""
Transaction messages.

The message catalog is a closed set fixed per protocol version, so it is
modelled as a tagged variant: one frozen dataclass per kind, each carrying a
`kind` tag. Encoding (cw_sdk.tx.encode) and event parsing
(cw_sdk.tx.confirm) dispatch on that tag through plain tables.

Contract init/execute/migrate arguments are carried as canonical JSON bytes
(sorted keys, compact separators), which is what the contract receives. Use
`to_json_bytes` to produce them from a Python value.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from ..address import Addr
from ..utils.hash import sha256
from .core import Coins


class MessageKind(str, Enum):
    TRANSFER = "transfer"
    STORE_CODE = "store_code"
    INSTANTIATE = "instantiate"
    EXECUTE = "execute"
    MIGRATE = "migrate"


def to_json_bytes(value: Any) -> bytes:
    """Canonical JSON: sorted keys, no whitespace, UTF-8."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _addr(value: Any) -> Addr:
    return value if isinstance(value, Addr) else Addr.parse(value)


def _coins(value: Any) -> Coins:
    return value if isinstance(value, Coins) else Coins(value)


@dataclass(frozen=True, slots=True)
class MsgTransfer:
    kind: ClassVar[MessageKind] = MessageKind.TRANSFER

    sender: Addr
    to: Addr
    coins: Coins

    def __post_init__(self) -> None:
        object.__setattr__(self, "sender", _addr(self.sender))
        object.__setattr__(self, "to", _addr(self.to))
        object.__setattr__(self, "coins", _coins(self.coins))


@dataclass(frozen=True, slots=True)
class MsgStoreCode:
    kind: ClassVar[MessageKind] = MessageKind.STORE_CODE

    sender: Addr
    wasm_byte_code: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "sender", _addr(self.sender))
        object.__setattr__(self, "wasm_byte_code", bytes(self.wasm_byte_code))

    @property
    def code_hash(self) -> bytes:
        return sha256(self.wasm_byte_code)

    def __repr__(self) -> str:
        return f"MsgStoreCode(sender={self.sender}, wasm={len(self.wasm_byte_code)} bytes)"


@dataclass(frozen=True, slots=True)
class MsgInstantiate:
    kind: ClassVar[MessageKind] = MessageKind.INSTANTIATE

    sender: Addr
    code_hash: bytes
    msg: bytes
    salt: bytes
    funds: Coins
    admin: Optional[Addr] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "sender", _addr(self.sender))
        object.__setattr__(self, "code_hash", bytes(self.code_hash))
        object.__setattr__(self, "msg", to_json_bytes(self.msg))
        object.__setattr__(self, "salt", bytes(self.salt))
        object.__setattr__(self, "funds", _coins(self.funds))
        if self.admin is not None:
            object.__setattr__(self, "admin", _addr(self.admin))

    @property
    def contract_address(self) -> Addr:
        """Address the node will assign to the new contract."""
        return Addr.compute(self.sender, self.code_hash, self.salt)


@dataclass(frozen=True, slots=True)
class MsgExecute:
    kind: ClassVar[MessageKind] = MessageKind.EXECUTE

    sender: Addr
    contract: Addr
    msg: bytes
    funds: Coins

    def __post_init__(self) -> None:
        object.__setattr__(self, "sender", _addr(self.sender))
        object.__setattr__(self, "contract", _addr(self.contract))
        object.__setattr__(self, "msg", to_json_bytes(self.msg))
        object.__setattr__(self, "funds", _coins(self.funds))


@dataclass(frozen=True, slots=True)
class MsgMigrate:
    kind: ClassVar[MessageKind] = MessageKind.MIGRATE

    sender: Addr
    contract: Addr
    new_code_hash: bytes
    msg: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "sender", _addr(self.sender))
        object.__setattr__(self, "contract", _addr(self.contract))
        object.__setattr__(self, "new_code_hash", bytes(self.new_code_hash))
        object.__setattr__(self, "msg", to_json_bytes(self.msg))


Message = Union[MsgTransfer, MsgStoreCode, MsgInstantiate, MsgExecute, MsgMigrate]

MESSAGE_TYPES = {
    MessageKind.TRANSFER: MsgTransfer,
    MessageKind.STORE_CODE: MsgStoreCode,
    MessageKind.INSTANTIATE: MsgInstantiate,
    MessageKind.EXECUTE: MsgExecute,
    MessageKind.MIGRATE: MsgMigrate,
}


# --- Admin policy ------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SetToAddr:
    """Admin is a fixed address."""

    addr: Addr

    def __post_init__(self) -> None:
        object.__setattr__(self, "addr", _addr(self.addr))

    def decide(self, contract_address: Addr) -> Optional[Addr]:
        return self.addr


@dataclass(frozen=True, slots=True)
class SetToSelf:
    """Admin is the contract itself."""

    def decide(self, contract_address: Addr) -> Optional[Addr]:
        return contract_address


@dataclass(frozen=True, slots=True)
class SetToNone:
    """No admin; the contract can never be migrated."""

    def decide(self, contract_address: Addr) -> Optional[Addr]:
        return None


AdminOption = Union[SetToAddr, SetToSelf, SetToNone]


__all__ = [
    "MessageKind",
    "Message",
    "MESSAGE_TYPES",
    "MsgTransfer",
    "MsgStoreCode",
    "MsgInstantiate",
    "MsgExecute",
    "MsgMigrate",
    "AdminOption",
    "SetToAddr",
    "SetToSelf",
    "SetToNone",
    "to_json_bytes",
]
