"""
Core value types for the Python SDK.

Everything here is an immutable value object: coins and balance sets, fees
and gas prices, account state, the signed transaction envelope and the
transaction result produced by confirmation.

Wire conventions
----------------
- Coin amounts are unsigned 128-bit integers. They travel as decimal strings
  so that no JSON/JS consumer ever sees a lossy float.
- A balance set (`Coins`) is ordered by denom with unique denoms.
- Transaction hashes are uppercase hex of sha256(raw tx bytes), unprefixed,
  exactly as CometBFT reports them.

Nothing here performs network I/O or encoding; see `cw_sdk.tx.encode`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from decimal import ROUND_CEILING, Decimal, InvalidOperation
from enum import Enum
from typing import (Any, Dict, Iterable, Iterator, List, Mapping, Optional,
                    Tuple, Union)

from ..address import Addr
from ..errors import EncodingError
from ..utils.hash import tx_hash_hex

MAX_AMOUNT = 2**128 - 1

_DENOM_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9/:._-]{1,127}$")
_COIN_RE = re.compile(r"^\s*([0-9]+)\s*([a-zA-Z][a-zA-Z0-9/:._-]{1,127})\s*$")
_GAS_PRICE_RE = re.compile(r"^\s*([0-9]+(?:\.[0-9]+)?|\.[0-9]+)\s*([a-zA-Z][a-zA-Z0-9/:._-]{1,127})\s*$")
_AMOUNT_RE = re.compile(r"0|[1-9][0-9]*")
_TX_HASH_RE = re.compile(r"[0-9A-Fa-f]{64}")

TxHash = str


def normalize_tx_hash(tx_hash: Any) -> TxHash:
    """Uppercase, unprefixed form of a 32-byte tx hash given as hex (`0x` optional)."""
    if isinstance(tx_hash, str) and tx_hash.startswith(("0x", "0X")):
        tx_hash = tx_hash[2:]
    if not isinstance(tx_hash, str) or not _TX_HASH_RE.fullmatch(tx_hash):
        raise EncodingError(f"tx hash must be 64 hex chars, got {tx_hash!r}", field="tx_hash")
    return tx_hash.upper()


# --- Coins -------------------------------------------------------------------


def _check_amount(amount: Any, *, field_name: str = "amount") -> int:
    if isinstance(amount, bool):
        raise EncodingError("amount must be an integer", field=field_name)
    if isinstance(amount, str):
        if not _AMOUNT_RE.fullmatch(amount):
            raise EncodingError(f"amount must be a canonical non-negative decimal string, got {amount!r}", field=field_name)
        amount = int(amount)
    if not isinstance(amount, int):
        raise EncodingError(f"amount must be int or decimal string, got {type(amount).__name__}", field=field_name)
    if amount < 0:
        raise EncodingError("amount must be non-negative", field=field_name)
    if amount > MAX_AMOUNT:
        raise EncodingError("amount exceeds 2^128-1", field=field_name)
    return amount


def _check_denom(denom: Any) -> str:
    if not isinstance(denom, str) or not _DENOM_RE.match(denom):
        raise EncodingError(f"invalid denom: {denom!r}", field="denom")
    return denom


@dataclass(frozen=True, slots=True)
class Coin:
    denom: str
    amount: int

    def __post_init__(self) -> None:
        _check_denom(self.denom)
        object.__setattr__(self, "amount", _check_amount(self.amount))

    @classmethod
    def parse(cls, text: str) -> "Coin":
        """Parse the compact form, e.g. '888uatom'."""
        m = _COIN_RE.match(text or "")
        if not m:
            raise EncodingError(f"invalid coin string: {text!r}")
        return cls(denom=m.group(2), amount=int(m.group(1)))

    def to_wire(self) -> Dict[str, str]:
        return {"denom": self.denom, "amount": str(self.amount)}

    @classmethod
    def from_wire(cls, d: Mapping[str, Any]) -> "Coin":
        try:
            return cls(denom=d["denom"], amount=d["amount"])
        except (KeyError, TypeError) as e:
            raise EncodingError(f"malformed coin: {d!r}") from e

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"


CoinsLike = Union["Coins", Mapping[str, Union[int, str]], Iterable[Coin], None]


class Coins:
    """
    An ordered-by-denom set of coins with unique denoms.

    Accepts a mapping ``{denom: amount}`` or an iterable of `Coin`. Duplicate
    denoms raise EncodingError rather than being merged silently.
    """

    __slots__ = ("_coins",)

    def __init__(self, coins: CoinsLike = None) -> None:
        if coins is None:
            items: List[Coin] = []
        elif isinstance(coins, Coins):
            items = list(coins)
        elif isinstance(coins, Mapping):
            items = [Coin(denom=d, amount=a) for d, a in coins.items()]
        else:
            items = list(coins)
            for c in items:
                if not isinstance(c, Coin):
                    raise EncodingError(f"expected Coin, got {type(c).__name__}", field="coins")
        items.sort(key=lambda c: c.denom)
        for prev, cur in zip(items, items[1:]):
            if prev.denom == cur.denom:
                raise EncodingError(f"duplicate denom: {cur.denom}", field="coins")
        self._coins: Tuple[Coin, ...] = tuple(items)

    @classmethod
    def parse(cls, text: str) -> "Coins":
        """Parse '888uatom,999uosmo'. Empty string yields an empty set."""
        parts = [p for p in (text or "").split(",") if p.strip()]
        return cls(Coin.parse(p) for p in parts)

    @classmethod
    def from_wire(cls, items: Optional[Iterable[Mapping[str, Any]]]) -> "Coins":
        """Normalise node output: zero balances are dropped."""
        return cls(c for c in (Coin.from_wire(d) for d in (items or ())) if c.amount > 0)

    def to_wire(self) -> List[Dict[str, str]]:
        return [c.to_wire() for c in self._coins]

    def to_dict(self) -> Dict[str, str]:
        return {c.denom: str(c.amount) for c in self._coins}

    def amount_of(self, denom: str) -> int:
        for c in self._coins:
            if c.denom == denom:
                return c.amount
        return 0

    def denoms(self) -> List[str]:
        return [c.denom for c in self._coins]

    def is_empty(self) -> bool:
        return not self._coins

    def __add__(self, other: "Coins") -> "Coins":
        totals: Dict[str, int] = {}
        for c in list(self) + list(Coins(other)):
            totals[c.denom] = totals.get(c.denom, 0) + c.amount
        return Coins(totals)

    def __iter__(self) -> Iterator[Coin]:
        return iter(self._coins)

    def __len__(self) -> int:
        return len(self._coins)

    def __getitem__(self, idx: int) -> Coin:
        return self._coins[idx]

    def __contains__(self, denom: object) -> bool:
        return any(c.denom == denom for c in self._coins)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Coins):
            return self._coins == other._coins
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._coins)

    def __repr__(self) -> str:
        return f"Coins({', '.join(str(c) for c in self._coins)})"

    def __str__(self) -> str:
        return ",".join(str(c) for c in self._coins)


# --- Fees & gas --------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GasPrice:
    """Price of one gas unit, e.g. GasPrice.parse('0.025uatom')."""

    amount: Decimal
    denom: str

    def __post_init__(self) -> None:
        _check_denom(self.denom)
        try:
            amt = Decimal(str(self.amount))
        except InvalidOperation as e:
            raise ValueError(f"invalid gas price amount: {self.amount!r}") from e
        if not amt.is_finite() or amt < 0:
            raise ValueError("gas price must be a finite non-negative number")
        object.__setattr__(self, "amount", amt)

    @classmethod
    def parse(cls, value: Union[str, "GasPrice", Mapping[str, Any]]) -> "GasPrice":
        if isinstance(value, GasPrice):
            return value
        if isinstance(value, Mapping):
            return cls(amount=Decimal(str(value["amount"])), denom=str(value["denom"]))
        m = _GAS_PRICE_RE.match(str(value))
        if not m:
            raise ValueError(f"invalid gas price: {value!r}")
        return cls(amount=Decimal(m.group(1)), denom=m.group(2))

    def fee_for(self, gas_limit: int) -> "Fee":
        """Fee paying for `gas_limit` units, rounded up to a whole coin."""
        total = (self.amount * gas_limit).to_integral_value(rounding=ROUND_CEILING)
        coins = Coins([Coin(self.denom, int(total))]) if total > 0 else Coins()
        return Fee(amount=coins, gas_limit=gas_limit)

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"


@dataclass(frozen=True, slots=True)
class Fee:
    amount: Coins
    gas_limit: int

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Coins):
            object.__setattr__(self, "amount", Coins(self.amount))
        if isinstance(self.gas_limit, bool) or not isinstance(self.gas_limit, int) or self.gas_limit <= 0:
            raise EncodingError("gas_limit must be a positive integer", field="fee.gas_limit")
        if self.gas_limit > 2**64 - 1:
            raise EncodingError("gas_limit exceeds u64", field="fee.gas_limit")


# --- Accounts ----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AccountState:
    """Locally tracked view of an account: the next sequence to sign with."""

    address: Addr
    sequence: int
    chain_id: str

    def __post_init__(self) -> None:
        if self.sequence < 0:
            raise ValueError("sequence must be non-negative")

    def advanced(self) -> "AccountState":
        return replace(self, sequence=self.sequence + 1)


@dataclass(frozen=True, slots=True)
class AccountInfo:
    """What the node reports for an account query."""

    address: Addr
    sequence: int
    public_key: Optional[bytes] = None


@dataclass(frozen=True, slots=True)
class ChainInfo:
    chain_id: str
    last_finalized_height: int = 0


# --- Transactions ------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SignedTransaction:
    """
    A signed, encoded transaction. `raw` is the exact byte string broadcast
    to the node; `tx_hash` is derived from it.
    """

    sender: Addr
    msgs: Tuple[Any, ...]
    fee: Fee
    sequence: int
    chain_id: str
    public_key: bytes
    signature: bytes
    raw: bytes = field(repr=False, compare=False, default=b"")

    @property
    def tx_hash(self) -> TxHash:
        return tx_hash_hex(self.raw)

    def __len__(self) -> int:
        return len(self.raw)


@dataclass(frozen=True, slots=True)
class Event:
    type: str
    attributes: Tuple[Tuple[str, str], ...] = ()

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        for k, v in self.attributes:
            if k == key:
                return v
        return default

    @classmethod
    def from_rpc(cls, d: Mapping[str, Any]) -> "Event":
        attrs = tuple((str(a.get("key", "")), str(a.get("value", ""))) for a in d.get("attributes") or ())
        return cls(type=str(d.get("type", "")), attributes=attrs)


class TxStatus(str, Enum):
    PENDING = "pending"
    INCLUDED = "included"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TransactionResult:
    """
    Outcome of a broadcast transaction.

    Created PENDING at broadcast time and replaced by exactly one terminal
    value (INCLUDED or FAILED) once the node reports the transaction in a
    block. A PENDING result after a timeout is not an error; the caller may
    keep polling with the same hash.

    `outcomes` holds one dict per message with whatever the message kind
    yields (e.g. ``{"contract_address": Addr}`` for an instantiation).
    """

    status: TxStatus
    tx_hash: TxHash
    height: Optional[int] = None
    code: int = 0
    log: str = ""
    codespace: Optional[str] = None
    events: Tuple[Event, ...] = ()
    outcomes: Tuple[Dict[str, Any], ...] = field(default=(), compare=False)
    gas_wanted: int = 0
    gas_used: int = 0

    @classmethod
    def pending(cls, tx_hash: TxHash) -> "TransactionResult":
        return cls(status=TxStatus.PENDING, tx_hash=tx_hash)

    @property
    def is_pending(self) -> bool:
        return self.status is TxStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status is not TxStatus.PENDING

    @property
    def ok(self) -> bool:
        return self.status is TxStatus.INCLUDED

    def find_events(self, type_: str) -> List[Event]:
        return [e for e in self.events if e.type == type_]

    def outcome(self, key: str) -> Optional[Any]:
        """First value for `key` across message outcomes."""
        for o in self.outcomes:
            if key in o:
                return o[key]
        return None


__all__ = [
    "MAX_AMOUNT",
    "TxHash",
    "normalize_tx_hash",
    "Coin",
    "Coins",
    "CoinsLike",
    "GasPrice",
    "Fee",
    "AccountState",
    "AccountInfo",
    "ChainInfo",
    "SignedTransaction",
    "Event",
    "TxStatus",
    "TransactionResult",
]
