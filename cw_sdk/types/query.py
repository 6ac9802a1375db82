"""
Query requests answered by the app over `abci_query` (path "/app").

Like messages, queries are a closed tagged set. Each request knows its wire
tag; cw_sdk.tx.encode turns it into bytes and decodes the matching response.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Union

from ..address import Addr
from .msgs import to_json_bytes

# Page size the node caps balance listings at.
DEFAULT_PAGE_LIMIT = 30


class QueryKind(str, Enum):
    INFO = "info"
    BALANCE = "balance"
    BALANCES = "balances"
    ACCOUNT = "account"
    CODE = "code"
    WASM_SMART = "wasm_smart"


@dataclass(frozen=True, slots=True)
class QueryInfo:
    kind: ClassVar[QueryKind] = QueryKind.INFO


@dataclass(frozen=True, slots=True)
class QueryBalance:
    kind: ClassVar[QueryKind] = QueryKind.BALANCE

    address: Addr
    denom: str


@dataclass(frozen=True, slots=True)
class QueryBalances:
    kind: ClassVar[QueryKind] = QueryKind.BALANCES

    address: Addr
    start_after: Optional[str] = None
    limit: Optional[int] = None


@dataclass(frozen=True, slots=True)
class QueryAccount:
    kind: ClassVar[QueryKind] = QueryKind.ACCOUNT

    address: Addr


@dataclass(frozen=True, slots=True)
class QueryCode:
    kind: ClassVar[QueryKind] = QueryKind.CODE

    code_hash: bytes


@dataclass(frozen=True, slots=True)
class QueryWasmSmart:
    kind: ClassVar[QueryKind] = QueryKind.WASM_SMART

    contract: Addr
    msg: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "msg", to_json_bytes(self.msg))


QueryRequest = Union[QueryInfo, QueryBalance, QueryBalances, QueryAccount, QueryCode, QueryWasmSmart]

__all__ = [
    "DEFAULT_PAGE_LIMIT",
    "QueryKind",
    "QueryRequest",
    "QueryInfo",
    "QueryBalance",
    "QueryBalances",
    "QueryAccount",
    "QueryCode",
    "QueryWasmSmart",
]
