"""
cw_sdk.types
============

SDK datatypes:

- :mod:`cw_sdk.types.core`  — coins, fees, account state, tx envelope & result
- :mod:`cw_sdk.types.msgs`  — transaction message variants and admin options
- :mod:`cw_sdk.types.query` — query request variants
"""

from __future__ import annotations

from .core import (MAX_AMOUNT, AccountInfo, AccountState, ChainInfo, Coin,
                   Coins, Event, Fee, GasPrice, SignedTransaction,
                   TransactionResult, TxHash, TxStatus)
from .msgs import (MESSAGE_TYPES, AdminOption, Message, MessageKind,
                   MsgExecute, MsgInstantiate, MsgMigrate, MsgStoreCode,
                   MsgTransfer, SetToAddr, SetToNone, SetToSelf,
                   to_json_bytes)
from .query import (QueryAccount, QueryBalance, QueryBalances, QueryCode,
                    QueryInfo, QueryKind, QueryRequest, QueryWasmSmart)

__all__ = [
    "MAX_AMOUNT",
    "AccountInfo",
    "AccountState",
    "ChainInfo",
    "Coin",
    "Coins",
    "Event",
    "Fee",
    "GasPrice",
    "SignedTransaction",
    "TransactionResult",
    "TxHash",
    "TxStatus",
    "MESSAGE_TYPES",
    "AdminOption",
    "Message",
    "MessageKind",
    "MsgExecute",
    "MsgInstantiate",
    "MsgMigrate",
    "MsgStoreCode",
    "MsgTransfer",
    "SetToAddr",
    "SetToNone",
    "SetToSelf",
    "to_json_bytes",
    "QueryAccount",
    "QueryBalance",
    "QueryBalances",
    "QueryCode",
    "QueryInfo",
    "QueryKind",
    "QueryRequest",
    "QueryWasmSmart",
]
