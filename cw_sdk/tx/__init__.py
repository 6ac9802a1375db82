"""
cw_sdk.tx
---------

Transaction pipeline pieces, leaf-first:

- encode  : deterministic CBOR for messages, sign docs, txs and queries
- sequence: per-account sequence tracking with per-address locks
- build   : message constructors, gas helpers, `build(...)`
- confirm : polling confirmation + per-message event parsing
"""

from __future__ import annotations

from .build import (GasParams, build, code_hash_of, execute, fee_for,
                    instantiate, intrinsic_gas, migrate, store_code,
                    suggest_gas_limit, transfer)
from .confirm import ConfirmationWaiter
from .encode import (MAX_MSGS_PER_TX, MAX_TX_BYTES, MAX_WASM_SIZE,
                     decode_message, decode_tx, encode_message, encode_query,
                     encode_tx, sign_bytes)
from .sequence import SequenceTracker

__all__ = [
    "GasParams",
    "build",
    "code_hash_of",
    "execute",
    "fee_for",
    "instantiate",
    "intrinsic_gas",
    "migrate",
    "store_code",
    "suggest_gas_limit",
    "transfer",
    "ConfirmationWaiter",
    "MAX_MSGS_PER_TX",
    "MAX_TX_BYTES",
    "MAX_WASM_SIZE",
    "decode_message",
    "decode_tx",
    "encode_message",
    "encode_query",
    "encode_tx",
    "sign_bytes",
    "SequenceTracker",
]
