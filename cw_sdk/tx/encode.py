"""
cw_sdk.tx.encode
================

Deterministic CBOR encoding for transactions, messages and app queries.

This module provides:
- `encode_message(msg)` / `decode_message(raw)`
- `sign_doc(...)` → the canonical, signable dictionary
- `sign_bytes(...)` → bytes to sign (canonical CBOR of the sign doc)
- `encode_tx(tx)` / `decode_tx(raw)` → signed wire envelope
- `encode_query(req)` / `decode_query_response(req, raw)`

Design notes
------------
* All output goes through `cw_sdk.utils.cbor.dumps` (cbor2, canonical mode),
  so the same logical input always yields identical bytes.
* The sign doc binds everything the node checks before execution:

      {
        "chain_id": <str>,
        "sender":   <bytes32>,
        "sequence": <uint>,
        "msgs":     [ {<kind>: {...}}, ... ],
        "fee":      {"amount": [{"denom", "amount"}], "gas_limit": <uint>},
      }

* The wire envelope wraps the sign doc with the credential:

      {"body": <sign doc>, "credential": {"public_key": <bytes>, "signature": <bytes>}}

* Each message kind has its own to-wire / from-wire pair, looked up in a
  table keyed by `MessageKind`. Adding a kind means adding one entry to each
  table, nothing else.
* Decoding is strict: the input must be exactly the canonical encoding of
  what it decodes to. Anything else raises EncodingError.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, List, Mapping, Sequence

from ..address import ADDR_LEN, Addr, AddressError
from ..errors import EncodingError
from ..types.core import (AccountInfo, ChainInfo, Coin, Coins, Fee,
                          SignedTransaction)
from ..types.msgs import (Message, MessageKind, MsgExecute, MsgInstantiate,
                          MsgMigrate, MsgStoreCode, MsgTransfer)
from ..types.query import QueryKind, QueryRequest
from ..utils.cbor import CBORDecodeError, CBOREncodeError, dumps, loads

# Limits the node enforces at CheckTx; checked locally so oversized input
# never leaves the process.
MAX_WASM_SIZE = 3 * 1024 * 1024
MAX_TX_BYTES = 4 * 1024 * 1024
MAX_MSGS_PER_TX = 64
MAX_SALT_LEN = 64
MAX_SEQUENCE = 2**32 - 1

HASH_LEN = 32


# -----------------------------------------------------------------------------
# Field helpers
# -----------------------------------------------------------------------------


def _addr_from(obj: Any, field: str) -> Addr:
    if not isinstance(obj, bytes):
        raise EncodingError(f"expected bytes, got {type(obj).__name__}", field=field)
    if len(obj) != ADDR_LEN:
        raise EncodingError(f"address must be {ADDR_LEN} bytes, got {len(obj)}", field=field)
    try:
        return Addr(obj)
    except AddressError as e:  # pragma: no cover - length already checked
        raise EncodingError(str(e), field=field) from e


def _bytes_from(obj: Any, field: str) -> bytes:
    if not isinstance(obj, bytes):
        raise EncodingError(f"expected bytes, got {type(obj).__name__}", field=field)
    return obj


def _hash_from(obj: Any, field: str) -> bytes:
    b = _bytes_from(obj, field)
    if len(b) != HASH_LEN:
        raise EncodingError(f"hash must be {HASH_LEN} bytes, got {len(b)}", field=field)
    return b


def _coins_to_wire(coins: Coins, field: str) -> List[Dict[str, str]]:
    for c in coins:
        if c.amount == 0:
            raise EncodingError(f"zero amount for {c.denom}", field=field)
    return coins.to_wire()


def _coins_from(obj: Any, field: str) -> Coins:
    if not isinstance(obj, list):
        raise EncodingError("expected a list of coins", field=field)
    for d in obj:
        if not isinstance(d, dict) or not isinstance(d.get("amount"), str):
            raise EncodingError("malformed coin", field=field)
    coins = Coins(Coin.from_wire(d) for d in obj)
    for c in coins:
        if c.amount == 0:
            raise EncodingError(f"zero amount for {c.denom}", field=field)
    return coins


def _expect_keys(obj: Any, keys: Sequence[str], what: str) -> Mapping[str, Any]:
    if not isinstance(obj, dict):
        raise EncodingError(f"{what} must be a map")
    missing = [k for k in keys if k not in obj]
    if missing:
        raise EncodingError(f"{what} missing field(s): {', '.join(missing)}")
    extra = set(obj) - set(keys)
    if extra:
        raise EncodingError(f"{what} has unknown field(s): {', '.join(sorted(map(str, extra)))}")
    return obj


# -----------------------------------------------------------------------------
# Messages: one (to_wire, from_wire) pair per kind
# -----------------------------------------------------------------------------


def _transfer_to_wire(m: MsgTransfer) -> Dict[str, Any]:
    if m.coins.is_empty():
        raise EncodingError("transfer must carry at least one coin", field="transfer.coins")
    return {
        "sender": m.sender.raw,
        "to": m.to.raw,
        "coins": _coins_to_wire(m.coins, "transfer.coins"),
    }


def _transfer_from_wire(d: Mapping[str, Any]) -> MsgTransfer:
    d = _expect_keys(d, ("sender", "to", "coins"), "transfer")
    return MsgTransfer(
        sender=_addr_from(d["sender"], "transfer.sender"),
        to=_addr_from(d["to"], "transfer.to"),
        coins=_coins_from(d["coins"], "transfer.coins"),
    )


def _store_code_to_wire(m: MsgStoreCode) -> Dict[str, Any]:
    if not m.wasm_byte_code:
        raise EncodingError("wasm byte code is empty", field="store_code.wasm_byte_code")
    if len(m.wasm_byte_code) > MAX_WASM_SIZE:
        raise EncodingError(
            f"wasm byte code is {len(m.wasm_byte_code)} bytes, limit is {MAX_WASM_SIZE}",
            field="store_code.wasm_byte_code",
        )
    return {"sender": m.sender.raw, "wasm_byte_code": m.wasm_byte_code}


def _store_code_from_wire(d: Mapping[str, Any]) -> MsgStoreCode:
    d = _expect_keys(d, ("sender", "wasm_byte_code"), "store_code")
    return MsgStoreCode(
        sender=_addr_from(d["sender"], "store_code.sender"),
        wasm_byte_code=_bytes_from(d["wasm_byte_code"], "store_code.wasm_byte_code"),
    )


def _instantiate_to_wire(m: MsgInstantiate) -> Dict[str, Any]:
    _hash_from(m.code_hash, "instantiate.code_hash")
    if len(m.salt) > MAX_SALT_LEN:
        raise EncodingError(f"salt longer than {MAX_SALT_LEN} bytes", field="instantiate.salt")
    return {
        "sender": m.sender.raw,
        "code_hash": m.code_hash,
        "msg": m.msg,
        "salt": m.salt,
        "funds": _coins_to_wire(m.funds, "instantiate.funds"),
        "admin": m.admin.raw if m.admin is not None else None,
    }


def _instantiate_from_wire(d: Mapping[str, Any]) -> MsgInstantiate:
    d = _expect_keys(d, ("sender", "code_hash", "msg", "salt", "funds", "admin"), "instantiate")
    admin = d["admin"]
    return MsgInstantiate(
        sender=_addr_from(d["sender"], "instantiate.sender"),
        code_hash=_hash_from(d["code_hash"], "instantiate.code_hash"),
        msg=_bytes_from(d["msg"], "instantiate.msg"),
        salt=_bytes_from(d["salt"], "instantiate.salt"),
        funds=_coins_from(d["funds"], "instantiate.funds"),
        admin=_addr_from(admin, "instantiate.admin") if admin is not None else None,
    )


def _execute_to_wire(m: MsgExecute) -> Dict[str, Any]:
    return {
        "sender": m.sender.raw,
        "contract": m.contract.raw,
        "msg": m.msg,
        "funds": _coins_to_wire(m.funds, "execute.funds"),
    }


def _execute_from_wire(d: Mapping[str, Any]) -> MsgExecute:
    d = _expect_keys(d, ("sender", "contract", "msg", "funds"), "execute")
    return MsgExecute(
        sender=_addr_from(d["sender"], "execute.sender"),
        contract=_addr_from(d["contract"], "execute.contract"),
        msg=_bytes_from(d["msg"], "execute.msg"),
        funds=_coins_from(d["funds"], "execute.funds"),
    )


def _migrate_to_wire(m: MsgMigrate) -> Dict[str, Any]:
    _hash_from(m.new_code_hash, "migrate.new_code_hash")
    return {
        "sender": m.sender.raw,
        "contract": m.contract.raw,
        "new_code_hash": m.new_code_hash,
        "msg": m.msg,
    }


def _migrate_from_wire(d: Mapping[str, Any]) -> MsgMigrate:
    d = _expect_keys(d, ("sender", "contract", "new_code_hash", "msg"), "migrate")
    return MsgMigrate(
        sender=_addr_from(d["sender"], "migrate.sender"),
        contract=_addr_from(d["contract"], "migrate.contract"),
        new_code_hash=_hash_from(d["new_code_hash"], "migrate.new_code_hash"),
        msg=_bytes_from(d["msg"], "migrate.msg"),
    )


_TO_WIRE: Dict[MessageKind, Callable[[Any], Dict[str, Any]]] = {
    MessageKind.TRANSFER: _transfer_to_wire,
    MessageKind.STORE_CODE: _store_code_to_wire,
    MessageKind.INSTANTIATE: _instantiate_to_wire,
    MessageKind.EXECUTE: _execute_to_wire,
    MessageKind.MIGRATE: _migrate_to_wire,
}

_FROM_WIRE: Dict[MessageKind, Callable[[Mapping[str, Any]], Message]] = {
    MessageKind.TRANSFER: _transfer_from_wire,
    MessageKind.STORE_CODE: _store_code_from_wire,
    MessageKind.INSTANTIATE: _instantiate_from_wire,
    MessageKind.EXECUTE: _execute_from_wire,
    MessageKind.MIGRATE: _migrate_from_wire,
}


def message_to_wire(msg: Message) -> Dict[str, Any]:
    """Tagged map form: ``{<kind>: {...fields}}``."""
    kind = getattr(msg, "kind", None)
    fn = _TO_WIRE.get(kind) if isinstance(kind, MessageKind) else None
    if fn is None:
        raise EncodingError(f"unsupported message type: {type(msg).__name__}")
    return {kind.value: fn(msg)}


def message_from_wire(obj: Any) -> Message:
    if not isinstance(obj, dict) or len(obj) != 1:
        raise EncodingError("message must be a single-key map")
    (tag, body), = obj.items()
    try:
        kind = MessageKind(tag)
    except ValueError:
        raise EncodingError(f"unknown message kind: {tag!r}") from None
    return _FROM_WIRE[kind](body)


def encode_message(msg: Message) -> bytes:
    return _dumps(message_to_wire(msg))


def decode_message(raw: bytes) -> Message:
    return message_from_wire(_loads_canonical(raw, "message"))


# -----------------------------------------------------------------------------
# Sign doc & signed envelope
# -----------------------------------------------------------------------------


def sign_doc(
    sender: Addr,
    msgs: Sequence[Message],
    fee: Fee,
    sequence: int,
    chain_id: str,
) -> Dict[str, Any]:
    """
    Build the canonical, signable body of a transaction.

    Raises EncodingError for an empty or oversized message list, an empty
    chain id or an out-of-range sequence.
    """
    if not msgs:
        raise EncodingError("transaction must contain at least one message", field="msgs")
    if len(msgs) > MAX_MSGS_PER_TX:
        raise EncodingError(f"too many messages ({len(msgs)} > {MAX_MSGS_PER_TX})", field="msgs")
    if not isinstance(chain_id, str) or not chain_id:
        raise EncodingError("chain_id must be a non-empty string", field="chain_id")
    if isinstance(sequence, bool) or not isinstance(sequence, int) or not 0 <= sequence <= MAX_SEQUENCE:
        raise EncodingError(f"sequence out of range: {sequence!r}", field="sequence")
    return {
        "chain_id": chain_id,
        "sender": Addr.parse(sender).raw,
        "sequence": sequence,
        "msgs": [message_to_wire(m) for m in msgs],
        "fee": {
            "amount": _coins_to_wire(fee.amount, "fee.amount"),
            "gas_limit": fee.gas_limit,
        },
    }


def sign_bytes(
    sender: Addr,
    msgs: Sequence[Message],
    fee: Fee,
    sequence: int,
    chain_id: str,
) -> bytes:
    """The exact byte string the signer signs."""
    return _dumps(sign_doc(sender, msgs, fee, sequence, chain_id))


def encode_tx(tx: SignedTransaction) -> bytes:
    """Raw signed transaction, ready for `broadcast_tx_sync`."""
    env = {
        "body": sign_doc(tx.sender, tx.msgs, tx.fee, tx.sequence, tx.chain_id),
        "credential": {
            "public_key": bytes(tx.public_key),
            "signature": bytes(tx.signature),
        },
    }
    raw = _dumps(env)
    if len(raw) > MAX_TX_BYTES:
        raise EncodingError(f"transaction is {len(raw)} bytes, limit is {MAX_TX_BYTES}")
    return raw


def decode_tx(raw: bytes) -> SignedTransaction:
    env = _expect_keys(_loads_canonical(raw, "tx"), ("body", "credential"), "tx")
    body = _expect_keys(env["body"], ("chain_id", "sender", "sequence", "msgs", "fee"), "tx.body")
    cred = _expect_keys(env["credential"], ("public_key", "signature"), "tx.credential")
    fee = _expect_keys(body["fee"], ("amount", "gas_limit"), "tx.body.fee")

    if not isinstance(body["msgs"], list):
        raise EncodingError("msgs must be a list", field="msgs")
    if not isinstance(body["chain_id"], str):
        raise EncodingError("chain_id must be a string", field="chain_id")
    if isinstance(body["sequence"], bool) or not isinstance(body["sequence"], int):
        raise EncodingError("sequence must be an integer", field="sequence")
    if not isinstance(fee["gas_limit"], int):
        raise EncodingError("gas_limit must be an integer", field="fee.gas_limit")

    return SignedTransaction(
        sender=_addr_from(body["sender"], "sender"),
        msgs=tuple(message_from_wire(m) for m in body["msgs"]),
        fee=Fee(amount=_coins_from(fee["amount"], "fee.amount"), gas_limit=fee["gas_limit"]),
        sequence=body["sequence"],
        chain_id=body["chain_id"],
        public_key=_bytes_from(cred["public_key"], "credential.public_key"),
        signature=_bytes_from(cred["signature"], "credential.signature"),
        raw=bytes(raw),
    )


# -----------------------------------------------------------------------------
# Queries
# -----------------------------------------------------------------------------


def query_to_wire(req: QueryRequest) -> Dict[str, Any]:
    kind = getattr(req, "kind", None)
    if kind is QueryKind.INFO:
        body: Dict[str, Any] = {}
    elif kind is QueryKind.BALANCE:
        body = {"address": Addr.parse(req.address).raw, "denom": req.denom}
    elif kind is QueryKind.BALANCES:
        body = {
            "address": Addr.parse(req.address).raw,
            "start_after": req.start_after,
            "limit": req.limit,
        }
    elif kind is QueryKind.ACCOUNT:
        body = {"address": Addr.parse(req.address).raw}
    elif kind is QueryKind.CODE:
        body = {"hash": _hash_from(bytes(req.code_hash), "code.hash")}
    elif kind is QueryKind.WASM_SMART:
        body = {"contract": Addr.parse(req.contract).raw, "msg": req.msg}
    else:
        raise EncodingError(f"unsupported query type: {type(req).__name__}")
    return {kind.value: body}


def encode_query(req: QueryRequest) -> bytes:
    return _dumps(query_to_wire(req))


def _height(v: Any) -> int:
    # int64 heights may arrive as JSON-style decimal strings
    if isinstance(v, str) and re.fullmatch(r"0|[1-9][0-9]*", v):
        v = int(v)
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        raise EncodingError(f"invalid height: {v!r}", field="info.height")
    return v


def decode_query_response(req: QueryRequest, raw: bytes) -> Any:
    """
    Decode the app's answer to `req`:

      info       -> ChainInfo
      balance    -> Coin
      balances   -> List[Coin] (one page, node order, zero amounts kept)
      account    -> AccountInfo
      code       -> bytes (wasm)
      wasm_smart -> decoded JSON value
    """
    obj = _loads(raw, "query response")
    kind = getattr(req, "kind", None)
    if kind is QueryKind.INFO:
        d = _expect_dict(obj, "info")
        return ChainInfo(chain_id=str(d.get("chain_id", "")), last_finalized_height=_height(d.get("height", 0)))
    if kind is QueryKind.BALANCE:
        return Coin.from_wire(_expect_dict(obj, "balance"))
    if kind is QueryKind.BALANCES:
        if not isinstance(obj, list):
            raise EncodingError("balances response must be a list")
        return [Coin.from_wire(_expect_dict(d, "balance")) for d in obj]
    if kind is QueryKind.ACCOUNT:
        d = _expect_dict(obj, "account")
        seq = d.get("sequence")
        if isinstance(seq, bool) or not isinstance(seq, int) or seq < 0:
            raise EncodingError(f"invalid account sequence: {seq!r}", field="account.sequence")
        pk = d.get("public_key")
        return AccountInfo(address=Addr.parse(req.address), sequence=seq, public_key=pk if isinstance(pk, bytes) else None)
    if kind is QueryKind.CODE:
        return _bytes_from(obj, "code")
    if kind is QueryKind.WASM_SMART:
        data = _bytes_from(obj, "wasm_smart")
        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise EncodingError(f"contract returned invalid JSON: {e}") from e
    raise EncodingError(f"unsupported query type: {type(req).__name__}")


# -----------------------------------------------------------------------------
# CBOR plumbing
# -----------------------------------------------------------------------------


def _expect_dict(obj: Any, what: str) -> Dict[str, Any]:
    if not isinstance(obj, dict):
        raise EncodingError(f"{what} must be a map")
    return obj


def _dumps(obj: Any) -> bytes:
    try:
        return dumps(obj)
    except CBOREncodeError as e:
        raise EncodingError(f"cbor encode failed: {e}") from e


def _loads(raw: Any, what: str) -> Any:
    if not isinstance(raw, (bytes, bytearray, memoryview)):
        raise EncodingError(f"{what} must be bytes")
    try:
        return loads(raw)
    except CBORDecodeError as e:
        raise EncodingError(f"malformed {what}: {e}") from e


def _loads_canonical(raw: Any, what: str) -> Any:
    obj = _loads(raw, what)
    try:
        again = dumps(obj)
    except CBOREncodeError as e:
        raise EncodingError(f"malformed {what}: {e}") from e
    if again != bytes(raw):
        raise EncodingError(f"{what} is not canonically encoded")
    return obj


__all__ = [
    "MAX_WASM_SIZE",
    "MAX_TX_BYTES",
    "MAX_MSGS_PER_TX",
    "MAX_SALT_LEN",
    "message_to_wire",
    "message_from_wire",
    "encode_message",
    "decode_message",
    "sign_doc",
    "sign_bytes",
    "encode_tx",
    "decode_tx",
    "query_to_wire",
    "encode_query",
    "decode_query_response",
]
