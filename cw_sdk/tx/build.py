"""
cw_sdk.tx.build
===============

Message constructors, gas estimation helpers and the transaction builder.

`build(msgs, fee, account, signer)` is pure: it validates, encodes the sign
doc, asks the signer for exactly one signature and returns the immutable
`SignedTransaction` (raw bytes and hash included). No network access; the
caller supplies the account state (sequence + chain id).

Design notes
------------
- All messages in one transaction must be sent by the signing account.
- `instantiate` resolves the admin policy against the address the node will
  assign (`Addr.compute(sender, code_hash, salt)`), so `SetToSelf` works for a
  contract stored in the very same transaction.
- Gas helpers are a local, conservative estimate. They never talk to the
  node; override with an explicit `gas_limit` when you know better.

Examples
--------
    from cw_sdk.tx.build import transfer, build, suggest_gas_limit, fee_for

    msg = transfer(sender, recipient, {"uatom": 888})
    gas = suggest_gas_limit([msg])
    tx = build([msg], fee_for(gas, GasPrice.parse("0.025uatom")), account, key)
    raw, tx_hash = tx.raw, tx.tx_hash
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Optional, Sequence

from ..address import Addr, AddrLike
from ..errors import EncodingError, SigningError
from ..types.core import (AccountState, Coins, CoinsLike, Fee, GasPrice,
                          SignedTransaction)
from ..types.msgs import (AdminOption, Message, MessageKind, MsgExecute,
                          MsgInstantiate, MsgMigrate, MsgStoreCode,
                          MsgTransfer, SetToNone)
from ..utils.hash import sha256
from ..wallet.signer import Signer
from .encode import encode_tx, sign_bytes

log = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Gas estimation primitives
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class GasParams:
    """
    Parameters for intrinsic-gas estimation. Defaults are deliberately on the
    high side of what the node charges for storage and wasm compilation.
    """

    base_tx: int = 50_000
    per_tx_byte: int = 10

    base_transfer: int = 25_000
    per_coin: int = 5_000
    base_store_code: int = 150_000
    per_wasm_byte: int = 20
    base_instantiate: int = 250_000
    base_execute: int = 200_000
    base_migrate: int = 200_000
    per_msg_byte: int = 15


def _msg_gas(msg: Message, p: GasParams) -> int:
    kind = msg.kind
    if kind is MessageKind.TRANSFER:
        return p.base_transfer + len(msg.coins) * p.per_coin
    if kind is MessageKind.STORE_CODE:
        return p.base_store_code + len(msg.wasm_byte_code) * p.per_wasm_byte
    if kind is MessageKind.INSTANTIATE:
        return p.base_instantiate + len(msg.msg) * p.per_msg_byte + len(msg.funds) * p.per_coin
    if kind is MessageKind.EXECUTE:
        return p.base_execute + len(msg.msg) * p.per_msg_byte + len(msg.funds) * p.per_coin
    if kind is MessageKind.MIGRATE:
        return p.base_migrate + len(msg.msg) * p.per_msg_byte
    raise EncodingError(f"unsupported message type: {type(msg).__name__}")


def intrinsic_gas(msgs: Sequence[Message], *, params: Optional[GasParams] = None) -> int:
    """
    Rough gas needed to carry and execute `msgs`, independent of contract
    logic. Contract code may need more; see `suggest_gas_limit`.
    """
    p = params or GasParams()
    return p.base_tx + sum(_msg_gas(m, p) for m in msgs)


def suggest_gas_limit(
    msgs: Sequence[Message],
    *,
    params: Optional[GasParams] = None,
    safety_multiplier: float = 1.3,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> int:
    """
    `intrinsic_gas` times a safety multiplier, clamped to [minimum, maximum].
    """
    est = int(math.ceil(intrinsic_gas(msgs, params=params) * float(safety_multiplier)))
    if minimum is not None:
        est = max(est, int(minimum))
    if maximum is not None:
        est = min(est, int(maximum))
    return max(est, 1)


def fee_for(gas_limit: int, gas_price: GasPrice) -> Fee:
    """Fee for `gas_limit` at `gas_price`, rounded up to a whole coin."""
    return gas_price.fee_for(gas_limit)


# -----------------------------------------------------------------------------
# Message constructors
# -----------------------------------------------------------------------------


def transfer(sender: AddrLike, to: AddrLike, coins: CoinsLike) -> MsgTransfer:
    coins = Coins(coins)
    if coins.is_empty():
        raise EncodingError("transfer requires at least one coin", field="coins")
    return MsgTransfer(sender=Addr.parse(sender), to=Addr.parse(to), coins=coins)


def store_code(sender: AddrLike, wasm_byte_code: bytes) -> MsgStoreCode:
    return MsgStoreCode(sender=Addr.parse(sender), wasm_byte_code=bytes(wasm_byte_code))


def instantiate(
    sender: AddrLike,
    code_hash: bytes,
    msg: Any,
    salt: bytes,
    funds: CoinsLike = None,
    admin: AdminOption = SetToNone(),
) -> MsgInstantiate:
    """
    `msg` may be a JSON-serialisable value or pre-encoded JSON bytes.
    `code_hash` is sha256 of the wasm; see `code_hash_of`.
    """
    sender = Addr.parse(sender)
    code_hash = bytes(code_hash)
    if len(code_hash) != 32:
        raise EncodingError("code_hash must be 32 bytes", field="code_hash")
    contract = Addr.compute(sender, code_hash, salt)
    return MsgInstantiate(
        sender=sender,
        code_hash=code_hash,
        msg=msg,
        salt=bytes(salt),
        funds=Coins(funds),
        admin=admin.decide(contract),
    )


def execute(sender: AddrLike, contract: AddrLike, msg: Any, funds: CoinsLike = None) -> MsgExecute:
    return MsgExecute(sender=Addr.parse(sender), contract=Addr.parse(contract), msg=msg, funds=Coins(funds))


def migrate(sender: AddrLike, contract: AddrLike, new_code_hash: bytes, msg: Any) -> MsgMigrate:
    return MsgMigrate(
        sender=Addr.parse(sender),
        contract=Addr.parse(contract),
        new_code_hash=bytes(new_code_hash),
        msg=msg,
    )


def code_hash_of(wasm_byte_code: bytes) -> bytes:
    return sha256(wasm_byte_code)


# -----------------------------------------------------------------------------
# Builder
# -----------------------------------------------------------------------------


def build(
    msgs: Sequence[Message],
    fee: Fee,
    account: AccountState,
    signer: Signer,
) -> SignedTransaction:
    """
    Assemble, sign and encode a transaction.

    Raises EncodingError for schema violations (including a message whose
    sender is not `account.address`) and SigningError when the signer fails.
    """
    msgs = tuple(msgs)
    if not msgs:
        raise EncodingError("transaction must contain at least one message", field="msgs")
    for i, m in enumerate(msgs):
        if getattr(m, "sender", None) != account.address:
            raise EncodingError(
                f"message {i} is sent by {getattr(m, 'sender', None)}, not by the signing account {account.address}",
                field="msgs",
            )

    payload = sign_bytes(account.address, msgs, fee, account.sequence, account.chain_id)
    try:
        signature, public_key = signer.sign(payload)
    except SigningError:
        raise
    except (ValueError, TypeError) as e:
        raise SigningError(f"signer failed: {e}") from e
    if not isinstance(signature, bytes) or not signature:
        raise SigningError("signer returned an empty signature")
    if not isinstance(public_key, bytes) or not public_key:
        raise SigningError("signer returned an empty public key")

    tx = SignedTransaction(
        sender=account.address,
        msgs=msgs,
        fee=fee,
        sequence=account.sequence,
        chain_id=account.chain_id,
        public_key=public_key,
        signature=signature,
    )
    tx = replace(tx, raw=encode_tx(tx))
    log.debug(
        "built tx %s: %d msg(s), sequence=%d, gas_limit=%d, %d bytes",
        tx.tx_hash, len(msgs), tx.sequence, fee.gas_limit, len(tx.raw),
    )
    return tx


__all__ = [
    "GasParams",
    "intrinsic_gas",
    "suggest_gas_limit",
    "fee_for",
    "transfer",
    "store_code",
    "instantiate",
    "execute",
    "migrate",
    "code_hash_of",
    "build",
]
