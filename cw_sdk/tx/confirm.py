"""
cw_sdk.tx.confirm
=================

Wait for a broadcast transaction to land in a block and turn the node's
answer into a `TransactionResult`.

Polling
-------
`await_confirmation(tx_hash, timeout)` polls the node's `tx` method every
`poll_interval` seconds. When the deadline passes it returns a PENDING
result; that is not an error, and calling again with the same hash later
resumes where it left off. Once a transaction is in a block every call
returns the same terminal result, so waiting is idempotent.

Transient RPC failures while polling are logged and polling continues
(each poll already retries internally). Permanent errors propagate.

Event parsing
-------------
Each message kind owns a parser in `EVENT_PARSERS` that pulls its structured
result out of the emitted events. Message *i* of kind K is matched with the
*i*-th event of type K. A parser returns a dict that becomes the message's
entry in `TransactionResult.outcomes`:

    store_code  -> {"code_hash": bytes}
    instantiate -> {"contract_address": Addr}
    execute     -> {"contract": Addr}
    migrate     -> {"contract": Addr, "new_code_hash": bytes}
    transfer    -> {}
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import (Any, Callable, Dict, List, Mapping, Optional, Protocol,
                    Sequence)

from ..address import Addr, AddressError
from ..errors import EncodingError, RpcError
from ..types.core import (Event, TransactionResult, TxHash, TxStatus,
                          normalize_tx_hash)
from ..types.msgs import (Message, MessageKind, MsgExecute, MsgInstantiate,
                          MsgMigrate, MsgStoreCode, MsgTransfer)
from ..utils.bytes import from_b64, from_hex
from .encode import decode_tx

log = logging.getLogger(__name__)

EventParser = Callable[[Any, Optional[Event]], Dict[str, Any]]


class TxSource(Protocol):
    async def get_tx(self, tx_hash: TxHash) -> Optional[Dict[str, Any]]: ...


def _int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


# -----------------------------------------------------------------------------
# Per-kind event parsers
# -----------------------------------------------------------------------------


def _parse_transfer(msg: MsgTransfer, event: Optional[Event]) -> Dict[str, Any]:
    return {}


def _parse_store_code(msg: MsgStoreCode, event: Optional[Event]) -> Dict[str, Any]:
    raw = event.get("code_hash") if event is not None else None
    if raw:
        try:
            return {"code_hash": from_hex(raw)}
        except ValueError:
            log.warning("store_code event carries a malformed code_hash: %r", raw)
    return {"code_hash": msg.code_hash}


def _parse_instantiate(msg: MsgInstantiate, event: Optional[Event]) -> Dict[str, Any]:
    raw = event.get("contract") if event is not None else None
    if raw:
        try:
            return {"contract_address": Addr.parse(raw)}
        except AddressError:
            log.warning("instantiate event carries a malformed contract address: %r", raw)
    derived = msg.contract_address
    log.warning("no instantiate event for %s; using derived address %s", msg.sender, derived)
    return {"contract_address": derived}


def _parse_execute(msg: MsgExecute, event: Optional[Event]) -> Dict[str, Any]:
    return {"contract": msg.contract}


def _parse_migrate(msg: MsgMigrate, event: Optional[Event]) -> Dict[str, Any]:
    return {"contract": msg.contract, "new_code_hash": msg.new_code_hash}


EVENT_PARSERS: Dict[MessageKind, EventParser] = {
    MessageKind.TRANSFER: _parse_transfer,
    MessageKind.STORE_CODE: _parse_store_code,
    MessageKind.INSTANTIATE: _parse_instantiate,
    MessageKind.EXECUTE: _parse_execute,
    MessageKind.MIGRATE: _parse_migrate,
}


def parse_outcomes(
    msgs: Sequence[Message],
    events: Sequence[Event],
    parsers: Mapping[MessageKind, EventParser] = EVENT_PARSERS,
) -> List[Dict[str, Any]]:
    by_type: Dict[str, List[Event]] = defaultdict(list)
    for ev in events:
        by_type[ev.type].append(ev)
    seen: Dict[MessageKind, int] = defaultdict(int)

    outcomes: List[Dict[str, Any]] = []
    for msg in msgs:
        kind = msg.kind
        candidates = by_type.get(kind.value, [])
        idx = seen[kind]
        seen[kind] += 1
        event = candidates[idx] if idx < len(candidates) else None
        out = {"kind": kind.value}
        out.update(parsers[kind](msg, event))
        outcomes.append(out)
    return outcomes


# -----------------------------------------------------------------------------
# Waiter
# -----------------------------------------------------------------------------


class ConfirmationWaiter:
    def __init__(
        self,
        source: TxSource,
        *,
        poll_interval: float = 1.0,
        parsers: Optional[Mapping[MessageKind, EventParser]] = None,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self._source = source
        self.poll_interval = float(poll_interval)
        self._parsers: Dict[MessageKind, EventParser] = dict(EVENT_PARSERS)
        if parsers:
            self._parsers.update(parsers)

    def register_parser(self, kind: MessageKind, parser: EventParser) -> None:
        self._parsers[kind] = parser

    async def await_confirmation(
        self,
        tx_hash: TxHash,
        timeout: float,
        *,
        msgs: Optional[Sequence[Message]] = None,
    ) -> TransactionResult:
        """
        Poll until `tx_hash` is in a block or `timeout` seconds pass.

        `msgs` (the messages that were signed) drive outcome parsing; when
        omitted they are decoded from the transaction the node returns.
        """
        tx_hash = normalize_tx_hash(tx_hash)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(float(timeout), 0.0)
        polls = 0
        while True:
            polls += 1
            try:
                res = await self._source.get_tx(tx_hash)
            except RpcError as e:
                if not e.transient:
                    raise
                log.warning("confirm %s: poll %d failed (%s); still waiting", tx_hash, polls, e)
                res = None

            if res is not None:
                result = self.parse_result(tx_hash, res, msgs)
                log.info(
                    "confirm %s: %s at height %s (code=%d)",
                    tx_hash, result.status.value, result.height, result.code,
                )
                return result

            remaining = deadline - loop.time()
            if remaining <= 0:
                log.info("confirm %s: still pending after %d poll(s)", tx_hash, polls)
                return TransactionResult.pending(tx_hash)
            log.debug("confirm %s: not found yet, next poll in %.2fs", tx_hash, min(self.poll_interval, remaining))
            await asyncio.sleep(min(self.poll_interval, remaining))

    def parse_result(
        self,
        tx_hash: TxHash,
        res: Mapping[str, Any],
        msgs: Optional[Sequence[Message]] = None,
    ) -> TransactionResult:
        """Translate a `tx` RPC result into a terminal TransactionResult."""
        txr = res.get("tx_result") or {}
        code = _int(txr.get("code"))
        events = tuple(Event.from_rpc(e) for e in txr.get("events") or () if isinstance(e, Mapping))
        common = dict(
            tx_hash=tx_hash,
            height=_int(res.get("height"), 0) or None,
            code=code,
            log=str(txr.get("log") or ""),
            codespace=txr.get("codespace") or None,
            events=events,
            gas_wanted=_int(txr.get("gas_wanted")),
            gas_used=_int(txr.get("gas_used")),
        )
        if code != 0:
            return TransactionResult(status=TxStatus.FAILED, **common)

        if msgs is None:
            msgs = self._msgs_from(res)
        outcomes = tuple(parse_outcomes(msgs, events, self._parsers))
        return TransactionResult(status=TxStatus.INCLUDED, outcomes=outcomes, **common)

    @staticmethod
    def _msgs_from(res: Mapping[str, Any]) -> Sequence[Message]:
        raw = res.get("tx")
        if not isinstance(raw, str):
            return ()
        try:
            return decode_tx(from_b64(raw)).msgs
        except (EncodingError, ValueError) as e:
            log.debug("cannot decode included tx for outcome parsing: %s", e)
            return ()


__all__ = [
    "ConfirmationWaiter",
    "EventParser",
    "EVENT_PARSERS",
    "TxSource",
    "parse_outcomes",
]
