from __future__ import annotations

import pytest

from cw_sdk.address import Addr
from cw_sdk.errors import JsonRpcCode, RpcError
from cw_sdk.tx.build import build, fee_for, instantiate, store_code, transfer
from cw_sdk.tx.confirm import ConfirmationWaiter, parse_outcomes
from cw_sdk.types.core import AccountState, Event, GasPrice, TxStatus
from cw_sdk.types.msgs import MessageKind, SetToNone
from cw_sdk.utils.bytes import to_b64
from cw_sdk.wallet.signer import SigningKey

pytestmark = pytest.mark.anyio

SENDER = Addr(b"\x11" * 32)
OTHER = Addr(b"\x22" * 32)
TX_HASH = "AB" * 32
WASM = b"\x00asm\x01\x00\x00\x00"


def tx_result(code=0, log="", events=(), tx=None):
    res = {
        "hash": TX_HASH,
        "height": "42",
        "tx_result": {"code": code, "log": log, "gas_wanted": "1000", "gas_used": "600", "events": list(events)},
    }
    if tx is not None:
        res["tx"] = tx
    return res


class ScriptedSource:
    """Returns queued answers in order, then repeats the last one."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.calls = 0

    async def get_tx(self, tx_hash):
        self.calls += 1
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer


async def test_pending_after_timeout_then_resumable():
    source = ScriptedSource(None)
    waiter = ConfirmationWaiter(source, poll_interval=0.01)

    first = await waiter.await_confirmation(TX_HASH, 0.03)
    assert first.status is TxStatus.PENDING and first.tx_hash == TX_HASH
    assert source.calls >= 2

    source.answers = [tx_result()]
    second = await waiter.await_confirmation(TX_HASH, 1.0, msgs=[transfer(SENDER, OTHER, {"uatom": 1})])
    assert second.status is TxStatus.INCLUDED
    assert (second.height, second.gas_wanted, second.gas_used) == (42, 1000, 600)

    again = await waiter.await_confirmation(TX_HASH, 1.0, msgs=[transfer(SENDER, OTHER, {"uatom": 1})])
    assert again == second


async def test_zero_timeout_polls_once():
    source = ScriptedSource(None)
    waiter = ConfirmationWaiter(source, poll_interval=0.01)
    assert (await waiter.await_confirmation(TX_HASH, 0)).is_pending
    assert source.calls == 1


async def test_transient_errors_keep_polling():
    flaky = RpcError(method="tx", code=JsonRpcCode.TRANSPORT_FAILED, message="HTTP 503", transient=True)
    source = ScriptedSource(flaky, None, tx_result())
    waiter = ConfirmationWaiter(source, poll_interval=0.01)
    res = await waiter.await_confirmation(TX_HASH, 1.0, msgs=())
    assert res.ok
    assert source.calls == 3


async def test_permanent_error_propagates():
    source = ScriptedSource(RpcError(method="tx", code=-32602, message="bad hash"))
    waiter = ConfirmationWaiter(source, poll_interval=0.01)
    with pytest.raises(RpcError):
        await waiter.await_confirmation(TX_HASH, 1.0)


async def test_failed_result_carries_node_log():
    source = ScriptedSource(tx_result(code=5, log="insufficient funds: uatom"))
    waiter = ConfirmationWaiter(source, poll_interval=0.01)
    res = await waiter.await_confirmation(TX_HASH, 1.0)
    assert res.status is TxStatus.FAILED
    assert (res.code, res.log) == (5, "insufficient funds: uatom")
    assert res.outcomes == ()


def test_outcomes_match_messages_to_events_in_order():
    code_hash = store_code(SENDER, WASM).code_hash
    m1 = instantiate(SENDER, code_hash, {}, b"one", admin=SetToNone())
    m2 = instantiate(SENDER, code_hash, {}, b"two", admin=SetToNone())
    c1, c2 = Addr(b"\x01" * 32), Addr(b"\x02" * 32)
    events = [
        Event("message", (("action", "instantiate"),)),
        Event("instantiate", (("contract", str(c1)),)),
        Event("instantiate", (("contract", str(c2)),)),
    ]
    out = parse_outcomes([m1, m2], events)
    assert out == [
        {"kind": "instantiate", "contract_address": c1},
        {"kind": "instantiate", "contract_address": c2},
    ]


def test_missing_instantiate_event_falls_back_to_derived_address():
    code_hash = store_code(SENDER, WASM).code_hash
    msg = instantiate(SENDER, code_hash, {}, b"salt")
    out = parse_outcomes([msg], [])
    assert out[0]["contract_address"] == Addr.compute(SENDER, code_hash, b"salt")


def test_outcomes_decoded_from_included_tx_when_msgs_unknown():
    key = SigningKey.from_mnemonic_seed("confirm")
    msgs = [store_code(SENDER, WASM), instantiate(SENDER, store_code(SENDER, WASM).code_hash, {}, b"w")]
    tx = build(msgs, fee_for(10_000, GasPrice.parse("0.025uatom")), AccountState(SENDER, 0, "dev-1"), key)
    contract = msgs[1].contract_address
    events = [
        {"type": "store_code", "attributes": [{"key": "code_hash", "value": msgs[0].code_hash.hex()}]},
        {"type": "instantiate", "attributes": [{"key": "contract", "value": str(contract)}]},
    ]
    waiter = ConfirmationWaiter(ScriptedSource(None), poll_interval=0.01)
    res = waiter.parse_result(TX_HASH, tx_result(events=events, tx=to_b64(tx.raw)))
    assert res.outcome("code_hash") == msgs[0].code_hash
    assert res.outcome("contract_address") == contract


def test_custom_parser_overrides_builtin():
    waiter = ConfirmationWaiter(ScriptedSource(None), poll_interval=0.01)
    waiter.register_parser(MessageKind.TRANSFER, lambda msg, ev: {"to": msg.to})
    res = waiter.parse_result(TX_HASH, tx_result(), [transfer(SENDER, OTHER, {"uatom": 1})])
    assert res.outcome("to") == OTHER


def test_poll_interval_must_be_positive():
    with pytest.raises(ValueError):
        ConfirmationWaiter(ScriptedSource(None), poll_interval=0)
