from __future__ import annotations

import asyncio

import pytest

from cw_sdk.address import Addr
from cw_sdk.client import Client, SigningOptions
from cw_sdk.errors import (EncodingError, RpcError, SequenceMismatchError,
                           SigningError, TransactionFailed)
from cw_sdk.types.core import Coin, Coins, Fee, TxStatus
from cw_sdk.types.msgs import SetToNone, SetToSelf
from cw_sdk.tx.build import code_hash_of, transfer
from cw_sdk.tx.encode import decode_tx

from conftest import BANK, CHAIN_ID, OTHER, USER, FakeNode

pytestmark = pytest.mark.anyio

WRAPPER_WASM = b"\x00asm\x01\x00\x00\x00" + b"wrapper-contract" * 8


@pytest.fixture
async def client(node, config):
    c = await Client.connect(config, transport=node)
    yield c
    await c.close()


@pytest.fixture
def opts(key):
    return SigningOptions(sender=USER, signing_key=key)


async def test_deploy_then_transfer_scenario(client, node, opts):
    contract, tx1 = await client.store_code_and_instantiate(
        WRAPPER_WASM, {"bank": str(BANK)}, b"wrapper", [], SetToNone(), opts
    )
    assert contract is not None
    assert contract not in (USER, BANK)
    assert contract == Addr.compute(USER, code_hash_of(WRAPPER_WASM), b"wrapper")
    assert len(tx1) == 64 and tx1.isupper()
    assert await client.query_code(code_hash_of(WRAPPER_WASM)) == WRAPPER_WASM

    before_user = await client.query_balances(USER)
    before_contract = await client.query_balances(contract)
    assert before_contract.is_empty()

    tx2 = await client.transfer(contract, {"uatom": 888, "uosmo": 999}, opts)
    assert tx2 != tx1

    after_user = await client.query_balances(USER)
    after_contract = await client.query_balances(contract)
    assert after_contract == Coins({"uatom": 888, "uosmo": 999})
    assert after_user.amount_of("uatom") == before_user.amount_of("uatom") - 888
    assert after_user.amount_of("uosmo") == before_user.amount_of("uosmo") - 999
    assert [tx.sequence for tx in node.broadcasts] == [0, 1]


async def test_connect_discovers_chain_id(node, config):
    node.chain_id_value = "discovered-7"
    cfg = type(config).with_overrides(config, chain_id=None)
    async with await Client.connect(cfg, transport=node) as c:
        assert c.chain_id == "discovered-7"
    # caller-supplied transports are not closed by the client
    assert not node.closed


async def test_store_code_and_instantiate_separately(client, opts):
    code_hash, _ = await client.store_code(WRAPPER_WASM, opts)
    assert code_hash == code_hash_of(WRAPPER_WASM)
    contract, _ = await client.instantiate(code_hash, {"count": 0}, "counter", {}, SetToSelf(), opts)
    assert contract == Addr.compute(USER, code_hash, b"counter")


async def test_missing_event_uses_derived_contract_address(client, node, opts):
    node.emit_instantiate_event = False
    contract, _ = await client.store_code_and_instantiate(WRAPPER_WASM, {}, "w", None, SetToNone(), opts)
    assert contract == Addr.compute(USER, code_hash_of(WRAPPER_WASM), b"w")


async def test_concurrent_transfers_get_unique_sequences(client, node, opts):
    recipients = [Addr(bytes([i]) * 32) for i in range(1, 9)]
    hashes = await asyncio.gather(*(client.transfer(r, {"uatom": 10}, opts) for r in recipients))

    assert len(set(hashes)) == len(recipients)
    assert sorted(tx.sequence for tx in node.broadcasts) == list(range(len(recipients)))
    assert node.account_queries == 1
    assert client.sequences.peek(USER).sequence == len(recipients)
    for r in recipients:
        assert (await client.query_balance(r, "uatom")) == Coin("uatom", 10)


async def test_stale_sequence_is_refreshed_and_retried_once(client, node, opts):
    await client.transfer(OTHER, {"uatom": 1}, opts)
    node.bump_sequence(USER)  # another wallet used sequence 1

    await client.transfer(OTHER, {"uatom": 1}, opts)
    assert [tx.sequence for tx in node.broadcasts] == [0, 2]
    assert node.account_queries == 2


async def test_second_mismatch_is_raised(client, node, opts):
    node.force_mismatches = 2
    with pytest.raises(SequenceMismatchError):
        await client.transfer(OTHER, {"uatom": 1}, opts)
    assert node.broadcasts == []
    assert USER not in client.sequences
    assert node.account_queries == 2

    # the tracker recovers on the next call
    await client.transfer(OTHER, {"uatom": 1}, opts)
    assert [tx.sequence for tx in node.broadcasts] == [0]


async def test_broadcast_timeout_returns_pending(client, node, opts):
    node.broadcast_delay = 0.5
    msg = transfer(USER, OTHER, {"uatom": 1})
    res = await client.send_messages([msg], opts, broadcast_timeout=0.02, timeout=0.05)
    assert res.status is TxStatus.PENDING
    assert len(res.tx_hash) == 64
    assert USER not in client.sequences


async def test_maybe_delivered_rpc_error_returns_pending(client, node, opts):
    async def dropped(tx):
        raise RpcError(method="broadcast_tx_sync", code=-32098, message="reset", transient=True, maybe_delivered=True)

    node.broadcast = dropped
    res = await client.send_messages([transfer(USER, OTHER, {"uatom": 1})], opts, timeout=0.05)
    assert res.is_pending
    assert USER not in client.sequences


async def test_confirmation_does_not_hold_sender_lock(client, node, opts):
    node.auto_block = False
    task = asyncio.create_task(client.transfer(OTHER, {"uatom": 1}, opts))
    await node.wait_for_broadcasts(1)
    await asyncio.sleep(0.02)  # task is now polling
    assert not task.done()
    assert not client.sequences.lock(USER).locked()

    # a second tx from the same sender can be signed and broadcast meanwhile
    second = await client.send_messages([transfer(USER, OTHER, {"uatom": 2})], opts, wait=False)
    assert second.is_pending
    assert [tx.sequence for tx in node.broadcasts] == [0, 1]

    node.produce_block()
    assert await task
    assert (await client.wait_for(second.tx_hash)).ok


async def test_cancel_during_broadcast_invalidates_sequence(client, node, opts):
    accepted = asyncio.Event()
    real_broadcast = node.broadcast

    async def accept_then_hang(tx):
        await real_broadcast(tx)
        accepted.set()
        await asyncio.sleep(3600)

    node.broadcast = accept_then_hang
    task = asyncio.create_task(client.transfer(OTHER, {"uatom": 1}, opts))
    await accepted.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # the node consumed sequence 0; the local view must not keep it
    assert USER not in client.sequences
    assert not client.sequences.lock(USER).locked()

    node.broadcast = real_broadcast
    await client.transfer(OTHER, {"uatom": 2}, opts)
    assert [tx.sequence for tx in node.broadcasts] == [0, 1]


async def test_cancel_during_confirmation_keeps_sequence(client, node, opts):
    node.auto_block = False
    task = asyncio.create_task(client.transfer(OTHER, {"uatom": 1}, opts))
    await node.wait_for_broadcasts(1)
    await asyncio.sleep(0.02)  # task is now polling
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert client.sequences.peek(USER).sequence == 1
    assert not client.sequences.lock(USER).locked()

    node.produce_block()
    assert (await client.wait_for(node.broadcasts[0].tx_hash)).ok


async def test_confirm_timeout_returns_hash_and_wait_for_resumes(client, node, opts):
    node.auto_block = False
    contract, tx_hash = await client.store_code_and_instantiate(
        WRAPPER_WASM, {}, b"slow", [], SetToNone(), opts, timeout=0.02
    )
    assert contract is None

    node.produce_block()
    res = await client.wait_for("0x" + tx_hash.lower())
    assert res.ok
    assert res.outcome("contract_address") == Addr.compute(USER, code_hash_of(WRAPPER_WASM), b"slow")


async def test_wait_for_rejects_malformed_hash(client):
    with pytest.raises(EncodingError):
        await client.wait_for("0x" + "zz" * 32)


async def test_failed_tx_raises_from_helpers(client, opts):
    with pytest.raises(TransactionFailed) as ei:
        await client.transfer(OTHER, {"uatom": 10**9}, opts)
    assert ei.value.stage == "deliver_tx"
    assert "insufficient funds" in ei.value.log

    res = await client.send_messages([transfer(USER, OTHER, {"uatom": 10**9})], opts)
    assert res.status is TxStatus.FAILED


async def test_explicit_sequence_chain_and_fee_are_used(client, node, key):
    fee = Fee(amount=Coins({"uatom": 5}), gas_limit=77_777)
    opts = SigningOptions(sender=USER, signing_key=key, sequence=0, fee=fee)
    await client.transfer(OTHER, {"uatom": 1}, opts)
    tx = node.broadcasts[0]
    assert tx.fee == fee and tx.sequence == 0 and tx.chain_id == CHAIN_ID
    assert node.account_queries == 0

    wrong_chain = SigningOptions(sender=USER, signing_key=key, chain_id="other-1")
    with pytest.raises(TransactionFailed) as ei:
        await client.transfer(OTHER, {"uatom": 1}, wrong_chain)
    assert ei.value.stage == "check_tx"


async def test_estimated_fee_uses_gas_price(client, node, opts):
    await client.transfer(OTHER, {"uatom": 1}, opts)
    tx = decode_tx(node.broadcasts[0].raw)
    assert tx.fee.amount.denoms() == ["uatom"]
    assert tx.fee.amount.amount_of("uatom") == -(-tx.fee.gas_limit * 25 // 1000)


async def test_signer_failure_is_local(client, node):
    class Broken:
        public_key = b"\x02" * 33

        def sign(self, data):
            raise SigningError("locked")

    with pytest.raises(SigningError):
        await client.transfer(OTHER, {"uatom": 1}, SigningOptions(sender=USER, signing_key=Broken()))
    assert node.broadcasts == []


async def test_query_balances_paginates_sorted_unique(client, node):
    denoms = {f"token{i:02d}": i for i in range(1, 71)}
    node.fund(BANK, **denoms)
    node.fund(BANK, zero=0)

    coins = await client.query_balances(BANK, page_limit=30)
    assert coins.denoms() == sorted(denoms)
    assert len(coins) == 70 and "zero" not in coins


async def test_query_balances_rejects_repeated_pages(client, node):
    async def stuck(request):
        return [Coin("uatom", 1), Coin("uosmo", 2)]

    node.query = stuck
    with pytest.raises(RpcError):
        await client.query_balances(USER, page_limit=2)


async def test_other_queries(client, node):
    info = await client.query_info()
    assert info.chain_id == CHAIN_ID
    acct = await client.query_account(USER)
    assert acct.sequence == 0
    assert await client.query_wasm_smart(OTHER, {"config": {}}) == {"contract": str(OTHER)}


async def test_owned_transport_closed_when_chain_discovery_fails(monkeypatch):
    closed = []

    class Unreachable(FakeNode):
        async def chain_id(self):
            raise RpcError(method="status", code=-32098, message="refused", transient=True)

        async def close(self):
            closed.append(True)

    import cw_sdk.client as client_mod

    monkeypatch.setattr(client_mod.RpcTransport, "from_config", classmethod(lambda cls, cfg: Unreachable()))
    with pytest.raises(RpcError):
        await Client.connect("http://127.0.0.1:1")
    assert closed == [True]
