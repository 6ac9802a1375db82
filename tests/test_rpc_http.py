from __future__ import annotations

import json

import httpx
import pytest
import respx

from cw_sdk.address import Addr
from cw_sdk.config import SDKConfig
from cw_sdk.errors import (EncodingError, JsonRpcCode, RpcError,
                           SequenceMismatchError, TransactionFailed)
from cw_sdk.rpc.http import RpcTransport
from cw_sdk.types.core import AccountInfo
from cw_sdk.types.query import QueryAccount, QueryBalances, QueryInfo
from cw_sdk.utils.bytes import to_b64
from cw_sdk.utils.cbor import dumps
from cw_sdk.utils.hash import tx_hash_hex

pytestmark = pytest.mark.anyio

RPC_URL = "http://localhost:26657"
RAW_TX = b"\xa2dbody\xa0jcredential\xa0"
ADDR = Addr(b"\x11" * 32)


def ok(result):
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": result})


def err(code, message, data=None):
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": code, "message": message, "data": data}})


def sent(route, index=-1):
    return json.loads(route.calls[index].request.content)


def transport(**kw) -> RpcTransport:
    kw.setdefault("max_retries", 2)
    kw.setdefault("backoff_base", 0.001)
    kw.setdefault("backoff_max", 0.002)
    return RpcTransport(RPC_URL, **kw)


async def test_chain_id_from_status():
    with respx.mock:
        route = respx.post(RPC_URL).mock(return_value=ok({"node_info": {"network": "dev-1"}, "sync_info": {}}))
        async with transport() as rpc:
            assert await rpc.chain_id() == "dev-1"
        body = sent(route)
        assert body["method"] == "status" and body["jsonrpc"] == "2.0"
        assert route.calls.last.request.headers["user-agent"].startswith("cw-sdk-py/")


async def test_transient_http_status_is_retried():
    with respx.mock:
        route = respx.post(RPC_URL).mock(
            side_effect=[
                httpx.Response(503),
                httpx.Response(429),
                ok({"node_info": {"network": "dev-1"}}),
            ]
        )
        async with transport() as rpc:
            assert await rpc.chain_id() == "dev-1"
        assert route.call_count == 3


async def test_retries_exhausted_raise_last_rpc_error():
    with respx.mock:
        route = respx.post(RPC_URL).mock(side_effect=httpx.ConnectError("refused"))
        async with transport(max_retries=1) as rpc:
            with pytest.raises(RpcError) as ei:
                await rpc.status()
        assert route.call_count == 2
        assert ei.value.transient and not ei.value.maybe_delivered
        assert ei.value.code == JsonRpcCode.TRANSPORT_FAILED


async def test_jsonrpc_error_is_not_retried():
    with respx.mock:
        route = respx.post(RPC_URL).mock(return_value=err(-32601, "Method not found"))
        async with transport() as rpc:
            with pytest.raises(RpcError) as ei:
                await rpc.request("nope")
        assert route.call_count == 1
        assert ei.value.code_enum is JsonRpcCode.METHOD_NOT_FOUND


async def test_non_json_body_is_malformed():
    with respx.mock:
        respx.post(RPC_URL).mock(return_value=httpx.Response(200, text="<html>oops</html>"))
        async with transport() as rpc:
            with pytest.raises(RpcError) as ei:
                await rpc.status()
        assert ei.value.code == JsonRpcCode.MALFORMED_RESPONSE
        assert ei.value.reached_node and not ei.value.transient


# --- broadcast ---------------------------------------------------------------


async def test_broadcast_returns_local_hash():
    with respx.mock:
        route = respx.post(RPC_URL).mock(
            return_value=ok({"code": 0, "log": "", "hash": tx_hash_hex(RAW_TX)})
        )
        async with transport() as rpc:
            assert await rpc.broadcast(RAW_TX) == tx_hash_hex(RAW_TX)
        body = sent(route)
        assert body["method"] == "broadcast_tx_sync"
        assert body["params"] == {"tx": to_b64(RAW_TX)}


async def test_broadcast_timeout_is_not_retried_and_maybe_delivered():
    with respx.mock:
        route = respx.post(RPC_URL).mock(side_effect=httpx.ReadTimeout("slow node"))
        async with transport() as rpc:
            with pytest.raises(RpcError) as ei:
                await rpc.broadcast(RAW_TX)
        assert route.call_count == 1
        assert ei.value.maybe_delivered and not ei.value.reached_node


async def test_broadcast_connect_error_was_not_delivered():
    with respx.mock:
        respx.post(RPC_URL).mock(side_effect=httpx.ConnectError("refused"))
        async with transport() as rpc:
            with pytest.raises(RpcError) as ei:
                await rpc.broadcast(RAW_TX)
        assert not ei.value.maybe_delivered and not ei.value.reached_node


async def test_broadcast_check_tx_sequence_mismatch():
    with respx.mock:
        respx.post(RPC_URL).mock(
            return_value=ok({"code": 32, "log": "account sequence mismatch, expected 3, got 2", "hash": ""})
        )
        async with transport() as rpc:
            with pytest.raises(SequenceMismatchError) as ei:
                await rpc.broadcast(RAW_TX)
        assert (ei.value.expected, ei.value.got) == (3, 2)
        assert ei.value.tx_hash == tx_hash_hex(RAW_TX)


async def test_broadcast_check_tx_failure():
    with respx.mock:
        respx.post(RPC_URL).mock(
            return_value=ok({"code": 5, "log": "insufficient funds", "codespace": "bank", "hash": ""})
        )
        async with transport() as rpc:
            with pytest.raises(TransactionFailed) as ei:
                await rpc.broadcast(RAW_TX)
        assert ei.value.stage == "check_tx"
        assert (ei.value.code, ei.value.codespace) == (5, "bank")


async def test_broadcast_jsonrpc_rejection_reached_node():
    with respx.mock:
        route = respx.post(RPC_URL).mock(return_value=err(-32603, "Internal error", "mempool is full"))
        async with transport() as rpc:
            with pytest.raises(RpcError) as ei:
                await rpc.broadcast(RAW_TX)
        assert route.call_count == 1
        assert ei.value.reached_node
        assert not ei.value.maybe_delivered and not ei.value.transient


async def test_broadcast_gateway_error_is_ambiguous_but_answered():
    with respx.mock:
        respx.post(RPC_URL).mock(return_value=httpx.Response(502))
        async with transport() as rpc:
            with pytest.raises(RpcError) as ei:
                await rpc.broadcast(RAW_TX)
        assert ei.value.maybe_delivered and ei.value.reached_node
        assert ei.value.http_status == 502


async def test_broadcast_already_in_cache_is_success():
    with respx.mock:
        respx.post(RPC_URL).mock(return_value=err(-32603, "Internal error", "tx already exists in cache"))
        async with transport() as rpc:
            assert await rpc.broadcast(RAW_TX) == tx_hash_hex(RAW_TX)


# --- queries & tx lookup -----------------------------------------------------


async def test_app_query_roundtrip():
    with respx.mock:
        route = respx.post(RPC_URL).mock(
            return_value=ok({"response": {"code": 0, "log": "", "value": to_b64(dumps({"sequence": 5}))}})
        )
        async with transport() as rpc:
            info = await rpc.query(QueryAccount(address=ADDR))
        assert info == AccountInfo(address=ADDR, sequence=5)
        params = sent(route)["params"]
        assert params["path"] == "/app" and params["prove"] is False
        assert bytes.fromhex(params["data"]) == dumps({"account": {"address": ADDR.raw}})


async def test_app_query_error_code():
    with respx.mock:
        respx.post(RPC_URL).mock(return_value=ok({"response": {"code": 18, "log": "account not found"}}))
        async with transport() as rpc:
            with pytest.raises(RpcError) as ei:
                await rpc.query(QueryAccount(address=ADDR))
        assert ei.value.code == JsonRpcCode.QUERY_FAILED
        assert "account not found" in ei.value.message
        assert ei.value.reached_node


async def test_app_query_undecodable_value():
    with respx.mock:
        respx.post(RPC_URL).mock(
            return_value=ok({"response": {"code": 0, "value": to_b64(dumps({"sequence": "x"}))}})
        )
        async with transport() as rpc:
            with pytest.raises(RpcError) as ei:
                await rpc.query(QueryAccount(address=ADDR))
        assert ei.value.code == JsonRpcCode.MALFORMED_RESPONSE


async def test_get_tx_not_found_is_none():
    tx_hash = "AB" * 32
    with respx.mock:
        route = respx.post(RPC_URL).mock(
            return_value=err(-32603, "Internal error", f"tx ({tx_hash}) not found")
        )
        async with transport() as rpc:
            assert await rpc.get_tx(tx_hash) is None
        params = sent(route)["params"]
        assert params == {"hash": to_b64(bytes.fromhex(tx_hash)), "prove": False}


async def test_get_tx_accepts_prefixed_lowercase_hash():
    tx_hash = "ab" * 32
    with respx.mock:
        route = respx.post(RPC_URL).mock(return_value=ok({"hash": "AB" * 32, "height": "3", "tx_result": {"code": 0}}))
        async with transport() as rpc:
            await rpc.get_tx("0x" + tx_hash)
        assert sent(route)["params"]["hash"] == to_b64(bytes.fromhex(tx_hash))


async def test_get_tx_rejects_bad_hash_before_calling_node():
    with respx.mock(assert_all_called=False) as respx_mock:
        route = respx_mock.post(RPC_URL).mock(return_value=ok({}))
        async with transport() as rpc:
            with pytest.raises(EncodingError):
                await rpc.get_tx("0xnothex")
        assert route.call_count == 0


async def test_get_tx_found():
    with respx.mock:
        respx.post(RPC_URL).mock(return_value=ok({"hash": "AB" * 32, "height": "12", "tx_result": {"code": 0}}))
        async with transport() as rpc:
            res = await rpc.get_tx("AB" * 32)
        assert res["height"] == "12"


async def test_from_config_and_external_client():
    cfg = SDKConfig(endpoint=RPC_URL, max_query_retries=0, broadcast_timeout_ms=2_500)
    async with httpx.AsyncClient() as client:
        rpc = RpcTransport.from_config(cfg, client=client)
        assert rpc.broadcast_timeout == 2.5 and rpc.max_retries == 0
        await rpc.close()
        assert not client.is_closed


def test_endpoint_must_be_http():
    with pytest.raises(ValueError):
        RpcTransport("ws://localhost:26657")


@pytest.mark.parametrize(
    "request_, value",
    [
        (QueryBalances(address=ADDR), [{"denom": "uatom", "amount": "²"}]),
        (QueryInfo(), {"chain_id": "dev-1", "height": None}),
    ],
)
async def test_malformed_app_answers_become_rpc_errors(request_, value):
    with respx.mock:
        respx.post(RPC_URL).mock(return_value=ok({"response": {"code": 0, "value": to_b64(dumps(value))}}))
        async with transport() as rpc:
            with pytest.raises(RpcError) as ei:
                await rpc.query(request_)
        assert ei.value.code == JsonRpcCode.MALFORMED_RESPONSE
        assert ei.value.reached_node and not ei.value.transient
