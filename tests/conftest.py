from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from cw_sdk.address import Addr
from cw_sdk.config import SDKConfig
from cw_sdk.errors import TransactionFailed, parse_sequence_mismatch
from cw_sdk.tx.encode import decode_tx, sign_bytes
from cw_sdk.types.core import (AccountInfo, ChainInfo, Coin,
                               SignedTransaction)
from cw_sdk.types.msgs import MessageKind
from cw_sdk.types.query import QueryKind
from cw_sdk.utils.bytes import to_b64
from cw_sdk.wallet.signer import SigningKey, verify

CHAIN_ID = "dev-1"

USER = Addr.parse("0x9f6de9773b30d62ce431caf26a7fd3f54f06d4071adaf9a8eadfec968bcbf022")
BANK = Addr.parse("0x9ada3b1fca68f9802bcf089fc31c10af1881c684ecc6f5bcdf65df35df0a8ef2")
OTHER = Addr(b"\x07" * 32)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeNode:
    """
    In-memory node implementing the transport surface the client uses.

    - broadcast() runs CheckTx: decodes the raw bytes, verifies the
      signature and enforces the account sequence exactly like the chain.
    - Accepted txs sit in a mempool until a block is produced. With
      `auto_block=True` every get_tx() call produces a block first.
    - Blocks execute transfers, code uploads and instantiations and emit
      CometBFT-shaped tx results.
    """

    def __init__(self, *, chain_id: str = CHAIN_ID, auto_block: bool = True) -> None:
        self.chain_id_value = chain_id
        self.auto_block = auto_block
        self.height = 1
        self.sequences: Dict[Addr, int] = {}
        self.balances: Dict[Addr, Dict[str, int]] = {}
        self.codes: Dict[bytes, bytes] = {}
        self.contracts: Dict[Addr, bytes] = {}
        self.mempool: List[SignedTransaction] = []
        self.included: Dict[str, Dict[str, Any]] = {}
        self.broadcasts: List[SignedTransaction] = []
        self.account_queries = 0
        self.force_mismatches = 0
        self.broadcast_delay = 0.0
        self.emit_instantiate_event = True
        self.closed = False

    # --- test knobs ---------------------------------------------------

    def fund(self, addr: Addr, **coins: int) -> None:
        bal = self.balances.setdefault(addr, {})
        for denom, amount in coins.items():
            bal[denom] = bal.get(denom, 0) + amount

    def bump_sequence(self, addr: Addr, n: int = 1) -> None:
        """Consume sequences behind the client's back (another wallet)."""
        self.sequences[addr] = self.sequences.get(addr, 0) + n

    async def wait_for_broadcasts(self, n: int) -> None:
        while len(self.broadcasts) < n:
            await asyncio.sleep(0.005)

    # --- transport surface --------------------------------------------

    async def chain_id(self) -> str:
        return self.chain_id_value

    async def close(self) -> None:
        self.closed = True

    async def broadcast(self, tx: SignedTransaction) -> str:
        await asyncio.sleep(self.broadcast_delay)
        decoded = decode_tx(tx.raw)
        payload = sign_bytes(decoded.sender, decoded.msgs, decoded.fee, decoded.sequence, decoded.chain_id)
        if decoded.chain_id != self.chain_id_value:
            raise TransactionFailed(code=4, log="wrong chain id", tx_hash=tx.tx_hash, stage="check_tx")
        if not verify(payload, decoded.signature, decoded.public_key):
            raise TransactionFailed(code=4, log="signature verification failed", tx_hash=tx.tx_hash, stage="check_tx")

        expected = self.sequences.get(decoded.sender, 0)
        got = decoded.sequence
        if self.force_mismatches > 0:
            self.force_mismatches -= 1
            got_log = f"incorrect sequence number! expecting {expected + 100}, got {got}"
            raise parse_sequence_mismatch(got_log, tx_hash=tx.tx_hash)
        if got != expected:
            raise parse_sequence_mismatch(
                f"incorrect sequence number! expecting {expected}, got {got}", tx_hash=tx.tx_hash
            )
        self.sequences[decoded.sender] = expected + 1
        self.broadcasts.append(decoded)
        self.mempool.append(decoded)
        return decoded.tx_hash

    async def query(self, request: Any) -> Any:
        kind = request.kind
        if kind is QueryKind.INFO:
            return ChainInfo(chain_id=self.chain_id_value, last_finalized_height=self.height)
        if kind is QueryKind.ACCOUNT:
            self.account_queries += 1
            return AccountInfo(address=request.address, sequence=self.sequences.get(request.address, 0))
        if kind is QueryKind.BALANCE:
            bal = self.balances.get(request.address, {})
            return Coin(request.denom, bal.get(request.denom, 0))
        if kind is QueryKind.BALANCES:
            bal = self.balances.get(request.address, {})
            denoms = sorted(d for d in bal if request.start_after is None or d > request.start_after)
            limit = request.limit or 30
            return [Coin(d, bal[d]) for d in denoms[:limit]]
        if kind is QueryKind.CODE:
            return self.codes[request.code_hash]
        if kind is QueryKind.WASM_SMART:
            return {"contract": str(request.contract)}
        raise AssertionError(f"unexpected query {request!r}")

    async def get_tx(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        if self.auto_block:
            self.produce_block()
        return self.included.get(tx_hash)

    # --- block execution ----------------------------------------------

    def produce_block(self) -> None:
        if not self.mempool:
            return
        self.height += 1
        for tx in self.mempool:
            self.included[tx.tx_hash] = self._execute(tx)
        self.mempool = []

    def _execute(self, tx: SignedTransaction) -> Dict[str, Any]:
        events: List[Dict[str, Any]] = []
        code, log = 0, ""
        snapshot = {a: dict(b) for a, b in self.balances.items()}
        for msg in tx.msgs:
            if msg.kind is MessageKind.TRANSFER:
                src = self.balances.setdefault(msg.sender, {})
                for c in msg.coins:
                    if src.get(c.denom, 0) < c.amount:
                        code, log = 5, f"insufficient funds: {c.denom}"
                        break
                    src[c.denom] -= c.amount
                    self.fund(msg.to, **{c.denom: c.amount})
                events.append({"type": "transfer", "attributes": [{"key": "to", "value": str(msg.to)}]})
            elif msg.kind is MessageKind.STORE_CODE:
                self.codes[msg.code_hash] = msg.wasm_byte_code
                events.append(
                    {"type": "store_code", "attributes": [{"key": "code_hash", "value": msg.code_hash.hex()}]}
                )
            elif msg.kind is MessageKind.INSTANTIATE:
                if msg.code_hash not in self.codes:
                    code, log = 7, "code not found"
                    break
                addr = Addr.compute(msg.sender, msg.code_hash, msg.salt)
                self.contracts[addr] = msg.code_hash
                if self.emit_instantiate_event:
                    events.append({"type": "instantiate", "attributes": [{"key": "contract", "value": str(addr)}]})
            if code:
                break
        if code:
            self.balances = snapshot
            events = []
        return {
            "hash": tx.tx_hash,
            "height": str(self.height),
            "index": 0,
            "tx_result": {
                "code": code,
                "log": log,
                "gas_wanted": str(tx.fee.gas_limit),
                "gas_used": str(tx.fee.gas_limit // 2),
                "events": events,
                "codespace": "wasm" if code else "",
            },
            "tx": to_b64(tx.raw),
        }


@pytest.fixture
def node() -> FakeNode:
    n = FakeNode()
    n.fund(USER, uatom=10_000, uosmo=10_000)
    return n


@pytest.fixture
def key() -> SigningKey:
    return SigningKey.from_mnemonic_seed("test1 wrap atom osmo wrapper bank")


@pytest.fixture
def config() -> SDKConfig:
    return SDKConfig(
        chain_id=CHAIN_ID,
        gas_price="0.025uatom",
        poll_interval_ms=5,
        confirm_timeout_ms=2_000,
        broadcast_timeout_ms=1_000,
        max_query_retries=1,
        backoff_base=0.001,
        backoff_max=0.01,
    )
