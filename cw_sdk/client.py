"""
cw_sdk.client
=============

High-level client: connect, deploy, transact and query.

Every transacting call runs the same pipeline:

    fee → [lock(sender): sequence → build → sign → broadcast → advance] → confirm

The per-sender lock covers only the part that reads and mutates the local
sequence. Confirmation runs after the lock is released, so a second
transaction from the same account can be signed with the next sequence while
the first one is still waiting for a block.

Failure semantics
-----------------
- A sequence mismatch at CheckTx invalidates the tracked sequence, refetches
  it from the node and retries exactly once. A second mismatch is raised.
- An ambiguous broadcast (timeout or dropped connection after the request was
  written) is not retried. The result is PENDING with the locally computed
  hash, and the tracked sequence is invalidated because the node may or may
  not have consumed it.
- Cancelling a call while its broadcast is in flight invalidates the tracked
  sequence the same way and re-raises `CancelledError`. Cancelling during
  confirmation leaves the sequence untouched; the tx keeps its hash and can
  be awaited again with `wait_for`.
- A transaction that is included but fails raises `TransactionFailed` from
  the high-level helpers; `send_messages` and `wait_for` return the FAILED
  result instead.
- A confirmation timeout is not an error: helpers return the hash (and
  `None` for addresses) and `wait_for(tx_hash)` can be called later.

Example
-------
    async with await Client.connect("http://127.0.0.1:26657") as client:
        opts = SigningOptions(sender=user, signing_key=key)
        wrapper, tx1 = await client.store_code_and_instantiate(
            wasm, {"bank": bank}, b"wrapper", [], SetToNone(), opts,
        )
        tx2 = await client.transfer(wrapper, {"uatom": 888, "uosmo": 999}, opts)
        balances = await client.query_balances(user)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import (Any, Dict, List, Optional, Protocol, Sequence, Tuple,
                    Union)

from .address import Addr, AddrLike
from .config import SDKConfig
from .errors import (JsonRpcCode, RpcError, SequenceMismatchError,
                     TransactionFailed, parse_sequence_mismatch)
from .rpc.http import RpcTransport
from .tx.build import (build, code_hash_of, execute, instantiate, migrate,
                       store_code, suggest_gas_limit, transfer)
from .tx.confirm import ConfirmationWaiter
from .tx.sequence import SequenceTracker
from .types.core import (AccountInfo, AccountState, ChainInfo, Coin, Coins,
                         CoinsLike, Fee, SignedTransaction,
                         TransactionResult, TxHash, TxStatus,
                         normalize_tx_hash)
from .types.msgs import AdminOption, Message, SetToNone
from .types.query import (DEFAULT_PAGE_LIMIT, QueryAccount, QueryBalance,
                          QueryBalances, QueryCode, QueryInfo, QueryRequest,
                          QueryWasmSmart)
from .wallet.signer import Signer

log = logging.getLogger(__name__)


class NodeTransport(Protocol):
    """What the client needs from a node connection (see RpcTransport)."""

    async def chain_id(self) -> str: ...

    async def broadcast(self, tx: SignedTransaction) -> TxHash: ...

    async def query(self, request: QueryRequest) -> Any: ...

    async def get_tx(self, tx_hash: TxHash) -> Optional[Dict[str, Any]]: ...

    async def close(self) -> None: ...


@dataclass(frozen=True)
class SigningOptions:
    """
    Who signs and how.

    - sequence : use this sequence for the first attempt instead of the
                 tracked one
    - chain_id : sign for this chain instead of the connected one
    - gas_limit: skip estimation
    - fee      : skip both estimation and gas pricing
    """

    sender: AddrLike
    signing_key: Signer
    sequence: Optional[int] = None
    chain_id: Optional[str] = None
    gas_limit: Optional[int] = None
    fee: Optional[Fee] = None

    def __repr__(self) -> str:
        return f"SigningOptions(sender={self.sender}, sequence={self.sequence}, chain_id={self.chain_id})"


def _salt_bytes(salt: Union[str, bytes]) -> bytes:
    return salt.encode("utf-8") if isinstance(salt, str) else bytes(salt)


def _raise_if_failed(result: TransactionResult) -> TransactionResult:
    if result.status is TxStatus.FAILED:
        raise TransactionFailed(
            code=result.code,
            log=result.log,
            tx_hash=result.tx_hash,
            height=result.height,
            stage="deliver_tx",
            codespace=result.codespace,
        )
    return result


class Client:
    def __init__(
        self,
        transport: NodeTransport,
        config: SDKConfig,
        *,
        chain_id: str,
        owns_transport: bool = False,
    ) -> None:
        self._transport = transport
        self._owns_transport = owns_transport
        self.config = config
        self.chain_id = chain_id
        self.sequences = SequenceTracker(self._fetch_account_state)
        self.waiter = ConfirmationWaiter(transport, poll_interval=config.poll_interval)

    @classmethod
    async def connect(
        cls,
        endpoint: Union[str, SDKConfig, None] = None,
        *,
        transport: Optional[NodeTransport] = None,
        **overrides: Any,
    ) -> "Client":
        """
        Connect to a node. `endpoint` is a URL or a full SDKConfig; keyword
        overrides are applied on top (e.g. ``poll_interval_ms=200``). The
        chain id is discovered from the node unless configured.
        """
        if isinstance(endpoint, SDKConfig):
            cfg = endpoint
        else:
            cfg = SDKConfig()
            if endpoint is not None:
                overrides.setdefault("endpoint", endpoint)
        if overrides:
            cfg = SDKConfig.with_overrides(cfg, **overrides)

        owns = transport is None
        if transport is None:
            transport = RpcTransport.from_config(cfg)
        try:
            chain_id = cfg.chain_id or await transport.chain_id()
        except BaseException:
            if owns:
                await transport.close()
            raise
        log.info("connected to %s (chain %s)", cfg.endpoint, chain_id)
        return cls(transport, cfg, chain_id=chain_id, owns_transport=owns)

    async def close(self) -> None:
        if self._owns_transport:
            await self._transport.close()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    # ------------------------------------------------------------------
    # Queries (never take the sender lock)
    # ------------------------------------------------------------------

    async def query_info(self) -> ChainInfo:
        return await self._transport.query(QueryInfo())

    async def query_account(self, address: AddrLike) -> AccountInfo:
        return await self._transport.query(QueryAccount(address=Addr.parse(address)))

    async def query_balance(self, address: AddrLike, denom: str) -> Coin:
        return await self._transport.query(QueryBalance(address=Addr.parse(address), denom=denom))

    async def query_balances(self, address: AddrLike, *, page_limit: int = DEFAULT_PAGE_LIMIT) -> Coins:
        """All non-zero balances, ordered by denom, one entry per denom."""
        addr = Addr.parse(address)
        totals: Dict[str, Coin] = {}
        start_after: Optional[str] = None
        while True:
            page: List[Coin] = await self._transport.query(
                QueryBalances(address=addr, start_after=start_after, limit=page_limit)
            )
            for coin in page:
                if coin.denom in totals or (start_after is not None and coin.denom <= start_after):
                    raise RpcError(
                        method="abci_query",
                        code=JsonRpcCode.MALFORMED_RESPONSE,
                        message=f"balances page repeats or reorders denom {coin.denom!r}",
                    )
                totals[coin.denom] = coin
            if len(page) < page_limit:
                break
            start_after = page[-1].denom
        return Coins(c for c in totals.values() if c.amount > 0)

    async def query_code(self, code_hash: bytes) -> bytes:
        return await self._transport.query(QueryCode(code_hash=bytes(code_hash)))

    async def query_wasm_smart(self, contract: AddrLike, msg: Any) -> Any:
        return await self._transport.query(QueryWasmSmart(contract=Addr.parse(contract), msg=msg))

    async def _fetch_account_state(self, address: Addr) -> AccountState:
        info = await self.query_account(address)
        return AccountState(address=address, sequence=info.sequence, chain_id=self.chain_id)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _fee(self, msgs: Sequence[Message], opts: SigningOptions) -> Fee:
        if opts.fee is not None:
            return opts.fee
        gas_limit = opts.gas_limit or self.config.gas_limit
        if gas_limit is None:
            gas_limit = suggest_gas_limit(msgs, safety_multiplier=self.config.gas_adjustment)
        return self.config.gas_price.fee_for(gas_limit)

    async def _submit(
        self,
        msgs: Sequence[Message],
        opts: SigningOptions,
        broadcast_timeout: Optional[float],
    ) -> Tuple[TransactionResult, SignedTransaction]:
        sender = Addr.parse(opts.sender)
        chain_id = opts.chain_id or self.chain_id
        fee = self._fee(msgs, opts)

        attempt = 0
        async with self.sequences.lock(sender):
            while True:
                attempt += 1
                if attempt == 1 and opts.sequence is not None:
                    account = AccountState(address=sender, sequence=opts.sequence, chain_id=chain_id)
                else:
                    account = await self.sequences.current(sender)
                    if account.chain_id != chain_id:
                        account = replace(account, chain_id=chain_id)

                tx = build(msgs, fee, account, opts.signing_key)
                try:
                    if broadcast_timeout is None:
                        tx_hash = await self._transport.broadcast(tx)
                    else:
                        tx_hash = await asyncio.wait_for(self._transport.broadcast(tx), broadcast_timeout)
                except asyncio.CancelledError:
                    # the node may or may not have the tx; next use refetches
                    self.sequences.invalidate(sender)
                    raise
                except SequenceMismatchError as e:
                    self.sequences.invalidate(sender)
                    if attempt >= 2:
                        raise
                    log.info("tx %s: %s; refreshing sequence and retrying once", tx.tx_hash, e)
                    continue
                except asyncio.TimeoutError:
                    self.sequences.invalidate(sender)
                    log.warning("tx %s: broadcast timed out after %.2fs; outcome unknown", tx.tx_hash, broadcast_timeout)
                    return TransactionResult.pending(tx.tx_hash), tx
                except RpcError as e:
                    if not e.maybe_delivered:
                        raise
                    self.sequences.invalidate(sender)
                    log.warning("tx %s: broadcast outcome unknown (%s)", tx.tx_hash, e)
                    return TransactionResult.pending(tx.tx_hash), tx

                self.sequences.advance(sender, account.sequence, chain_id=chain_id)
                return TransactionResult.pending(tx_hash), tx

    async def send_messages(
        self,
        msgs: Sequence[Message],
        opts: SigningOptions,
        *,
        timeout: Optional[float] = None,
        broadcast_timeout: Optional[float] = None,
        wait: bool = True,
    ) -> TransactionResult:
        """
        Sign, broadcast and (unless `wait=False`) confirm `msgs` as one tx.

        Returns PENDING on broadcast or confirmation timeout, INCLUDED or
        FAILED otherwise. Does not raise for FAILED.
        """
        if broadcast_timeout is None:
            broadcast_timeout = self.config.broadcast_timeout_ms / 1000.0
        pending, tx = await self._submit(msgs, opts, broadcast_timeout)
        if not wait:
            return pending

        result = await self.waiter.await_confirmation(
            pending.tx_hash,
            self.config.confirm_timeout if timeout is None else timeout,
            msgs=tx.msgs,
        )
        if result.status is TxStatus.FAILED and parse_sequence_mismatch(result.log) is not None:
            self.sequences.invalidate(tx.sender)
        return result

    async def wait_for(self, tx_hash: TxHash, timeout: Optional[float] = None) -> TransactionResult:
        """Resume (or start) waiting for a previously broadcast tx."""
        return await self.waiter.await_confirmation(
            normalize_tx_hash(tx_hash), self.config.confirm_timeout if timeout is None else timeout
        )

    # ------------------------------------------------------------------
    # High-level operations
    # ------------------------------------------------------------------

    async def transfer(
        self,
        recipient: AddrLike,
        coins: CoinsLike,
        opts: SigningOptions,
        *,
        timeout: Optional[float] = None,
    ) -> TxHash:
        msg = transfer(opts.sender, recipient, coins)
        result = _raise_if_failed(await self.send_messages([msg], opts, timeout=timeout))
        return result.tx_hash

    async def store_code(
        self,
        wasm_byte_code: bytes,
        opts: SigningOptions,
        *,
        timeout: Optional[float] = None,
    ) -> Tuple[bytes, TxHash]:
        """Upload wasm; returns (code_hash, tx_hash)."""
        msg = store_code(opts.sender, wasm_byte_code)
        result = _raise_if_failed(await self.send_messages([msg], opts, timeout=timeout))
        return result.outcome("code_hash") or msg.code_hash, result.tx_hash

    async def instantiate(
        self,
        code_hash: bytes,
        init_msg: Any,
        salt: Union[str, bytes],
        funds: CoinsLike,
        admin: AdminOption,
        opts: SigningOptions,
        *,
        timeout: Optional[float] = None,
    ) -> Tuple[Optional[Addr], TxHash]:
        msg = instantiate(opts.sender, code_hash, init_msg, _salt_bytes(salt), funds, admin)
        result = _raise_if_failed(await self.send_messages([msg], opts, timeout=timeout))
        return result.outcome("contract_address"), result.tx_hash

    async def store_code_and_instantiate(
        self,
        wasm_byte_code: bytes,
        init_msg: Any,
        salt: Union[str, bytes],
        funds: CoinsLike,
        admin: AdminOption,
        opts: SigningOptions,
        *,
        timeout: Optional[float] = None,
    ) -> Tuple[Optional[Addr], TxHash]:
        """
        Upload `wasm_byte_code` and instantiate it in a single transaction.

        Returns (contract_address, tx_hash). The address is None only when
        the transaction is still pending at `timeout`.
        """
        admin = admin if admin is not None else SetToNone()
        msgs = [
            store_code(opts.sender, wasm_byte_code),
            instantiate(opts.sender, code_hash_of(wasm_byte_code), init_msg, _salt_bytes(salt), funds, admin),
        ]
        result = _raise_if_failed(await self.send_messages(msgs, opts, timeout=timeout))
        return result.outcome("contract_address"), result.tx_hash

    async def execute(
        self,
        contract: AddrLike,
        msg: Any,
        funds: CoinsLike,
        opts: SigningOptions,
        *,
        timeout: Optional[float] = None,
    ) -> TxHash:
        m = execute(opts.sender, contract, msg, funds)
        result = _raise_if_failed(await self.send_messages([m], opts, timeout=timeout))
        return result.tx_hash

    async def migrate(
        self,
        contract: AddrLike,
        new_code_hash: bytes,
        msg: Any,
        opts: SigningOptions,
        *,
        timeout: Optional[float] = None,
    ) -> TxHash:
        m = migrate(opts.sender, contract, new_code_hash, msg)
        result = _raise_if_failed(await self.send_messages([m], opts, timeout=timeout))
        return result.tx_hash


__all__ = ["Client", "SigningOptions", "NodeTransport"]
