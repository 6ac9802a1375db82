"""
Async JSON-RPC 2.0 transport to a CometBFT node (httpx).

- One pooled `httpx.AsyncClient` per transport; use `async with` or `close()`.
- Idempotent calls (status, abci_query, tx) retry transient failures with
  exponential backoff + jitter (`cw_sdk.utils.retry.aretry_call`).
- `broadcast` is never retried here: a timeout after the request was written
  may still have delivered the transaction, and resending could double-spend
  the sequence. Such failures come back as `RpcError(maybe_delivered=True)`.
- Cancellation (asyncio.CancelledError) is never caught; httpx releases the
  pooled connection when the awaiting task is cancelled.

Node methods used
-----------------
    status            -> {"node_info": {"network": <chain id>}, "sync_info": {...}}
    broadcast_tx_sync -> {"code", "log", "codespace", "hash"}      (params: tx base64)
    abci_query        -> {"response": {"code", "log", "value"}}    (path "/app", data hex)
    tx                -> {"hash", "height", "tx_result": {...}}    (params: hash base64)

Example:
    async with RpcTransport("http://127.0.0.1:26657") as rpc:
        info = await rpc.query(QueryInfo())
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Dict, Iterator, Mapping, Optional, Union

import httpx

from ..config import SDKConfig
from ..errors import (EncodingError, JsonRpcCode, RpcError, TransactionFailed,
                      from_jsonrpc_error, parse_sequence_mismatch)
from ..tx.encode import decode_query_response, encode_query
from ..types.core import SignedTransaction, TxHash, normalize_tx_hash
from ..types.query import QueryRequest
from ..utils.bytes import from_b64, from_hex, to_b64, to_hex
from ..utils.hash import tx_hash_hex
from ..utils.retry import RetryError, aretry_call
from ..version import default_user_agent

log = logging.getLogger(__name__)

APP_QUERY_PATH = "/app"

JSON = Union[dict, list, str, int, float, bool, None]


def _is_retriable_http(status: int) -> bool:
    # Typical transient HTTP statuses: 429/502/503/504
    return status in (429, 502, 503, 504)


def _is_transient(exc: Exception) -> bool:
    return isinstance(exc, RpcError) and exc.transient


def _int(v: Any, default: int = 0) -> int:
    # CometBFT renders int64 fields as JSON strings
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


@dataclass
class RpcTransport:
    """Asynchronous JSON-RPC 2.0 client over HTTP."""

    url: str
    timeout: float = 10.0
    broadcast_timeout: float = 10.0
    max_retries: int = 3
    backoff_base: float = 0.2
    backoff_max: float = 3.0
    user_agent: str = field(default_factory=default_user_agent)
    headers: Optional[Mapping[str, str]] = None
    client: Optional[httpx.AsyncClient] = None
    _ids: Iterator[int] = field(init=False, repr=False, default_factory=lambda: count(1))
    _owns_client: bool = field(init=False, repr=False, default=False)

    def __post_init__(self) -> None:
        if not self.url.lower().startswith(("http://", "https://")):
            raise ValueError(f"endpoint must be http(s), got: {self.url!r}")
        if self.client is None:
            merged: Dict[str, str] = {
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": self.user_agent,
            }
            if self.headers:
                merged.update(dict(self.headers))
            self.client = httpx.AsyncClient(timeout=self.timeout, headers=merged)
            self._owns_client = True

    @classmethod
    def from_config(cls, cfg: SDKConfig, *, client: Optional[httpx.AsyncClient] = None) -> "RpcTransport":
        return cls(
            url=cfg.endpoint,
            timeout=cfg.request_timeout,
            broadcast_timeout=cfg.broadcast_timeout_ms / 1000.0,
            max_retries=cfg.max_query_retries,
            backoff_base=cfg.backoff_base,
            backoff_max=cfg.backoff_max,
            user_agent=cfg.user_agent,
            client=client,
        )

    # --- context manager -------------------------------------------------

    async def __aenter__(self) -> "RpcTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    async def close(self) -> None:
        if self._owns_client and self.client is not None:
            await self.client.aclose()

    # --- generic ---------------------------------------------------------

    async def request(
        self,
        method: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
        retry: bool = True,
    ) -> JSON:
        """
        Perform one JSON-RPC call and return `result`, or raise RpcError.

        With `retry=True` transient failures are retried up to `max_retries`
        times; the last RpcError is raised once attempts run out.
        """
        if not retry or self.max_retries <= 0:
            return await self._call(method, params, timeout)
        try:
            return await aretry_call(
                self._call,
                method,
                params,
                timeout,
                retries=self.max_retries,
                base=self.backoff_base,
                max_delay=self.backoff_max,
                exceptions=RpcError,
                retry_if=_is_transient,
                on_retry=lambda n, e, s: log.debug("rpc %s: retry %d in %.2fs (%s)", method, n, s, e),
            )
        except RetryError as e:
            log.warning("rpc %s: giving up after %d attempts", method, e.attempts)
            raise e.last_exception from None

    # --- node methods ----------------------------------------------------

    async def status(self) -> Dict[str, Any]:
        res = await self.request("status")
        if not isinstance(res, dict):
            raise self._malformed("status", res)
        return res

    async def chain_id(self) -> str:
        res = await self.status()
        network = (res.get("node_info") or {}).get("network")
        if not isinstance(network, str) or not network:
            raise self._malformed("status", res)
        return network

    async def broadcast(self, tx: Union[SignedTransaction, bytes]) -> TxHash:
        """
        Submit to the mempool (`broadcast_tx_sync`) and return the tx hash.

        Raises:
          SequenceMismatchError  CheckTx rejected the sequence
          TransactionFailed      CheckTx rejected the tx for another reason
          RpcError               transport failure; see `maybe_delivered`
        """
        raw = tx.raw if isinstance(tx, SignedTransaction) else bytes(tx)
        local_hash = tx_hash_hex(raw)
        try:
            res = await self._call(
                "broadcast_tx_sync", {"tx": to_b64(raw)}, self.broadcast_timeout
            )
        except RpcError as e:
            if "already exists in cache" in f"{e.message} {e.data or ''}":
                log.info("broadcast %s: already in mempool", local_hash)
                return local_hash
            raise

        if not isinstance(res, dict):
            raise self._malformed("broadcast_tx_sync", res)
        code = _int(res.get("code"))
        log_text = str(res.get("log") or "")
        if code != 0:
            mismatch = parse_sequence_mismatch(log_text, tx_hash=local_hash)
            if mismatch is not None:
                raise mismatch
            raise TransactionFailed(
                code=code,
                log=log_text,
                tx_hash=local_hash,
                stage="check_tx",
                codespace=res.get("codespace") or None,
            )

        node_hash = str(res.get("hash") or "").upper()
        if node_hash and node_hash != local_hash:
            log.warning("broadcast: node hash %s differs from local hash %s", node_hash, local_hash)
        log.info("broadcast %s accepted", local_hash)
        return local_hash

    async def abci_query(self, data: bytes, *, path: str = APP_QUERY_PATH) -> bytes:
        """Raw app query; returns the response value bytes."""
        res = await self.request(
            "abci_query",
            {"path": path, "data": to_hex(data, prefix=False), "height": "0", "prove": False},
        )
        resp = res.get("response") if isinstance(res, dict) else None
        if not isinstance(resp, dict):
            raise self._malformed("abci_query", res)
        code = _int(resp.get("code"))
        if code != 0:
            raise RpcError(
                method="abci_query",
                code=JsonRpcCode.QUERY_FAILED,
                message=str(resp.get("log") or f"query failed with code {code}"),
                data={"abci_code": code, "codespace": resp.get("codespace")},
                reached_node=True,
            )
        value = resp.get("value")
        if value is None:
            raise self._malformed("abci_query", res)
        try:
            return from_b64(value)
        except (TypeError, ValueError) as e:
            raise self._malformed("abci_query", res) from e

    async def query(self, request: QueryRequest) -> Any:
        """Encode `request`, run it against the app and decode the answer."""
        raw = await self.abci_query(encode_query(request))
        try:
            return decode_query_response(request, raw)
        except EncodingError as e:
            raise RpcError(
                method="abci_query",
                code=JsonRpcCode.MALFORMED_RESPONSE,
                message=f"cannot decode {request.kind.value} response: {e.message}",
                reached_node=True,
            ) from e

    async def get_tx(self, tx_hash: TxHash) -> Optional[Dict[str, Any]]:
        """
        Look up an included transaction. None while it is not (yet) in a
        block; the raw `tx` result otherwise.
        """
        try:
            res = await self.request("tx", {"hash": to_b64(from_hex(normalize_tx_hash(tx_hash))), "prove": False})
        except RpcError as e:
            if not e.transient and "not found" in f"{e.message} {e.data or ''}".lower():
                return None
            raise
        if not isinstance(res, dict):
            raise self._malformed("tx", res)
        return res

    # --- internals -------------------------------------------------------

    def _payload(self, method: str, params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": dict(params or {})}

    @staticmethod
    def _malformed(method: str, res: Any) -> RpcError:
        return RpcError(
            method=method,
            code=JsonRpcCode.MALFORMED_RESPONSE,
            message="malformed JSON-RPC result",
            data=str(res)[:256],
            reached_node=True,
        )

    async def _call(self, method: str, params: Optional[Mapping[str, Any]], timeout: Optional[float]) -> JSON:
        assert self.client is not None
        body = json.dumps(self._payload(method, params), separators=(",", ":"))
        kwargs: Dict[str, Any] = {}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            r = await self.client.post(self.url, content=body, **kwargs)
        except (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout) as e:
            # Nothing was written to the socket.
            raise RpcError(
                method=method,
                code=JsonRpcCode.TRANSPORT_FAILED,
                message=f"connection failed: {e.__class__.__name__}",
                data=str(e) or None,
                transient=True,
            ) from e
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise RpcError(
                method=method,
                code=JsonRpcCode.TRANSPORT_FAILED,
                message=f"transport failed: {e.__class__.__name__}",
                data=str(e) or None,
                transient=True,
                maybe_delivered=True,
            ) from e

        if _is_retriable_http(r.status_code):
            raise RpcError(
                method=method,
                code=JsonRpcCode.TRANSPORT_FAILED,
                message=f"HTTP {r.status_code}",
                http_status=r.status_code,
                transient=True,
                maybe_delivered=r.status_code in (502, 504),
                reached_node=True,
            )

        # Avoid raise_for_status() to keep the error body visible below
        try:
            resp = r.json()
        except ValueError as e:
            raise RpcError(
                method=method,
                code=JsonRpcCode.MALFORMED_RESPONSE,
                message="non-JSON response from RPC",
                data=f"HTTP {r.status_code}: {r.text[:256]}",
                http_status=r.status_code,
                reached_node=True,
            ) from e

        if not isinstance(resp, dict):
            raise RpcError(
                method=method,
                code=JsonRpcCode.MALFORMED_RESPONSE,
                message="invalid JSON-RPC response type",
                data=type(resp).__name__,
                http_status=r.status_code,
                reached_node=True,
            )
        if resp.get("error") is not None:
            err = resp["error"] if isinstance(resp["error"], dict) else {"message": str(resp["error"])}
            raise from_jsonrpc_error(err, method=method, http_status=r.status_code)
        if "result" not in resp:
            raise RpcError(
                method=method,
                code=JsonRpcCode.MALFORMED_RESPONSE,
                message="malformed JSON-RPC response",
                data=str(resp)[:256],
                http_status=r.status_code,
                reached_node=True,
            )
        return resp["result"]


__all__ = ["RpcTransport", "APP_QUERY_PATH"]
