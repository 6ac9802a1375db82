"""
Typed error classes for the Python SDK.

Every error raised by the encoder, signer, RPC transport and client facade
derives from `CwSdkError`, so callers can catch the whole family at once or
pick out a specific failure mode.

The `reached_node` flag separates failures that never left this process
(encoding, signing, connection refused) from failures the node saw and
rejected. The distinction matters because a rejection that reached the node
may already have consumed the account sequence number.

Hierarchy:

    CwSdkError
    ├── EncodingError          local, never retried
    ├── SigningError           local, never retried
    ├── RpcError               transport / malformed response
    ├── SequenceMismatchError  node rejected the sequence; one refresh+retry
    ├── TransactionFailed      node executed (or admitted) and rejected
    └── KeystoreError          (see cw_sdk.wallet.keystore)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional

__all__ = [
    "CwSdkError",
    "EncodingError",
    "SigningError",
    "RpcError",
    "SequenceMismatchError",
    "TransactionFailed",
    "JsonRpcCode",
    "from_jsonrpc_error",
    "parse_sequence_mismatch",
]


class CwSdkError(Exception):
    """Base class for all SDK errors."""

    reached_node: bool = False


class JsonRpcCode(IntEnum):
    # JSON-RPC 2.0 standard codes
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Client-side codes for failures that never produced a JSON-RPC response
    TRANSPORT_FAILED = -32098
    MALFORMED_RESPONSE = -32097
    QUERY_FAILED = -32096


@dataclass(eq=False)
class EncodingError(CwSdkError):
    """
    Raised when a message, transaction or query violates the wire schema.

    Typical causes: negative or oversized amounts, duplicate denoms, bad
    address length, oversized wasm payload, malformed bytes on decode.
    """

    message: str
    field: Optional[str] = None

    def __str__(self) -> str:
        where = f" [{self.field}]" if self.field else ""
        return f"EncodingError{where}: {self.message}"


@dataclass(eq=False)
class SigningError(CwSdkError):
    """Raised when the signing capability cannot produce a signature."""

    message: str

    def __str__(self) -> str:
        return f"SigningError: {self.message}"


@dataclass(eq=False)
class RpcError(CwSdkError):
    """
    Raised when a JSON-RPC call fails.

    Fields:
      - transient: network-level failure (timeout, reset, 5xx); safe to retry
        for idempotent calls
      - maybe_delivered: the request may have reached the node before the
        failure (read timeout, dropped connection). Only meaningful for
        broadcasts.
      - reached_node: an HTTP response or JSON-RPC reply came back, so the
        node (or its proxy) saw the request and answered it
    """

    method: Optional[str]
    code: int
    message: str
    data: Optional[Any] = None
    http_status: Optional[int] = None
    transient: bool = False
    maybe_delivered: bool = False
    reached_node: bool = False

    def __str__(self) -> str:
        parts = [f"RPC[{self.method or '-'}] code={self.code} msg={self.message!r}"]
        if self.http_status is not None:
            parts.append(f"http={self.http_status}")
        if self.transient:
            parts.append("transient")
        if self.data is not None:
            parts.append(f"data={self.data!r}")
        return " ".join(parts)

    @property
    def code_enum(self) -> Optional[JsonRpcCode]:
        try:
            return JsonRpcCode(self.code)
        except ValueError:
            return None


@dataclass(eq=False)
class SequenceMismatchError(CwSdkError):
    """
    The node rejected a transaction because its sequence number was stale.

    `expected` / `got` are parsed from the node log when it carries them.
    """

    log: str
    expected: Optional[int] = None
    got: Optional[int] = None
    tx_hash: Optional[str] = None

    reached_node = True

    def __str__(self) -> str:
        if self.expected is not None and self.got is not None:
            return f"sequence mismatch: expected {self.expected}, got {self.got}"
        return f"sequence mismatch: {self.log}"


@dataclass(eq=False)
class TransactionFailed(CwSdkError):
    """
    The node saw the transaction and rejected it.

    `stage` is "check_tx" when the mempool refused admission and
    "deliver_tx" when the transaction was included in a block with a non-zero
    result code. `log` is the node-provided reason, verbatim.
    """

    code: int
    log: str
    tx_hash: Optional[str] = None
    height: Optional[int] = None
    stage: str = "deliver_tx"
    codespace: Optional[str] = None

    reached_node = True

    def __str__(self) -> str:
        tx = f" tx={self.tx_hash}" if self.tx_hash else ""
        at = f" height={self.height}" if self.height is not None else ""
        return f"TransactionFailed[{self.stage}]{tx}{at} code={self.code}: {self.log}"


def from_jsonrpc_error(
    err_obj: Dict[str, Any],
    *,
    method: Optional[str] = None,
    http_status: Optional[int] = None,
) -> RpcError:
    """
    Convert a JSON-RPC error object into RpcError.

    `err_obj` should resemble: {"code": int, "message": str, "data": any?}
    """
    code = int(err_obj.get("code", JsonRpcCode.INTERNAL_ERROR))
    message = str(err_obj.get("message", "Unknown JSON-RPC error"))
    return RpcError(
        method=method,
        code=code,
        message=message,
        data=err_obj.get("data"),
        http_status=http_status,
        reached_node=True,
    )


# Matches both the account-contract wording ("incorrect sequence number!
# expecting 3, got 2") and the cosmos-sdk one ("account sequence mismatch,
# expected 3, got 2").
_SEQ_RE = re.compile(
    r"sequence[^0-9]*?expect(?:ing|ed)?\D*?(\d+)\D+?got\D*?(\d+)",
    re.IGNORECASE | re.DOTALL,
)
_SEQ_HINT_RE = re.compile(r"(incorrect|wrong|invalid) sequence|sequence mismatch", re.IGNORECASE)


def parse_sequence_mismatch(log: Optional[str], *, tx_hash: Optional[str] = None) -> Optional[SequenceMismatchError]:
    """Return a SequenceMismatchError if `log` describes a stale sequence, else None."""
    if not log:
        return None
    m = _SEQ_RE.search(log)
    if m:
        return SequenceMismatchError(log=log, expected=int(m.group(1)), got=int(m.group(2)), tx_hash=tx_hash)
    if _SEQ_HINT_RE.search(log):
        return SequenceMismatchError(log=log, tx_hash=tx_hash)
    return None
