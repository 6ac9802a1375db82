"""
cw-sdk — Python
Transaction lifecycle client for CosmWasm-style chains.
Convenience exports for the most common client APIs.
"""

from .version import __version__  # noqa: F401

# Core config & errors
from .config import SDKConfig  # noqa: F401
from .errors import (  # noqa: F401
    CwSdkError,
    EncodingError,
    RpcError,
    SequenceMismatchError,
    SigningError,
    TransactionFailed,
)

# Addresses & types
from .address import Addr, AddressError  # noqa: F401
from .types.core import (  # noqa: F401
    AccountState,
    Coin,
    Coins,
    Fee,
    GasPrice,
    SignedTransaction,
    TransactionResult,
    TxStatus,
)
from .types.msgs import (  # noqa: F401
    MessageKind,
    SetToAddr,
    SetToNone,
    SetToSelf,
)

# Wallet
from .wallet import keystore  # noqa: F401
from .wallet.keystore import KeystoreError  # noqa: F401
from .wallet.signer import Signer, SigningKey  # noqa: F401

# RPC
from .rpc.http import RpcTransport  # noqa: F401

# Client
from .client import Client, SigningOptions  # noqa: F401

__all__ = [
    "__version__",
    # Core
    "SDKConfig",
    "CwSdkError", "EncodingError", "RpcError", "SequenceMismatchError",
    "SigningError", "TransactionFailed", "KeystoreError",
    # Types
    "Addr", "AddressError",
    "AccountState", "Coin", "Coins", "Fee", "GasPrice",
    "SignedTransaction", "TransactionResult", "TxStatus",
    "MessageKind", "SetToAddr", "SetToNone", "SetToSelf",
    # Wallet
    "keystore", "Signer", "SigningKey",
    # RPC / client
    "RpcTransport", "Client", "SigningOptions",
]
