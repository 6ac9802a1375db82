"""
cw_sdk.rpc
----------

Node transport. Only HTTP JSON-RPC is provided; confirmation polls `tx`.
"""

from __future__ import annotations

from .http import APP_QUERY_PATH, RpcTransport

__all__ = ["RpcTransport", "APP_QUERY_PATH"]
