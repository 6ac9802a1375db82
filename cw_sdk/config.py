"""
SDK configuration: node endpoint, chain id, gas pricing, polling and retry
behaviour.

- Sane defaults for a local devnet node (CometBFT RPC on :26657).
- Overrides via environment variables (CW_SDK_*), a plain mapping (snake_case
  or the camelCase option names used by the JS SDK), or keyword overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional

from .types.core import GasPrice
from .version import default_user_agent

_DEFAULT_ENDPOINT = "http://127.0.0.1:26657"
_DEFAULT_GAS_PRICE = "0.025uatom"

# camelCase option name -> field name
_ALIASES = {
    "endpoint": "endpoint",
    "chainId": "chain_id",
    "gasPrice": "gas_price",
    "gasLimit": "gas_limit",
    "gasAdjustment": "gas_adjustment",
    "pollIntervalMs": "poll_interval_ms",
    "confirmTimeoutMs": "confirm_timeout_ms",
    "broadcastTimeoutMs": "broadcast_timeout_ms",
    "maxQueryRetries": "max_query_retries",
    "backoffBase": "backoff_base",
    "backoffMax": "backoff_max",
    "requestTimeout": "request_timeout",
    "userAgent": "user_agent",
}


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v not in (None, "") else default


def _ensure_scheme(url: str) -> str:
    if not url.lower().startswith(("http://", "https://")):
        raise ValueError(f"endpoint must start with http:// or https://, got: {url!r}")
    return url


@dataclass(slots=True)
class SDKConfig:
    # Node
    endpoint: str = _DEFAULT_ENDPOINT
    chain_id: Optional[str] = None  # discovered from `status` when None
    # Fees
    gas_price: GasPrice = field(default_factory=lambda: GasPrice.parse(_DEFAULT_GAS_PRICE))
    gas_limit: Optional[int] = None  # estimated per tx when None
    gas_adjustment: float = 1.3
    # Confirmation
    poll_interval_ms: int = 1_000
    confirm_timeout_ms: int = 30_000
    broadcast_timeout_ms: int = 10_000
    # Transport
    max_query_retries: int = 3
    backoff_base: float = 0.2
    backoff_max: float = 3.0
    request_timeout: float = 10.0
    user_agent: str = field(default_factory=default_user_agent)

    def __post_init__(self) -> None:
        _ensure_scheme(self.endpoint)
        self.gas_price = GasPrice.parse(self.gas_price)
        if self.gas_limit is not None and int(self.gas_limit) <= 0:
            raise ValueError("gas_limit must be positive")
        if self.gas_adjustment < 1.0:
            raise ValueError("gas_adjustment must be >= 1.0")
        if self.poll_interval_ms <= 0:
            raise ValueError("poll_interval_ms must be positive")
        if self.confirm_timeout_ms < 0 or self.broadcast_timeout_ms <= 0:
            raise ValueError("timeouts must be positive")
        if self.max_query_retries < 0:
            raise ValueError("max_query_retries must be >= 0")

    # ---- constructors ----

    @classmethod
    def from_env(cls, prefix: str = "CW_SDK_") -> "SDKConfig":
        """
        Create config from environment variables:

        CW_SDK_ENDPOINT              (http/https)
        CW_SDK_CHAIN_ID              (str) optional
        CW_SDK_GAS_PRICE             (e.g. 0.025uatom)
        CW_SDK_GAS_LIMIT             (int) optional
        CW_SDK_GAS_ADJUSTMENT        (float)
        CW_SDK_POLL_INTERVAL_MS      (int)
        CW_SDK_CONFIRM_TIMEOUT_MS    (int)
        CW_SDK_BROADCAST_TIMEOUT_MS  (int)
        CW_SDK_MAX_QUERY_RETRIES     (int)
        CW_SDK_BACKOFF_BASE          (float seconds)
        CW_SDK_BACKOFF_MAX           (float seconds)
        CW_SDK_TIMEOUT               (float seconds, per HTTP request)
        CW_SDK_USER_AGENT            (str)
        """
        gas_limit = _env(f"{prefix}GAS_LIMIT")
        return cls(
            endpoint=_env(f"{prefix}ENDPOINT", _DEFAULT_ENDPOINT),
            chain_id=_env(f"{prefix}CHAIN_ID"),
            gas_price=GasPrice.parse(_env(f"{prefix}GAS_PRICE", _DEFAULT_GAS_PRICE)),
            gas_limit=int(gas_limit) if gas_limit is not None else None,
            gas_adjustment=float(_env(f"{prefix}GAS_ADJUSTMENT", "1.3")),
            poll_interval_ms=int(_env(f"{prefix}POLL_INTERVAL_MS", "1000")),
            confirm_timeout_ms=int(_env(f"{prefix}CONFIRM_TIMEOUT_MS", "30000")),
            broadcast_timeout_ms=int(_env(f"{prefix}BROADCAST_TIMEOUT_MS", "10000")),
            max_query_retries=int(_env(f"{prefix}MAX_QUERY_RETRIES", "3")),
            backoff_base=float(_env(f"{prefix}BACKOFF_BASE", "0.2")),
            backoff_max=float(_env(f"{prefix}BACKOFF_MAX", "3.0")),
            request_timeout=float(_env(f"{prefix}TIMEOUT", "10.0")),
            user_agent=_env(f"{prefix}USER_AGENT", default_user_agent()),
        )

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any], *, base: Optional["SDKConfig"] = None) -> "SDKConfig":
        """
        Build from a mapping such as
        ``{"endpoint": ..., "gasPrice": {"denom": "uatom", "amount": "0.025"},
        "pollIntervalMs": 500, "confirmTimeoutMs": 20000, "maxQueryRetries": 5}``.

        Keys may be field names or their camelCase aliases; anything else is a
        ValueError.
        """
        known = {f.name for f in fields(cls)}
        data: Dict[str, Any] = {}
        for key, value in options.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise ValueError(f"unknown config option: {key!r}")
            data[name] = value
        return cls.with_overrides(base or cls(), **data)

    @classmethod
    def with_overrides(cls, base: Optional["SDKConfig"] = None, **overrides: Any) -> "SDKConfig":
        """
        Build from an existing config plus keyword overrides.
        Unknown keys are ignored.
        """
        base = base or cls.from_env()
        data = base.to_dict()
        data.update({k: v for k, v in overrides.items() if k in data})
        return cls(**data)

    # ---- views ----

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def confirm_timeout(self) -> float:
        return self.confirm_timeout_ms / 1000.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "chain_id": self.chain_id,
            "gas_price": str(self.gas_price),
            "gas_limit": self.gas_limit,
            "gas_adjustment": float(self.gas_adjustment),
            "poll_interval_ms": int(self.poll_interval_ms),
            "confirm_timeout_ms": int(self.confirm_timeout_ms),
            "broadcast_timeout_ms": int(self.broadcast_timeout_ms),
            "max_query_retries": int(self.max_query_retries),
            "backoff_base": float(self.backoff_base),
            "backoff_max": float(self.backoff_max),
            "request_timeout": float(self.request_timeout),
            "user_agent": self.user_agent,
        }


__all__ = ["SDKConfig"]
