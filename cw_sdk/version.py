"""
Version helpers for the cw-sdk Python package.

A static PEP 440 `__version__` plus a default User-Agent string sent with
every RPC request.
"""

from __future__ import annotations

# Bump this when publishing
__version__ = "0.1.0"


def default_user_agent() -> str:
    """e.g. 'cw-sdk-py/0.1.0'"""
    return f"cw-sdk-py/{__version__}"


__all__ = ["__version__", "default_user_agent"]
