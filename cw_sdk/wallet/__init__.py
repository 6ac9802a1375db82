"""
cw_sdk.wallet
-------------

Key material lives here and nowhere else:

- signer  : `Signer` protocol + in-memory secp256k1 `SigningKey`
- keystore: password-protected key files (PBKDF2 + AES-256-GCM)
"""

from __future__ import annotations

from . import keystore
from .keystore import KeystoreCryptoError, KeystoreError, KeystoreIOError
from .signer import Signer, SigningKey, verify

__all__ = [
    "keystore",
    "Signer",
    "SigningKey",
    "verify",
    "KeystoreError",
    "KeystoreCryptoError",
    "KeystoreIOError",
]
