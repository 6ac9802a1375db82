"""
File keystore (AES-256-GCM) for secp256k1 signing keys.

Design
------
- The 32-byte secret scalar is encrypted with AES-GCM under a key derived
  from the password via PBKDF2-HMAC-SHA256 (both from `cryptography`).
- On disk we store a small JSON envelope alongside the ciphertext. The
  compressed public key is stored in clear so a keystore can be identified
  without the password.
- No plaintext is written to disk; writes are atomic (tmp file + replace) and
  the file is chmod 0600 on POSIX.

JSON envelope schema (version=1)
--------------------------------
{
  "version": 1,
  "kdf": "PBKDF2-SHA256",
  "kdf_iters": 200000,
  "salt": "<hex>",
  "aead": "AES-256-GCM",
  "nonce": "<hex>",
  "ciphertext": "<hex>",   # includes GCM tag
  "public_key": "<hex>",   # 33-byte compressed secp256k1 point
  "created_at": "2025-01-01T00:00:00Z",
  "meta": { ... }
}
"""

from __future__ import annotations

import json
import os
import secrets
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..errors import CwSdkError, SigningError
from .signer import SigningKey

PathLike = Union[str, "os.PathLike[str]"]

VERSION = 1
KDF = "PBKDF2-SHA256"
AEAD = "AES-256-GCM"
DEFAULT_KDF_ITERS = 200_000

# Binds the ciphertext to this file format.
_AAD = b"cw-sdk/keystore/v1"


# ----- Errors -----------------------------------------------------------------


class KeystoreError(CwSdkError):
    """Base keystore error."""


class KeystoreCryptoError(KeystoreError):
    """Wrong password or tampered ciphertext."""


class KeystoreIOError(KeystoreError):
    """Missing, unreadable or malformed keystore file."""


# ----- Datatypes ---------------------------------------------------------------


@dataclass
class KeystoreInfo:
    path: Path
    version: int
    kdf: str
    kdf_iters: int
    aead: str
    public_key: bytes
    created_at: str
    meta: Dict[str, Any]


# ----- Public API --------------------------------------------------------------


def create(
    path: PathLike,
    key: SigningKey,
    password: str,
    *,
    kdf_iters: int = DEFAULT_KDF_ITERS,
    meta: Optional[Dict[str, Any]] = None,
) -> KeystoreInfo:
    """
    Encrypt `key` with `password` and write it to `path`.

    `kdf_iters` defaults to 200k; tests may pass something much smaller.
    """
    if kdf_iters <= 0:
        raise ValueError("kdf_iters must be positive")
    salt = secrets.token_bytes(16)
    nonce = secrets.token_bytes(12)
    ciphertext = AESGCM(_derive_key(password, salt, kdf_iters)).encrypt(nonce, key.secret_bytes(), _AAD)

    now = datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
    envelope = {
        "version": VERSION,
        "kdf": KDF,
        "kdf_iters": kdf_iters,
        "salt": salt.hex(),
        "aead": AEAD,
        "nonce": nonce.hex(),
        "ciphertext": ciphertext.hex(),
        "public_key": key.public_key.hex(),
        "created_at": now,
        "meta": meta or {},
    }
    _atomic_write_json(path, envelope)
    _chmod_private(path)
    return _info(path, envelope)


def load(path: PathLike, password: str) -> SigningKey:
    """
    Decrypt the keystore at `path` into a SigningKey.

    Raises KeystoreCryptoError on a wrong password or tampered file and
    KeystoreIOError when the file is missing or malformed.
    """
    env = _read_json(path)
    _check_envelope(env)
    try:
        salt = bytes.fromhex(env["salt"])
        nonce = bytes.fromhex(env["nonce"])
        ciphertext = bytes.fromhex(env["ciphertext"])
        expected_pk = bytes.fromhex(env["public_key"])
    except (TypeError, ValueError) as e:
        raise KeystoreIOError(f"malformed keystore: {e}") from e

    try:
        secret = AESGCM(_derive_key(password, salt, env["kdf_iters"])).decrypt(nonce, ciphertext, _AAD)
    except InvalidTag as e:
        raise KeystoreCryptoError("decryption failed (bad password or corrupted file)") from e
    except ValueError as e:
        raise KeystoreIOError(f"malformed keystore: {e}") from e

    try:
        key = SigningKey.from_secret_bytes(secret)
    except SigningError as e:
        raise KeystoreCryptoError(f"keystore holds an invalid key: {e.message}") from e
    if key.public_key != expected_pk:
        raise KeystoreCryptoError("decrypted key does not match the stored public key")
    return key


def read_info(path: PathLike) -> KeystoreInfo:
    """Envelope metadata without decrypting."""
    env = _read_json(path)
    _check_envelope(env)
    return _info(path, env)


def change_password(
    path: PathLike, old_password: str, new_password: str, *, kdf_iters: Optional[int] = None
) -> KeystoreInfo:
    info = read_info(path)
    key = load(path, old_password)
    return create(path, key, new_password, kdf_iters=kdf_iters or info.kdf_iters, meta=info.meta)


# ----- Internals ---------------------------------------------------------------


def _derive_key(password: str, salt: bytes, iters: int) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iters)
    return kdf.derive(password.encode("utf-8"))


def _info(path: PathLike, env: Dict[str, Any]) -> KeystoreInfo:
    return KeystoreInfo(
        path=Path(path),
        version=int(env["version"]),
        kdf=str(env["kdf"]),
        kdf_iters=int(env["kdf_iters"]),
        aead=str(env["aead"]),
        public_key=bytes.fromhex(env["public_key"]),
        created_at=str(env.get("created_at", "")),
        meta=dict(env.get("meta") or {}),
    )


def _atomic_write_json(path: PathLike, obj: Dict[str, Any]) -> None:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        data = json.dumps(obj, separators=(",", ":"), sort_keys=True).encode("utf-8")
        with tempfile.NamedTemporaryFile("wb", delete=False, dir=str(path.parent)) as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_name = tmp.name
        os.replace(tmp_name, path)
    except OSError as e:  # pragma: no cover - hard to simulate all FS errors
        raise KeystoreIOError(f"failed to write keystore: {e}") from e


def _read_json(path: PathLike) -> Dict[str, Any]:
    try:
        with open(path, "rb") as f:
            obj = json.loads(f.read().decode("utf-8"))
    except FileNotFoundError as e:
        raise KeystoreIOError(f"keystore not found: {path}") from e
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise KeystoreIOError(f"failed to read keystore: {e}") from e
    if not isinstance(obj, dict):
        raise KeystoreIOError("keystore must be a JSON object")
    return obj


def _chmod_private(path: PathLike) -> None:
    if os.name == "posix":
        os.chmod(Path(path), 0o600)


def _check_envelope(env: Dict[str, Any]) -> None:
    if env.get("version") != VERSION:
        raise KeystoreIOError("unsupported keystore version")
    if env.get("kdf") != KDF:
        raise KeystoreIOError("unsupported KDF")
    if env.get("aead") != AEAD:
        raise KeystoreIOError("unsupported AEAD")
    iters = env.get("kdf_iters")
    if isinstance(iters, bool) or not isinstance(iters, int) or iters <= 0:
        raise KeystoreIOError("invalid kdf_iters")
    for k in ("salt", "nonce", "ciphertext", "public_key"):
        if not isinstance(env.get(k), str):
            raise KeystoreIOError(f"missing field: {k}")


__all__ = [
    "KeystoreError",
    "KeystoreCryptoError",
    "KeystoreIOError",
    "KeystoreInfo",
    "create",
    "load",
    "read_info",
    "change_password",
]
