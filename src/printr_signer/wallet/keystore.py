"""Encrypted wallet keystore (scrypt + AES-256-GCM).

The keystore is a single JSON document::

    {"version": 1, "wallets": [WalletEntry, ...]}

Addresses are stored in plaintext so wallets can be listed without a
password; private keys are only stored encrypted.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import secrets
import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import Literal

from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from printr_signer.errors import Failure

logger = logging.getLogger("printr_signer.wallet.keystore")

KEYSTORE_VERSION = 1
SALT_BYTES = 32
NONCE_BYTES = 12


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class KdfParams(BaseModel):
    """scrypt cost parameters, stored with every entry."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    n: int = Field(alias="N")
    r: int
    p: int
    dk_len: int = Field(alias="dkLen")


# Pinned so that every entry stays decryptable by later versions.
KDF_PARAMS = KdfParams(n=131072, r=8, p=1, dk_len=32)


class EncryptedKey(BaseModel):
    """The encrypted-key fields of a :class:`WalletEntry`."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    kdf: Literal["scrypt"] = "scrypt"
    kdf_params: KdfParams = Field(alias="kdfParams")
    salt: str
    iv: str
    encrypted_key: str = Field(alias="encryptedKey")


class WalletEntry(EncryptedKey):
    """A stored wallet. Replaced, never mutated in place."""

    id: str
    label: str
    chain: str
    address: str
    created_at: int = Field(alias="createdAt")

    def summary(self) -> dict:
        """Public fields only, for listings."""
        return {
            "id": self.id,
            "label": self.label,
            "chain": self.chain,
            "address": self.address,
            "created_at": self.created_at,
        }


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------


def _derive_key(password: str, salt: bytes, params: KdfParams) -> bytes:
    kdf = Scrypt(salt=salt, length=params.dk_len, n=params.n, r=params.r, p=params.p)
    return kdf.derive(password.encode("utf-8"))


def encrypt_key(private_key: str, password: str) -> EncryptedKey:
    """Encrypt *private_key* under *password*.

    A fresh random salt and nonce are generated for every call. The stored
    blob is ciphertext followed by the 16-byte GCM tag, base64-encoded.
    """
    params = KDF_PARAMS
    salt = secrets.token_bytes(SALT_BYTES)
    nonce = secrets.token_bytes(NONCE_BYTES)
    dk = _derive_key(password, salt, params)
    blob = AESGCM(dk).encrypt(nonce, private_key.encode("utf-8"), None)
    return EncryptedKey(
        kdf_params=params,
        salt=base64.b64encode(salt).decode("ascii"),
        iv=base64.b64encode(nonce).decode("ascii"),
        encrypted_key=base64.b64encode(blob).decode("ascii"),
    )


def decrypt_key(entry: EncryptedKey, password: str) -> str | Failure:
    """Decrypt a stored key.

    Every failure (wrong password, tampered ciphertext, bad tag, corrupt
    base64) is reported as ``Failure.WRONG_PASSWORD``.
    """
    try:
        salt = base64.b64decode(entry.salt, validate=True)
        nonce = base64.b64decode(entry.iv, validate=True)
        blob = base64.b64decode(entry.encrypted_key, validate=True)
        dk = _derive_key(password, salt, entry.kdf_params)
        return AESGCM(dk).decrypt(nonce, blob, None).decode("utf-8")
    except Exception:
        return Failure.WRONG_PASSWORD


def new_wallet_entry(
    label: str,
    chain: str,
    address: str,
    private_key: str,
    password: str,
) -> WalletEntry:
    """Build a complete, encrypted :class:`WalletEntry` with a fresh id."""
    encrypted = encrypt_key(private_key, password)
    return WalletEntry(
        id=str(uuid.uuid4()),
        label=label,
        chain=chain,
        address=address,
        created_at=int(time.time() * 1000),
        **dict(encrypted),
    )


# ---------------------------------------------------------------------------
# Keystore file
# ---------------------------------------------------------------------------

_path_locks: dict[Path, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = path.expanduser().resolve()
    with _path_locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = _path_locks[key] = threading.Lock()
        return lock


class Keystore:
    """Wallet entries persisted in a single JSON file.

    The file is re-read on every call and rewritten whole on every mutation.
    Mutations on the same path are serialised by a lock shared by all
    :class:`Keystore` instances in the process.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path).expanduser()
        self._lock = _lock_for(self._path)

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    def _load(self) -> list[WalletEntry]:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.warning(f"Cannot read keystore {self._path}: {exc}")
            return []

        try:
            data = json.loads(raw.decode("utf-8"))
            return [WalletEntry.model_validate(w) for w in data["wallets"]]
        except (ValueError, TypeError, KeyError, ValidationError) as exc:
            self._backup_unreadable(exc)
            return []

    def _backup_unreadable(self, exc: Exception) -> None:
        backup = self._path.with_name(
            f"{self._path.name}.corrupt-{int(time.time() * 1000)}"
        )
        try:
            os.replace(self._path, backup)
        except OSError as move_exc:
            logger.error(f"Keystore {self._path} is unreadable and could not be moved aside: {move_exc}")
            return
        logger.warning(
            f"Keystore {self._path} is unreadable ({type(exc).__name__}); "
            f"moved to {backup} and starting empty"
        )

    def _save(self, wallets: list[WalletEntry]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        document = {
            "version": KEYSTORE_VERSION,
            "wallets": [w.model_dump(by_alias=True) for w in wallets],
        }
        # mkstemp creates the file with mode 0600
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list(self, chain: str | None = None) -> list[WalletEntry]:
        """All stored wallets, optionally only those for one CAIP-2 chain."""
        with self._lock:
            wallets = self._load()
        if chain:
            return [w for w in wallets if w.chain == chain]
        return wallets

    def get(self, wallet_id: str) -> WalletEntry | None:
        for entry in self.list():
            if entry.id == wallet_id:
                return entry
        return None

    def add(self, entry: WalletEntry) -> None:
        with self._lock:
            wallets = self._load()
            wallets.append(entry)
            self._save(wallets)
        logger.info(f"Wallet {entry.id} ({entry.address} on {entry.chain}) added to keystore")

    def remove(self, wallet_id: str) -> bool:
        """Delete a wallet. Returns ``False`` if no wallet has that id."""
        with self._lock:
            wallets = self._load()
            kept = [w for w in wallets if w.id != wallet_id]
            if len(kept) == len(wallets):
                return False
            self._save(kept)
        logger.info(f"Wallet {wallet_id} removed from keystore")
        return True
