"""Key generation and address derivation for both chain families."""

from __future__ import annotations

import logging

import base58
from eth_account import Account
from solders.keypair import Keypair

from printr_signer.errors import Failure
from printr_signer.wallet.chains import ChainFamily

logger = logging.getLogger("printr_signer.wallet.keys")


def normalise_private_key(key: str) -> str:
    """Normalise a hex private key to have a ``0x`` prefix."""
    key = key.strip()
    return key if key.startswith("0x") else f"0x{key}"


def _svm_keypair(private_key: str) -> Keypair:
    return Keypair.from_bytes(base58.b58decode(private_key.strip()))


def derive_address(private_key: str, family: ChainFamily) -> str | Failure:
    """Derive the public address for *private_key*.

    EVM keys are hex (with or without ``0x``) and yield a checksummed
    account address; SVM keys are base58 64-byte keypairs and yield the
    base58 public key. Returns ``Failure.INVALID_KEY_FORMAT`` when the key
    does not parse for the family.
    """
    try:
        if family == "evm":
            return Account.from_key(normalise_private_key(private_key)).address
        return str(_svm_keypair(private_key).pubkey())
    except Exception as exc:
        logger.debug(f"Key does not parse as {family}: {type(exc).__name__}")
        return Failure.INVALID_KEY_FORMAT


def generate_keypair(family: ChainFamily) -> tuple[str, str]:
    """Generate a fresh keypair and return ``(private_key, address)``."""
    if family == "evm":
        acct = Account.create()
        return "0x" + bytes(acct.key).hex(), acct.address
    kp = Keypair()
    return base58.b58encode(bytes(kp)).decode("ascii"), str(kp.pubkey())
