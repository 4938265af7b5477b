"""Failure taxonomy shared by the keystore, balance checker, and broker."""

from __future__ import annotations

from enum import Enum


class Failure(str, Enum):
    """Expected, recoverable failure outcomes.

    Returned (not raised) from fallible operations; callers test with
    ``isinstance(result, Failure)``.
    """

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    WRONG_PASSWORD = "wrong_password"
    INVALID_KEY_FORMAT = "invalid_key_format"
    NO_RPC = "no_rpc"
    FETCH_FAILED = "fetch_failed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    DECLINED = "declined"
    NO_ACTIVE_WALLET = "no_active_wallet"
    PORT_EXHAUSTED = "port_exhausted"


class SignerError(Exception):
    """Base exception for printr-signer."""


class PortExhaustedError(SignerError):
    """No free port in the broker's port range."""

    def __init__(self, start: int, end: int) -> None:
        super().__init__(f"No free port found in range {start}-{end}")
        self.start = start
        self.end = end


class SubmitError(SignerError):
    """Signing or broadcasting a transaction failed."""
