"""Wallet provisioning sessions: browser flows that produce an active wallet."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from printr_signer.broker.store import SESSION_TTL_MS, Clock, SessionRecord, SessionStore, now_ms

WalletAction = Literal["unlock", "provide", "new"]


class WalletSessionResult(BaseModel):
    status: Literal["success", "failed"]
    address: Optional[str] = None
    error: Optional[str] = None


class WalletSession(SessionRecord):
    """One unlock / provide / new flow.

    ``private_key_temp`` only exists for ``new`` sessions, between key
    generation and the user's confirmation.
    """

    model_config = ConfigDict(populate_by_name=True)

    action: WalletAction
    chain: str
    wallet_id: Optional[str] = Field(default=None, alias="walletId")
    address: Optional[str] = None
    private_key_temp: Optional[str] = Field(default=None, alias="privateKeyTemp", repr=False)
    result: Optional[WalletSessionResult] = None


class WalletSessionStore(SessionStore[WalletSession]):
    """Recording a result purges the temporary private key."""

    def __init__(self, ttl_ms: int = SESSION_TTL_MS, clock: Clock = now_ms) -> None:
        super().__init__(WalletSession, ttl_ms=ttl_ms, clock=clock)

    def _with_result(self, record: WalletSession, result: WalletSessionResult) -> WalletSession:
        return record.model_copy(update={"result": result, "private_key_temp": None})
