"""Signing sessions: unsigned payloads waiting for the browser signer."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel

from printr_signer.broker.store import SESSION_TTL_MS, Clock, SessionRecord, SessionStore, now_ms

ChainType = Literal["evm", "svm"]


class TokenMeta(BaseModel):
    """Display metadata for the token being launched."""

    name: str
    symbol: str
    description: Optional[str] = None
    image_url: Optional[str] = None


class TxResult(BaseModel):
    """Outcome reported back by the signer."""

    status: Literal["success", "failed"]
    tx_hash: Optional[str] = None
    signature: Optional[str] = None
    error: Optional[str] = None
    # base64 replacement image, set when the user changes the token image while signing
    image_data: Optional[str] = None


class CreateSessionInput(BaseModel):
    """Body of ``POST /sessions``."""

    chain_type: ChainType
    payload: Any = None
    token_id: str
    token_meta: Optional[TokenMeta] = None
    rpc_url: Optional[str] = None


class TxSession(SessionRecord, CreateSessionInput):
    result: Optional[TxResult] = None


class TxSessionStore(SessionStore[TxSession]):
    def __init__(self, ttl_ms: int = SESSION_TTL_MS, clock: Clock = now_ms) -> None:
        super().__init__(TxSession, ttl_ms=ttl_ms, clock=clock)
