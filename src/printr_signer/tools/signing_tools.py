"""Agent-facing signing tools.

``printr_open_web_signer`` hands an unsigned payload to the browser signer
through the local broker. The ``printr_sign_and_submit_*`` tools sign in
process: with an explicit key when one is passed, otherwise with whatever
the wallet resolver can provide.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from printr_signer.broker.server import SessionBroker
from printr_signer.broker.sessions import TokenMeta
from printr_signer.config import SignerConfig
from printr_signer.errors import Failure, SignerError, SubmitError
from printr_signer.tools.registry import tool
from printr_signer.wallet.balance import EvmTxContext, SvmTxContext
from printr_signer.wallet.chains import (
    DEFAULT_SVM_RPC,
    SOLANA_MAINNET,
    caip10_to_chain_id,
    get_chain,
    parse_evm_caip10,
)
from printr_signer.wallet.resolver import Ready, WalletResolver, describe_resolution
from printr_signer.wallet.submit import (
    EvmPayload,
    SvmPayload,
    sign_and_submit_evm,
    sign_and_submit_svm,
)

logger = logging.getLogger("printr_signer.tools.signing")

_TRADE_HINT = (
    "After successful confirmation, present the trade page URL to the user: "
    "https://app.printr.money/trade/{token_id} using the token_id from the prior "
    "printr_create_token call."
)

_PRIVATE_KEY_PARAM = {
    "type": "string",
    "description": (
        "Optional private key for the creator wallet. When omitted the active wallet "
        "(or, in AGENT_MODE, the configured key) is used. Handle with care."
    ),
}


def _error(message: str) -> dict:
    return {"ok": False, "error": message}


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    where = ".".join(str(p) for p in first.get("loc", ())) or "payload"
    return f"Invalid payload: {where}: {first.get('msg', 'invalid value')}"


class SigningTools:
    """Web-signer and direct-submission tools, bound to one signer's state."""

    def __init__(
        self,
        config: SignerConfig,
        broker: SessionBroker,
        resolver: WalletResolver,
    ) -> None:
        self.config = config
        self.broker = broker
        self.resolver = resolver

    # ------------------------------------------------------------------
    # Browser signer
    # ------------------------------------------------------------------

    @tool(
        "printr_open_web_signer",
        (
            "Start an ephemeral local signing session and return a deep link to the Printr "
            "web app where the user can sign the transaction with their browser wallet "
            "(MetaMask / Phantom). Present the returned URL to the user, then call "
            "printr_get_signing_result to see whether they signed."
        ),
        {
            "type": "object",
            "properties": {
                "chain_type": {
                    "type": "string",
                    "enum": ["evm", "svm"],
                    "description": "Chain type of the unsigned transaction",
                },
                "payload": {
                    "type": "object",
                    "description": "Full unsigned tx payload returned by printr_create_token",
                },
                "token_id": {
                    "type": "string",
                    "description": "Telecoin ID (hex) returned by printr_create_token",
                },
                "rpc_url": {
                    "type": "string",
                    "description": "Optional RPC endpoint override for signing",
                },
                "token_meta": {
                    "type": "object",
                    "description": "Optional display metadata: name, symbol, description, image_url",
                },
                "app_url": {
                    "type": "string",
                    "description": "Base URL of the Printr web app (defaults to PRINTR_APP_URL)",
                },
            },
            "required": ["chain_type", "payload", "token_id"],
        },
    )
    async def open_web_signer(
        self,
        chain_type: str,
        payload: Any,
        token_id: str,
        rpc_url: str = "",
        token_meta: dict | None = None,
        app_url: str = "",
    ) -> dict:
        if chain_type not in ("evm", "svm"):
            return _error(f"Unknown chain_type '{chain_type}'. Use evm or svm.")
        meta = None
        if token_meta:
            try:
                meta = TokenMeta.model_validate(token_meta)
            except ValidationError as exc:
                return _error(_validation_message(exc))

        try:
            port = await self.broker.start()
        except SignerError as exc:
            return _error(str(exc))

        session = self.broker.sessions.create(
            chain_type=chain_type,
            payload=payload,
            token_id=token_id,
            token_meta=meta,
            rpc_url=rpc_url or None,
        )
        url = await self.broker.signer_url(session.token, app_url or None)
        logger.info(f"Web signer session {session.token[:8]} opened for token {token_id}")
        return {
            "ok": True,
            "url": url,
            "session_token": session.token,
            "api_port": port,
            "expires_at": session.expires_at,
            "message": f"Open this URL to sign with your browser wallet: {url}",
        }

    @tool(
        "printr_get_signing_result",
        "Check whether the user has finished signing in the browser for a signing session.",
        {
            "type": "object",
            "properties": {
                "session_token": {
                    "type": "string",
                    "description": "Session token returned by printr_open_web_signer",
                },
            },
            "required": ["session_token"],
        },
    )
    async def get_signing_result(self, session_token: str) -> dict:
        session = self.broker.sessions.lookup(session_token)
        if session is Failure.NOT_FOUND:
            return _error("Signing session not found.")
        if session is Failure.EXPIRED:
            return _error("Signing session expired. Open a new web signer session.")
        if session.result is None:
            return {
                "ok": True,
                "status": "pending",
                "message": "The user has not finished signing yet.",
            }
        return {"ok": True, **session.result.model_dump(exclude_none=True)}

    # ------------------------------------------------------------------
    # Direct submission
    # ------------------------------------------------------------------

    @tool(
        "printr_sign_and_submit_evm",
        (
            "Sign and submit an EVM transaction payload returned by printr_create_token. "
            "Uses private_key when given, otherwise the active wallet. Returns the "
            "transaction hash and receipt status once mined. " + _TRADE_HINT
        ),
        {
            "type": "object",
            "properties": {
                "payload": {
                    "type": "object",
                    "description": (
                        "{to: CAIP-10 target contract, calldata: hex, value: wei string, "
                        "gas_limit: integer}"
                    ),
                },
                "private_key": _PRIVATE_KEY_PARAM,
                "rpc_url": {
                    "type": "string",
                    "description": "HTTP RPC endpoint for the target chain",
                },
            },
            "required": ["payload"],
        },
    )
    async def sign_and_submit_evm(
        self,
        payload: dict,
        private_key: str = "",
        rpc_url: str = "",
    ) -> dict:
        try:
            tx = EvmPayload.model_validate(payload)
            parse_evm_caip10(tx.to)
            caip2 = caip10_to_chain_id(tx.to)
        except ValidationError as exc:
            return _error(_validation_message(exc))
        except ValueError as exc:
            return _error(str(exc))

        chain = get_chain(caip2)
        rpc = rpc_url or self.config.evm_rpc_urls.get(caip2) or (chain.default_rpc if chain else None)
        if not rpc:
            name = chain.name if chain else caip2
            return _error(f"No RPC URL known for {name}. Pass rpc_url.")

        if not private_key:
            resolution = await self.resolver.resolve(
                caip2, EvmTxContext(caip10_to=tx.to, gas_limit=tx.gas_limit, rpc_url=rpc)
            )
            if not isinstance(resolution, Ready):
                return {"ok": False, **describe_resolution(resolution)}
            private_key = resolution.private_key

        try:
            result = await sign_and_submit_evm(tx, private_key, rpc)
        except SubmitError as exc:
            return _error(str(exc))
        return {
            "ok": result.status == "success",
            **result.model_dump(),
            "message": f"Transaction {result.tx_hash} {result.status} in block {result.block_number}.",
        }

    @tool(
        "printr_sign_and_submit_svm",
        (
            "Sign and submit a Solana transaction payload returned by printr_create_token. "
            "Uses private_key when given, otherwise the active wallet. Returns the "
            "transaction signature once confirmed. " + _TRADE_HINT
        ),
        {
            "type": "object",
            "properties": {
                "payload": {
                    "type": "object",
                    "description": (
                        "{ixs: [{program_id, accounts: [{pubkey, is_signer, is_writable}], "
                        "data: base64}], lookup_table?: base58, mint_address: CAIP-10}"
                    ),
                },
                "private_key": _PRIVATE_KEY_PARAM,
                "rpc_url": {
                    "type": "string",
                    "description": f"Solana RPC endpoint (default: {DEFAULT_SVM_RPC})",
                },
            },
            "required": ["payload"],
        },
    )
    async def sign_and_submit_svm(
        self,
        payload: dict,
        private_key: str = "",
        rpc_url: str = "",
    ) -> dict:
        try:
            tx = SvmPayload.model_validate(payload)
        except ValidationError as exc:
            return _error(_validation_message(exc))
        if not tx.ixs:
            return _error("Invalid payload: ixs must contain at least one instruction")

        rpc = rpc_url or self.config.svm_rpc_url or DEFAULT_SVM_RPC
        if not private_key:
            resolution = await self.resolver.resolve(SOLANA_MAINNET, SvmTxContext(rpc_url=rpc))
            if not isinstance(resolution, Ready):
                return {"ok": False, **describe_resolution(resolution)}
            private_key = resolution.private_key

        try:
            result = await sign_and_submit_svm(tx, private_key, rpc)
        except SubmitError as exc:
            return _error(str(exc))
        return {
            "ok": True,
            **result.model_dump(),
            "message": f"Transaction {result.signature} {result.confirmation_status} at slot {result.slot}.",
        }
