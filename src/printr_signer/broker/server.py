"""Local HTTP broker consumed by the agent process and the browser pages.

Binds to loopback only, on the first free port of the configured range.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Optional, TypeVar
from urllib.parse import quote

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, ValidationError

from printr_signer.broker import pages
from printr_signer.broker.sessions import CreateSessionInput, TxResult, TxSession, TxSessionStore
from printr_signer.broker.store import Clock, now_ms
from printr_signer.broker.wallet_sessions import (
    WalletAction,
    WalletSession,
    WalletSessionResult,
    WalletSessionStore,
)
from printr_signer.config import SignerConfig
from printr_signer.errors import Failure, PortExhaustedError, SignerError
from printr_signer.wallet.active import ActiveWallet, ActiveWalletRegistry
from printr_signer.wallet.balance import BalanceChecker, EvmTxContext, SvmTxContext
from printr_signer.wallet.chains import chain_family
from printr_signer.wallet.keys import derive_address
from printr_signer.wallet.keystore import Keystore, decrypt_key, new_wallet_entry

logger = logging.getLogger("printr_signer.broker")

# Gas limit assumed when checking a freshly provided EVM key
PROVIDE_CHECK_GAS_LIMIT = 300_000

M = TypeVar("M", bound=BaseModel)


class UnlockBody(BaseModel):
    password: str


class ProvideBody(BaseModel):
    private_key: str
    save: bool = False
    label: Optional[str] = None
    password: Optional[str] = None


class ConfirmBody(BaseModel):
    confirmed: bool = False
    label: str = ""
    password: str = ""


def find_free_port(host: str, start: int, end: int) -> int:
    """Probe ports ``start..end`` (inclusive) in order; return the first free one."""
    for port in range(start, end + 1):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            try:
                sock.bind((host, port))
            except OSError:
                continue
            return port
    raise PortExhaustedError(start, end)


async def _parse_body(request: Request, model: type[M]) -> M | None:
    try:
        return model.model_validate(await request.json())
    except (ValueError, ValidationError):
        return None


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _is_new_session(session: WalletSession | None) -> bool:
    # privateKeyTemp is cleared once the backup has been confirmed
    return (
        session is not None
        and session.action == "new"
        and bool(session.private_key_temp)
        and bool(session.address)
    )


def _session_json(session: TxSession) -> dict:
    data = session.model_dump(mode="json", exclude={"payload"}, exclude_none=True)
    data["payload"] = session.payload
    return data


class SessionBroker:
    """Owns the session stores and the HTTP server lifecycle.

    Constructed once per process and shared with the resolver and tools.
    """

    def __init__(
        self,
        config: SignerConfig,
        keystore: Keystore,
        registry: ActiveWalletRegistry,
        balances: BalanceChecker,
        clock: Clock = now_ms,
    ) -> None:
        self.config = config
        self.keystore = keystore
        self.registry = registry
        self.balances = balances
        self.sessions = TxSessionStore(ttl_ms=config.broker.session_ttl_ms, clock=clock)
        self.wallet_sessions = WalletSessionStore(ttl_ms=config.broker.session_ttl_ms, clock=clock)
        self.app = create_app(self)
        self._port: int | None = None
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None
        self._start_lock = asyncio.Lock()

    @property
    def port(self) -> int | None:
        return self._port

    @property
    def base_url(self) -> str:
        if self._port is None:
            raise SignerError("Session broker is not running")
        return f"http://localhost:{self._port}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> int:
        """Start serving and return the port. Idempotent."""
        async with self._start_lock:
            if self._port is not None:
                return self._port

            cfg = self.config.broker
            port = find_free_port(cfg.host, cfg.port_range_start, cfg.port_range_end)
            server = uvicorn.Server(
                uvicorn.Config(
                    self.app,
                    host=cfg.host,
                    port=port,
                    log_level="warning",
                    lifespan="off",
                )
            )
            task = asyncio.create_task(server.serve())
            while not server.started:
                if task.done():
                    raise SignerError(f"Session broker failed to start on port {port}")
                await asyncio.sleep(0.01)

            self._server = server
            self._task = task
            self._port = port
            logger.info(f"Session broker listening on http://{cfg.host}:{port}")
            return port

    async def stop(self) -> None:
        if self._server is None or self._task is None:
            return
        self._server.should_exit = True
        await self._task
        logger.info(f"Session broker on port {self._port} stopped")
        self._server = None
        self._task = None
        self._port = None

    async def serve_forever(self) -> None:
        """Start (if needed) and wait until the server exits."""
        await self.start()
        if self._task is not None:
            await self._task

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    async def wallet_page_url(self, action: WalletAction, token: str) -> str:
        """URL of a browser wallet page; starts the broker on demand."""
        await self.start()
        api = quote(self.base_url, safe="")
        return f"{self.base_url}/wallet/{action}?token={token}&api={api}"

    async def signer_url(self, token: str, app_url: str | None = None) -> str:
        """Deep link into the web app's signing page for a signing session."""
        await self.start()
        app_base = (app_url or self.config.app_url).rstrip("/")
        return f"{app_base}/sign?session={token}&api={quote(self.base_url, safe='')}"


def create_app(broker: SessionBroker) -> FastAPI:
    """Build the FastAPI application over *broker*'s stores."""
    app = FastAPI(title="printr signing broker", docs_url=None, redoc_url=None)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    sessions = broker.sessions
    wallet_sessions = broker.wallet_sessions

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @app.get("/health")
    async def health():
        return {"ok": True}

    # ------------------------------------------------------------------
    # Signing sessions
    # ------------------------------------------------------------------

    @app.post("/sessions")
    async def create_session(request: Request):
        body = await _parse_body(request, CreateSessionInput)
        if body is None:
            return _error("Invalid request body", 400)
        session = sessions.create(**dict(body))
        logger.info(f"Signing session {session.token[:8]} created for token {session.token_id}")
        return JSONResponse(
            {"token": session.token, "expires_at": session.expires_at},
            status_code=201,
        )

    @app.get("/sessions/{token}")
    async def read_session(token: str):
        session = sessions.lookup(token)
        if session is Failure.NOT_FOUND:
            return _error("Session not found", 404)
        if session is Failure.EXPIRED:
            return _error("Session expired", 410)
        return _session_json(session)

    @app.put("/sessions/{token}/result")
    async def record_result(token: str, request: Request):
        result = await _parse_body(request, TxResult)
        if result is None:
            return _error("Invalid request body", 400)
        if not sessions.set_result(token, result):
            return _error("Session not found or expired", 404)
        logger.info(f"Signing session {token[:8]} result: {result.status}")
        return {"ok": True}

    # ------------------------------------------------------------------
    # Wallet sessions (read, used by browser pages)
    # ------------------------------------------------------------------

    @app.get("/wallet/sessions/{token}")
    async def read_wallet_session(token: str):
        session = wallet_sessions.get(token)
        if session is None:
            return _error("Session not found or expired", 404)
        entry = None
        if session.wallet_id:
            entry = await asyncio.to_thread(broker.keystore.get, session.wallet_id)
        data = {
            "token": session.token,
            "action": session.action,
            "chain": session.chain,
            "address": session.address,
            "privateKeyTemp": session.private_key_temp,
            "label": entry.label if entry else None,
        }
        return {k: v for k, v in data.items() if v is not None}

    # ------------------------------------------------------------------
    # Unlock a stored wallet
    # ------------------------------------------------------------------

    @app.get("/wallet/unlock", response_class=HTMLResponse)
    async def unlock_form(token: str = Query("")):
        session = wallet_sessions.get(token)
        if session is None or session.action != "unlock" or not session.wallet_id:
            return HTMLResponse(pages.not_found_page("Session not found"), status_code=404)
        entry = await asyncio.to_thread(broker.keystore.get, session.wallet_id)
        if entry is None:
            return HTMLResponse(pages.not_found_page("Wallet not found"), status_code=404)
        return HTMLResponse(pages.unlock_page(token, entry.label, entry.address))

    @app.post("/wallet/unlock/{token}")
    async def unlock(token: str, request: Request):
        session = wallet_sessions.get(token)
        if session is None or session.action != "unlock" or not session.wallet_id:
            return _error("Session not found or expired", 404)
        entry = await asyncio.to_thread(broker.keystore.get, session.wallet_id)
        if entry is None:
            return _error("Wallet not found in keystore", 404)
        body = await _parse_body(request, UnlockBody)
        if body is None:
            return _error("Invalid request body", 400)

        private_key = await asyncio.to_thread(decrypt_key, entry, body.password)
        if isinstance(private_key, Failure):
            logger.info(f"Unlock of wallet {entry.id} failed: wrong password")
            return {"ok": False, "error": "Incorrect password."}

        broker.registry.set(
            chain_family(entry.chain),
            ActiveWallet(private_key=private_key, address=entry.address),
        )
        wallet_sessions.set_result(
            token, WalletSessionResult(status="success", address=entry.address)
        )
        return {"ok": True}

    # ------------------------------------------------------------------
    # Provide a raw key (optionally save it)
    # ------------------------------------------------------------------

    @app.get("/wallet/provide", response_class=HTMLResponse)
    async def provide_form(token: str = Query("")):
        session = wallet_sessions.get(token)
        if session is None or session.action != "provide":
            return HTMLResponse(pages.not_found_page("Session not found"), status_code=404)
        return HTMLResponse(pages.provide_page(token))

    @app.post("/wallet/provide/{token}")
    async def provide(token: str, request: Request):
        session = wallet_sessions.get(token)
        if session is None or session.action != "provide":
            return _error("Session not found or expired", 404)
        body = await _parse_body(request, ProvideBody)
        if body is None:
            return _error("Invalid request body", 400)

        family = chain_family(session.chain)
        address = derive_address(body.private_key, family)
        if isinstance(address, Failure):
            return {"ok": False, "error": "Invalid private key format."}

        if family == "evm":
            ctx = EvmTxContext(
                caip10_to=f"{session.chain}:{address}", gas_limit=PROVIDE_CHECK_GAS_LIMIT
            )
        else:
            ctx = SvmTxContext()
        info = await broker.balances.check(address, family, ctx)

        if body.save and body.label and body.password:
            entry = await asyncio.to_thread(
                new_wallet_entry, body.label, session.chain, address, body.private_key, body.password
            )
            await asyncio.to_thread(broker.keystore.add, entry)

        broker.registry.set(family, ActiveWallet(private_key=body.private_key, address=address))
        wallet_sessions.set_result(token, WalletSessionResult(status="success", address=address))

        if isinstance(info, Failure):
            return {"ok": True, "insufficient_funds": False}
        return {
            "ok": True,
            "insufficient_funds": not info.sufficient,
            "balance": info.balance_formatted,
            "required": info.required_formatted,
            "symbol": info.symbol,
        }

    # ------------------------------------------------------------------
    # New wallet: show the generated key once, persist on confirmation
    # ------------------------------------------------------------------

    @app.get("/wallet/new", response_class=HTMLResponse)
    async def new_wallet_form(token: str = Query("")):
        session = wallet_sessions.get(token)
        if not _is_new_session(session):
            return HTMLResponse(pages.not_found_page("Session not found"), status_code=404)
        return HTMLResponse(
            pages.new_wallet_page(token, session.address, session.private_key_temp)
        )

    @app.post("/wallet/new/{token}/confirm")
    async def confirm_new_wallet(token: str, request: Request):
        session = wallet_sessions.get(token)
        if not _is_new_session(session):
            return _error("Session not found or expired", 404)
        body = await _parse_body(request, ConfirmBody)
        if body is None:
            return _error("Invalid request body", 400)
        if not body.confirmed:
            return {"ok": False, "error": "Backup not confirmed."}
        if not body.label or not body.password:
            return {"ok": False, "error": "Label and password are required."}

        entry = await asyncio.to_thread(
            new_wallet_entry,
            body.label,
            session.chain,
            session.address,
            session.private_key_temp,
            body.password,
        )
        await asyncio.to_thread(broker.keystore.add, entry)

        broker.registry.set(
            chain_family(session.chain),
            ActiveWallet(private_key=session.private_key_temp, address=session.address),
        )
        wallet_sessions.set_result(
            token, WalletSessionResult(status="success", address=session.address)
        )
        return {"ok": True}

    return app
