"""Wallet resolution: where does the signing key for this request come from?

Every call returns exactly one of the :data:`WalletResolution` variants:

``Ready``
    A key is usable now and the address can pay the fee.
``BrowserRequired``
    The user has to finish a browser flow (unlock / provide / new); the
    signing tool should be retried afterwards.
``InsufficientFunds``
    A key is usable but the balance check failed the fee threshold.
``Declined``
    The user declined to pick a wallet.
``ResolutionError``
    No usable key and no automatic way to get one.

:meth:`WalletResolver.resolve` never starts a browser flow by itself. Flows
are started explicitly through :meth:`WalletResolver.acquire`, which an
upstream elicitation layer (or the agent, via the wallet tools) calls with
the user's choice.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Literal, Optional, Union

from printr_signer.broker.wallet_sessions import WalletAction, WalletSessionStore
from printr_signer.config import SignerConfig, agent_key_env_var
from printr_signer.errors import Failure
from printr_signer.wallet.active import ActiveWalletRegistry
from printr_signer.wallet.balance import BalanceChecker, TxContext
from printr_signer.wallet.chains import ChainFamily, chain_family, chain_name, get_chain
from printr_signer.wallet.keys import derive_address, generate_keypair
from printr_signer.wallet.keystore import Keystore

logger = logging.getLogger("printr_signer.wallet.resolver")

UrlBuilder = Callable[[WalletAction, str], Awaitable[str]]


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Ready:
    private_key: str = field(repr=False)
    address: str


@dataclass(frozen=True)
class NewWalletInfo:
    address: str
    chain: str
    symbol: str


@dataclass(frozen=True)
class BrowserRequired:
    action: WalletAction
    url: str
    new_wallet: Optional[NewWalletInfo] = None


@dataclass(frozen=True)
class InsufficientFunds:
    address: str
    balance: str
    required: str
    symbol: str
    chain: str


@dataclass(frozen=True)
class Declined:
    pass


@dataclass(frozen=True)
class ResolutionError:
    message: str


WalletResolution = Union[Ready, BrowserRequired, InsufficientFunds, Declined, ResolutionError]


@dataclass(frozen=True)
class WalletChoice:
    """One option an elicitation layer can offer the user."""

    kind: Literal["active", "stored", "provide", "generate"]
    label: str
    wallet_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class WalletResolver:
    """Decides, per signing attempt, whether a key is usable."""

    def __init__(
        self,
        config: SignerConfig,
        registry: ActiveWalletRegistry,
        balances: BalanceChecker,
        keystore: Keystore,
        wallet_sessions: WalletSessionStore,
        url_for: UrlBuilder,
    ) -> None:
        self.config = config
        self.registry = registry
        self.balances = balances
        self.keystore = keystore
        self.wallet_sessions = wallet_sessions
        self._url_for = url_for

    async def resolve(self, caip2: str, ctx: TxContext) -> WalletResolution:
        """Resolve a signing key for *caip2* without user interaction."""
        family = chain_family(caip2)
        name = chain_name(caip2)

        if self.config.agent_mode:
            return await self._resolve_agent_mode(family, name, ctx)

        active = self.registry.get(family)
        if active is None:
            return ResolutionError(
                f"No active {family.upper()} wallet for {name}. Unlock a stored wallet "
                f"(printr_wallet_unlock), import a key (printr_wallet_import), create one "
                f"(printr_wallet_new), or start a browser flow (printr_wallet_browser), "
                f"then retry."
            )
        return await self._check_funds(active.private_key, active.address, family, name, ctx)

    async def _resolve_agent_mode(
        self,
        family: ChainFamily,
        name: str,
        ctx: TxContext,
    ) -> WalletResolution:
        env_var = agent_key_env_var(family)
        key = self.config.agent_key(family)
        if not key:
            return ResolutionError(
                f"No wallet configured. In AGENT_MODE, set {env_var} "
                f"or pass private_key in the tool call."
            )
        address = derive_address(key, family)
        if isinstance(address, Failure):
            return ResolutionError(f"{env_var} is not a valid {family.upper()} private key.")
        return await self._check_funds(key, address, family, name, ctx)

    async def _check_funds(
        self,
        private_key: str,
        address: str,
        family: ChainFamily,
        name: str,
        ctx: TxContext | None,
    ) -> WalletResolution:
        info = await self.balances.check(address, family, ctx)
        if isinstance(info, Failure):
            # Advisory only: proceed when the check is unavailable.
            logger.info(f"Balance check unavailable for {address} ({info.value}); proceeding")
            return Ready(private_key=private_key, address=address)
        if not info.sufficient:
            return InsufficientFunds(
                address=address,
                balance=info.balance_formatted,
                required=info.required_formatted,
                symbol=info.symbol,
                chain=name,
            )
        return Ready(private_key=private_key, address=address)

    # ------------------------------------------------------------------
    # Explicit acquisition
    # ------------------------------------------------------------------

    async def wallet_choices(self, caip2: str) -> list[WalletChoice]:
        """Options for an elicitation prompt, most specific first."""
        choices: list[WalletChoice] = []
        active = self.registry.get(chain_family(caip2))
        if active is not None:
            choices.append(WalletChoice("active", f"Use active wallet - {active.address}"))
        stored = await asyncio.to_thread(self.keystore.list, caip2)
        for entry in stored:
            choices.append(WalletChoice("stored", f"{entry.label} - {entry.address}", entry.id))
        choices.append(WalletChoice("provide", "Provide a key"))
        choices.append(WalletChoice("generate", "Generate new wallet"))
        return choices

    async def acquire(
        self,
        caip2: str,
        choice: WalletChoice | None,
        ctx: TxContext | None = None,
    ) -> WalletResolution:
        """Carry out the user's wallet choice. ``None`` means they declined."""
        if choice is None:
            return Declined()

        family = chain_family(caip2)
        if choice.kind == "active":
            active = self.registry.get(family)
            if active is None:
                return ResolutionError(f"There is no active {family.upper()} wallet.")
            return await self._check_funds(
                active.private_key, active.address, family, chain_name(caip2), ctx
            )
        if choice.kind == "stored":
            return await self._start_unlock(caip2, choice.wallet_id or "")
        if choice.kind == "provide":
            session = self.wallet_sessions.create(action="provide", chain=caip2)
            url = await self._url_for("provide", session.token)
            return BrowserRequired(action="provide", url=url)
        if choice.kind == "generate":
            return await self._start_generate(caip2, family)
        return ResolutionError("Unrecognised wallet choice.")

    async def _start_unlock(self, caip2: str, wallet_id: str) -> WalletResolution:
        entry = await asyncio.to_thread(self.keystore.get, wallet_id)
        if entry is None:
            return ResolutionError(f"Wallet {wallet_id} not found in keystore.")
        if chain_family(entry.chain) != chain_family(caip2):
            return ResolutionError(
                f"Wallet {wallet_id} is a {chain_family(entry.chain).upper()} wallet "
                f"and cannot sign for {chain_name(caip2)}."
            )
        session = self.wallet_sessions.create(
            action="unlock", chain=caip2, wallet_id=entry.id, address=entry.address
        )
        url = await self._url_for("unlock", session.token)
        return BrowserRequired(action="unlock", url=url)

    async def _start_generate(self, caip2: str, family: ChainFamily) -> WalletResolution:
        private_key, address = generate_keypair(family)
        session = self.wallet_sessions.create(
            action="new", chain=caip2, address=address, private_key_temp=private_key
        )
        url = await self._url_for("new", session.token)
        chain = get_chain(caip2)
        return BrowserRequired(
            action="new",
            url=url,
            new_wallet=NewWalletInfo(
                address=address,
                chain=chain.name if chain else caip2,
                symbol=chain.symbol if chain else "tokens",
            ),
        )


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------

_BROWSER_PROMPTS = {
    "unlock": "Open this URL and enter the wallet password to unlock it",
    "provide": "Open this URL and paste the private key to use",
    "new": "Open this URL to back up the newly generated key",
}


def describe_resolution(resolution: WalletResolution) -> dict:
    """Structured, human-readable explanation of a resolution outcome.

    Never includes the private key.
    """
    if isinstance(resolution, Ready):
        return {
            "kind": "ready",
            "address": resolution.address,
            "message": f"Wallet {resolution.address} is ready to sign.",
        }
    if isinstance(resolution, BrowserRequired):
        out = {
            "kind": "browser_required",
            "action": resolution.action,
            "url": resolution.url,
            "message": (
                f"{_BROWSER_PROMPTS[resolution.action]}: {resolution.url} . "
                "Then retry the signing tool."
            ),
        }
        if resolution.new_wallet is not None:
            nw = resolution.new_wallet
            out["new_wallet"] = {"address": nw.address, "chain": nw.chain, "symbol": nw.symbol}
            out["message"] += f" Fund {nw.address} with {nw.symbol} on {nw.chain} before signing."
        return out
    if isinstance(resolution, InsufficientFunds):
        return {
            "kind": Failure.INSUFFICIENT_FUNDS.value,
            "address": resolution.address,
            "balance": resolution.balance,
            "required": resolution.required,
            "symbol": resolution.symbol,
            "chain": resolution.chain,
            "message": (
                f"Wallet {resolution.address} has {resolution.balance} {resolution.symbol} "
                f"on {resolution.chain} but needs {resolution.required} {resolution.symbol} "
                "for fees. Fund the wallet and retry."
            ),
        }
    if isinstance(resolution, Declined):
        return {"kind": Failure.DECLINED.value, "message": "Wallet selection was declined. Nothing was signed."}
    if isinstance(resolution, ResolutionError):
        return {"kind": "error", "message": resolution.message}
    raise TypeError(f"Unhandled wallet resolution: {resolution!r}")
