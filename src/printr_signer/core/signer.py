"""Signer - wires the keystore, broker, resolver and tools together."""

from __future__ import annotations

import logging
from typing import Mapping

from printr_signer.broker.server import SessionBroker
from printr_signer.config import SignerConfig, load_config
from printr_signer.tools.registry import ToolRegistry
from printr_signer.tools.signing_tools import SigningTools
from printr_signer.tools.wallet_tools import WalletTools
from printr_signer.wallet.active import ActiveWalletRegistry
from printr_signer.wallet.balance import BalanceChecker
from printr_signer.wallet.keystore import Keystore
from printr_signer.wallet.resolver import WalletResolver

logger = logging.getLogger("printr_signer.signer")


class Signer:
    """One signing process.

    Every piece of state (keystore handle, active wallets, session stores,
    broker) is owned here and passed by reference to the parts that use it.
    Nothing is shared between two ``Signer`` instances except the keystore
    file lock for a common path.
    """

    def __init__(self, config: SignerConfig):
        self.config = config
        self.keystore = Keystore(config.wallet_store)
        self.registry = ActiveWalletRegistry()
        self.balances = BalanceChecker(config.evm_rpc_urls, config.svm_rpc_url)
        self.broker = SessionBroker(config, self.keystore, self.registry, self.balances)
        self.resolver = WalletResolver(
            config,
            self.registry,
            self.balances,
            self.keystore,
            self.broker.wallet_sessions,
            self.broker.wallet_page_url,
        )

        self.wallet_tools = WalletTools(self.keystore, self.registry, self.resolver)
        self.signing_tools = SigningTools(config, self.broker, self.resolver)
        self.tools = ToolRegistry()
        self.tools.register_object(self.wallet_tools)
        self.tools.register_object(self.signing_tools)

        mode = "agent" if config.agent_mode else "interactive"
        logger.info(f"Signer ready ({mode} mode, keystore {self.keystore.path})")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Signer:
        """Build a signer from environment variables."""
        return cls(load_config(environ))

    async def call_tool(self, name: str, **kwargs) -> str:
        return await self.tools.call(name, **kwargs)

    async def shutdown(self) -> None:
        await self.broker.stop()
        self.registry.clear()
