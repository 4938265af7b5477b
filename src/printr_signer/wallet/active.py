"""In-memory active wallets, one per chain family. Cleared on process exit."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from printr_signer.wallet.chains import ChainFamily

logger = logging.getLogger("printr_signer.wallet.active")


@dataclass(frozen=True)
class ActiveWallet:
    private_key: str
    address: str

    def __repr__(self) -> str:
        return f"ActiveWallet(address={self.address!r})"


class ActiveWalletRegistry:
    """The currently unlocked key for each chain family.

    Holds live plaintext keys for the rest of the process lifetime; any
    later signing call in-process may use them without re-authenticating.
    """

    def __init__(self) -> None:
        self._wallets: dict[str, ActiveWallet] = {}

    def get(self, family: ChainFamily) -> ActiveWallet | None:
        return self._wallets.get(family)

    def set(self, family: ChainFamily, wallet: ActiveWallet) -> None:
        self._wallets[family] = wallet
        logger.info(f"Active {family} wallet set to {wallet.address}")

    def clear(self, family: ChainFamily | None = None) -> None:
        if family is None:
            self._wallets.clear()
        else:
            self._wallets.pop(family, None)
