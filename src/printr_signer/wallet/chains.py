"""Chain definitions for supported networks, keyed by CAIP-2 id."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

ChainFamily = Literal["evm", "svm"]

DEFAULT_SVM_RPC = "https://api.mainnet-beta.solana.com"
SOLANA_MAINNET = "solana:5eykt4UsFv8P8NJdTREpY1vzqKqZKvdp"


@dataclass(frozen=True)
class Chain:
    """A network the broker can check balances on."""

    caip2: str
    name: str
    symbol: str
    decimals: int
    default_rpc: Optional[str] = None

    @property
    def family(self) -> ChainFamily:
        return chain_family(self.caip2)


CHAINS: dict[str, Chain] = {
    "eip155:1": Chain("eip155:1", "Ethereum", "ETH", 18, "https://cloudflare-eth.com"),
    "eip155:56": Chain("eip155:56", "BNB", "BNB", 18, "https://bsc-dataseed.binance.org"),
    "eip155:130": Chain("eip155:130", "Unichain", "ETH", 18, "https://mainnet.unichain.org"),
    "eip155:143": Chain("eip155:143", "Monad", "MON", 18, "https://testnet-rpc.monad.xyz"),
    "eip155:999": Chain("eip155:999", "HyperEVM", "HYPE", 18, "https://rpc.hyperliquid-evm.xyz/evm"),
    "eip155:5000": Chain("eip155:5000", "Mantle", "MNT", 18, "https://rpc.mantle.xyz"),
    "eip155:6342": Chain("eip155:6342", "MegaETH", "ETH", 18, "https://carrot.megaeth.com/rpc"),
    "eip155:8453": Chain("eip155:8453", "Base", "ETH", 18, "https://mainnet.base.org"),
    # No stable public endpoint
    "eip155:9745": Chain("eip155:9745", "Plasma", "XPL", 18),
    "eip155:42161": Chain("eip155:42161", "Arbitrum", "ETH", 18, "https://arb1.arbitrum.io/rpc"),
    "eip155:43114": Chain("eip155:43114", "Avalanche", "AVAX", 18, "https://api.avax.network/ext/bc/C/rpc"),
    SOLANA_MAINNET: Chain(SOLANA_MAINNET, "Solana", "SOL", 9, DEFAULT_SVM_RPC),
}


def get_chain(caip2: str) -> Chain | None:
    """Get a chain by CAIP-2 id, or ``None`` if it is not in the table."""
    return CHAINS.get(caip2)


def list_chain_ids() -> list[str]:
    """Return the CAIP-2 ids of all known chains."""
    return list(CHAINS.keys())


def chain_family(caip2: str) -> ChainFamily:
    """``solana:*`` ids are svm; everything else is treated as evm."""
    return "svm" if caip2.startswith("solana:") else "evm"


def chain_name(caip2: str) -> str:
    chain = get_chain(caip2)
    return chain.name if chain else caip2


def parse_evm_caip10(caip10: str) -> tuple[int, str]:
    """Split ``eip155:8453:0xabc...`` into ``(8453, "0xabc...")``.

    Raises
    ------
    ValueError
        If the string is not a CAIP-10 account id with a positive chain id.
    """
    parts = caip10.split(":")
    if len(parts) < 3:
        raise ValueError(f"Invalid CAIP-10 address: {caip10}")
    try:
        chain_id = int(parts[1])
    except ValueError:
        raise ValueError(f"Invalid chain ID in CAIP-10: {caip10}") from None
    if chain_id <= 0:
        raise ValueError(f"Invalid chain ID in CAIP-10: {caip10}")
    return chain_id, ":".join(parts[2:])


def caip10_to_chain_id(caip10: str) -> str:
    """``eip155:8453:0xabc`` -> ``eip155:8453``."""
    return ":".join(caip10.split(":")[:2])
