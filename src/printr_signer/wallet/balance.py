"""Funds checks: can this address pay the fee for the pending transaction?

Checks are advisory. Every RPC or parse error is reported as
``Failure.FETCH_FAILED`` and callers decide what to do (the resolver treats
an unavailable check as sufficient).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional, Union

from solana.rpc.async_api import AsyncClient
from solders.pubkey import Pubkey
from web3 import AsyncWeb3

from printr_signer.errors import Failure
from printr_signer.wallet.chains import DEFAULT_SVM_RPC, ChainFamily, get_chain, parse_evm_caip10

logger = logging.getLogger("printr_signer.wallet.balance")

# Minimum lamports required for an SVM transaction fee
MIN_SVM_LAMPORTS = 5_000
SVM_DECIMALS = 9


@dataclass(frozen=True)
class EvmTxContext:
    """Fee-relevant fields of an EVM payload."""

    caip10_to: str
    gas_limit: int
    rpc_url: Optional[str] = None


@dataclass(frozen=True)
class SvmTxContext:
    rpc_url: Optional[str] = None


TxContext = Union[EvmTxContext, SvmTxContext]


@dataclass(frozen=True)
class BalanceInfo:
    """Result of a successful funds check. Amounts are in atomic units."""

    address: str
    balance: int
    required: int
    symbol: str
    decimals: int
    sufficient: bool
    balance_formatted: str
    required_formatted: str


def is_sufficient(balance: int, required: int) -> bool:
    return balance >= required


def format_units(value: int, decimals: int) -> str:
    """``format_units(1500000000000000000, 18) -> "1.5"``"""
    text = format(Decimal(value).scaleb(-decimals).normalize(), "f")
    return text


class BalanceChecker:
    """Queries native balances over JSON-RPC for both chain families."""

    def __init__(
        self,
        evm_rpc_urls: Mapping[str, str] | None = None,
        svm_rpc_url: str | None = None,
    ) -> None:
        # CAIP-2 id -> RPC endpoint, consulted before the chain default
        self.evm_rpc_urls = dict(evm_rpc_urls or {})
        self.svm_rpc_url = svm_rpc_url

    # ------------------------------------------------------------------
    # RPC calls
    # ------------------------------------------------------------------

    async def _fetch_evm(self, rpc_url: str, address: str) -> tuple[int, int]:
        """Return ``(balance_wei, gas_price_wei)``."""
        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        try:
            checksum = AsyncWeb3.to_checksum_address(address)
            balance, gas_price = await asyncio.gather(
                w3.eth.get_balance(checksum),
                w3.eth.gas_price,
            )
            return int(balance), int(gas_price)
        finally:
            await w3.provider.disconnect()

    async def _fetch_svm(self, rpc_url: str, address: str) -> int:
        """Return the balance in lamports."""
        async with AsyncClient(rpc_url) as client:
            resp = await client.get_balance(Pubkey.from_string(address))
            return int(resp.value)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def check_evm(
        self,
        address: str,
        chain_id: int,
        gas_limit: int,
        rpc_url: str | None = None,
    ) -> BalanceInfo | Failure:
        """Balance must cover ``gas_price * gas_limit``."""
        caip2 = f"eip155:{chain_id}"
        chain = get_chain(caip2)
        rpc = rpc_url or self.evm_rpc_urls.get(caip2) or (chain.default_rpc if chain else None)
        if not rpc:
            return Failure.NO_RPC

        try:
            balance, gas_price = await self._fetch_evm(rpc, address)
        except Exception as e:
            logger.warning(f"Balance check failed for {address} on {caip2}: {e}")
            return Failure.FETCH_FAILED

        decimals = chain.decimals if chain else 18
        symbol = chain.symbol if chain else "ETH"
        required = gas_price * int(gas_limit)
        return BalanceInfo(
            address=address,
            balance=balance,
            required=required,
            symbol=symbol,
            decimals=decimals,
            sufficient=is_sufficient(balance, required),
            balance_formatted=format_units(balance, decimals),
            required_formatted=f"~{format_units(required, decimals)}",
        )

    async def check_svm(self, address: str, rpc_url: str | None = None) -> BalanceInfo | Failure:
        """Balance must cover a fixed minimal fee, whatever the instructions."""
        rpc = rpc_url or self.svm_rpc_url or DEFAULT_SVM_RPC
        try:
            balance = await self._fetch_svm(rpc, address)
        except Exception as e:
            logger.warning(f"Balance check failed for {address} on svm: {e}")
            return Failure.FETCH_FAILED

        return BalanceInfo(
            address=address,
            balance=balance,
            required=MIN_SVM_LAMPORTS,
            symbol="SOL",
            decimals=SVM_DECIMALS,
            sufficient=is_sufficient(balance, MIN_SVM_LAMPORTS),
            balance_formatted=format_units(balance, SVM_DECIMALS),
            required_formatted=format_units(MIN_SVM_LAMPORTS, SVM_DECIMALS),
        )

    async def check(
        self,
        address: str,
        family: ChainFamily,
        ctx: TxContext | None = None,
    ) -> BalanceInfo | Failure:
        """Dispatch on chain family.

        An EVM check needs an :class:`EvmTxContext`; without one (or with a
        malformed target) the check is unavailable.
        """
        if family == "evm":
            if not isinstance(ctx, EvmTxContext):
                return Failure.NO_RPC
            try:
                chain_id, _ = parse_evm_caip10(ctx.caip10_to)
            except ValueError as e:
                logger.warning(f"Cannot check balance: {e}")
                return Failure.FETCH_FAILED
            return await self.check_evm(address, chain_id, ctx.gas_limit, ctx.rpc_url)
        rpc = ctx.rpc_url if isinstance(ctx, SvmTxContext) else None
        return await self.check_svm(address, rpc)
