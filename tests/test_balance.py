import pytest

from printr_signer.errors import Failure
from printr_signer.wallet.balance import (
    MIN_SVM_LAMPORTS,
    BalanceChecker,
    EvmTxContext,
    SvmTxContext,
    format_units,
    is_sufficient,
)

from tests.conftest import EVM_ADDRESS

SVM_ADDRESS = "11111111111111111111111111111111"


def test_is_sufficient_boundary():
    assert is_sufficient(100, 100)
    assert is_sufficient(101, 100)
    assert not is_sufficient(99, 100)


@pytest.mark.parametrize(
    "value,decimals,expected",
    [
        (1_500_000_000_000_000_000, 18, "1.5"),
        (0, 18, "0"),
        (5000, 9, "0.000005"),
        (10**9, 9, "1"),
    ],
)
def test_format_units(value, decimals, expected):
    assert format_units(value, decimals) == expected


async def test_evm_equal_balance_is_sufficient(balances):
    balances.evm = (300_000 * 10**9, 10**9)
    info = await balances.check_evm(EVM_ADDRESS, 8453, 300_000)
    assert info.required == 300_000 * 10**9
    assert info.sufficient is True
    assert info.symbol == "ETH"
    assert info.required_formatted.startswith("~")


async def test_evm_one_wei_short(balances):
    balances.evm = (300_000 * 10**9 - 1, 10**9)
    info = await balances.check_evm(EVM_ADDRESS, 8453, 300_000)
    assert info.sufficient is False


async def test_evm_chain_without_rpc():
    info = await BalanceChecker().check_evm(EVM_ADDRESS, 9745, 21_000)
    assert info is Failure.NO_RPC


async def test_evm_rpc_override_is_per_chain(balances):
    balances.evm_rpc_urls = {"eip155:9745": "http://localhost:8545"}
    seen = []
    fetch = balances._fetch_evm

    async def _record(rpc_url, address):
        seen.append(rpc_url)
        return await fetch(rpc_url, address)

    balances._fetch_evm = _record
    info = await balances.check_evm(EVM_ADDRESS, 9745, 21_000)
    assert info.symbol == "XPL"
    await balances.check_evm(EVM_ADDRESS, 8453, 21_000)
    assert seen[0] == "http://localhost:8545"
    assert seen[1] != "http://localhost:8545"


async def test_evm_rpc_override_for_other_chain_is_ignored():
    checker = BalanceChecker(evm_rpc_urls={"eip155:1": "http://localhost:8545"})
    info = await checker.check_evm(EVM_ADDRESS, 9745, 21_000)
    assert info is Failure.NO_RPC


async def test_evm_fetch_failure(balances):
    balances.evm = ConnectionError("boom")
    info = await balances.check_evm(EVM_ADDRESS, 8453, 21_000)
    assert info is Failure.FETCH_FAILED


async def test_svm_floor(balances):
    balances.svm = MIN_SVM_LAMPORTS
    info = await balances.check_svm(SVM_ADDRESS)
    assert info.sufficient is True
    assert info.required == 5000
    assert info.symbol == "SOL"

    balances.svm = MIN_SVM_LAMPORTS - 1
    info = await balances.check_svm(SVM_ADDRESS)
    assert info.sufficient is False


async def test_svm_fetch_failure(balances):
    balances.svm = TimeoutError()
    assert await balances.check_svm(SVM_ADDRESS) is Failure.FETCH_FAILED


async def test_check_dispatches_evm(balances):
    ctx = EvmTxContext(caip10_to=f"eip155:8453:{EVM_ADDRESS}", gas_limit=21_000)
    info = await balances.check(EVM_ADDRESS, "evm", ctx)
    assert info.required == 21_000 * 10**9


async def test_check_evm_without_context(balances):
    assert await balances.check(EVM_ADDRESS, "evm", None) is Failure.NO_RPC


async def test_check_evm_bad_target(balances):
    ctx = EvmTxContext(caip10_to="not-a-caip10", gas_limit=21_000)
    assert await balances.check(EVM_ADDRESS, "evm", ctx) is Failure.FETCH_FAILED


async def test_check_dispatches_svm(balances):
    info = await balances.check(SVM_ADDRESS, "svm", SvmTxContext())
    assert info.balance == 10**9
