import pytest

from printr_signer.config import SignerConfig
from printr_signer.wallet import keystore as keystore_module
from printr_signer.wallet.active import ActiveWalletRegistry
from printr_signer.wallet.balance import BalanceChecker
from printr_signer.wallet.keystore import KdfParams, Keystore

# Well-known throwaway keys (never fund these)
EVM_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
EVM_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"


class FakeClock:
    """Millisecond clock the tests can move by hand."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture(autouse=True)
def cheap_scrypt(monkeypatch):
    """Keep most keystore tests fast; one test opts back into the real cost."""
    monkeypatch.setattr(keystore_module, "KDF_PARAMS", KdfParams(n=2**14, r=8, p=1, dk_len=32))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "printr" / "wallets.json"


@pytest.fixture
def keystore(store_path):
    return Keystore(store_path)


@pytest.fixture
def config(store_path):
    return SignerConfig(wallet_store=store_path)


@pytest.fixture
def registry():
    return ActiveWalletRegistry()


@pytest.fixture
def balances(monkeypatch):
    """A checker whose RPC calls are answered from ``checker.evm`` / ``checker.svm``."""
    checker = BalanceChecker()
    checker.evm = (10**18, 10**9)  # (balance wei, gas price wei)
    checker.svm = 10**9  # lamports

    async def fake_evm(rpc_url, address):
        if isinstance(checker.evm, Exception):
            raise checker.evm
        return checker.evm

    async def fake_svm(rpc_url, address):
        if isinstance(checker.svm, Exception):
            raise checker.svm
        return checker.svm

    monkeypatch.setattr(checker, "_fetch_evm", fake_evm)
    monkeypatch.setattr(checker, "_fetch_svm", fake_svm)
    return checker
