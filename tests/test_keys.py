import base58
import pytest

from printr_signer.errors import Failure
from printr_signer.wallet.chains import (
    CHAINS,
    SOLANA_MAINNET,
    caip10_to_chain_id,
    chain_family,
    get_chain,
    parse_evm_caip10,
)
from printr_signer.wallet.keys import derive_address, generate_keypair, normalise_private_key

from tests.conftest import EVM_ADDRESS, EVM_KEY


def test_normalise_private_key():
    assert normalise_private_key("abcd") == "0xabcd"
    assert normalise_private_key(" 0xabcd ") == "0xabcd"


def test_derive_evm_with_and_without_prefix():
    assert derive_address(EVM_KEY, "evm") == EVM_ADDRESS
    assert derive_address(EVM_KEY[2:], "evm") == EVM_ADDRESS


def test_generated_keys_derive_back():
    for family in ("evm", "svm"):
        private_key, address = generate_keypair(family)
        assert derive_address(private_key, family) == address


def test_svm_key_is_64_byte_base58():
    private_key, _ = generate_keypair("svm")
    assert len(base58.b58decode(private_key)) == 64


@pytest.mark.parametrize(
    "key,family",
    [
        ("not a key", "evm"),
        ("0x1234", "evm"),
        ("not-base58-0OIl", "svm"),
        (EVM_KEY, "svm"),
    ],
)
def test_invalid_keys(key, family):
    assert derive_address(key, family) is Failure.INVALID_KEY_FORMAT


def test_chain_table():
    assert len(CHAINS) == 12
    assert get_chain("eip155:8453").name == "Base"
    assert get_chain("eip155:9745").default_rpc is None
    assert get_chain("eip155:424242") is None
    assert get_chain(SOLANA_MAINNET).family == "svm"


def test_chain_family():
    assert chain_family("solana:abc") == "svm"
    assert chain_family("eip155:1") == "evm"


def test_parse_evm_caip10():
    assert parse_evm_caip10("eip155:8453:0xabc") == (8453, "0xabc")
    assert caip10_to_chain_id("eip155:8453:0xabc") == "eip155:8453"


@pytest.mark.parametrize("bad", ["eip155:8453", "eip155:x:0xabc", "eip155:0:0xabc", ""])
def test_parse_evm_caip10_rejects(bad):
    with pytest.raises(ValueError):
        parse_evm_caip10(bad)
