import base64

import pytest
from pydantic import ValidationError
from solders.pubkey import Pubkey

from printr_signer.errors import SubmitError
from printr_signer.wallet import submit
from printr_signer.wallet.submit import EvmPayload, SvmPayload, build_instructions

SYSTEM_PROGRAM = "11111111111111111111111111111111"


def _svm_payload():
    data = {
        "ixs": [
            {
                "program_id": SYSTEM_PROGRAM,
                "accounts": [
                    {"pubkey": SYSTEM_PROGRAM, "is_signer": False, "is_writable": True},
                ],
                "data": base64.b64encode(b"\x02\x00\x00\x00").decode(),
            }
        ],
        "mint_address": "solana:5eykt4UsFv8P8NJdTREpY1vzqKqZKvdp:Mint",
    }
    return SvmPayload.model_validate(data)


def test_broadcast_options_build():
    opts = submit.TxOpts(skip_preflight=False, preflight_commitment=submit.Confirmed)
    assert opts.skip_preflight is False


def test_build_instructions():
    payload = _svm_payload()
    [ix] = build_instructions(payload)
    assert ix.program_id == Pubkey.from_string(SYSTEM_PROGRAM)
    assert bytes(ix.data) == b"\x02\x00\x00\x00"
    assert ix.accounts[0].is_writable is True
    assert ix.accounts[0].is_signer is False


def test_svm_payload_lookup_table_is_optional():
    payload = _svm_payload()
    assert payload.lookup_table is None


def test_evm_payload_requires_gas_limit():
    with pytest.raises(ValidationError):
        EvmPayload.model_validate({"to": "eip155:1:0x1", "calldata": "0x", "value": "0"})


async def test_svm_bad_key_is_submit_error():
    payload = _svm_payload()
    with pytest.raises(SubmitError):
        await submit.sign_and_submit_svm(payload, "not-a-key", "http://localhost:1")


async def test_evm_bad_target_is_submit_error():
    payload = EvmPayload(to="eip155:abc", calldata="0x", value="0", gas_limit=21_000)
    with pytest.raises(SubmitError):
        await submit.sign_and_submit_evm(payload, "0x" + "11" * 32, "http://localhost:1")
