import json

import pytest

from printr_signer.config import SignerConfig
from printr_signer.core.signer import Signer
from printr_signer.errors import SubmitError
from printr_signer.tools import signing_tools
from printr_signer.tools.registry import ToolRegistry, tool
from printr_signer.wallet.active import ActiveWallet
from printr_signer.wallet.chains import SOLANA_MAINNET
from printr_signer.wallet.keys import generate_keypair
from printr_signer.wallet.submit import EvmSubmitResult, SvmSubmitResult

from tests.conftest import EVM_ADDRESS, EVM_KEY

BASE = "eip155:8453"
EVM_PAYLOAD = {
    "to": "eip155:8453:0x0000000000000000000000000000000000000001",
    "calldata": "0xdeadbeef",
    "value": "0",
    "gas_limit": 300_000,
}
SVM_PAYLOAD = {
    "ixs": [
        {
            "program_id": "11111111111111111111111111111111",
            "accounts": [],
            "data": "",
        }
    ],
    "mint_address": "solana:5eykt4UsFv8P8NJdTREpY1vzqKqZKvdp:Mint",
}


def _patch_balances(monkeypatch, signer, evm=(10**18, 10**9), svm=10**9):
    async def fake_evm(rpc_url, address):
        return evm

    async def fake_svm(rpc_url, address):
        return svm

    monkeypatch.setattr(signer.balances, "_fetch_evm", fake_evm)
    monkeypatch.setattr(signer.balances, "_fetch_svm", fake_svm)


@pytest.fixture
def make_signer(monkeypatch, store_path):
    def _make(**overrides):
        signer = Signer(SignerConfig(wallet_store=store_path, **overrides))
        _patch_balances(monkeypatch, signer)
        return signer

    return _make


@pytest.fixture
def signer(make_signer):
    return make_signer()


@pytest.fixture
def submitted(monkeypatch):
    """Capture calls to the submitters instead of touching a chain."""
    calls = []

    async def fake_evm(payload, private_key, rpc_url):
        calls.append(("evm", payload, private_key, rpc_url))
        return EvmSubmitResult(tx_hash="0xhash", block_number="123", status="success")

    async def fake_svm(payload, private_key, rpc_url):
        calls.append(("svm", payload, private_key, rpc_url))
        return SvmSubmitResult(signature="Sig", slot=42, confirmation_status="confirmed")

    monkeypatch.setattr(signing_tools, "sign_and_submit_evm", fake_evm)
    monkeypatch.setattr(signing_tools, "sign_and_submit_svm", fake_svm)
    return calls


async def call(signer, name, **kwargs):
    return json.loads(await signer.call_tool(name, **kwargs))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def test_all_tools_registered(signer):
    assert sorted(signer.tools.list_names()) == sorted(
        [
            "printr_wallet_new",
            "printr_wallet_import",
            "printr_wallet_list",
            "printr_wallet_unlock",
            "printr_wallet_remove",
            "printr_wallet_browser",
            "printr_wallet_choices",
            "printr_open_web_signer",
            "printr_get_signing_result",
            "printr_sign_and_submit_evm",
            "printr_sign_and_submit_svm",
        ]
    )


def test_tool_definitions(signer):
    definition = signer.tools.get_tool("printr_wallet_unlock").to_definition()
    assert definition["name"] == "printr_wallet_unlock"
    assert definition["input_schema"]["required"] == ["wallet_id", "password"]


def test_registries_are_independent(make_signer):
    a = make_signer()
    b = make_signer()
    assert a.tools.get_tool("printr_wallet_list").func.__self__ is a.wallet_tools
    assert b.tools.get_tool("printr_wallet_list").func.__self__ is b.wallet_tools


class _Example:
    @tool("echo", "Echo a value")
    def echo(self, text: str, times: int = 1) -> str:
        return text * times

    @tool("boom", "Always fails")
    async def boom(self) -> dict:
        raise RuntimeError("secret internal detail")


async def test_inferred_parameters_and_sync_tools():
    registry = ToolRegistry()
    registry.register_object(_Example())
    schema = registry.get_tool("echo").parameters
    assert schema["properties"] == {"text": {"type": "string"}, "times": {"type": "integer"}}
    assert schema["required"] == ["text"]
    assert await registry.call("echo", text="ab", times=2) == "abab"


async def test_unexpected_errors_do_not_leak():
    registry = ToolRegistry()
    registry.register_object(_Example())
    out = json.loads(await registry.call("boom"))
    assert out["ok"] is False
    assert "secret internal detail" not in out["error"]


async def test_unknown_tool():
    out = json.loads(await ToolRegistry().call("nope"))
    assert out == {"ok": False, "error": "Unknown tool: nope"}


# ---------------------------------------------------------------------------
# Wallet tools
# ---------------------------------------------------------------------------


async def test_wallet_new(signer):
    out = await call(signer, "printr_wallet_new", chain=BASE, label="main", password="pw")
    assert out["ok"] is True
    assert signer.registry.get("evm").address == out["address"]
    [entry] = signer.keystore.list()
    assert entry.id == out["wallet_id"]
    assert "private" not in json.dumps(out).lower()


async def test_wallet_new_requires_label_and_password(signer):
    out = await call(signer, "printr_wallet_new", chain=BASE, label="", password="pw")
    assert out["ok"] is False
    assert signer.keystore.list() == []


async def test_wallet_new_rejects_unknown_chain_format(signer):
    out = await call(signer, "printr_wallet_new", chain="base", label="a", password="b")
    assert out["ok"] is False


async def test_wallet_import_without_saving(signer):
    out = await call(signer, "printr_wallet_import", chain=BASE, private_key=EVM_KEY)
    assert out["ok"] is True
    assert out["address"] == EVM_ADDRESS
    assert out["saved"] is False
    assert signer.registry.get("evm").private_key == EVM_KEY
    assert signer.keystore.list() == []


async def test_wallet_import_and_save(signer):
    out = await call(
        signer, "printr_wallet_import", chain=BASE, private_key=EVM_KEY, label="a", password="b"
    )
    assert out["saved"] is True
    assert signer.keystore.get(out["wallet_id"]).address == EVM_ADDRESS


async def test_wallet_import_invalid_key(signer):
    out = await call(signer, "printr_wallet_import", chain=SOLANA_MAINNET, private_key="0xnope")
    assert out == {"ok": False, "error": "Invalid private key format."}


async def test_wallet_list_and_remove(signer):
    created = await call(signer, "printr_wallet_new", chain=BASE, label="main", password="pw")
    listed = await call(signer, "printr_wallet_list")
    assert [w["id"] for w in listed["wallets"]] == [created["wallet_id"]]
    assert "encryptedKey" not in json.dumps(listed)

    filtered = await call(signer, "printr_wallet_list", chain=SOLANA_MAINNET)
    assert filtered["wallets"] == []

    removed = await call(signer, "printr_wallet_remove", wallet_id=created["wallet_id"])
    assert removed == {"ok": True}
    again = await call(signer, "printr_wallet_remove", wallet_id=created["wallet_id"])
    assert again["ok"] is False


async def test_wallet_unlock(signer):
    created = await call(signer, "printr_wallet_new", chain=BASE, label="main", password="pw")
    signer.registry.clear()

    wrong = await call(signer, "printr_wallet_unlock", wallet_id=created["wallet_id"], password="x")
    assert wrong == {"ok": False, "error": "Incorrect password."}
    assert signer.registry.get("evm") is None

    ok = await call(signer, "printr_wallet_unlock", wallet_id=created["wallet_id"], password="pw")
    assert ok == {"ok": True, "address": created["address"], "chain": BASE}
    assert signer.registry.get("evm").address == created["address"]


async def test_wallet_unlock_unknown(signer):
    out = await call(signer, "printr_wallet_unlock", wallet_id="missing", password="pw")
    assert out["error"] == "Wallet missing not found in keystore."


async def test_wallet_choices(signer):
    out = await call(signer, "printr_wallet_choices", chain=BASE)
    assert [c["kind"] for c in out["choices"]] == ["provide", "generate"]


async def test_wallet_browser_provide(signer):
    try:
        out = await call(signer, "printr_wallet_browser", chain=BASE, action="provide")
        assert out["ok"] is True
        assert out["kind"] == "browser_required"
        assert "/wallet/provide?token=" in out["url"]
    finally:
        await signer.shutdown()


async def test_wallet_browser_unlock_needs_wallet_id(signer):
    out = await call(signer, "printr_wallet_browser", chain=BASE, action="unlock")
    assert out["ok"] is False


async def test_wallet_browser_unknown_action(signer):
    out = await call(signer, "printr_wallet_browser", chain=BASE, action="steal")
    assert out["ok"] is False


# ---------------------------------------------------------------------------
# Web signer
# ---------------------------------------------------------------------------


async def test_open_web_signer_and_result(signer):
    try:
        out = await call(
            signer,
            "printr_open_web_signer",
            chain_type="evm",
            payload={"to": "x"},
            token_id="0xabc",
            app_url="https://app.example",
        )
        assert out["ok"] is True
        assert out["url"].startswith(f"https://app.example/sign?session={out['session_token']}&api=")
        assert out["api_port"] == signer.broker.port

        pending = await call(signer, "printr_get_signing_result", session_token=out["session_token"])
        assert pending["status"] == "pending"

        from printr_signer.broker.sessions import TxResult

        signer.broker.sessions.set_result(out["session_token"], TxResult(status="success", tx_hash="0x1"))
        done = await call(signer, "printr_get_signing_result", session_token=out["session_token"])
        assert done == {"ok": True, "status": "success", "tx_hash": "0x1"}
    finally:
        await signer.shutdown()


async def test_open_web_signer_rejects_bad_chain_type(signer):
    out = await call(signer, "printr_open_web_signer", chain_type="btc", payload={}, token_id="t")
    assert out["ok"] is False
    assert signer.broker.port is None


async def test_get_signing_result_unknown(signer):
    out = await call(signer, "printr_get_signing_result", session_token="nope")
    assert out["ok"] is False


# ---------------------------------------------------------------------------
# Sign and submit
# ---------------------------------------------------------------------------


async def test_sign_evm_with_explicit_key(signer, submitted):
    out = await call(signer, "printr_sign_and_submit_evm", payload=EVM_PAYLOAD, private_key=EVM_KEY)
    assert out["ok"] is True
    assert out["tx_hash"] == "0xhash"
    kind, payload, key, rpc = submitted[0]
    assert key == EVM_KEY
    assert rpc == "https://mainnet.base.org"


async def test_sign_evm_rpc_override_matches_chain(make_signer, submitted):
    signer = make_signer(evm_rpc_urls={BASE: "http://base-rpc", "eip155:1": "http://eth-rpc"})
    await call(signer, "printr_sign_and_submit_evm", payload=EVM_PAYLOAD, private_key=EVM_KEY)
    assert submitted[0][3] == "http://base-rpc"


async def test_sign_evm_rpc_override_for_other_chain_is_ignored(make_signer, submitted):
    signer = make_signer(evm_rpc_urls={"eip155:1": "http://eth-rpc"})
    await call(signer, "printr_sign_and_submit_evm", payload=EVM_PAYLOAD, private_key=EVM_KEY)
    assert submitted[0][3] == "https://mainnet.base.org"


async def test_sign_evm_uses_active_wallet(signer, submitted):
    signer.registry.set("evm", ActiveWallet(private_key=EVM_KEY, address=EVM_ADDRESS))
    out = await call(signer, "printr_sign_and_submit_evm", payload=EVM_PAYLOAD, rpc_url="http://rpc")
    assert out["ok"] is True
    assert submitted[0][2] == EVM_KEY
    assert submitted[0][3] == "http://rpc"


async def test_sign_evm_without_wallet_explains(signer, submitted):
    out = await call(signer, "printr_sign_and_submit_evm", payload=EVM_PAYLOAD)
    assert out["ok"] is False
    assert out["kind"] == "error"
    assert "printr_wallet_unlock" in out["message"]
    assert submitted == []


async def test_sign_evm_agent_mode_missing_key(make_signer, submitted):
    signer = make_signer(agent_mode=True)
    out = await call(signer, "printr_sign_and_submit_evm", payload=EVM_PAYLOAD)
    assert "EVM_WALLET_PRIVATE_KEY" in out["message"]
    assert submitted == []


async def test_sign_evm_insufficient_funds(signer, submitted, monkeypatch):
    _patch_balances(monkeypatch, signer, evm=(0, 10**9))
    signer.registry.set("evm", ActiveWallet(private_key=EVM_KEY, address=EVM_ADDRESS))
    out = await call(signer, "printr_sign_and_submit_evm", payload=EVM_PAYLOAD)
    assert out["kind"] == "insufficient_funds"
    assert submitted == []


async def test_sign_evm_chain_without_rpc(signer, submitted):
    payload = dict(EVM_PAYLOAD, to="eip155:9745:0x0000000000000000000000000000000000000001")
    out = await call(signer, "printr_sign_and_submit_evm", payload=payload, private_key=EVM_KEY)
    assert out["ok"] is False
    assert "Plasma" in out["error"]


async def test_sign_evm_bad_payload(signer, submitted):
    out = await call(signer, "printr_sign_and_submit_evm", payload={"to": "x"}, private_key=EVM_KEY)
    assert out["ok"] is False
    assert out["error"].startswith("Invalid payload")


async def test_sign_evm_submit_error(signer, monkeypatch):
    async def failing(payload, private_key, rpc_url):
        raise SubmitError("EVM transaction failed: nonce too low")

    monkeypatch.setattr(signing_tools, "sign_and_submit_evm", failing)
    out = await call(signer, "printr_sign_and_submit_evm", payload=EVM_PAYLOAD, private_key=EVM_KEY)
    assert out == {"ok": False, "error": "EVM transaction failed: nonce too low"}


async def test_sign_svm_uses_active_wallet(signer, submitted):
    private_key, address = generate_keypair("svm")
    signer.registry.set("svm", ActiveWallet(private_key=private_key, address=address))
    out = await call(signer, "printr_sign_and_submit_svm", payload=SVM_PAYLOAD)
    assert out["ok"] is True
    assert out["signature"] == "Sig"
    assert submitted[0][2] == private_key
    assert submitted[0][3] == "https://api.mainnet-beta.solana.com"


async def test_sign_svm_requires_instructions(signer, submitted):
    out = await call(
        signer, "printr_sign_and_submit_svm", payload=dict(SVM_PAYLOAD, ixs=[]), private_key="k"
    )
    assert out["ok"] is False
    assert submitted == []
