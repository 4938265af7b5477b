"""Agent-facing wallet tools.

These tools let agents create, import, list, unlock and remove keystore
wallets, and start a browser flow when the user would rather not hand a
password or key to the agent. Private keys are never returned, except that
a freshly generated key is shown once on the browser backup page.
"""

from __future__ import annotations

import asyncio
import logging

from printr_signer.errors import Failure
from printr_signer.tools.registry import tool
from printr_signer.wallet.active import ActiveWallet, ActiveWalletRegistry
from printr_signer.wallet.chains import chain_family
from printr_signer.wallet.keys import derive_address, generate_keypair
from printr_signer.wallet.keystore import Keystore, decrypt_key, new_wallet_entry
from printr_signer.wallet.resolver import WalletChoice, WalletResolver, describe_resolution

logger = logging.getLogger("printr_signer.tools.wallet")

_CHAIN_PARAM = {
    "type": "string",
    "description": (
        "CAIP-2 chain ID (e.g. 'solana:5eykt4UsFv8P8NJdTREpY1vzqKqZKvdp' or 'eip155:8453')"
    ),
}

_BROWSER_CHOICES = {"unlock": "stored", "provide": "provide", "new": "generate"}


def _error(message: str) -> dict:
    return {"ok": False, "error": message}


def _choice_json(choice: WalletChoice) -> dict:
    out = {"kind": choice.kind, "label": choice.label}
    if choice.wallet_id:
        out["wallet_id"] = choice.wallet_id
    return out


def _bad_chain(chain: str) -> str | None:
    if chain.startswith("eip155:") or chain.startswith("solana:"):
        return None
    return f"Unsupported chain '{chain}'. Use a CAIP-2 id such as eip155:8453 or solana:<genesis>."


class WalletTools:
    """Keystore and active-wallet tools, bound to one signer's state."""

    def __init__(
        self,
        keystore: Keystore,
        registry: ActiveWalletRegistry,
        resolver: WalletResolver,
    ) -> None:
        self.keystore = keystore
        self.registry = registry
        self.resolver = resolver

    @tool(
        "printr_wallet_new",
        (
            "Generate a new wallet keypair for the given chain, encrypt it with a password, "
            "and save it to the local keystore. Returns the new address and wallet ID. "
            "The wallet is immediately set as the active wallet for its chain type. "
            "Fund the address with native tokens before signing transactions."
        ),
        {
            "type": "object",
            "properties": {
                "chain": _CHAIN_PARAM,
                "label": {"type": "string", "description": "Human-readable label for this wallet"},
                "password": {
                    "type": "string",
                    "description": "Password used to encrypt the private key at rest",
                },
            },
            "required": ["chain", "label", "password"],
        },
    )
    async def wallet_new(self, chain: str, label: str, password: str) -> dict:
        err = _bad_chain(chain)
        if err:
            return _error(err)
        if not label or not password:
            return _error("Label and password are required.")

        family = chain_family(chain)
        private_key, address = generate_keypair(family)
        entry = await asyncio.to_thread(new_wallet_entry, label, chain, address, private_key, password)
        await asyncio.to_thread(self.keystore.add, entry)
        logger.info(f"Created {family} wallet {entry.id} ({address})")
        self.registry.set(family, ActiveWallet(private_key=private_key, address=address))
        return {
            "ok": True,
            "address": address,
            "chain": chain,
            "wallet_id": entry.id,
            "message": f"Created wallet '{label}' ({address}). Fund it before signing.",
        }

    @tool(
        "printr_wallet_import",
        (
            "Import an existing private key as the active wallet for its chain. "
            "Optionally encrypt and save it to the local keystore by providing a label "
            "and password. The wallet is set active immediately."
        ),
        {
            "type": "object",
            "properties": {
                "chain": _CHAIN_PARAM,
                "private_key": {
                    "type": "string",
                    "description": (
                        "Raw private key. EVM: hex (with or without 0x). "
                        "SVM: base58 64-byte keypair."
                    ),
                },
                "label": {
                    "type": "string",
                    "description": "Label for saving to keystore (required together with password)",
                },
                "password": {
                    "type": "string",
                    "description": "Password to encrypt and save to keystore",
                },
            },
            "required": ["chain", "private_key"],
        },
    )
    async def wallet_import(
        self,
        chain: str,
        private_key: str,
        label: str = "",
        password: str = "",
    ) -> dict:
        err = _bad_chain(chain)
        if err:
            return _error(err)
        family = chain_family(chain)
        address = derive_address(private_key, family)
        if isinstance(address, Failure):
            return _error("Invalid private key format.")

        out: dict = {"ok": True, "address": address, "saved": False}
        if label and password:
            entry = await asyncio.to_thread(
                new_wallet_entry, label, chain, address, private_key, password
            )
            await asyncio.to_thread(self.keystore.add, entry)
            out["saved"] = True
            out["wallet_id"] = entry.id

        self.registry.set(family, ActiveWallet(private_key=private_key, address=address))
        out["message"] = f"Wallet {address} is now active for {family.upper()} signing."
        return out

    @tool(
        "printr_wallet_list",
        "List wallets saved in the local keystore. Private keys are never returned.",
        {
            "type": "object",
            "properties": {
                "chain": {"type": "string", "description": "Filter by CAIP-2 chain ID"},
            },
            "required": [],
        },
    )
    async def wallet_list(self, chain: str = "") -> dict:
        entries = await asyncio.to_thread(self.keystore.list, chain or None)
        return {"ok": True, "wallets": [e.summary() for e in entries]}

    @tool(
        "printr_wallet_unlock",
        (
            "Decrypt a stored keystore wallet with its password and set it as the active "
            "wallet for its chain type. Once unlocked, signing tools use it automatically "
            "until the signer restarts."
        ),
        {
            "type": "object",
            "properties": {
                "wallet_id": {
                    "type": "string",
                    "description": "Keystore wallet ID, from printr_wallet_list",
                },
                "password": {"type": "string", "description": "Decryption password"},
            },
            "required": ["wallet_id", "password"],
        },
    )
    async def wallet_unlock(self, wallet_id: str, password: str) -> dict:
        entry = await asyncio.to_thread(self.keystore.get, wallet_id)
        if entry is None:
            return _error(f"Wallet {wallet_id} not found in keystore.")
        private_key = await asyncio.to_thread(decrypt_key, entry, password)
        if isinstance(private_key, Failure):
            return _error("Incorrect password.")
        self.registry.set(
            chain_family(entry.chain),
            ActiveWallet(private_key=private_key, address=entry.address),
        )
        return {"ok": True, "address": entry.address, "chain": entry.chain}

    @tool(
        "printr_wallet_remove",
        (
            "Remove a wallet from the local keystore. "
            "Does not affect the active wallet for the current session."
        ),
        {
            "type": "object",
            "properties": {
                "wallet_id": {
                    "type": "string",
                    "description": "Keystore wallet ID, from printr_wallet_list",
                },
            },
            "required": ["wallet_id"],
        },
    )
    async def wallet_remove(self, wallet_id: str) -> dict:
        removed = await asyncio.to_thread(self.keystore.remove, wallet_id)
        if not removed:
            return _error(f"Wallet {wallet_id} not found in keystore.")
        logger.info(f"Removed wallet {wallet_id} from keystore")
        return {"ok": True}

    @tool(
        "printr_wallet_choices",
        (
            "List the ways a signing key can be obtained for a chain: the active wallet, "
            "each stored wallet, providing a key in the browser, or generating a new one."
        ),
        {
            "type": "object",
            "properties": {"chain": _CHAIN_PARAM},
            "required": ["chain"],
        },
    )
    async def wallet_choices(self, chain: str) -> dict:
        err = _bad_chain(chain)
        if err:
            return _error(err)
        choices = await self.resolver.wallet_choices(chain)
        return {
            "ok": True,
            "choices": [_choice_json(c) for c in choices],
        }

    @tool(
        "printr_wallet_browser",
        (
            "Start a browser flow so the user can unlock a stored wallet, paste a private "
            "key, or back up a newly generated wallet without sharing secrets with the "
            "agent. Returns a URL to present to the user."
        ),
        {
            "type": "object",
            "properties": {
                "chain": _CHAIN_PARAM,
                "action": {
                    "type": "string",
                    "enum": ["unlock", "provide", "new"],
                    "description": "Which browser flow to start",
                },
                "wallet_id": {
                    "type": "string",
                    "description": "Keystore wallet ID (required for unlock)",
                },
            },
            "required": ["chain", "action"],
        },
    )
    async def wallet_browser(self, chain: str, action: str, wallet_id: str = "") -> dict:
        err = _bad_chain(chain)
        if err:
            return _error(err)
        kind = _BROWSER_CHOICES.get(action)
        if kind is None:
            return _error(f"Unknown action '{action}'. Use unlock, provide or new.")
        if kind == "stored" and not wallet_id:
            return _error("wallet_id is required to unlock a stored wallet.")

        resolution = await self.resolver.acquire(
            chain, WalletChoice(kind, action, wallet_id or None)
        )
        described = describe_resolution(resolution)
        return {"ok": described["kind"] == "browser_required", **described}
