"""Sign and broadcast launch transactions once a key has been resolved."""

from __future__ import annotations

import base64
import logging
from typing import Literal, Optional

import base58
from pydantic import BaseModel
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.models import TxOpts
from solders.address_lookup_table_account import AddressLookupTable, AddressLookupTableAccount
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus
from web3 import AsyncWeb3

from printr_signer.errors import SubmitError
from printr_signer.wallet.chains import DEFAULT_SVM_RPC, parse_evm_caip10
from printr_signer.wallet.keys import normalise_private_key

logger = logging.getLogger("printr_signer.wallet.submit")


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class EvmPayload(BaseModel):
    to: str  # CAIP-10 target contract, e.g. eip155:8453:0x...
    calldata: str
    value: str  # wei
    gas_limit: int


class EvmSubmitResult(BaseModel):
    tx_hash: str
    block_number: str
    status: Literal["success", "reverted"]


class SvmAccount(BaseModel):
    pubkey: str
    is_signer: bool
    is_writable: bool


class SvmInstruction(BaseModel):
    program_id: str
    accounts: list[SvmAccount]
    data: str  # base64


class SvmPayload(BaseModel):
    ixs: list[SvmInstruction]
    lookup_table: Optional[str] = None
    mint_address: str


class SvmSubmitResult(BaseModel):
    signature: str
    slot: int
    confirmation_status: Literal["finalized", "confirmed", "processed"]


# ---------------------------------------------------------------------------
# EVM
# ---------------------------------------------------------------------------


async def sign_and_submit_evm(
    payload: EvmPayload,
    private_key: str,
    rpc_url: str,
) -> EvmSubmitResult:
    """Sign, send, and wait for the receipt.

    Uses EIP-1559 fee parameters with a legacy gas price fallback.
    """
    try:
        chain_id, to_address = parse_evm_caip10(payload.to)
    except ValueError as exc:
        raise SubmitError(str(exc)) from exc

    w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
    try:
        account = w3.eth.account.from_key(normalise_private_key(private_key))
        calldata = payload.calldata if payload.calldata.startswith("0x") else f"0x{payload.calldata}"
        tx: dict = {
            "to": AsyncWeb3.to_checksum_address(to_address),
            "data": calldata,
            "value": int(payload.value),
            "gas": int(payload.gas_limit),
            "nonce": await w3.eth.get_transaction_count(account.address),
            "chainId": chain_id,
        }

        # Try EIP-1559 first, fall back to legacy gas price
        latest = await w3.eth.get_block("latest")
        base_fee = latest.get("baseFeePerGas")
        if base_fee is not None:
            max_priority = AsyncWeb3.to_wei(1.5, "gwei")
            tx["maxFeePerGas"] = base_fee * 2 + max_priority
            tx["maxPriorityFeePerGas"] = max_priority
        else:
            tx["gasPrice"] = await w3.eth.gas_price

        signed = account.sign_transaction(tx)
        tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = await w3.eth.wait_for_transaction_receipt(tx_hash)
    except Exception as exc:
        raise SubmitError(f"EVM transaction failed: {exc}") from exc
    finally:
        await w3.provider.disconnect()

    result = EvmSubmitResult(
        tx_hash=AsyncWeb3.to_hex(tx_hash),
        block_number=str(receipt["blockNumber"]),
        status="success" if receipt["status"] == 1 else "reverted",
    )
    logger.info(f"EVM tx {result.tx_hash} mined in block {result.block_number}: {result.status}")
    return result


# ---------------------------------------------------------------------------
# SVM
# ---------------------------------------------------------------------------

_CONFIRMATION_NAMES = {
    TransactionConfirmationStatus.Processed: "processed",
    TransactionConfirmationStatus.Confirmed: "confirmed",
    TransactionConfirmationStatus.Finalized: "finalized",
}


def build_instructions(payload: SvmPayload) -> list[Instruction]:
    return [
        Instruction(
            program_id=Pubkey.from_string(ix.program_id),
            data=base64.b64decode(ix.data),
            accounts=[
                AccountMeta(
                    pubkey=Pubkey.from_string(a.pubkey),
                    is_signer=a.is_signer,
                    is_writable=a.is_writable,
                )
                for a in ix.accounts
            ],
        )
        for ix in payload.ixs
    ]


async def _lookup_tables(client: AsyncClient, address: str | None) -> list[AddressLookupTableAccount]:
    if not address:
        return []
    key = Pubkey.from_string(address)
    resp = await client.get_account_info(key)
    if resp.value is None:
        return []
    table = AddressLookupTable.deserialize(bytes(resp.value.data))
    return [AddressLookupTableAccount(key=key, addresses=list(table.addresses))]


async def sign_and_submit_svm(
    payload: SvmPayload,
    private_key: str,
    rpc_url: str = DEFAULT_SVM_RPC,
) -> SvmSubmitResult:
    """Compile a v0 message, sign it with the fee payer, and confirm it."""
    try:
        keypair = Keypair.from_bytes(base58.b58decode(private_key.strip()))
        instructions = build_instructions(payload)
    except Exception as exc:
        raise SubmitError(f"Invalid SVM payload or key: {exc}") from exc

    try:
        async with AsyncClient(rpc_url, commitment=Confirmed) as client:
            alts = await _lookup_tables(client, payload.lookup_table)
            latest = (await client.get_latest_blockhash()).value
            message = MessageV0.try_compile(keypair.pubkey(), instructions, alts, latest.blockhash)
            tx = VersionedTransaction(message, [keypair])

            sent = await client.send_raw_transaction(
                bytes(tx),
                opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed),
            )
            signature = sent.value
            await client.confirm_transaction(
                signature,
                commitment=Confirmed,
                last_valid_block_height=latest.last_valid_block_height,
            )
            status = (await client.get_signature_statuses([signature])).value[0]
    except Exception as exc:
        raise SubmitError(f"SVM transaction failed: {exc}") from exc

    if status is not None and status.err is not None:
        raise SubmitError(f"Transaction failed: {status.err}")

    result = SvmSubmitResult(
        signature=str(signature),
        slot=status.slot if status is not None else 0,
        confirmation_status=(
            _CONFIRMATION_NAMES.get(status.confirmation_status, "confirmed")
            if status is not None
            else "confirmed"
        ),
    )
    logger.info(f"SVM tx {result.signature} confirmed at slot {result.slot}")
    return result
