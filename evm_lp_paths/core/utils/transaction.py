import math
from collections.abc import Callable
from typing import Any

from loguru import logger
from web3 import AsyncWeb3
from web3.exceptions import ContractCustomError, ContractLogicError

from evm_lp_paths.core.constants.base import (
    DEFAULT_TRANSACTION_TIMEOUT,
    GAS_BUFFER_MULTIPLIER,
    MAX_BASE_FEE_GROWTH_MULTIPLIER,
    SUGGESTED_GAS_PRICE_MULTIPLIER,
    SUGGESTED_PRIORITY_FEE_MULTIPLIER,
)
from evm_lp_paths.core.constants.chains import PRE_EIP_1559_CHAIN_IDS
from evm_lp_paths.core.utils.web3 import get_transaction_chain_id, web3_from_chain_id


class TransactionRevertedError(RuntimeError):
    def __init__(
        self,
        txn_hash: str,
        receipt: dict[str, Any] | None = None,
        message: str | None = None,
    ):
        self.txn_hash = txn_hash
        self.receipt = receipt or {}
        super().__init__(message or f"Transaction reverted: {txn_hash}")


class SimulationRevertedError(RuntimeError):
    """Raised when a dry ``estimate_gas`` call reverts; nothing was broadcast."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Simulation reverted: {reason}")


def _revert_reason(exc: Exception) -> str:
    if isinstance(exc, ContractLogicError):
        message = getattr(exc, "message", None) or str(exc)
        return str(message).removeprefix("execution reverted: ").strip()
    return str(exc)


def _get_transaction_from_address(transaction: dict) -> str:
    if "from" not in transaction:
        raise ValueError("Transaction does not contain from address")
    return AsyncWeb3.to_checksum_address(transaction["from"])


async def get_pending_nonce(chain_id: int, address: str) -> int:
    async with web3_from_chain_id(chain_id) as web3:
        return await web3.eth.get_transaction_count(
            AsyncWeb3.to_checksum_address(address), block_identifier="pending"
        )


async def get_gas_price(chain_id: int) -> int:
    async with web3_from_chain_id(chain_id) as web3:
        return int(await web3.eth.gas_price)


async def nonce_transaction(transaction: dict):
    """Fill ``nonce`` from the pending count unless the caller already pinned one."""
    transaction = transaction.copy()
    if transaction.get("nonce") is not None:
        return transaction

    from_address = _get_transaction_from_address(transaction)
    transaction["nonce"] = await get_pending_nonce(
        get_transaction_chain_id(transaction), from_address
    )
    return transaction


async def gas_price_transaction(transaction: dict):
    transaction = transaction.copy()
    chain_id = get_transaction_chain_id(transaction)

    async with web3_from_chain_id(chain_id) as web3:
        if chain_id in PRE_EIP_1559_CHAIN_IDS:
            gas_price = await web3.eth.gas_price
            transaction["gasPrice"] = int(gas_price * SUGGESTED_GAS_PRICE_MULTIPLIER)
            return transaction

        latest_block = await web3.eth.get_block("latest")
        base_fee = latest_block.baseFeePerGas
        fee_history = await web3.eth.fee_history(10, "latest", [80])
        rewards = [r[0] for r in fee_history.reward] or [0]
        priority_fee = sum(rewards) // len(rewards)

        transaction["maxFeePerGas"] = int(
            base_fee * MAX_BASE_FEE_GROWTH_MULTIPLIER
            + priority_fee * SUGGESTED_PRIORITY_FEE_MULTIPLIER
        )
        transaction["maxPriorityFeePerGas"] = int(
            priority_fee * SUGGESTED_PRIORITY_FEE_MULTIPLIER
        )
    return transaction


async def simulate_transaction(transaction: dict) -> int:
    """Dry-run ``transaction`` via ``estimate_gas``; returns the raw gas estimate.

    A revert raises ``SimulationRevertedError`` carrying the node's reason.
    """
    tx = {k: v for k, v in transaction.items() if k not in ("gas", "nonce")}
    async with web3_from_chain_id(get_transaction_chain_id(tx)) as web3:
        try:
            return int(await web3.eth.estimate_gas(tx, block_identifier="latest"))
        except (ContractLogicError, ContractCustomError) as exc:
            raise SimulationRevertedError(_revert_reason(exc)) from exc
        except ValueError as exc:
            # Some nodes surface reverts as a bare RPC error dict
            raise SimulationRevertedError(str(exc)) from exc


async def gas_limit_transaction(transaction: dict):
    transaction = transaction.copy()
    # prevents RPCs from taking this as a serious limit
    transaction.pop("gas", None)

    try:
        gas_limit = await simulate_transaction(transaction)
    except SimulationRevertedError as exc:
        logger.error(f"Gas estimation reverted: {exc.reason}")
        raise

    transaction["gas"] = int(math.ceil(gas_limit * GAS_BUFFER_MULTIPLIER))
    return transaction


async def broadcast_transaction(chain_id, signed_transaction: bytes) -> str:
    async with web3_from_chain_id(chain_id) as web3:
        tx_hash = await web3.eth.send_raw_transaction(signed_transaction)
        return tx_hash.hex()


async def wait_for_transaction_receipt(
    chain_id: int,
    txn_hash: str,
    poll_interval: float = 0.5,
    timeout: int = DEFAULT_TRANSACTION_TIMEOUT,
) -> dict:
    if isinstance(txn_hash, str) and not txn_hash.startswith("0x"):
        txn_hash = f"0x{txn_hash}"

    async with web3_from_chain_id(chain_id) as web3:
        receipt = await web3.eth.wait_for_transaction_receipt(
            txn_hash, poll_latency=poll_interval, timeout=timeout
        )
    if receipt.get("status") == 0:
        raise TransactionRevertedError(txn_hash, dict(receipt))
    return receipt


async def send_transaction_with_receipt(
    transaction: dict, sign_callback: Callable
) -> tuple[str, dict]:
    """Estimate, price, nonce, sign, broadcast and wait; returns ``(hash, receipt)``."""
    if sign_callback is None:
        raise ValueError("sign_callback must be provided to send transaction")

    chain_id = get_transaction_chain_id(transaction)
    transaction = await gas_limit_transaction(transaction)
    transaction = await nonce_transaction(transaction)
    transaction = await gas_price_transaction(transaction)
    logger.info(
        f"Broadcasting transaction chain={chain_id} to={transaction.get('to')} nonce={transaction['nonce']}"
    )
    signed_transaction = await sign_callback(transaction)
    txn_hash = await broadcast_transaction(chain_id, signed_transaction)
    if isinstance(txn_hash, str) and not txn_hash.startswith("0x"):
        txn_hash = f"0x{txn_hash}"
    logger.info(f"Transaction broadcasted: {txn_hash}")

    try:
        receipt = await wait_for_transaction_receipt(chain_id, txn_hash)
    except TransactionRevertedError as exc:
        gas_used = int(exc.receipt.get("gasUsed") or 0)
        gas_limit = int(transaction.get("gas") or 0)
        suffix = " (likely out of gas)" if gas_used and gas_used >= gas_limit else ""
        raise TransactionRevertedError(
            txn_hash,
            exc.receipt,
            message=f"Transaction reverted (status=0): {txn_hash} gasUsed={gas_used} gasLimit={gas_limit}{suffix}",
        ) from exc
    return txn_hash, receipt


async def send_transaction(transaction: dict, sign_callback: Callable) -> str:
    txn_hash, _ = await send_transaction_with_receipt(transaction, sign_callback)
    return txn_hash


async def encode_call(
    *,
    target: str,
    abi: list[dict[str, Any]],
    fn_name: str,
    args: list[Any],
    from_address: str,
    chain_id: int,
    value: int = 0,
    nonce: int | None = None,
) -> dict[str, Any]:
    async with web3_from_chain_id(chain_id) as web3:
        try:
            contract = web3.eth.contract(
                address=web3.to_checksum_address(target),
                abi=abi,
            )
            data = contract.encode_abi(fn_name, args)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Failed to encode {fn_name}: {exc}") from exc

    tx = {
        "chainId": int(chain_id),
        "from": AsyncWeb3.to_checksum_address(from_address),
        "to": AsyncWeb3.to_checksum_address(target),
        "data": data,
        "value": int(value),
    }
    if nonce is not None:
        tx["nonce"] = int(nonce)
    return tx
